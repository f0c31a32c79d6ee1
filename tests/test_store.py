import csv
from datetime import date
from decimal import Decimal

import pytest

from statement_ingest.models import CategorizedTransaction, Direction
from statement_ingest.store import CSV_FIELDS, InMemoryTransactionStore, StoreError


def _tx(**overrides) -> CategorizedTransaction:
    values = {
        "date": date(2024, 3, 15),
        "description": "Grocery Store",
        "amount": Decimal("54.23"),
        "direction": Direction.OUTFLOW,
        "category": "Groceries",
        "month_key": "2024-03",
        "user_id": "u1",
        "source_reference": "up-1",
    }
    values.update(overrides)
    return CategorizedTransaction(**values)


def test_exists_matches_user_date_description_amount(store):
    store.insert([_tx()])

    assert store.exists("u1", date(2024, 3, 15), "Grocery Store", Decimal("54.23"))
    assert store.exists("u1", date(2024, 3, 15), "Grocery Store", Decimal("54.2300"))
    assert not store.exists("u2", date(2024, 3, 15), "Grocery Store", Decimal("54.23"))
    assert not store.exists("u1", date(2024, 3, 16), "Grocery Store", Decimal("54.23"))
    assert not store.exists("u1", date(2024, 3, 15), "Grocery", Decimal("54.23"))
    assert not store.exists("u1", date(2024, 3, 15), "Grocery Store", Decimal("54.24"))


def test_csv_round_trip_seeds_duplicate_checks(store, tmp_path):
    store.insert([_tx(), _tx(description="Paycheck", direction=Direction.INFLOW, category="Income")])
    path = tmp_path / "out" / "transactions.csv"
    store.write_csv(path)

    with open(path, newline="") as f:
        rows = list(csv.DictReader(f))
    assert list(rows[0]) == CSV_FIELDS
    assert rows[1]["type"] == "income"

    reloaded = InMemoryTransactionStore()
    assert reloaded.load_csv(path, user_id="u1") == 2
    assert reloaded.exists("u1", date(2024, 3, 15), "Paycheck", Decimal("54.23"))
    assert reloaded.transactions[0].source_reference == "up-1"


def test_load_csv_rejects_bad_rows(store, tmp_path):
    path = tmp_path / "broken.csv"
    path.write_text("date,description,amount,type,category,month_key\n2024-03-15,Coffee,abc,expense,Dining Out,2024-03\n")
    with pytest.raises(StoreError, match="broken.csv:2"):
        store.load_csv(path)


def test_mark_processed(store):
    store.mark_processed("up-1")
    assert store.processed_uploads == {"up-1"}
