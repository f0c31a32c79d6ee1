from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from statement_ingest.models import (
    CategoriesConfig,
    Category,
    Direction,
    ParsedTransaction,
    ProcessingSummary,
)


def test_amount_is_rounded_to_cents():
    tx = ParsedTransaction(
        date=date(2024, 3, 5), description="Coffee", amount=Decimal("4.505"), direction=Direction.OUTFLOW
    )
    assert tx.amount == Decimal("4.51")
    assert tx.signed_amount == Decimal("-4.51")
    assert tx.month_key == "2024-03"


def test_description_whitespace_is_collapsed():
    tx = ParsedTransaction(
        date=date(2024, 3, 5), description="  Corner \t  Cafe ", amount=Decimal("1"), direction=Direction.OUTFLOW
    )
    assert tx.description == "Corner Cafe"


@pytest.mark.parametrize(
    ("description", "amount"),
    [
        ("", Decimal("1.00")),
        ("   ", Decimal("1.00")),
        ("Coffee", Decimal("-1.00")),
        ("Coffee", Decimal("1234567890123456789012345678")),
    ],
)
def test_invalid_transactions_are_rejected(description, amount):
    with pytest.raises(ValidationError):
        ParsedTransaction(date=date(2024, 3, 5), description=description, amount=amount, direction=Direction.INFLOW)


def test_categories_prompt_text():
    config = CategoriesConfig(
        categories=[Category(name="Groceries", description="Food shopping", keywords=["Kroger", "aldi", "costco", "x"])]
    )
    assert config.to_prompt_text() == "- Groceries: Food shopping (examples: kroger, aldi, costco)"
    assert config.get_category_names() == ["Groceries"]


def test_summary_response_shape():
    child = ProcessingSummary(filename="a.csv", total_parsed=2, inserted_transactions=2, message="ok")
    summary = ProcessingSummary(total_parsed=2, inserted_transactions=2, duplicates=1, message="done", files=[child])

    response = summary.to_response()

    assert response["success"] is True
    assert response["message"] == "done"
    assert response["details"]["duplicates"] == 1
    assert response["details"]["files"][0]["filename"] == "a.csv"
    assert "files" not in response["details"]["files"][0]
