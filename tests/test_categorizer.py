from datetime import date
from decimal import Decimal

import pytest

from statement_ingest.categories import CANONICAL_LABELS, DEFAULT_CATEGORIES, load_categories
from statement_ingest.categorizer import (
    MODEL,
    RULE,
    Categorizer,
    build_batches,
    categorize_by_rules,
    estimate_tokens,
    standardize_category,
)
from statement_ingest.config import IngestSettings
from statement_ingest.models import Direction, ParsedTransaction
from tests.helpers.llm_stub import StubLLMClient


def _tx(description: str, direction: Direction = Direction.OUTFLOW, amount: str = "10.00") -> ParsedTransaction:
    return ParsedTransaction(
        date=date(2024, 3, 15),
        description=description,
        amount=Decimal(amount),
        direction=direction,
    )


@pytest.fixture
def fast_settings() -> IngestSettings:
    return IngestSettings(inter_batch_delay=0, insert_delay=0)


@pytest.mark.parametrize(
    ("label", "expected"),
    [
        ("Groceries", "Groceries"),
        ("groceries", "Groceries"),
        ("  utilities. ", "Utilities"),
        ("DiningOut", "Dining Out"),
        ("dining_out", "Dining Out"),
        ("PersonalCare", "Personal Care"),
        ("personal", "Personal Care"),
        ("Gifts", "Gifts/Donations"),
        ("Savings", "Savings/Investments"),
        ("Uncategorized_Expense", "Uncategorized Expense"),
        ("Health", "Healthcare"),
        ("Travel & Lodging", "Travel"),
        ("", "Other"),
        (None, "Other"),
    ],
)
def test_standardize_category(label, expected):
    assert standardize_category(label) == expected


def test_standardize_passes_unknown_labels_through_title_cased():
    assert standardize_category("pet supplies") == "Pet Supplies"


def test_every_canonical_label_is_stable():
    for label in CANONICAL_LABELS:
        assert standardize_category(label) == label


@pytest.mark.parametrize(
    ("description", "expected"),
    [
        ("Grocery Store", "Groceries"),
        ("STARBUCKS #1234", "Dining Out"),
        ("SHELL OIL 5551", "Transportation"),
        ("NETFLIX.COM", "Subscriptions"),
        ("Overdraft fee", "Bank Fees"),
        ("WALMART SUPERCENTER #55", "Groceries"),
        ("CITY GAS BILL", "Utilities"),
        ("URGENT CARE CENTER", "Healthcare"),
        ("METRO BUS PASS", "Transportation"),
        ("AMAZON MKTPLACE", "Uncategorized Expense"),
        ("DOWNTOWN DAY SPA", "Personal Care"),
        ("Mystery Charge", "Other"),
    ],
)
def test_rules_for_outflows(description, expected):
    assert categorize_by_rules(description, Direction.OUTFLOW) == expected


def test_inflows_are_always_income():
    assert categorize_by_rules("Grocery Store refund", Direction.INFLOW) == "Income"


def test_default_rules_only_use_canonical_labels():
    assert set(DEFAULT_CATEGORIES.get_category_names()) <= set(CANONICAL_LABELS)


def test_load_categories_from_file(tmp_path):
    path = tmp_path / "categories.json"
    path.write_text('{"categories": [{"name": "Pets", "keywords": ["  PETCO "]}]}')
    config = load_categories(path)
    assert config.categories[0].keywords == ["petco"]
    assert categorize_by_rules("PETCO #12", Direction.OUTFLOW, config) == "Pets"


def test_load_categories_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_categories(tmp_path / "missing.json")
    bad = tmp_path / "bad.json"
    bad.write_text("{not json")
    with pytest.raises(ValueError):
        load_categories(bad)
    assert load_categories(None) is DEFAULT_CATEGORIES


def test_estimate_tokens():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_build_batches_respects_budget_and_item_cap():
    items = list(enumerate(_tx("x" * 40) for _ in range(5)))
    # Each item costs 10 + 8 = 18 tokens
    assert [len(b) for b in build_batches(items, token_budget=40, max_items=10)] == [2, 2, 1]
    assert [len(b) for b in build_batches(items, token_budget=1000, max_items=3)] == [3, 2]


def test_build_batches_gives_oversize_item_its_own_batch():
    items = [(0, _tx("a")), (1, _tx("y" * 400)), (2, _tx("b"))]
    batches = list(build_batches(items, token_budget=50, max_items=10))
    assert [[i for i, _ in b] for b in batches] == [[0], [1], [2]]


def test_without_client_everything_uses_rules(fast_settings):
    categorizer = Categorizer(settings=fast_settings)
    result = categorizer.categorize([_tx("Grocery Store"), _tx("Paycheck", Direction.INFLOW)])
    assert [(a.category, a.source) for a in result] == [("Groceries", RULE), ("Income", RULE)]


def test_model_labels_are_standardized_in_order(fast_settings):
    labels = {"Widget Emporium": "shopping_stuff", "Corner Bistro": "diningOut"}
    client = StubLLMClient(decide=lambda d: labels[d])
    categorizer = Categorizer(client=client, settings=fast_settings)

    result = categorizer.categorize(
        [_tx("Widget Emporium"), _tx("Paycheck", Direction.INFLOW), _tx("Corner Bistro")]
    )

    assert [(a.category, a.source) for a in result] == [
        ("Shopping Stuff", MODEL),
        ("Income", RULE),
        ("Dining Out", MODEL),
    ]
    # Inflows never reach the model
    assert client.descriptions(1) == ["Widget Emporium", "Corner Bistro"]


def test_length_mismatch_falls_back_to_rules_for_whole_batch():
    settings = IngestSettings(inter_batch_delay=0, max_batch_items=2)
    client = StubLLMClient(decide=lambda d: "Entertainment", short_calls={1})
    categorizer = Categorizer(client=client, settings=settings)

    result = categorizer.categorize([_tx("Grocery Store"), _tx("Coffee Bar"), _tx("Cinema City")])

    assert len(client.calls) == 2
    assert [(a.category, a.source) for a in result] == [
        ("Groceries", RULE),
        ("Dining Out", RULE),
        ("Entertainment", MODEL),
    ]


def test_service_failure_falls_back_to_rules():
    settings = IngestSettings(inter_batch_delay=0, max_batch_items=1)
    client = StubLLMClient(decide=lambda d: "Travel", fail_calls={2})
    categorizer = Categorizer(client=client, settings=settings)

    result = categorizer.categorize([_tx("Airline Ticket"), _tx("Grocery Store")])

    assert [(a.category, a.source) for a in result] == [("Travel", MODEL), ("Groceries", RULE)]


def test_batches_wait_between_calls(monkeypatch: pytest.MonkeyPatch):
    sleeps: list[float] = []
    monkeypatch.setattr("statement_ingest.categorizer.time.sleep", sleeps.append)
    settings = IngestSettings(inter_batch_delay=0.5, max_batch_items=1)
    categorizer = Categorizer(client=StubLLMClient(), settings=settings)

    categorizer.categorize([_tx("a one"), _tx("b two"), _tx("c three")])

    assert sleeps == [0.5, 0.5]


def test_token_budget_accounts_for_prompt_overhead(fast_settings):
    categorizer = Categorizer(settings=fast_settings)
    limit = fast_settings.context_token_limit - fast_settings.completion_token_reserve
    assert 0 < categorizer.token_budget < limit
