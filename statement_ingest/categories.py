"""Canonical category labels and the built-in keyword rule table."""

import json
from pathlib import Path

from loguru import logger

from statement_ingest.models import CategoriesConfig

INCOME = "Income"
OTHER = "Other"

CANONICAL_LABELS: tuple[str, ...] = (
    "Housing",
    "Transportation",
    "Groceries",
    "Dining Out",
    "Utilities",
    "Subscriptions",
    "Healthcare",
    "Insurance",
    "Child Care",
    "Education",
    "Entertainment",
    "Travel",
    "Personal Care",
    "Gifts/Donations",
    "Savings/Investments",
    INCOME,
    "Bank Fees",
    "Taxes",
    "Uncategorized Expense",
    OTHER,
)

# Keyword lists are matched as lowercase substrings, first category wins, so
# order matters: more specific categories come before broad ones. Healthcare
# and Child Care stay ahead of Transportation, whose "car" also matches "care".
_DEFAULT_RULES: list[dict] = [
    {
        "name": "Bank Fees",
        "description": "Fees and charges levied by the bank",
        "keywords": [
            "overdraft", "nsf fee", "service charge", "maintenance fee", "monthly fee",
            "atm fee", "wire fee", "foreign transaction fee", "late fee", "bank fee",
            "annual fee",
        ],
    },
    {
        "name": "Taxes",
        "description": "Tax payments and preparation",
        "keywords": [
            "irs treas", "tax payment", "state tax", "property tax", "tax preparation",
            "turbotax", "h&r block", "treas tax",
        ],
    },
    {
        "name": "Insurance",
        "description": "Insurance premiums",
        "keywords": [
            "insurance", "premium", "geico", "state farm", "allstate", "progressive",
            "liberty mutual",
        ],
    },
    {
        "name": "Housing",
        "description": "Rent, mortgage and home costs",
        "keywords": [
            "rent", "mortgage", "property", "home", "hoa", "apartment", "lease",
            "real estate", "lowe's", "ikea", "furniture",
        ],
    },
    {
        "name": "Utilities",
        "description": "Power, water, gas, phone and internet",
        "keywords": [
            "electric", "water", "gas", "internet", "wifi", "phone", "utility", "utilities",
            "cable", "sewage", "trash", "comcast", "verizon", "at&t", "t-mobile", "spectrum",
            "xfinity", "pg&e", "con edison",
        ],
    },
    {
        "name": "Groceries",
        "description": "Supermarkets and food shopping",
        "keywords": [
            "grocery", "supermarket", "food", "market", "safeway", "kroger", "trader",
            "whole foods", "aldi", "walmart", "costco", "publix", "wegmans", "sprouts",
            "meijer", "albertsons", "ralphs", "h-e-b",
        ],
    },
    {
        "name": "Dining Out",
        "description": "Restaurants, coffee and food delivery",
        "keywords": [
            "restaurant", "cafe", "coffee", "starbucks", "mcdonalds", "mcdonald's", "dining",
            "pizza", "burger", "takeout", "ubereats", "uber eats", "doordash", "grubhub",
            "postmates", "chipotle", "panera", "wendy's", "taco bell", "kfc", "sushi",
            "bakery", "diner",
        ],
    },
    {
        "name": "Healthcare",
        "description": "Medical, dental, vision and pharmacy",
        "keywords": [
            "doctor", "physician", "hospital", "medical", "clinic", "urgent care", "dental",
            "dentist", "optometrist", "pharmacy", "prescription", "health", "cvs",
            "walgreens", "rite aid", "copay",
        ],
    },
    {
        "name": "Child Care",
        "description": "Daycare, babysitting and kids' needs",
        "keywords": [
            "childcare", "child care", "daycare", "nanny", "babysitter", "preschool",
            "diaper",
        ],
    },
    {
        "name": "Transportation",
        "description": "Fuel, rideshare, transit and car costs",
        "keywords": [
            "fuel", "chevron", "shell", "exxon", "uber", "lyft", "taxi", "transit", "train",
            "subway", "bus", "car", "auto", "vehicle", "parking", "oil change", "dmv",
            "metro", "amtrak", "toll", "bart", "caltrain",
        ],
    },
    {
        "name": "Subscriptions",
        "description": "Recurring software, streaming and memberships",
        "keywords": [
            "subscription", "membership", "monthly", "recurring", "netflix", "spotify",
            "hulu", "disney+", "hbo", "youtube premium", "apple.com/bill", "icloud", "adobe",
            "dropbox", "microsoft 365", "amazon prime", "gym",
        ],
    },
    {
        "name": "Entertainment",
        "description": "Movies, events and leisure",
        "keywords": [
            "movie", "theater", "cinema", "disney", "concert", "amc", "regal",
            "ticketmaster", "stubhub", "fandango", "museum", "zoo", "bowling", "arcade",
            "steam games",
        ],
    },
    {
        "name": "Uncategorized Expense",
        "description": "General retail and online shopping",
        "keywords": ["amazon", "target", "clothing", "department", "store", "retail", "online"],
    },
    {
        "name": "Personal Care",
        "description": "Hair, beauty, grooming and fitness",
        "keywords": [
            "haircut", "salon", "spa", "fitness", "massage", "barber", "beauty", "cosmetics",
            "sephora", "ulta",
        ],
    },
    {
        "name": "Travel",
        "description": "Flights, lodging and trips",
        "keywords": [
            "hotel", "motel", "resort", "airbnb", "vrbo", "booking.com", "expedia", "flight",
            "airline", "airport", "southwest", "jetblue", "cruise", "vacation", "travel",
        ],
    },
    {
        "name": "Education",
        "description": "Tuition, courses and books",
        "keywords": [
            "tuition", "school", "course", "book", "university", "college", "student loan",
            "udemy", "coursera", "skillshare", "masterclass",
        ],
    },
    {
        "name": "Gifts/Donations",
        "description": "Gifts, charity and donations",
        "keywords": ["gift", "donation", "charity", "nonprofit", "gofundme", "registry"],
    },
    {
        "name": "Savings/Investments",
        "description": "Transfers to savings and brokerage accounts",
        "keywords": [
            "savings", "investment", "transfer", "401k", "roth ira", "brokerage", "fidelity",
            "vanguard", "schwab", "robinhood", "coinbase",
        ],
    },
]

DEFAULT_CATEGORIES = CategoriesConfig.model_validate({"categories": _DEFAULT_RULES})


def load_categories(categories_path: Path | None = None) -> CategoriesConfig:
    """Load categories from a JSON file or use the built-in table.

    Args:
        categories_path: Path to custom categories file, or None for defaults

    Returns:
        CategoriesConfig with loaded categories

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not valid JSON or fails validation
    """
    if categories_path is None:
        return DEFAULT_CATEGORIES

    if not categories_path.exists():
        raise FileNotFoundError(f"Categories file not found: {categories_path}")

    with open(categories_path) as f:
        data = json.load(f)
    config = CategoriesConfig.model_validate(data)
    logger.info(f"Loaded {len(config.categories)} categories from {categories_path}")
    return config
