"""Format-agnostic normalizers shared by the PDF and delimited parsers.

- ``parse_amount``: raw numeric token -> signed ``Decimal`` (or ``None``)
- ``parse_date``: raw date token -> ``ParsedDate`` (falls back to the processing date)
- ``looks_like_transaction``: cheap gate for lines worth a full parse
- ``find_date`` / ``find_amount``: first match of the ordered pattern lists
"""

import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation

from loguru import logger

CURRENCY_SYMBOLS = "$€£¥"

_PAREN_RE = re.compile(r"^\((.*)\)$")
_DR_RE = re.compile(r"\s*(DR|DEBIT)\.?$", re.IGNORECASE)
_CR_RE = re.compile(r"\s*(CR|CREDIT)\.?$", re.IGNORECASE)
_STRIP_RE = re.compile(rf"[{re.escape(CURRENCY_SYMBOLS)},\s]")
_NUMERAL_RE = re.compile(r"^\d*\.?\d*$")


def parse_amount(token: str | None) -> Decimal | None:
    """Parse a raw amount token into a signed decimal.

    Handles ``"$1,234.56"``, ``"(45.00)"``, ``"12.34 DR"``, ``"-7.50"``,
    ``"$-7.50"`` and ``"99.00 CR"``.

    Args:
        token: Raw text taken from a field or line

    Returns:
        Signed value, or None when the token is not a number
    """
    if token is None:
        return None
    s = str(token).strip()
    if not s:
        return None

    negative = False

    paren = _PAREN_RE.match(s)
    if paren:
        negative = True
        s = paren.group(1).strip()

    if _DR_RE.search(s):
        negative = True
        s = _DR_RE.sub("", s)
    else:
        s = _CR_RE.sub("", s)

    s = _STRIP_RE.sub("", s)

    if s.startswith("-"):
        negative = True
        s = s[1:]
    elif s.startswith("+"):
        s = s[1:]

    # Only the first dot is a decimal separator
    if s.count(".") > 1:
        head, _, tail = s.partition(".")
        s = f"{head}.{tail.replace('.', '')}"

    if not s or not _NUMERAL_RE.match(s) or not any(c.isdigit() for c in s):
        logger.debug(f"Invalid amount format: {token!r}")
        return None

    try:
        value = Decimal(s)
    except InvalidOperation:
        logger.debug(f"Amount is not a number: {token!r}")
        return None

    return -value if negative else value


@dataclass(frozen=True)
class ParsedDate:
    """Normalized date plus a flag telling whether it was guessed."""

    value: date
    inferred: bool = False


_DATE_PATTERNS: list[tuple[re.Pattern[str], tuple[str, str, str]]] = [
    (re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$"), ("m", "d", "y")),
    (re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2})$"), ("m", "d", "yy")),
    (re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$"), ("y", "m", "d")),
    (re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$"), ("m", "d", "y")),
    (re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$"), ("y", "m", "d")),
]

_DATE_JUNK_RE = re.compile(r"[^\w/-]")


def _match_date(cleaned: str) -> date | None:
    for pattern, order in _DATE_PATTERNS:
        m = pattern.match(cleaned)
        if not m:
            continue
        parts = dict(zip(order, m.groups()))
        year = int(parts["y"]) if "y" in parts else 2000 + int(parts["yy"])
        try:
            return date(year, int(parts["m"]), int(parts["d"]))
        except ValueError:
            continue
    return None


def parse_date(token: str | None, today: date | None = None) -> ParsedDate:
    """Normalize a raw date token.

    Tries ``MM/DD/YYYY``, ``MM/DD/YY``, ``YYYY-MM-DD``, ``MM-DD-YYYY`` and
    ``YYYY/MM/DD`` in that order. When nothing matches the processing date is
    returned with ``inferred=True`` instead of failing the line.

    Args:
        token: Raw date text
        today: Processing date used for the fallback (defaults to ``date.today()``)

    Returns:
        ParsedDate with the normalized value
    """
    cleaned = _DATE_JUNK_RE.sub("", str(token or "")).strip()
    parsed = _match_date(cleaned)
    if parsed is not None:
        return ParsedDate(parsed)

    fallback = today or date.today()
    logger.warning(f"Could not parse date {token!r}, using processing date {fallback.isoformat()}")
    return ParsedDate(fallback, inferred=True)


# Ordered pattern lists; the first matching pattern wins.
DATE_REGEXES = [
    re.compile(r"(?<![\d/])(\d{1,2}/\d{1,2}/(?:\d{4}|\d{2}))(?![\d/])"),
    re.compile(r"(?<![\d-])(\d{4}-\d{1,2}-\d{1,2})(?![\d-])"),
    re.compile(r"(?<![\d-])(\d{1,2}-\d{1,2}-\d{4})(?![\d-])"),
]

_CUR = rf"[{re.escape(CURRENCY_SYMBOLS)}]"
_NUM = r"\d[\d,]*\.\d{2}"
_NUM_OPT_CENTS = r"\d[\d,]*(?:\.\d{2})?"

AMOUNT_REGEXES = [
    re.compile(rf"\(\s*-?{_CUR}?\s*{_NUM}\s*\)"),  # (45.00) / ($45.00)
    re.compile(rf"-\s*{_CUR}\s*{_NUM}"),  # -$45.00
    re.compile(rf"{_CUR}\s*-?{_NUM_OPT_CENTS}(?:\s*(?:DR|CR)\b)?", re.IGNORECASE),  # $45.00
    re.compile(rf"-?{_NUM}\s*(?:DR|CR)\b", re.IGNORECASE),  # 45.00 DR
    re.compile(rf"(?<![\d.,/-])-?{_NUM}(?![\d/]|\.\d)"),  # 45.00
]

# Amounts carrying a currency sign, parentheses or a DR/CR suffix. Bare numerals
# also match layout numbers (/MediaBox [0 0 612.00 792.00]) in raw PDF streams.
MARKED_AMOUNT_REGEXES = AMOUNT_REGEXES[:4]

_DATE_LIKE_RE = re.compile(r"\d{1,4}[/-]\d{1,2}[/-]\d{1,4}")


def find_date(line: str) -> re.Match[str] | None:
    """Return the first date-shaped match in a line, trying patterns in order."""
    for regex in DATE_REGEXES:
        m = regex.search(line)
        if m:
            return m
    return None


def find_amount(line: str) -> re.Match[str] | None:
    """Return the first amount-shaped match in a line, trying patterns in order."""
    for regex in AMOUNT_REGEXES:
        m = regex.search(line)
        if m:
            return m
    return None


def looks_like_transaction(line: str) -> bool:
    """Check whether a raw line plausibly holds a transaction.

    True only when the line carries both a date-like triplet and an
    amount-like numeral (currency-prefixed or two-decimal).
    """
    if not line or not _DATE_LIKE_RE.search(line):
        return False
    return find_amount(line) is not None
