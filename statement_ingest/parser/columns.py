"""Header inspection for delimited statement files.

Decides the delimiter and which field positions hold the date, description
and amount (or the withdrawal/deposit pair). The result is computed once per
file from its first non-empty line.
"""

import re

from loguru import logger

from statement_ingest.models import ColumnMapping, SingleAmount, SplitAmount

TAB = "\t"
COMMA = ","
WHITESPACE = " "

DEFAULT_DATE_IDX = 0
DEFAULT_DESCRIPTION_IDX = 1
DEFAULT_AMOUNT_IDX = 2

# Role -> header keywords, in match priority order
HEADER_ALIASES: dict[str, tuple[str, ...]] = {
    "date": ("date", "posted", "posting"),
    "description": (
        "description", "desc", "memo", "payee", "name", "merchant", "details", "transaction",
    ),
    "withdrawal": ("withdrawal", "withdraw", "debit"),
    "deposit": ("deposit", "credit"),
    "amount": ("amount", "sum", "price", "value"),
}

_DATE_VALUE_RE = re.compile(r"^\d{1,4}[/-]\d{1,2}[/-]\d{1,4}$")


def detect_delimiter(line: str) -> str:
    """Prefer tab, then comma, then whitespace."""
    if TAB in line:
        return TAB
    if COMMA in line:
        return COMMA
    if " " in line.strip():
        return WHITESPACE
    return COMMA


def split_quoted(line: str, delimiter: str = COMMA) -> list[str]:
    """Split a line on ``delimiter`` while honoring double-quoted fields.

    A quote toggles the in-field state; a delimiter inside quotes is kept;
    a doubled quote inside a quoted field becomes a single quote.
    """
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    while i < len(line):
        char = line[i]
        if char == '"':
            if in_quotes and i + 1 < len(line) and line[i + 1] == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
        elif char == delimiter and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        i += 1
    fields.append("".join(current).strip())
    return fields


def split_fields(line: str, delimiter: str, quoted: bool = False) -> list[str]:
    """Tokenize one line with the file's delimiter."""
    if delimiter == WHITESPACE:
        return line.split()
    if quoted:
        return split_quoted(line, delimiter)
    return [field.strip() for field in line.split(delimiter)]


def _role_for(token: str) -> str | None:
    for role, aliases in HEADER_ALIASES.items():
        if any(alias in token for alias in aliases):
            return role
    return None


def resolve_columns(first_line: str) -> ColumnMapping:
    """Infer the column mapping from the first non-empty line of a file.

    Args:
        first_line: The candidate header line

    Returns:
        ColumnMapping; ``has_header`` is False (and default positions are used)
        when no token in the line is a recognized header keyword
    """
    delimiter = detect_delimiter(first_line)
    tokens = [t.lower().strip() for t in split_fields(first_line, delimiter, quoted=True)]

    positions: dict[str, int] = {}
    # A line carrying a date value is data, whatever words its description holds
    if not any(_DATE_VALUE_RE.match(t) for t in tokens):
        for idx, token in enumerate(tokens):
            role = _role_for(token)
            if role is not None and role not in positions:
                positions[role] = idx

    has_header = bool(positions)
    date_idx = positions.get("date", DEFAULT_DATE_IDX)
    description_idx = positions.get("description", DEFAULT_DESCRIPTION_IDX)

    amounts: SingleAmount | SplitAmount
    if "withdrawal" in positions and "deposit" in positions:
        amounts = SplitAmount(positions["withdrawal"], positions["deposit"])
    else:
        amounts = SingleAmount(positions.get("amount", DEFAULT_AMOUNT_IDX))

    mapping = ColumnMapping(
        delimiter=delimiter,
        date_idx=date_idx,
        description_idx=description_idx,
        amounts=amounts,
        has_header=has_header,
    )
    if has_header:
        logger.debug(f"Header columns {tokens} -> {mapping}")
    else:
        logger.debug("No header detected, using default column order")
    return mapping
