"""Parser for comma, tab and whitespace delimited statement exports."""

from decimal import Decimal

from loguru import logger
from pydantic import ValidationError

from statement_ingest.models import (
    ColumnMapping,
    Direction,
    ParsedTransaction,
    ParseResult,
    SingleAmount,
)
from statement_ingest.normalizers import parse_amount, parse_date
from statement_ingest.parser.base import BaseParser, DocumentExtractionError
from statement_ingest.parser.columns import COMMA, resolve_columns, split_fields

MIN_FIELDS = 3
TEXT_ENCODINGS = ("utf-8-sig", "cp1252")


def decode_text(content: bytes) -> str:
    """Decode uploaded bytes as text.

    Raises:
        DocumentExtractionError: If the bytes are binary or match no known encoding
    """
    if b"\x00" in content:
        raise DocumentExtractionError("File looks binary (contains NUL bytes)")
    for encoding in TEXT_ENCODINGS:
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise DocumentExtractionError(f"File could not be decoded as any of {TEXT_ENCODINGS}")


class DelimitedParser(BaseParser):
    """Parses CSV/TSV/TXT statements with one transaction per line."""

    def parse(self, content: bytes, name: str = "") -> ParseResult:
        text = decode_text(content)
        return self.parse_text(text, name=name)

    def parse_text(self, text: str, name: str = "") -> ParseResult:
        """Parse already-decoded text.

        Args:
            text: Full file content
            name: File name for logging

        Returns:
            Parsed transactions and skip count
        """
        result = ParseResult(strategy="delimited")
        lines = [line.strip() for line in text.splitlines()]
        lines = [line for line in lines if line]
        if not lines:
            logger.warning(f"No data found in {name or 'file'}")
            return result

        mapping = resolve_columns(lines[0])
        data_lines = lines[1:] if mapping.has_header else lines
        logger.info(
            f"Parsing {len(data_lines)} lines from {name or 'file'} "
            f"(delimiter={mapping.delimiter!r}, header={mapping.has_header})"
        )

        for line_no, line in enumerate(data_lines, start=2 if mapping.has_header else 1):
            tx = self._parse_line(line, mapping, line_no)
            if tx is None:
                result.skipped += 1
            else:
                result.transactions.append(tx)

        logger.info(
            f"Parsed {len(result.transactions)} transactions from {name or 'file'} "
            f"(skipped {result.skipped})"
        )
        self.debug_artifacts.save_json(name or "delimited", "parsed", result.transactions)
        return result

    def _parse_line(self, line: str, mapping: ColumnMapping, line_no: int) -> ParsedTransaction | None:
        quoted = mapping.delimiter == COMMA and '"' in line
        fields = split_fields(line, mapping.delimiter, quoted=quoted)
        if len(fields) < MIN_FIELDS:
            logger.debug(f"Line {line_no}: not enough fields ({len(fields)})")
            return None

        date_field = _field(fields, mapping.date_idx)
        description = _field(fields, mapping.description_idx)
        if not date_field or not description:
            logger.debug(f"Line {line_no}: missing date or description")
            return None

        extracted = self._extract_amount(fields, mapping, line_no)
        if extracted is None:
            return None
        amount, direction = extracted

        parsed_date = parse_date(date_field, today=self.today)
        if parsed_date.inferred and not self.accepts_inferred_dates():
            logger.debug(f"Line {line_no}: unparseable date {date_field!r}, skipping")
            return None

        try:
            return ParsedTransaction(
                date=parsed_date.value,
                description=description,
                amount=amount,
                direction=direction,
                date_inferred=parsed_date.inferred,
                raw_text=line,
            )
        except ValidationError as e:
            logger.debug(f"Line {line_no}: invalid transaction: {e}")
            return None

    @staticmethod
    def _extract_amount(
        fields: list[str], mapping: ColumnMapping, line_no: int
    ) -> tuple[Decimal, Direction] | None:
        amounts = mapping.amounts
        if isinstance(amounts, SingleAmount):
            value = parse_amount(_field(fields, amounts.idx))
            if value is None:
                logger.debug(f"Line {line_no}: invalid amount {_field(fields, amounts.idx)!r}")
                return None
            direction = Direction.OUTFLOW if value < 0 else Direction.INFLOW
            return abs(value), direction

        withdrawal = _nonzero(_field(fields, amounts.withdrawal_idx))
        deposit = _nonzero(_field(fields, amounts.deposit_idx))
        if withdrawal is False or deposit is False:
            logger.debug(f"Line {line_no}: invalid withdrawal/deposit value")
            return None
        if withdrawal is not None:
            return abs(withdrawal), Direction.OUTFLOW
        if deposit is not None:
            return abs(deposit), Direction.INFLOW
        logger.debug(f"Line {line_no}: no withdrawal or deposit amount")
        return None

    def supported_extensions(self) -> list[str]:
        return [".csv", ".tsv", ".txt"]


def _field(fields: list[str], idx: int) -> str:
    return fields[idx].strip() if 0 <= idx < len(fields) else ""


def _nonzero(raw: str) -> Decimal | None | bool:
    """Parse a withdrawal/deposit cell.

    Returns the value when nonzero, None when blank or zero, False when unparseable.
    """
    if not raw:
        return None
    value = parse_amount(raw)
    if value is None:
        return False
    return value if value != 0 else None
