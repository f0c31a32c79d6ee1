"""PDF statement parser: recovered text lines -> transactions."""

import re
from datetime import date

from loguru import logger
from pydantic import ValidationError

from statement_ingest.config import DateFallback
from statement_ingest.logging_config import DebugArtifacts
from statement_ingest.models import Direction, ParsedTransaction, ParseResult
from statement_ingest.normalizers import find_amount, find_date, looks_like_transaction, parse_amount, parse_date
from statement_ingest.parser.base import BaseParser, DocumentExtractionError
from statement_ingest.parser.pdf_text import recover_text

MIN_LINE_LENGTH = 10
MIN_DESCRIPTION_LENGTH = 3

_LEADING_DASH_RE = re.compile(r"^\s*-\s*")


def _cut(line: str, spans: list[tuple[int, int]]) -> str:
    """Remove character spans from a line."""
    out = []
    pos = 0
    for start, end in sorted(spans):
        if start >= pos:
            out.append(line[pos:start])
            pos = end
    out.append(line[pos:])
    return " ".join(out)


class PdfParser(BaseParser):
    """Parses text-based PDF statements line by line."""

    def __init__(
        self,
        debug_artifacts: DebugArtifacts | None = None,
        date_fallback: DateFallback = DateFallback.TODAY,
        today: date | None = None,
        use_pdfplumber: bool = True,
    ):
        super().__init__(debug_artifacts, date_fallback=date_fallback, today=today)
        self.use_pdfplumber = use_pdfplumber

    def parse(self, content: bytes, name: str = "") -> ParseResult:
        recovered = recover_text(content, use_pdfplumber=self.use_pdfplumber)
        if recovered.is_empty:
            raise DocumentExtractionError(f"No text could be extracted from {name or 'PDF'}")

        self.debug_artifacts.save_text(name or "pdf", f"text_{recovered.strategy}", recovered.text)
        result = self.parse_text(recovered.text, name=name)
        result.strategy = recovered.strategy
        return result

    def parse_text(self, text: str, name: str = "") -> ParseResult:
        """Extract transactions from recovered text.

        Lines shorter than ``MIN_LINE_LENGTH`` are noise and ignored. A line
        carrying a date that yields no transaction is counted as skipped.

        Args:
            text: Newline-delimited recovered text
            name: Document name for logging

        Returns:
            Parsed transactions and skip count
        """
        result = ParseResult(strategy="text")
        lines = [line.strip() for line in text.splitlines() if line.strip()]

        i = 0
        while i < len(lines):
            line = lines[i]
            previous = lines[i - 1] if i > 0 else ""
            next_line = lines[i + 1] if i + 1 < len(lines) else None
            i += 1

            if len(line) < MIN_LINE_LENGTH:
                continue

            date_m = find_date(line)
            if date_m is None:
                continue

            amount_m = None
            amount_from_next = False
            if looks_like_transaction(line):
                amount_m = find_amount(line)
            elif next_line is not None and looks_like_transaction(f"{line} {next_line}"):
                amount_m = find_amount(next_line)
                amount_from_next = amount_m is not None

            if amount_m is None:
                logger.debug(f"No amount for dated line: {line!r}")
                result.skipped += 1
                continue
            if amount_from_next:
                # The continuation line supplied the amount
                i += 1

            tx = self._build(line, previous, date_m, amount_m, amount_from_next)
            if tx is None:
                result.skipped += 1
            else:
                result.transactions.append(tx)

        logger.info(
            f"Extracted {len(result.transactions)} transactions from {name or 'PDF'} "
            f"(skipped {result.skipped} lines)"
        )
        self.debug_artifacts.save_json(name or "pdf", "parsed", result.transactions)
        return result

    def _build(
        self,
        line: str,
        previous: str,
        date_m: re.Match[str],
        amount_m: re.Match[str],
        amount_from_next: bool,
    ) -> ParsedTransaction | None:
        value = parse_amount(amount_m.group(0))
        if value is None:
            logger.debug(f"Unparseable amount {amount_m.group(0)!r}")
            return None
        direction = Direction.OUTFLOW if value < 0 else Direction.INFLOW

        spans = [date_m.span()]
        if not amount_from_next:
            spans.append(amount_m.span())
        description = _LEADING_DASH_RE.sub("", _cut(line, spans))
        description = " ".join(description.split())
        if len(description) < MIN_DESCRIPTION_LENGTH and previous:
            description = " ".join(previous.split())

        parsed_date = parse_date(date_m.group(1), today=self.today)
        if parsed_date.inferred and not self.accepts_inferred_dates():
            logger.debug(f"Unparseable date {date_m.group(1)!r}, skipping")
            return None

        try:
            return ParsedTransaction(
                date=parsed_date.value,
                description=description,
                amount=abs(value),
                direction=direction,
                date_inferred=parsed_date.inferred,
                raw_text=line,
            )
        except ValidationError as e:
            logger.debug(f"Invalid transaction from {line!r}: {e}")
            return None

    def supported_extensions(self) -> list[str]:
        return [".pdf"]
