"""Statement parsing modules."""

from statement_ingest.parser.base import BaseParser, DocumentExtractionError
from statement_ingest.parser.delimited import DelimitedParser
from statement_ingest.parser.pdf import PdfParser
from statement_ingest.parser.pdf_text import RecoveredText, recover_text

__all__ = [
    "BaseParser",
    "DelimitedParser",
    "DocumentExtractionError",
    "PdfParser",
    "RecoveredText",
    "recover_text",
]
