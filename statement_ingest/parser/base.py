"""Abstract base class for statement parsers."""

from abc import ABC, abstractmethod
from datetime import date

from statement_ingest.config import DateFallback
from statement_ingest.logging_config import DebugArtifacts
from statement_ingest.models import ParseResult


class DocumentExtractionError(Exception):
    """The document as a whole could not be turned into text."""

    pass


class BaseParser(ABC):
    """Abstract base class for statement parsers.

    Subclasses turn the raw bytes of one uploaded file into parsed
    transactions, skipping (and counting) lines they cannot use.
    """

    def __init__(
        self,
        debug_artifacts: DebugArtifacts | None = None,
        date_fallback: DateFallback = DateFallback.TODAY,
        today: date | None = None,
    ):
        self.debug_artifacts = debug_artifacts or DebugArtifacts()
        self.date_fallback = date_fallback
        self.today = today

    @abstractmethod
    def parse(self, content: bytes, name: str = "") -> ParseResult:
        """Extract transactions from a document.

        Args:
            content: Raw file bytes
            name: File name, used for logging and debug artifacts

        Returns:
            Parsed transactions and the number of skipped lines

        Raises:
            DocumentExtractionError: If no text can be recovered from the document
        """
        pass

    @abstractmethod
    def supported_extensions(self) -> list[str]:
        """Return the file extensions this parser accepts (e.g., [".csv", ".tsv"])."""
        pass

    def accepts_inferred_dates(self) -> bool:
        return self.date_fallback is DateFallback.TODAY
