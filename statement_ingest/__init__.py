"""Bank statement ingestion: parse, categorize and deduplicate transactions."""

from statement_ingest.config import DateFallback, IngestSettings
from statement_ingest.models import CategorizedTransaction, Direction, ParsedTransaction, ProcessingSummary
from statement_ingest.pipeline import IngestionCancelled, IngestionRequestError, Pipeline
from statement_ingest.store import InMemoryTransactionStore, StoreError, TransactionStore, UploadStorage

__all__ = [
    "CategorizedTransaction",
    "DateFallback",
    "Direction",
    "InMemoryTransactionStore",
    "IngestSettings",
    "IngestionCancelled",
    "IngestionRequestError",
    "ParsedTransaction",
    "Pipeline",
    "ProcessingSummary",
    "StoreError",
    "TransactionStore",
    "UploadStorage",
]
