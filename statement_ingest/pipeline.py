"""Ingestion orchestrator: parse, categorize, deduplicate and store statements."""

import re
import threading
import time
from collections.abc import Sequence
from pathlib import Path

from loguru import logger

from statement_ingest.categories import DEFAULT_CATEGORIES
from statement_ingest.categorizer import Categorizer
from statement_ingest.clients.llm import LLMClient
from statement_ingest.config import IngestSettings
from statement_ingest.logging_config import DebugArtifacts
from statement_ingest.models import (
    CategoriesConfig,
    CategorizedTransaction,
    ParsedTransaction,
    ProcessingSummary,
)
from statement_ingest.parser.base import BaseParser, DocumentExtractionError
from statement_ingest.parser.delimited import DelimitedParser
from statement_ingest.parser.pdf import PdfParser
from statement_ingest.store import StoreError, TransactionStore, UploadStorage

_MONTH_KEY_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


class IngestionRequestError(Exception):
    """The request itself is malformed (missing user or upload identifier)."""

    pass


class IngestionCancelled(Exception):
    """The caller cancelled the run; the pending batch was not submitted."""

    pass


class Pipeline:
    """Orchestrates parsing, categorization and persistence of statements."""

    def __init__(
        self,
        store: TransactionStore,
        settings: IngestSettings | None = None,
        categories: CategoriesConfig = DEFAULT_CATEGORIES,
        client: LLMClient | None = None,
        debug_artifacts: DebugArtifacts | None = None,
        cancel_event: threading.Event | None = None,
    ):
        """Initialize the pipeline.

        Args:
            store: Record store used for duplicate checks and inserts
            settings: Runtime settings (defaults to ``IngestSettings()``)
            categories: Category rule table
            client: Optional classification client; built from settings when omitted
                and a credential is configured
            debug_artifacts: Optional debug artifact manager
            cancel_event: Set by the caller to stop before the next batch
        """
        self.store = store
        self.settings = settings or IngestSettings()
        self.debug_artifacts = debug_artifacts or DebugArtifacts(self.settings.debug_dir)
        self.cancel_event = cancel_event or threading.Event()

        self._owns_client = False
        if client is None and self.settings.llm_enabled:
            client = LLMClient(
                api_key=self.settings.openai_api_key,
                base_url=self.settings.llm_base_url,
                model=self.settings.llm_model,
                timeout=self.settings.llm_timeout,
            )
            self._owns_client = True
        elif client is None:
            logger.info("No classification credential configured, using rule-based categories only")
        self._client = client

        parser_options = {
            "debug_artifacts": self.debug_artifacts,
            "date_fallback": self.settings.date_fallback,
        }
        self._parsers: list[BaseParser] = [
            PdfParser(use_pdfplumber=self.settings.use_pdfplumber, **parser_options),
            DelimitedParser(**parser_options),
        ]
        self._categorizer = Categorizer(
            categories=categories,
            client=client,
            settings=self.settings,
            debug_artifacts=self.debug_artifacts,
        )

    def parser_for(self, filename: str) -> BaseParser | None:
        """Select a parser by file extension."""
        suffix = Path(filename).suffix.lower()
        for parser in self._parsers:
            if suffix in parser.supported_extensions():
                return parser
        return None

    def process_upload(
        self,
        upload_id: str,
        user_id: str,
        storage: UploadStorage,
        month_hint: str | None = None,
    ) -> ProcessingSummary:
        """Download an upload from storage and ingest it."""
        self._validate_request(user_id, upload_id, month_hint)
        try:
            filename, content = storage.download(upload_id)
        except (OSError, KeyError, StoreError) as e:
            logger.error(f"Error downloading upload {upload_id}: {e}")
            return ProcessingSummary(
                success=False,
                filename=upload_id,
                message=f"Error downloading file: {e}",
            )
        return self.process_file(content, filename, user_id=user_id, upload_id=upload_id, month_hint=month_hint)

    def process_files(
        self,
        paths: Sequence[Path],
        user_id: str,
        month_hint: str | None = None,
    ) -> ProcessingSummary:
        """Ingest local files sequentially, in the given order.

        Each file's name is used as its upload identifier. A file that fails
        does not stop the ones after it.

        Returns:
            Aggregate summary with one entry per file in ``files``
        """
        pipeline_start = time.perf_counter()
        logger.info(f"Processing {len(paths)} file(s)")

        summaries = []
        for i, path in enumerate(paths):
            logger.info(f"[{i + 1}/{len(paths)}] {path.name}")
            try:
                content = path.read_bytes()
            except OSError as e:
                logger.error(f"Failed to read {path}: {e}")
                summaries.append(
                    ProcessingSummary(success=False, filename=path.name, message=f"Error reading file: {e}")
                )
                continue
            summaries.append(
                self.process_file(content, path.name, user_id=user_id, upload_id=path.name, month_hint=month_hint)
            )

        total = ProcessingSummary(
            success=all(s.success for s in summaries),
            total_parsed=sum(s.total_parsed for s in summaries),
            skipped_rows=sum(s.skipped_rows for s in summaries),
            inserted_transactions=sum(s.inserted_transactions for s in summaries),
            duplicates=sum(s.duplicates for s in summaries),
            failed_batches=sum(s.failed_batches for s in summaries),
            files=summaries,
        )
        total.message = _summary_message(total.inserted_transactions, total.skipped_rows, total.duplicates)
        logger.info(f"[TIMING] Pipeline total: {time.perf_counter() - pipeline_start:.2f}s")
        return total

    def process_file(
        self,
        content: bytes,
        filename: str,
        user_id: str,
        upload_id: str,
        month_hint: str | None = None,
    ) -> ProcessingSummary:
        """Ingest one document.

        Args:
            content: Raw file bytes
            filename: Original file name; its extension selects the parser
            user_id: Owner of the transactions
            upload_id: Identifier of the upload, stored on every record
            month_hint: ``YYYY-MM`` used for transactions whose date was inferred

        Returns:
            Summary for this file; document-level failures give ``success=False``

        Raises:
            IngestionRequestError: If ``user_id`` or ``upload_id`` is missing
            IngestionCancelled: If the cancel event is set before a batch
        """
        self._validate_request(user_id, upload_id, month_hint)
        with logger.contextualize(upload=upload_id):
            return self._ingest(content, filename, user_id, upload_id, month_hint)

    def _ingest(
        self,
        content: bytes,
        filename: str,
        user_id: str,
        upload_id: str,
        month_hint: str | None,
    ) -> ProcessingSummary:
        parser = self.parser_for(filename)
        if parser is None:
            logger.error(f"Unsupported file type: {filename}")
            return ProcessingSummary(success=False, filename=filename, message=f"Unsupported file type: {filename}")

        try:
            parsed = parser.parse(content, name=Path(upload_id).stem)
        except DocumentExtractionError as e:
            logger.error(f"Failed to extract {filename}: {e}")
            return ProcessingSummary(success=False, filename=filename, message=f"Error processing document: {e}")

        self._check_cancelled()
        categorized = self.categorize(parsed.transactions, user_id, upload_id, month_hint)
        inserted, duplicates, failed = self._store_batches(categorized)

        try:
            self.store.mark_processed(upload_id)
        except StoreError as e:
            logger.error(f"Could not mark upload {upload_id} as processed: {e}")
        else:
            logger.info(f"Upload {upload_id} marked as processed")

        summary = ProcessingSummary(
            filename=filename,
            total_parsed=parsed.total_parsed,
            skipped_rows=parsed.skipped,
            inserted_transactions=inserted,
            duplicates=duplicates,
            failed_batches=failed,
            message=_summary_message(inserted, parsed.skipped, duplicates),
        )
        logger.info(f"{filename}: {summary.message}")
        return summary

    def categorize(
        self,
        transactions: Sequence[ParsedTransaction],
        user_id: str,
        upload_id: str,
        month_hint: str | None = None,
    ) -> list[CategorizedTransaction]:
        """Attach categories, month keys and ownership to parsed transactions."""
        assignments = self._categorizer.categorize(transactions, upload=Path(upload_id).stem)
        categorized = [
            CategorizedTransaction(
                date=tx.date,
                description=tx.description,
                amount=tx.amount,
                direction=tx.direction,
                category=assignment.category,
                category_source=assignment.source,
                month_key=month_hint if (tx.date_inferred and month_hint) else tx.month_key,
                date_inferred=tx.date_inferred,
                user_id=user_id,
                source_reference=upload_id,
            )
            for tx, assignment in zip(transactions, assignments)
        ]
        self.debug_artifacts.save_json(Path(upload_id).stem, "categorized", categorized)
        return categorized

    def _store_batches(self, transactions: list[CategorizedTransaction]) -> tuple[int, int, int]:
        """Drop duplicates, then insert in fixed-size batches.

        Duplicate checks all run before the first insert, so repeated rows
        within one document are checked against the store as it was.

        Returns:
            (inserted, duplicates, failed_batches)
        """
        size = self.settings.insert_batch_size
        batches = [transactions[i : i + size] for i in range(0, len(transactions), size)]
        if not batches:
            logger.info("No transactions to insert")
            return 0, 0, 0

        duplicates = 0
        failed = 0
        fresh_batches: list[list[CategorizedTransaction]] = []
        for n, batch in enumerate(batches, start=1):
            self._check_cancelled()
            fresh: list[CategorizedTransaction] = []
            try:
                for tx in batch:
                    if self.store.exists(tx.user_id, tx.date, tx.description, tx.amount):
                        logger.debug(f"Skipping duplicate transaction: {tx.date} | {tx.description} | {tx.amount}")
                    else:
                        fresh.append(tx)
            except StoreError as e:
                logger.error(f"Duplicate check failed for batch {n}: {e}")
                failed += 1
                continue
            duplicates += len(batch) - len(fresh)
            fresh_batches.append(fresh)

        inserted = 0
        pending = [batch for batch in fresh_batches if batch]
        logger.info(f"Will insert {sum(len(b) for b in pending)} transactions in {len(pending)} batch(es)")
        for n, batch in enumerate(pending, start=1):
            if n > 1 and self.settings.insert_delay:
                time.sleep(self.settings.insert_delay)
            self._check_cancelled()
            try:
                count = self.store.insert(batch)
            except StoreError as e:
                logger.error(f"Error inserting batch {n}: {e}")
                failed += 1
                continue
            inserted += count
            logger.info(f"Inserted batch {n} with {count} transactions")

        return inserted, duplicates, failed

    def _check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            logger.warning("Ingestion cancelled, discarding pending batch")
            raise IngestionCancelled("Ingestion cancelled by caller")

    @staticmethod
    def _validate_request(user_id: str, upload_id: str, month_hint: str | None) -> None:
        if not user_id:
            raise IngestionRequestError("Missing required parameter: user_id")
        if not upload_id:
            raise IngestionRequestError("Missing required parameter: upload_id")
        if month_hint is not None and not _MONTH_KEY_RE.match(month_hint):
            raise IngestionRequestError(f"Invalid month hint {month_hint!r}, expected YYYY-MM")

    def close(self) -> None:
        """Clean up resources."""
        if self._owns_client and self._client is not None:
            self._client.close()

    def __enter__(self) -> "Pipeline":
        return self

    def __exit__(self, *_) -> None:
        self.close()


def _summary_message(inserted: int, skipped: int, duplicates: int) -> str:
    if inserted == 0:
        if duplicates:
            return f"No new transactions ({duplicates} duplicates)"
        return "No transactions were found in the uploaded files"
    extras = []
    if skipped:
        extras.append(f"{skipped} skipped")
    if duplicates:
        extras.append(f"{duplicates} duplicates")
    suffix = f" ({', '.join(extras)})" if extras else ""
    return f"Processed and inserted {inserted} transactions{suffix}"
