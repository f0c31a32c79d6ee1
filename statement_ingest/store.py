"""Persistence boundary: the capabilities the pipeline consumes, plus a local store."""

import csv
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Protocol

from loguru import logger
from pydantic import ValidationError

from statement_ingest.models import CategorizedTransaction, Direction

CSV_FIELDS = ["date", "description", "amount", "type", "category", "month_key", "source_upload_id"]


class StoreError(Exception):
    """A duplicate check, insert or mark-processed call failed."""

    pass


class TransactionStore(Protocol):
    """Record store holding persisted transactions."""

    def exists(self, user_id: str, date: date, description: str, amount: Decimal) -> bool: ...

    def insert(self, transactions: list[CategorizedTransaction]) -> int: ...

    def mark_processed(self, upload_id: str) -> None: ...


class UploadStorage(Protocol):
    """Object storage holding the raw uploaded bytes."""

    def download(self, upload_id: str) -> tuple[str, bytes]:
        """Return ``(filename, content)`` for an upload."""
        ...


def _dedupe_key(user_id: str, tx_date: date, description: str, amount: Decimal) -> tuple:
    return (user_id, tx_date, description, Decimal(amount).quantize(Decimal("0.01")))


class InMemoryTransactionStore:
    """Transaction store kept in memory, optionally seeded from and saved to CSV."""

    def __init__(self):
        self.transactions: list[CategorizedTransaction] = []
        self.processed_uploads: set[str] = set()
        self._keys: set[tuple] = set()

    def exists(self, user_id: str, date: date, description: str, amount: Decimal) -> bool:
        return _dedupe_key(user_id, date, description, amount) in self._keys

    def insert(self, transactions: list[CategorizedTransaction]) -> int:
        for tx in transactions:
            self.transactions.append(tx)
            self._keys.add(_dedupe_key(tx.user_id, tx.date, tx.description, tx.amount))
        return len(transactions)

    def mark_processed(self, upload_id: str) -> None:
        self.processed_uploads.add(upload_id)

    def load_csv(self, path: Path, user_id: str = "") -> int:
        """Seed the store from a transactions CSV written by ``write_csv``.

        Args:
            path: CSV file to read
            user_id: Owner assigned to the loaded rows

        Returns:
            Number of rows loaded

        Raises:
            StoreError: If a row cannot be read back as a transaction
        """
        loaded = []
        with open(path, newline="", encoding="utf-8") as f:
            for line_no, row in enumerate(csv.DictReader(f), start=2):
                try:
                    loaded.append(
                        CategorizedTransaction(
                            date=row["date"],
                            description=row["description"],
                            amount=Decimal(row["amount"]),
                            direction=Direction(row["type"]),
                            category=row["category"],
                            month_key=row["month_key"],
                            user_id=user_id,
                            source_reference=row.get("source_upload_id") or "",
                        )
                    )
                except (KeyError, ValueError, InvalidOperation, ValidationError) as e:
                    raise StoreError(f"{path}:{line_no}: unreadable transaction row: {e}") from e

        self.insert(loaded)
        logger.info(f"Loaded {len(loaded)} existing transactions from {path}")
        return len(loaded)

    def write_csv(self, path: Path) -> None:
        """Write every stored transaction to CSV."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
            writer.writeheader()
            for tx in self.transactions:
                writer.writerow(tx.to_csv_row())
        logger.info(f"Wrote {len(self.transactions)} transactions to {path}")
