"""In-memory doubles for the upload storage and a misbehaving record store."""

from statement_ingest.models import CategorizedTransaction
from statement_ingest.store import InMemoryTransactionStore, StoreError


class DictUploadStorage:
    """``UploadStorage`` backed by a dict of upload id -> (filename, bytes)."""

    def __init__(self, uploads: dict[str, tuple[str, bytes]]) -> None:
        self._uploads = uploads

    def download(self, upload_id: str) -> tuple[str, bytes]:
        return self._uploads[upload_id]


class FlakyStore(InMemoryTransactionStore):
    """Records every insert call and fails the ones listed in ``fail_inserts``."""

    def __init__(self, fail_inserts: set[int] | None = None, fail_exists: bool = False, on_insert=None) -> None:
        super().__init__()
        self.fail_inserts = fail_inserts or set()
        self.fail_exists = fail_exists
        self.on_insert = on_insert
        self.insert_calls: list[int] = []

    def exists(self, user_id, date, description, amount) -> bool:
        if self.fail_exists:
            raise StoreError("lookup unavailable")
        return super().exists(user_id, date, description, amount)

    def insert(self, transactions: list[CategorizedTransaction]) -> int:
        self.insert_calls.append(len(transactions))
        if len(self.insert_calls) in self.fail_inserts:
            raise StoreError("insert rejected")
        count = super().insert(transactions)
        if self.on_insert is not None:
            self.on_insert()
        return count
