"""Shared fixtures.

Every test runs with a clean environment: no classification credential and no
``STATEMENT_INGEST_*`` overrides leak in from the developer's shell, so the
remote classifier is never contacted unless a test wires in a stub.
"""

import os
from datetime import date

import pytest

from statement_ingest.config import ENV_PREFIX, IngestSettings
from statement_ingest.store import InMemoryTransactionStore

TODAY = date(2024, 6, 30)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    for name in list(os.environ):
        if name.startswith(ENV_PREFIX):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def settings() -> IngestSettings:
    """Rule-only settings with no sleeping between batches."""
    return IngestSettings(
        use_llm=False,
        inter_batch_delay=0,
        insert_delay=0,
        use_pdfplumber=False,
    )


@pytest.fixture
def store() -> InMemoryTransactionStore:
    return InMemoryTransactionStore()
