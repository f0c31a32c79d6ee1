import pytest
from pydantic import ValidationError

from statement_ingest.config import DateFallback, IngestSettings


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    monkeypatch.setenv("STATEMENT_INGEST_INSERT_BATCH_SIZE", "5")
    monkeypatch.setenv("STATEMENT_INGEST_DATE_FALLBACK", "skip")

    settings = IngestSettings.from_env(insert_batch_size=7, llm_model=None)

    assert settings.openai_api_key == "sk-env"
    assert settings.llm_enabled
    assert settings.insert_batch_size == 7
    assert settings.llm_model == "gpt-4o-mini"
    assert settings.date_fallback is DateFallback.SKIP


def test_env_values_are_validated(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("STATEMENT_INGEST_INSERT_DELAY", "0.25")
    monkeypatch.setenv("STATEMENT_INGEST_USE_PDFPLUMBER", "false")

    settings = IngestSettings.from_env()

    assert settings.insert_delay == 0.25
    assert settings.use_pdfplumber is False
    assert not settings.llm_enabled


def test_llm_needs_switch_and_key():
    assert not IngestSettings(openai_api_key="sk", use_llm=False).llm_enabled
    assert not IngestSettings(use_llm=True).llm_enabled
    assert IngestSettings(openai_api_key="sk").llm_enabled


def test_empty_env_values_fall_back_to_defaults(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("OPENAI_API_KEY", "")
    monkeypatch.setenv("STATEMENT_INGEST_LLM_MODEL", "")

    settings = IngestSettings()

    assert settings.openai_api_key is None
    assert settings.llm_model == "gpt-4o-mini"


def test_invalid_env_value_is_rejected(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("STATEMENT_INGEST_INSERT_BATCH_SIZE", "0")

    with pytest.raises(ValidationError):
        IngestSettings()
