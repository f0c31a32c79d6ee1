"""Runtime settings for statement ingestion."""

from enum import Enum
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "STATEMENT_INGEST_"


class DateFallback(str, Enum):
    """What to do with a line whose date cannot be parsed."""

    TODAY = "today"  # keep the line, date set to the processing date
    SKIP = "skip"  # drop the line and count it as skipped


class IngestSettings(BaseSettings):
    """Tunables for parsing, categorization and persistence.

    Every field can be set from a ``STATEMENT_INGEST_<FIELD>`` environment
    variable. The classification credential is read from ``OPENAI_API_KEY``.
    """

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, env_ignore_empty=True, extra="ignore")

    # Remote categorization
    openai_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("openai_api_key", "OPENAI_API_KEY"),
    )
    llm_base_url: str = "https://api.openai.com/v1"
    llm_model: str = "gpt-4o-mini"
    llm_timeout: float = 30.0
    use_llm: bool = True

    # Token budgeting for categorization batches
    context_token_limit: int = Field(default=4096, gt=0)
    completion_token_reserve: int = Field(default=1024, ge=0)
    max_batch_items: int = Field(default=40, gt=0)
    inter_batch_delay: float = Field(default=0.5, ge=0)

    # Persistence
    insert_batch_size: int = Field(default=10, gt=0)
    insert_delay: float = Field(default=0.5, ge=0)

    # Parsing
    date_fallback: DateFallback = DateFallback.TODAY
    use_pdfplumber: bool = True

    debug_dir: Path | None = None

    @property
    def llm_enabled(self) -> bool:
        """Model-assisted categorization needs both the switch and a credential."""
        return self.use_llm and bool(self.openai_api_key)

    @classmethod
    def from_env(cls, **overrides) -> "IngestSettings":
        """Build settings from the environment; overrides that are not None win."""
        return cls(**{k: v for k, v in overrides.items() if v is not None})
