"""LLM prompt templates."""

from statement_ingest.prompts.categorize import CATEGORIZE_SYSTEM, CATEGORIZE_USER

__all__ = ["CATEGORIZE_SYSTEM", "CATEGORIZE_USER"]
