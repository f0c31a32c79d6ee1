"""Remote service clients."""

from statement_ingest.clients.llm import LLMClient, LLMError

__all__ = ["LLMClient", "LLMError"]
