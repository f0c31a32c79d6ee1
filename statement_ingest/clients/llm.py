"""OpenAI-compatible chat completions client for remote categorization."""

import json
from typing import Any, TypeVar

import httpx
from loguru import logger
from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)


class LLMError(Exception):
    """Error communicating with the classification service."""

    pass


class LLMClient:
    """Client for an OpenAI-compatible ``/chat/completions`` endpoint."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self._client = httpx.Client(
            timeout=timeout,
            transport=transport,
            headers={"Authorization": f"Bearer {api_key}"},
        )

    def generate(
        self,
        prompt: str,
        system: str | None = None,
        temperature: float = 0.1,
        schema: dict | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Generate a completion from the model.

        Args:
            prompt: The user prompt
            system: Optional system prompt
            temperature: Sampling temperature (lower = more deterministic)
            schema: Optional JSON schema for structured output
            max_tokens: Optional completion budget

        Returns:
            The model's response text
        """
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens:
            payload["max_tokens"] = max_tokens
        if schema:
            payload["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "response", "schema": schema},
            }

        logger.debug(
            f"LLM request: model={self.model}, prompt_len={len(prompt)}, "
            f"system_len={len(system) if system else 0}, schema={'yes' if schema else 'no'}"
        )

        try:
            response = self._client.post(
                f"{self.base_url}/chat/completions",
                json=payload,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"LLM HTTP error: {e.response.status_code}")
            raise LLMError(f"LLM HTTP error: {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            logger.error(f"LLM request timed out after {self.timeout}s")
            raise LLMError(f"LLM request timed out: {e}") from e
        except httpx.RequestError as e:
            logger.error(f"LLM connection error: {e}")
            raise LLMError(f"Failed to connect to LLM service: {e}") from e

        try:
            data = response.json()
            result = data["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMError(f"Unexpected LLM response shape: {e}") from e

        usage = data.get("usage") or {}
        logger.debug(
            f"LLM response: len={len(result)}, "
            f"prompt_tokens={usage.get('prompt_tokens')}, completion_tokens={usage.get('completion_tokens')}"
        )

        return result

    def generate_structured(
        self,
        prompt: str,
        response_model: type[T],
        system: str | None = None,
        temperature: float = 0.1,
        max_tokens: int | None = None,
    ) -> T:
        """Generate a structured response matching a Pydantic model.

        Args:
            prompt: The user prompt
            response_model: Pydantic model class for the response
            system: Optional system prompt
            temperature: Sampling temperature
            max_tokens: Optional completion budget

        Returns:
            Validated Pydantic model instance
        """
        schema = response_model.model_json_schema()

        response = self.generate(
            prompt=prompt,
            system=system,
            temperature=temperature,
            schema=schema,
            max_tokens=max_tokens,
        )

        try:
            data = json.loads(response)
            return response_model.model_validate(data)
        except json.JSONDecodeError as e:
            logger.error(f"JSON parse error: {e}, response preview: {response[:200]}")
            raise LLMError(f"Failed to parse JSON response: {e}") from e
        except Exception as e:
            logger.error(f"Validation error: {e}, response preview: {response[:200]}")
            raise LLMError(f"Failed to validate response: {e}") from e

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> "LLMClient":
        return self

    def __exit__(self, *_) -> None:
        self.close()
