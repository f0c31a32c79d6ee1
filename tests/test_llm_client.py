import json

import httpx
import pytest

from statement_ingest.clients.llm import LLMClient, LLMError
from statement_ingest.models import CategorizationResponse


def _completion(content: str) -> dict:
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 3},
    }


def _client(handler) -> LLMClient:
    return LLMClient(
        api_key="sk-test",
        base_url="https://llm.example/v1/",
        model="test-model",
        transport=httpx.MockTransport(handler),
    )


def test_generate_structured_sends_schema_and_parses_reply():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_completion('{"categories": ["Groceries", "Travel"]}'))

    with _client(handler) as client:
        result = client.generate_structured(
            prompt="Categorize these 2 transactions",
            response_model=CategorizationResponse,
            system="You are a categorizer",
            max_tokens=256,
        )

    assert result.categories == ["Groceries", "Travel"]
    request = seen[0]
    assert request.url == "https://llm.example/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer sk-test"
    payload = json.loads(request.content)
    assert payload["model"] == "test-model"
    assert payload["max_tokens"] == 256
    assert [m["role"] for m in payload["messages"]] == ["system", "user"]
    assert payload["response_format"]["type"] == "json_schema"
    assert "categories" in payload["response_format"]["json_schema"]["schema"]["properties"]


def test_generate_without_schema_or_system():
    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        assert "response_format" not in payload
        assert "max_tokens" not in payload
        assert [m["role"] for m in payload["messages"]] == ["user"]
        return httpx.Response(200, json=_completion("hello"))

    with _client(handler) as client:
        assert client.generate("hi") == "hello"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"error": "boom"}),
        httpx.Response(429, json={"error": "slow down"}),
        httpx.Response(200, json={"unexpected": True}),
        httpx.Response(200, json={"choices": []}),
        httpx.Response(200, text="not json"),
    ],
)
def test_generate_errors(response):
    with _client(lambda request: response) as client:
        with pytest.raises(LLMError):
            client.generate("hi")


def test_timeout_becomes_llm_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with _client(handler) as client:
        with pytest.raises(LLMError, match="timed out"):
            client.generate("hi")


def test_connection_error_becomes_llm_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with _client(handler) as client:
        with pytest.raises(LLMError, match="Failed to connect"):
            client.generate("hi")


@pytest.mark.parametrize(
    "content",
    ["not json at all", '{"categories": "Groceries"}', '{"labels": []}'],
)
def test_structured_reply_that_does_not_validate(content):
    with _client(lambda request: httpx.Response(200, json=_completion(content))) as client:
        with pytest.raises(LLMError):
            client.generate_structured("hi", CategorizationResponse)
