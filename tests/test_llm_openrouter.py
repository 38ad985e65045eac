"""
OpenRouter client tests against an in-process httpx.MockTransport.
"""

import json

import httpx
import pytest

from proposal_engine.utils.llm.LLM_OR import (
    AsyncOpenRouterLLM,
    ChatMessage,
    OpenRouterError,
)
from tests.conftest import completion_body


def _client(handler) -> AsyncOpenRouterLLM:
    return AsyncOpenRouterLLM(
        api_key="test-key",
        base_url="https://openrouter.test/api/v1",
        app_url="http://localhost:3000",
        app_title="Proposal Utility Suite",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.unit
class TestAsyncOpenRouterLLM:

    @pytest.mark.asyncio
    async def test_request_shape(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=completion_body("hello"))

        async with _client(handler) as client:
            resp = await client.chat(
                model="openai/gpt-5",
                messages=[ChatMessage(role="user", content="hi")],
                response_format={"type": "json_object"},
                temperature=0.2,
                max_tokens=None,
            )

        request = seen[0]
        payload = json.loads(request.content)
        assert str(request.url) == "https://openrouter.test/api/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer test-key"
        assert request.headers["HTTP-Referer"] == "http://localhost:3000"
        assert request.headers["X-Title"] == "Proposal Utility Suite"
        assert payload == {
            "model": "openai/gpt-5",
            "messages": [{"role": "user", "content": "hi"}],
            "response_format": {"type": "json_object"},
            "temperature": 0.2,
        }
        assert resp.text == "hello"
        assert resp.finish_reason == "stop"
        assert resp.model == "openai/gpt-5"

    @pytest.mark.asyncio
    async def test_parsed_and_error_surfaced(self):
        body = completion_body(
            None,
            parsed={"overallVerdict": "pass"},
            finish_reason="error",
            error={"code": 502, "message": "provider hiccup"},
        )

        async with _client(lambda request: httpx.Response(200, json=body)) as client:
            resp = await client.chat(model="m", messages=[ChatMessage("user", "hi")])

        assert resp.text == ""
        assert resp.parsed == {"overallVerdict": "pass"}
        assert resp.error == {"code": 502, "message": "provider hiccup"}
        assert resp.finish_reason == "error"

    @pytest.mark.asyncio
    async def test_non_200_raises(self):
        def handler(request):
            return httpx.Response(
                400, json={"error": {"code": 400, "message": "foo/bar is not a valid model ID"}}
            )

        async with _client(handler) as client:
            with pytest.raises(OpenRouterError) as exc_info:
                await client.chat(model="foo/bar", messages=[ChatMessage("user", "hi")])

        assert exc_info.value.status_code == 400
        assert "not a valid model ID" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_non_json_error_body(self):
        async with _client(lambda request: httpx.Response(503, text="Service Unavailable")) as client:
            with pytest.raises(OpenRouterError, match="HTTP 503 Service Unavailable"):
                await client.chat(model="m", messages=[ChatMessage("user", "hi")])

    @pytest.mark.asyncio
    async def test_timeout_maps_to_408(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with _client(handler) as client:
            with pytest.raises(OpenRouterError) as exc_info:
                await client.chat(model="m", messages=[ChatMessage("user", "hi")])
        assert exc_info.value.status_code == 408

    @pytest.mark.asyncio
    async def test_empty_messages_rejected(self):
        async with _client(lambda request: httpx.Response(200, json={})) as client:
            with pytest.raises(ValueError):
                await client.chat(model="m", messages=[])

    def test_from_env_requires_key(self, monkeypatch):
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
        monkeypatch.delenv("openrouter_api_key", raising=False)
        with pytest.raises(RuntimeError, match="OPENROUTER_API_KEY is not set"):
            AsyncOpenRouterLLM.from_env()

    def test_from_env_reads_settings(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "env-key")
        monkeypatch.setenv("OPENROUTER_TIMEOUT", "15")
        monkeypatch.delenv("OPENROUTER_APP_TITLE", raising=False)

        client = AsyncOpenRouterLLM.from_env()

        assert client.api_key == "env-key"
        assert client.timeout == 15.0
        assert client.app_title == "Proposal Utility Suite"
