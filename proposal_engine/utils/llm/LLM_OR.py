"""
Async OpenRouter chat-completions client.

- One request per call: failures surface as OpenRouterError and are never
  retried (the caller decides what a failed completion means).
- Structured outputs via ``response_format={"type": "json_schema", ...}``.
- Provider error objects, finish reasons and pre-parsed payloads are
  exposed on LLMResponse rather than raised.
- Deps: ``httpx`` with the ``http2`` extra.

Configuration (Vault, then environment):
    OPENROUTER_API_KEY      required
    OPENROUTER_BASE_URL     default https://openrouter.ai/api/v1
    OPENROUTER_APP_URL      HTTP-Referer attribution header
    OPENROUTER_APP_TITLE    X-Title attribution header
    OPENROUTER_TIMEOUT      read timeout in seconds (default 60)

Usage:
    async with AsyncOpenRouterLLM.from_env() as llm:
        resp = await llm.chat("openai/gpt-5", [ChatMessage("user", "Hello")])
        print(resp.text, resp.finish_reason)
"""

from __future__ import annotations

import httpx
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
from proposal_engine.utils.vault import secrets

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_APP_URL = "http://localhost:3000"
DEFAULT_APP_TITLE = "Proposal Utility Suite"
DEFAULT_TIMEOUT = 60.0
CONNECT_TIMEOUT = 10.0


@dataclass
class ChatMessage:
    role: str  # system | user | assistant
    content: Union[str, List[Dict[str, Any]]]
    name: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.name:
            body["name"] = self.name
        return body


@dataclass
class LLMResponse:
    raw: Dict[str, Any]
    model: str
    created: int
    usage: Optional[Dict[str, int]]
    finish_reason: Optional[str]
    text: str  # "" when the first choice carries no string content
    parsed: Any = None
    error: Optional[Dict[str, Any]] = None
    message: Optional[Dict[str, Any]] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "LLMResponse":
        """Read the first choice of a chat-completions body; missing parts stay empty."""
        top_error = data.get("error")
        resp = cls(
            raw=data,
            model=data.get("model", ""),
            created=data.get("created", 0),
            usage=data.get("usage"),
            finish_reason=None,
            text="",
            error=top_error if isinstance(top_error, dict) else None,
        )

        choices = data.get("choices") or []
        if not choices:
            return resp

        first = choices[0] or {}
        resp.finish_reason = first.get("finish_reason")
        if resp.error is None and isinstance(first.get("error"), dict):
            resp.error = first["error"]

        msg = first.get("message")
        if isinstance(msg, dict):
            resp.message = msg
            if isinstance(msg.get("content"), str):
                resp.text = msg["content"]
            resp.parsed = msg.get("parsed")
        return resp


class OpenRouterError(Exception):
    def __init__(self, status_code: int, message: str, metadata: Optional[Dict[str, Any]] = None):
        super().__init__(f"[{status_code}] {message}")
        self.status_code = status_code
        self.message = message
        self.metadata = metadata or {}


def build_chat_payload(
    model: str,
    messages: List[ChatMessage],
    response_format: Optional[Dict[str, Any]] = None,
    **params: Any,
) -> Dict[str, Any]:
    """Request body for /chat/completions; ``None`` params are left out."""
    if not messages:
        raise ValueError("`messages` must be a non-empty list.")

    body: Dict[str, Any] = {
        "model": model,
        "messages": [m.to_payload() if isinstance(m, ChatMessage) else dict(m) for m in messages],
    }
    if response_format is not None:
        body["response_format"] = response_format
    body.update((k, v) for k, v in params.items() if v is not None)
    return body


@dataclass
class AsyncOpenRouterLLM:
    api_key: str
    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT
    connect_timeout: float = CONNECT_TIMEOUT
    app_url: Optional[str] = None
    app_title: Optional[str] = None
    default_headers: Dict[str, str] = field(default_factory=dict)
    transport: Optional[httpx.AsyncBaseTransport] = None  # tests inject httpx.MockTransport
    _client: Optional[httpx.AsyncClient] = field(default=None, init=False, repr=False)

    @classmethod
    def from_env(cls, **overrides) -> "AsyncOpenRouterLLM":
        api_key = secrets.get("OPENROUTER_API_KEY", default="")
        if not api_key:
            raise RuntimeError("OPENROUTER_API_KEY is not set")

        settings: Dict[str, Any] = {
            "base_url": secrets.get("OPENROUTER_BASE_URL", default=DEFAULT_BASE_URL),
            "app_url": secrets.get("OPENROUTER_APP_URL", default=DEFAULT_APP_URL),
            "app_title": secrets.get("OPENROUTER_APP_TITLE", default=DEFAULT_APP_TITLE),
        }
        timeout = secrets.get("OPENROUTER_TIMEOUT", default="")
        if timeout:
            settings["timeout"] = float(timeout)
        settings.update(overrides)
        return cls(api_key=api_key, **settings)

    async def __aenter__(self) -> "AsyncOpenRouterLLM":
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            }
            if self.app_url:
                headers["HTTP-Referer"] = self.app_url
            if self.app_title:
                headers["X-Title"] = self.app_title
            headers.update(self.default_headers)

            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=httpx.Timeout(self.timeout, connect=self.connect_timeout),
                http2=self.transport is None,
                transport=self.transport,
            )
        return self._client

    async def chat(
        self,
        model: str,
        messages: List[ChatMessage],
        response_format: Optional[Dict[str, Any]] = None,
        **params: Any,
    ) -> LLMResponse:
        """
        Single non-streaming completion. Sampling params (temperature,
        max_tokens, top_p, ...) are passed through as given.
        """
        body = build_chat_payload(model, messages, response_format, **params)
        return LLMResponse.from_payload(await self._post("/chat/completions", body))

    async def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        client = self._ensure_client()
        try:
            resp = await client.post(f"{self.base_url}{path}", json=body)
        except httpx.TimeoutException as e:
            raise OpenRouterError(408, f"Request timed out: {e}") from e
        except httpx.TransportError as e:
            raise OpenRouterError(503, f"Network error: {e}") from e

        if resp.status_code != 200:
            err = _error_details(resp)
            raise OpenRouterError(
                err["code"], f"OpenRouter request failed: {err['message']}", err["metadata"]
            )

        try:
            return resp.json()
        except ValueError as e:
            raise OpenRouterError(502, f"Invalid JSON from provider: {e}") from e


def _error_details(resp: httpx.Response) -> Dict[str, Any]:
    """OpenRouter error bodies look like {"error": {"code", "message", "metadata"}}."""
    fallback = f"HTTP {resp.status_code}"
    try:
        data = resp.json()
    except ValueError:
        return {
            "code": resp.status_code,
            "message": f"{fallback} {resp.text[:500]}".strip(),
            "metadata": {},
        }

    err = data.get("error") if isinstance(data, dict) else None
    if isinstance(err, str):
        err = {"message": err}
    elif not isinstance(err, dict):
        err = {}
    return {
        "code": err.get("code", resp.status_code),
        "message": err.get("message") or fallback,
        "metadata": err.get("metadata") or {},
    }
