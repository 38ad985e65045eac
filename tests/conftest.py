"""
Proposal Review Engine Test Configuration
=========================================

Fixtures:
- Context logger and a throwaway per-batch log directory (autouse)
- In-memory PDF / DOCX / ZIP builders
- FakeOpenRouter: an httpx.MockTransport handler that answers chat
  completions per proposal filename and records every request
"""

import io
import re
import json
import logging
import zipfile
from typing import Any, Callable, Dict, List, Optional

import docx
import fitz
import httpx
import pytest
import pytest_asyncio

from proposal_engine.utils.core.log import set_logger
from proposal_engine.utils.llm.LLM_OR import AsyncOpenRouterLLM


def pytest_configure(config):
    """Configure pytest markers"""
    config.addinivalue_line("markers", "unit: fast, isolated tests")
    config.addinivalue_line("markers", "integration: tests that exercise the HTTP surface end to end")


# =============================================================================
# Logging
# =============================================================================

@pytest.fixture(autouse=True)
def engine_logger(tmp_path, monkeypatch):
    monkeypatch.setenv("PROPOSAL_ENGINE_LOG_DIR", str(tmp_path / "process_logs"))
    set_logger(logging.getLogger("ProposalEngine.tests"), tool_name="tests")
    yield


# =============================================================================
# Document builders
# =============================================================================

def make_pdf(*lines: str) -> bytes:
    doc = fitz.open()
    page = doc.new_page()
    y = 72
    for line in lines:
        page.insert_text((72, y), line)
        y += 18
    data = doc.tobytes()
    doc.close()
    return data


def make_docx(paragraphs: List[str], table_rows: Optional[List[List[str]]] = None) -> bytes:
    document = docx.Document()
    for text in paragraphs:
        document.add_paragraph(text)
    if table_rows:
        table = document.add_table(rows=len(table_rows), cols=len(table_rows[0]))
        for r, row in enumerate(table_rows):
            for c, value in enumerate(row):
                table.cell(r, c).text = value
    buf = io.BytesIO()
    document.save(buf)
    return buf.getvalue()


def make_zip(entries: Dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return buf.getvalue()


@pytest.fixture
def budget_pdf() -> bytes:
    return make_pdf("We request $50,000 for materials.")


# =============================================================================
# OpenRouter stub
# =============================================================================

_FILENAME_LINE = re.compile(r"^- Filename: (.+)$", re.MULTILINE)
_IDENTIFIER_LINE = re.compile(r"^- Identifier: (.+)$", re.MULTILINE)


def completion_body(
    content: Optional[str] = None,
    *,
    parsed: Any = None,
    finish_reason: Optional[str] = "stop",
    error: Optional[Dict[str, Any]] = None,
    model: str = "openai/gpt-5",
) -> Dict[str, Any]:
    message: Dict[str, Any] = {"role": "assistant", "content": content}
    if parsed is not None:
        message["parsed"] = parsed
    choice: Dict[str, Any] = {"index": 0, "finish_reason": finish_reason, "message": message}
    if error is not None:
        choice["error"] = error
    return {
        "id": "gen-test",
        "model": model,
        "created": 1700000000,
        "choices": [choice],
        "usage": {"prompt_tokens": 10, "completion_tokens": 20, "total_tokens": 30},
    }


def passing_review(identifier: str, filename: str) -> Dict[str, Any]:
    return {
        "id": identifier,
        "filename": filename,
        "overallVerdict": "pass",
        "overallFeedback": "Budget is clearly stated.",
        "criteria": [
            {"name": "Clear budget", "result": "pass", "explanation": "Budget amount stated."}
        ],
        "notableStrengths": ["Concise budget"],
        "recommendedImprovements": [],
    }


class FakeOpenRouter:
    """
    Callable handler for httpx.MockTransport.

    ``responder(payload, filename)`` returns either a completion body dict or
    an ``httpx.Response``; the default answers every proposal with a passing
    review.
    """

    def __init__(self, responder: Optional[Callable[[Dict[str, Any], str], Any]] = None):
        self.responder = responder or self._default
        self.requests: List[httpx.Request] = []
        self.payloads: List[Dict[str, Any]] = []

    @staticmethod
    def _default(payload: Dict[str, Any], filename: str) -> Dict[str, Any]:
        prompt = payload["messages"][-1]["content"]
        identifier = _IDENTIFIER_LINE.search(prompt).group(1)
        return completion_body(json.dumps(passing_review(identifier, filename)))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.requests.append(request)
        self.payloads.append(payload)

        prompt = payload["messages"][-1]["content"]
        m = _FILENAME_LINE.search(prompt)
        result = self.responder(payload, m.group(1) if m else "")
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, json=result)


@pytest.fixture
def fake_openrouter() -> FakeOpenRouter:
    return FakeOpenRouter()


@pytest_asyncio.fixture
async def llm_client(fake_openrouter):
    async with AsyncOpenRouterLLM(
        api_key="test-key",
        base_url="https://openrouter.test/api/v1",
        app_url="http://localhost:3000",
        app_title="Proposal Utility Suite",
        transport=httpx.MockTransport(fake_openrouter),
    ) as client:
        yield client
