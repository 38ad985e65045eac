"""
API for the Proposal Review Engine

Run with:
  uvicorn proposal_engine.api:app --port 8000

Configuration is read through the Vault client (falling back to env vars);
a local .env file is loaded on import.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from proposal_engine.utils.core.log import setup_logging, set_logger
from proposal_engine.utils.core.warnings_config import configure_warning_filters
from proposal_engine.utils.core.errors import (
    InputError,
    ExtractionError,
    BatchReviewFailed,
)
from proposal_engine.utils.document.doc import extract_document_async
from proposal_engine.utils.llm.LLM_OR import AsyncOpenRouterLLM, ChatMessage
from proposal_engine.utils.vault import secrets
from proposal_engine.tools.review.proposal_review import Upload, proposal_review_main

load_dotenv()
configure_warning_filters()

PREVIEW_CHARS = 1200
DEFAULT_CHAT_MODEL = "openai/gpt-4o-mini"


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    yield


app = FastAPI(title="Proposal Review Engine", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_llm_client() -> Optional[AsyncOpenRouterLLM]:
    """
    Override in tests or embedding apps to inject a client. ``None`` makes
    each request build (and close) its own client from the environment.
    """
    return None


def request_logger(request: Request, tool_name: str) -> logging.LoggerAdapter:
    context = {
        "tool_name": tool_name,
        "ip_address": request.client.host if request.client else "no_ip",
        "request_type": request.method,
    }
    set_logger(logging.getLogger(f"ProposalEngine.{tool_name}"), **context)
    return logging.LoggerAdapter(logging.getLogger("ProposalEngine"), context)


def bad_request(msg: str, status_code: int = 400, **extra) -> JSONResponse:
    return JSONResponse({"error": msg, **extra}, status_code=status_code)


class ChatRequest(BaseModel):
    messages: List[Dict[str, Any]] = Field(default_factory=list)
    model: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    presence_penalty: Optional[float] = None
    frequency_penalty: Optional[float] = None


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@app.get("/health")
async def health():
    return {"status": "ok", "service": "proposal-review"}


@app.post("/upload")
async def upload(request: Request, file: Optional[UploadFile] = File(None)):
    """Parse a single document and return its text with a short preview."""
    logger = request_logger(request, "upload")

    if file is None or not file.filename:
        return bad_request("Request must include a file field")

    try:
        buffer = await file.read()
        parsed = await extract_document_async(buffer, file.filename, file.content_type)
    except (InputError, ExtractionError) as e:
        logger.error(f"Upload parse failed for {file.filename}: {e}")
        return bad_request(str(e))

    logger.info(f"Parsed {file.filename}: {parsed.word_count} words")
    return {
        "source": "upload",
        "filename": parsed.filename,
        "mimetype": parsed.mime_type,
        "wordCount": parsed.word_count,
        "characterCount": len(parsed.text),
        "preview": parsed.text[:PREVIEW_CHARS],
        "text": parsed.text,
    }


@app.post("/review")
async def review(
    request: Request,
    rubricText: Optional[str] = Form(None),
    submissionContext: Optional[str] = Form(None),
    files: Optional[List[UploadFile]] = File(None),
    client: Optional[AsyncOpenRouterLLM] = Depends(get_llm_client),
):
    """Review every uploaded proposal (or ZIP of proposals) against the rubric."""
    logger = request_logger(request, "proposal_review")
    logger.info("Process started")

    uploads = [
        Upload(filename=f.filename or "upload", buffer=await f.read(), mime_type=f.content_type)
        for f in (files or [])
    ]

    try:
        outcome = await proposal_review_main(
            rubricText or "", submissionContext or "", uploads, client=client
        )
    except InputError as e:
        logger.info(f"Rejected review request: {e}")
        return bad_request(str(e))
    except BatchReviewFailed as e:
        logger.error(f"All {len(e.errors)} proposal reviews failed")
        return bad_request(
            str(e), status_code=502, details=[err.to_wire() for err in e.errors]
        )
    except Exception as e:
        logger.exception("Proposal review pipeline error")
        return bad_request(str(e) or "Unable to review proposals", status_code=500)

    logger.info(
        f"Process finished: {len(outcome.reviews)} reviews, {len(outcome.errors)} errors"
    )
    return outcome.to_wire()


@app.post("/chat")
async def chat(
    request: Request,
    body: ChatRequest,
    client: Optional[AsyncOpenRouterLLM] = Depends(get_llm_client),
):
    """Plain chat completion passthrough."""
    logger = request_logger(request, "chat")

    if not body.messages:
        return bad_request("`messages` must be a non-empty array")

    try:
        messages = [
            ChatMessage(role=m.get("role", "user"), content=m.get("content", ""))
            for m in body.messages
        ]
        params = body.model_dump(exclude={"messages", "model"})
        model = body.model or secrets.get("OPENROUTER_DEFAULT_MODEL", default=DEFAULT_CHAT_MODEL)

        if client is not None:
            resp = await client.chat(model=model, messages=messages, **params)
        else:
            async with AsyncOpenRouterLLM.from_env() as owned_client:
                resp = await owned_client.chat(model=model, messages=messages, **params)
    except Exception as e:
        logger.exception("chat crashed")
        return bad_request(str(e) or "Unknown error", status_code=500)

    return {"message": resp.message, "completion": resp.raw}
