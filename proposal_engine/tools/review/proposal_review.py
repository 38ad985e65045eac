import time
import uuid
import asyncio
from enum import Enum
from pathlib import Path
from dataclasses import dataclass
from typing import Iterable, List, Optional
from proposal_engine.utils.vault import secrets
from proposal_engine.utils.core.jsonval import extract_json
from proposal_engine.utils.core.log import (
    pid_tool_logger,
    release_tool_logger,
    set_logger,
    get_logger,
)
from proposal_engine.utils.core.errors import (
    _make_error_payload,
    ReviewEngineError,
    EmptyRubric,
    FileTooLarge,
    NoFiles,
    NoProposalsFound,
    BatchTooLarge,
    UnsupportedFormat,
    BatchReviewFailed,
)
from proposal_engine.utils.document.doc import (
    EXTENSION_TO_KIND,
    KIND_TO_MIME,
    MAX_UPLOAD_BYTES,
    detect_kind,
    extract_document_async,
)
from proposal_engine.utils.document.archive import is_zip_upload, expand_archive_async
from proposal_engine.utils.llm.LLM_OR import AsyncOpenRouterLLM
from proposal_engine.tools.review.prompts_review import build_review_messages
from proposal_engine.tools.review.review_completion import (
    complete_structured,
    ensure_content,
    with_model_hint,
)
from proposal_engine.tools.review.review_normalizer import normalize_review
from proposal_engine.tools.review.review_models import (
    BatchReviewOutcome,
    ParsedDocument,
    ReviewError,
    ReviewResult,
)

MAX_PROPOSALS = 12
DEFAULT_REVIEW_MODEL = "openai/gpt-5"


class ReviewStage(str, Enum):
    PENDING = "pending"
    EXTRACTING = "extracting"
    PROMPTING = "prompting"
    COMPLETING = "completing"
    NORMALIZING = "normalizing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class Upload:
    """One named binary handed to the pipeline (a document or a ZIP)."""

    filename: str
    buffer: bytes
    mime_type: Optional[str] = None
    size: Optional[int] = None  # declared size of an archive entry left unread


def default_review_model() -> str:
    return (
        secrets.get("OPENROUTER_REVIEW_MODEL", default="")
        or secrets.get("OPENROUTER_DEFAULT_MODEL", default="")
        or DEFAULT_REVIEW_MODEL
    )


def _direct_upload_mime(filename: str, declared: Optional[str]) -> Optional[str]:
    """The extension wins over the declared type; browsers often send octet-stream."""
    kind = EXTENSION_TO_KIND.get(Path(filename).suffix.lower())
    return KIND_TO_MIME[kind] if kind else declared


async def collect_uploads(uploads: Iterable[Upload]) -> List[Upload]:
    """
    Validate raw uploads and expand ZIP bundles into individual documents.
    Raises an InputError before any document is reviewed.
    """
    logger = get_logger()
    uploads = list(uploads)
    if not uploads:
        raise NoFiles()

    collected: List[Upload] = []
    for upload in uploads:
        if is_zip_upload(upload.filename, upload.mime_type):
            entries = await expand_archive_async(upload.buffer, upload.filename)
            logger.debug(f"{upload.filename}: {len(entries)} proposal(s) in archive")
            collected.extend(
                Upload(
                    filename=e.filename,
                    buffer=e.buffer,
                    mime_type=e.mime_type,
                    size=e.size if e.oversized else None,
                )
                for e in entries
            )
            continue

        if not detect_kind(upload.filename, upload.mime_type):
            raise UnsupportedFormat(f"Unsupported file type: {upload.filename}")

        collected.append(
            Upload(
                filename=upload.filename,
                buffer=upload.buffer,
                mime_type=_direct_upload_mime(upload.filename, upload.mime_type),
            )
        )

    if not collected:
        raise NoProposalsFound()

    if len(collected) > MAX_PROPOSALS:
        raise BatchTooLarge(len(collected), MAX_PROPOSALS)

    return collected


class ProposalReview:
    def __init__(
        self,
        rubric_text: str,
        submission_context: Optional[str] = "",
        *,
        client: AsyncOpenRouterLLM,
        model: Optional[str] = None,
        batch_id: Optional[str] = None,
    ):
        if not isinstance(rubric_text, str) or not rubric_text.strip():
            raise EmptyRubric()

        self.batch_id = batch_id or f"review-{uuid.uuid4().hex[:12]}"
        self.rubric_text = rubric_text.strip()
        self.submission_context = submission_context if isinstance(submission_context, str) else ""
        self.client = client
        self.model = model or default_review_model()

    async def review_batch(self, uploads: Iterable[Upload]) -> BatchReviewOutcome:
        """
        Review every proposal concurrently. Individual failures become
        ReviewErrors; BatchReviewFailed is raised only when nothing succeeded.

        The batch log file is open only while this call runs.
        """
        batch_logger = pid_tool_logger(self.batch_id, "proposal_review")
        set_logger(batch_logger, tool_name="proposal_review", batch_id=self.batch_id)
        self.logger = get_logger()
        try:
            return await self._review_all(uploads)
        finally:
            release_tool_logger(batch_logger)

    async def _review_all(self, uploads: Iterable[Upload]) -> BatchReviewOutcome:
        documents = await collect_uploads(uploads)
        self.logger.info(f"Reviewing {len(documents)} proposal(s) with {self.model}")
        t0 = time.monotonic()

        settled = await asyncio.gather(
            *(self._review_one(i, upload) for i, upload in enumerate(documents)),
            return_exceptions=True,
        )

        outcome = BatchReviewOutcome()
        for upload, result in zip(documents, settled):
            if isinstance(result, ReviewResult):
                outcome.reviews.append(result)
            elif isinstance(result, Exception):
                outcome.errors.append(
                    ReviewError(
                        filename=upload.filename,
                        message=with_model_hint(str(result) or "Unknown review error"),
                    )
                )
            else:
                raise result

        self.logger.info(
            f"Batch finished in {time.monotonic() - t0:.1f}s: "
            f"{len(outcome.reviews)} reviewed, {len(outcome.errors)} failed"
        )

        if not outcome.reviews:
            raise BatchReviewFailed(outcome.errors)
        return outcome

    async def _review_one(self, index: int, upload: Upload) -> ReviewResult:
        identifier = f"proposal-{index + 1}"
        stage = ReviewStage.PENDING
        try:
            stage = ReviewStage.EXTRACTING
            if upload.size is not None and upload.size > MAX_UPLOAD_BYTES:
                raise FileTooLarge(upload.filename, MAX_UPLOAD_BYTES)
            extracted = await extract_document_async(
                upload.buffer, upload.filename, upload.mime_type
            )
            document = ParsedDocument(
                identifier=identifier,
                filename=extracted.filename,
                mime_type=extracted.mime_type,
                text=extracted.text,
                word_count=extracted.word_count,
            )

            stage = ReviewStage.PROMPTING
            messages = build_review_messages(
                self.rubric_text, self.submission_context, document
            )

            stage = ReviewStage.COMPLETING
            completion = await complete_structured(self.client, self.model, messages)
            ensure_content(completion, self.model, document.filename)

            stage = ReviewStage.NORMALIZING
            payload = completion.parsed_payload
            if payload is None:
                payload = extract_json(completion.content, label=document.filename)
            review = normalize_review(payload, document)

        except Exception as exc:
            payload = _make_error_payload(
                stage.value, exc, {"file": upload.filename, "id": identifier}
            )
            if isinstance(exc, ReviewEngineError):
                self.logger.error(f"Review generation failed: {payload}")
            else:
                self.logger.exception(f"Review generation failed: {payload}")
            raise

        self.logger.debug(
            f"{identifier} ({document.filename}) -> {review.overall_verdict} "
            f"[{ReviewStage.SUCCEEDED.value}]"
        )
        return review


async def proposal_review_main(
    rubric_text: str,
    submission_context: Optional[str],
    uploads: Iterable[Upload],
    *,
    client: Optional[AsyncOpenRouterLLM] = None,
    model: Optional[str] = None,
    batch_id: Optional[str] = None,
) -> BatchReviewOutcome:
    """
    Entry point: validate inputs, expand bundles, review every proposal.

    Raises InputError subclasses for request-level problems and
    BatchReviewFailed when no proposal could be reviewed.
    """
    if client is not None:
        review = ProposalReview(
            rubric_text, submission_context, client=client, model=model, batch_id=batch_id
        )
        return await review.review_batch(uploads)

    # Validate the rubric before a client is ever constructed
    if not isinstance(rubric_text, str) or not rubric_text.strip():
        raise EmptyRubric()

    async with AsyncOpenRouterLLM.from_env() as owned_client:
        review = ProposalReview(
            rubric_text, submission_context, client=owned_client, model=model, batch_id=batch_id
        )
        return await review.review_batch(uploads)
