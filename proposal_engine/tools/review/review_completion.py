from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from proposal_engine.utils.core.log import get_logger
from proposal_engine.utils.core.errors import CompletionError
from proposal_engine.utils.llm.LLM_OR import AsyncOpenRouterLLM, ChatMessage
from proposal_engine.tools.review.prompts_review import REVIEW_RESPONSE_SCHEMA

REVIEW_TEMPERATURE = 0.2
REVIEW_MAX_TOKENS = 800

INVALID_MODEL_HINT = "Update OPENROUTER_REVIEW_MODEL to a supported model."


@dataclass
class StructuredCompletion:
    content: Optional[str]
    parsed_payload: Any
    finish_reason: Optional[str]
    error_info: Optional[Dict[str, Any]]
    completion_id: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.parsed_payload is None and not self.content


async def complete_structured(
    client: AsyncOpenRouterLLM,
    model: str,
    messages: List[ChatMessage],
    response_schema: Dict[str, Any] = REVIEW_RESPONSE_SCHEMA,
) -> StructuredCompletion:
    """One schema-constrained chat completion; whatever came back is surfaced."""
    resp = await client.chat(
        model=model,
        messages=messages,
        response_format={"type": "json_schema", "json_schema": response_schema},
        temperature=REVIEW_TEMPERATURE,
        max_tokens=REVIEW_MAX_TOKENS,
    )
    return StructuredCompletion(
        content=resp.text or None,
        parsed_payload=resp.parsed,
        finish_reason=resp.finish_reason,
        error_info=resp.error,
        completion_id=resp.raw.get("id"),
    )


def describe_empty_completion(completion: StructuredCompletion, model: str) -> str:
    finish_reason = completion.finish_reason
    if finish_reason == "content_filter":
        return (
            f"Content was filtered by the model (model: {model}). "
            "The proposal may contain flagged content."
        )
    if finish_reason == "length":
        return (
            f"Response was cut off due to length limits (model: {model}). "
            "Try reducing proposal size."
        )
    if completion.error_info:
        detail = (
            completion.error_info.get("message")
            or completion.error_info.get("code")
            or "Unknown error"
        )
        return f"Model error: {detail}"

    message = f"Model returned an empty response (model: {model})"
    if finish_reason:
        message += f". Finish reason: {finish_reason}"
    return message


def ensure_content(completion: StructuredCompletion, model: str, filename: str) -> None:
    """Raise CompletionError when neither a parsed payload nor text came back."""
    if not completion.is_empty:
        return

    get_logger().error(
        f"Empty response details for {filename}: id={completion.completion_id} "
        f"finish_reason={completion.finish_reason} model={model} "
        f"error={completion.error_info}"
    )
    raise CompletionError(
        describe_empty_completion(completion, model),
        finish_reason=completion.finish_reason,
    )


def with_model_hint(message: str) -> str:
    if "invalid model" in message.lower() or "not a valid model ID" in message:
        return f"{message}. {INVALID_MODEL_HINT}"
    return message
