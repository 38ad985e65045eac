from typing import List
from proposal_engine.utils.llm.LLM_OR import ChatMessage
from proposal_engine.tools.review.review_models import ParsedDocument

MAX_PROPOSAL_TEXT_LENGTH = 12000
TRUNCATION_NOTICE = "[Excerpt truncated to stay within token limits]"
NO_CONTEXT_PLACEHOLDER = "(No additional context provided)"

REVIEW_SYS = (
    "You are an expert evaluator of grant and proposal submissions. Review "
    "proposals strictly against the provided rubric. Each rubric criterion is "
    'binary: mark it "pass" when the proposal fully satisfies the requirement, '
    'otherwise "fail" and note missing evidence. Keep explanations concise '
    "(1-2 sentences). If required information is absent, state that explicitly."
)

REVIEW_RESPONSE_SCHEMA = {
    "name": "proposal_review",
    "schema": {
        "type": "object",
        "additionalProperties": False,
        "required": [
            "id",
            "filename",
            "overallVerdict",
            "overallFeedback",
            "criteria",
            "notableStrengths",
            "recommendedImprovements",
        ],
        "properties": {
            "id": {"type": "string"},
            "filename": {"type": "string"},
            "overallVerdict": {"enum": ["pass", "fail"]},
            "overallFeedback": {"type": "string"},
            "criteria": {
                "type": "array",
                "minItems": 0,
                "items": {
                    "type": "object",
                    "additionalProperties": False,
                    "required": ["name", "result", "explanation"],
                    "properties": {
                        "name": {"type": "string"},
                        "result": {"enum": ["pass", "fail"]},
                        "explanation": {"type": "string"},
                    },
                },
            },
            "notableStrengths": {
                "type": "array",
                "items": {"type": "string"},
            },
            "recommendedImprovements": {
                "type": "array",
                "items": {"type": "string"},
            },
        },
    },
    "strict": True,
}


def truncate_content(text: str, limit: int = MAX_PROPOSAL_TEXT_LENGTH) -> str:
    if len(text) <= limit:
        return text
    return f"{text[:limit]}\n\n{TRUNCATION_NOTICE}"


def build_review_prompt(
    rubric_text: str, submission_context: str, document: ParsedDocument
) -> str:
    context_block = (
        submission_context
        if submission_context and submission_context.strip()
        else NO_CONTEXT_PLACEHOLDER
    )

    return f'''Evaluate this proposal against the rubric and submission context.

Rubric (binary criteria):
"""
{rubric_text}
"""

Submission context supplied by the user:
"""
{context_block}
"""

Proposal metadata:
- Identifier: {document.identifier}
- Filename: {document.filename}
- Word count: {document.word_count}

Extracted proposal text (may be truncated):
"""
{truncate_content(document.text)}
"""

Return JSON shaped as:
{{
  "id": "{document.identifier}",
  "filename": "{document.filename}",
  "overallVerdict": "pass" | "fail",
  "overallFeedback": "1-2 sentence synthesis referencing the rubric",
  "criteria": [
    {{ "name": "criterion title", "result": "pass" | "fail", "explanation": "1-2 sentences" }}
  ],
  "notableStrengths": ["..."],
  "recommendedImprovements": ["..."]
}}

Respond with JSON only.'''


def build_review_messages(
    rubric_text: str, submission_context: str, document: ParsedDocument
) -> List[ChatMessage]:
    return [
        ChatMessage(role="system", content=REVIEW_SYS),
        ChatMessage(
            role="user",
            content=build_review_prompt(rubric_text, submission_context, document),
        ),
    ]
