"""
Coerces whatever the model returned into a well-formed ReviewResult.

``normalize_review`` never raises: any field that is missing, mistyped or
blank is replaced with a default. Parsing raw text into an object happens
earlier, in ``utils.core.jsonval.extract_json``.
"""

from typing import Any, List
from proposal_engine.tools.review.review_models import (
    ParsedDocument,
    ReviewCriterionResult,
    ReviewResult,
    Verdict,
)

UNNAMED_CRITERION = "Unnamed criterion"

CRITERION_EXPLANATION = {
    "pass": "Criterion appears satisfied.",
    "fail": "Criterion appears unmet or lacks evidence.",
}
OVERALL_FEEDBACK = {
    "pass": "Proposal meets rubric expectations.",
    "fail": "Proposal does not satisfy all rubric requirements.",
}
DEFAULT_IMPROVEMENT = {
    "pass": "No immediate improvements recommended.",
    "fail": "Address the failed criteria with specific evidence.",
}

INVALID_RESPONSE_FEEDBACK = "The model returned an invalid response."
INVALID_RESPONSE_IMPROVEMENT = "Unable to parse review output."


def _verdict(value: Any) -> Verdict:
    return "pass" if value == "pass" else "fail"


def _clean_str(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [s for s in (_clean_str(item) for item in value) if s]


def normalize_criteria(criteria: Any) -> List[ReviewCriterionResult]:
    if not isinstance(criteria, list):
        return []

    normalized = []
    for item in criteria:
        if not isinstance(item, dict):
            continue
        result = _verdict(item.get("result"))
        normalized.append(
            ReviewCriterionResult(
                name=_clean_str(item.get("name")) or UNNAMED_CRITERION,
                result=result,
                explanation=_clean_str(item.get("explanation"))
                or CRITERION_EXPLANATION[result],
            )
        )
    return normalized


def normalize_review(raw: Any, fallback: ParsedDocument) -> ReviewResult:
    if isinstance(raw, list):
        # an array has none of the review fields; each one takes its default
        raw = {}

    if not isinstance(raw, dict):
        return ReviewResult(
            id=fallback.identifier,
            filename=fallback.filename,
            word_count=fallback.word_count,
            overall_verdict="fail",
            overall_feedback=INVALID_RESPONSE_FEEDBACK,
            criteria=[],
            notable_strengths=[],
            recommended_improvements=[INVALID_RESPONSE_IMPROVEMENT],
        )

    verdict = _verdict(raw.get("overallVerdict"))
    improvements = _string_list(raw.get("recommendedImprovements"))

    return ReviewResult(
        id=_clean_str(raw.get("id")) or fallback.identifier,
        filename=_clean_str(raw.get("filename")) or fallback.filename,
        word_count=fallback.word_count,
        overall_verdict=verdict,
        overall_feedback=_clean_str(raw.get("overallFeedback")) or OVERALL_FEEDBACK[verdict],
        criteria=normalize_criteria(raw.get("criteria")),
        notable_strengths=_string_list(raw.get("notableStrengths")),
        recommended_improvements=improvements or [DEFAULT_IMPROVEMENT[verdict]],
    )
