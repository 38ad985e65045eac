"""
Pydantic models for proposal review data structures.

Attributes are snake_case in Python and camelCase on the wire
(``wordCount``, ``overallVerdict`` ...), matching the review response
schema sent to the model.

The hierarchy is:
    BatchReviewOutcome (one request)
    ├── ReviewResult (one proposal)
    │   └── ReviewCriterionResult (one rubric line item)
    └── ReviewError (one failed proposal)
"""

from __future__ import annotations

from typing import List, Literal
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel

Verdict = Literal["pass", "fail"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class ParsedDocument(_CamelModel):
    """One ingested proposal file, ready for review."""

    identifier: str = Field(description="Unique within a batch, e.g. 'proposal-1'")
    filename: str
    mime_type: str
    text: str = Field(min_length=1, description="Sanitized extracted text")
    word_count: int = Field(ge=0)


class ReviewCriterionResult(_CamelModel):
    name: str
    result: Verdict
    explanation: str = Field(min_length=1)


class ReviewResult(_CamelModel):
    """
    A single proposal's review. Every field is always present once the
    normalizer has produced it, whatever the model returned.
    """

    id: str
    filename: str
    word_count: int = Field(ge=0)
    overall_verdict: Verdict
    overall_feedback: str = Field(min_length=1)
    criteria: List[ReviewCriterionResult] = Field(default_factory=list)
    notable_strengths: List[str] = Field(default_factory=list)
    recommended_improvements: List[str] = Field(min_length=1)


class ReviewError(_CamelModel):
    filename: str
    message: str


class BatchReviewOutcome(_CamelModel):
    reviews: List[ReviewResult] = Field(default_factory=list)
    errors: List[ReviewError] = Field(default_factory=list)

    def to_wire(self) -> dict:
        body: dict = {"reviews": [r.to_wire() for r in self.reviews]}
        if self.errors:
            body["errors"] = [e.to_wire() for e in self.errors]
        return body
