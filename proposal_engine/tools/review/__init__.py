"""
Review module - Batch proposal review tools.
"""

from proposal_engine.tools.review.proposal_review import (
    ProposalReview,
    Upload,
    proposal_review_main,
)
from proposal_engine.tools.review.review_models import BatchReviewOutcome, ReviewResult

__all__ = [
    "ProposalReview",
    "Upload",
    "proposal_review_main",
    "BatchReviewOutcome",
    "ReviewResult",
]
