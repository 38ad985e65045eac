"""
Proposal Engine Tools.

Submodules:
- review: Batch proposal review against a rubric
"""

from proposal_engine.tools import review

__all__ = [
    "review",
]
