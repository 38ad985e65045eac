"""
Proposal Engine Utils - Modular utility functions.

Submodules:
- core: Logging, errors, and JSON validation
- llm: OpenRouter chat completions client
- document: Document text extraction and archive expansion
"""

from proposal_engine.utils import core
from proposal_engine.utils import llm
from proposal_engine.utils import document

__all__ = [
    "core",
    "llm",
    "document",
]
