"""
Proposal Review Engine - rubric-based review of proposal documents.

Subpackages:
- tools: Review tools exposed over the API
- utils: Logging, errors, document extraction and LLM client
"""

__version__ = "0.1.0"
