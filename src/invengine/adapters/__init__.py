"""
Adapters to external collaborators: AI reasoning and query sessions
"""

from .ai import AIOutcome, AIProvider, LLMReasoningAdapter, build_analysis, request_json
from .session import InMemorySessionManager, QuerySession, SessionManager, SessionOptions

__all__ = [
    "AIOutcome",
    "AIProvider",
    "InMemorySessionManager",
    "LLMReasoningAdapter",
    "QuerySession",
    "SessionManager",
    "SessionOptions",
    "build_analysis",
    "request_json",
]
