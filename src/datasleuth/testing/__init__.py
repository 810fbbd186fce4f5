"""Public testing utilities for datasleuth.

Provides a mock chat model, in-memory search and extraction collaborators
and scripted steps for writing self-contained examples and tests without
API keys or network access.
"""

from datasleuth.testing.fakes import ScriptedStep, StaticContentExtractor, StaticSearchProvider
from datasleuth.testing.mock_llm import MockStructuredChatModel

__all__ = [
    "MockStructuredChatModel",
    "ScriptedStep",
    "StaticContentExtractor",
    "StaticSearchProvider",
]
