"""Shared fixtures for the datasleuth test suite."""

from __future__ import annotations

import pytest

from datasleuth.domain.state import ResearchState, create_initial_state
from datasleuth.domain.values import SearchResult
from datasleuth.infrastructure.config import PipelineConfig
from datasleuth.testing import StaticContentExtractor, StaticSearchProvider

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class RecordingSleep:
    """Async sleep stand-in that records requested delays and returns at once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


PAGE_TEXT = (
    "Solid-state batteries replace the liquid electrolyte with a solid one. "
    "Short line. "
    "They promise higher energy density and better safety than lithium-ion cells."
)


# ---------------------------------------------------------------------------
# State fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def initial_state() -> ResearchState:
    """Fresh state for a generic query."""
    return create_initial_state("What is the state of solid-state batteries?")


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def fast_config() -> PipelineConfig:
    """No retries and a short deadline."""
    return PipelineConfig(max_retries=0, retry_delay=0.0, timeout=5.0)


# ---------------------------------------------------------------------------
# Collaborator fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def search_hits() -> list[SearchResult]:
    return [
        SearchResult(url="https://example.com/a", title="Battery basics", snippet="..."),
        SearchResult(url="https://example.com/b", title="Solid electrolytes", snippet="..."),
        SearchResult(url="https://example.com/a", title="Duplicate", snippet="..."),
    ]


@pytest.fixture
def search_provider(search_hits: list[SearchResult]) -> StaticSearchProvider:
    return StaticSearchProvider(search_hits)


@pytest.fixture
def content_extractor() -> StaticContentExtractor:
    return StaticContentExtractor(
        {
            "https://example.com/a": ("Battery basics", PAGE_TEXT),
            "https://example.com/b": ("Solid electrolytes", "Sulfide electrolytes conduct ions well at room temperature."),
        }
    )
