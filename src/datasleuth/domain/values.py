"""Value objects for datasleuth.

All types here are frozen dataclasses, compared by value.  They are the
records combinators and research steps write into ``ResearchState.data``.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from datasleuth.domain.state import ErrorRecord

# ---------------------------------------------------------------------------
# Tracks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TrackResult:
    """Outcome of one track inside a parallel run.

    Attributes
    ----------
    name:
        Track name, unique within its parallel construct.
    results:
        Results the track's steps appended.
    data:
        The track's data scope after its last step.
    errors:
        Errors recorded while the track ran.
    completed:
        ``False`` when a step failed and the track stopped early.
    metadata:
        Track metadata; ``confidence_score`` and ``weight`` feed the merge
        strategies.
    """

    name: str
    results: tuple[Any, ...] = ()
    data: Mapping[str, Any] = field(default_factory=dict)
    errors: tuple[ErrorRecord, ...] = ()
    completed: bool = True
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def confidence(self) -> float:
        return float(self.metadata.get("confidence_score", 0.0))

    @property
    def weight(self) -> float:
        return float(self.metadata.get("weight", 1.0))


# ---------------------------------------------------------------------------
# Flow control
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EvaluationRecord:
    """A recorded boolean+confidence judgment about the state."""

    passed: bool
    confidence_score: float
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class IterationRecord:
    """Outcome of a ``repeat_until`` loop.

    ``completed`` is the number of times the repeated steps ran.
    """

    completed: int
    condition_met: bool
    max_reached: bool


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OrchestrationIteration:
    """One entry of the orchestration iteration log."""

    iteration: int
    tool_chosen: str
    reasoning: str = ""
    timestamp: float = field(default_factory=time.time)
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class OrchestrationSummary:
    """Terminal summary of an orchestration loop."""

    summary: str
    tools_used: tuple[str, ...]
    success_rate: float
    confidence: float
    iterations: int = 0
    error_count: int = 0
    exit_reason: str = ""


# ---------------------------------------------------------------------------
# External collaborator payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SearchResult:
    """A single hit returned by a search provider."""

    url: str
    title: str = ""
    snippet: str = ""
    domain: str = ""
    published_date: str | None = None
    provider: str = ""
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SearchResult:
        return cls(
            url=str(data["url"]),
            title=str(data.get("title", "")),
            snippet=str(data.get("snippet", "")),
            domain=str(data.get("domain", "")),
            published_date=data.get("published_date") or data.get("publishedDate"),
            provider=str(data.get("provider", "")),
            raw=dict(data),
        )


@dataclass(frozen=True)
class ExtractedContent:
    """Text pulled out of one web page."""

    url: str
    title: str
    content: str
    extracted_at: float = field(default_factory=time.time)
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def word_count(self) -> int:
        return len(self.content.split())


@dataclass(frozen=True)
class FactCheckResult:
    """Verdict on one statement."""

    statement: str
    is_valid: bool
    confidence: float
    evidence: tuple[str, ...] = ()
    sources: tuple[str, ...] = ()
    corrections: str | None = None
