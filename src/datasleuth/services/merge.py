"""Merge strategies for parallel track outcomes.

A merge function receives ``{track_name: TrackResult}`` in track
declaration order plus the state the parallel step started from, and
returns one merged value (or an awaitable resolving to it).  Every strategy here
depends only on that order and the results' contents, never on the order in
which tracks finished, so merging is deterministic under scheduling jitter.

Key-level strategies (``most_confident``, ``weighted``, ``last``) return::

    {"data": {key: winning_value, ...}, "sources": {key: track_name, ...}}

Only completed tracks take part in key-level merging.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

import numpy as np

from datasleuth.domain.exceptions import ConfigurationError
from datasleuth.domain.state import ResearchState
from datasleuth.domain.values import TrackResult
from datasleuth.infrastructure.registry import UnknownComponentError, registry

# may also return an awaitable, which the parallel step awaits
MergeFunction = Callable[[Mapping[str, TrackResult], ResearchState], Any]


def _pick(
    track_results: Mapping[str, TrackResult],
    score: Callable[[TrackResult], float],
    *,
    later_wins_ties: bool,
) -> dict[str, Any]:
    data: dict[str, Any] = {}
    sources: dict[str, str] = {}
    best: dict[str, float] = {}
    for name, result in track_results.items():
        if not result.completed:
            continue
        value = score(result)
        for key, item in result.data.items():
            if key not in best:
                better = True
            elif later_wins_ties:
                better = value >= best[key]
            else:
                better = value > best[key]
            if better:
                data[key] = item
                sources[key] = name
                best[key] = value
    return {"data": data, "sources": sources}


@registry.register("merge", "by_track")
def by_track(
    track_results: Mapping[str, TrackResult], state: ResearchState | None = None
) -> dict[str, Any]:
    """Namespace each track's outcome under its name; no cross-track merging."""
    merged: dict[str, Any] = {}
    for name, result in track_results.items():
        if result.completed:
            merged[name] = {
                "results": list(result.results),
                "data": dict(result.data),
                "completed": True,
            }
        else:
            merged[name] = {
                "errors": [e.to_dict() for e in result.errors],
                "completed": False,
            }
    return merged


@registry.register("merge", "most_confident")
def most_confident(
    track_results: Mapping[str, TrackResult], state: ResearchState | None = None
) -> dict[str, Any]:
    """For each overlapping key keep the value of the most confident track.

    Confidence is read from the track's ``confidence_score`` metadata.  Ties
    go to the track declared first.
    """
    return _pick(track_results, lambda r: r.confidence, later_wins_ties=False)


@registry.register("merge", "last")
def last(
    track_results: Mapping[str, TrackResult], state: ResearchState | None = None
) -> dict[str, Any]:
    """The later-declared track wins every overlapping key."""
    return _pick(track_results, lambda r: 0.0, later_wins_ties=True)


def weighted(
    weights: Mapping[str, float] | None = None,
    *,
    average_numeric: bool = False,
) -> MergeFunction:
    """Build a merge function where the highest-weight track wins each key.

    Parameters
    ----------
    weights:
        Weight per track name.  Tracks not listed fall back to their own
        ``weight`` metadata (default ``1.0``).  Ties go to the track
        declared first.
    average_numeric:
        If ``True``, overlapping keys whose values are all numbers are
        combined into a weighted mean instead of picking a winner.
    """
    weights = dict(weights or {})
    for name, w in weights.items():
        if w < 0:
            raise ConfigurationError(f"weight for track '{name}' must be >= 0, got {w}")

    def weight_of(result: TrackResult) -> float:
        return float(weights.get(result.name, result.weight))

    def merge(
        track_results: Mapping[str, TrackResult], state: ResearchState | None = None
    ) -> dict[str, Any]:
        merged = _pick(track_results, weight_of, later_wins_ties=False)
        if not average_numeric:
            return merged

        completed = [r for r in track_results.values() if r.completed]
        for key in merged["data"]:
            values = [r.data[key] for r in completed if key in r.data]
            if len(values) < 2 or not all(_is_number(v) for v in values):
                continue
            w = np.array([weight_of(r) for r in completed if key in r.data], dtype=float)
            if w.sum() <= 0:
                continue
            merged["data"][key] = float(np.average(np.array(values, dtype=float), weights=w))
            merged["sources"][key] = "weighted_mean"
        return merged

    return merge


registry.add("merge", "weighted", weighted())


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def get_merge_strategy(strategy: str | MergeFunction | None) -> MergeFunction:
    """Resolve a merge strategy by registered name, or pass a callable through."""
    if strategy is None:
        return by_track
    if callable(strategy):
        return strategy
    try:
        return registry.get("merge", strategy)
    except UnknownComponentError as exc:
        raise ConfigurationError(
            f"Unknown merge strategy '{strategy}'",
            details={"available": exc.available},
        ) from exc
