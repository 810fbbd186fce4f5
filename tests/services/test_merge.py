"""Tests for track merge strategies."""

from __future__ import annotations

import pytest

from datasleuth.domain.exceptions import ConfigurationError
from datasleuth.domain.state import ErrorRecord
from datasleuth.domain.values import TrackResult
from datasleuth.services.merge import (
    by_track,
    get_merge_strategy,
    last,
    most_confident,
    weighted,
)


def _track(name: str, data: dict, confidence: float = 0.5, **kwargs) -> TrackResult:
    metadata = {"confidence_score": confidence, **kwargs.pop("metadata", {})}
    return TrackResult(name=name, data=data, metadata=metadata, **kwargs)


class TestByTrack:
    def test_namespaced(self) -> None:
        merged = by_track(
            {
                "a": _track("a", {"x": 1}, results=("r",)),
                "b": TrackResult(
                    name="b", completed=False, errors=(ErrorRecord(message="boom"),)
                ),
            }
        )
        assert merged["a"] == {"results": ["r"], "data": {"x": 1}, "completed": True}
        assert merged["b"]["completed"] is False
        assert merged["b"]["errors"][0]["message"] == "boom"


class TestMostConfident:
    def test_highest_confidence_wins(self) -> None:
        merged = most_confident(
            {
                "a": _track("a", {"answer": "A", "only_a": 1}, 0.9),
                "b": _track("b", {"answer": "B", "only_b": 2}, 0.5),
            }
        )
        assert merged["data"] == {"answer": "A", "only_a": 1, "only_b": 2}
        assert merged["sources"] == {"answer": "a", "only_a": "a", "only_b": "b"}

    def test_tie_goes_to_first_declared(self) -> None:
        merged = most_confident(
            {"a": _track("a", {"k": "A"}, 0.7), "b": _track("b", {"k": "B"}, 0.7)}
        )
        assert merged["sources"]["k"] == "a"

    def test_failed_tracks_ignored(self) -> None:
        merged = most_confident(
            {
                "a": _track("a", {"k": "A"}, 0.2),
                "b": _track("b", {"k": "B"}, 0.99, completed=False),
            }
        )
        assert merged["data"] == {"k": "A"}


class TestLast:
    def test_later_declared_wins(self) -> None:
        merged = last({"a": _track("a", {"k": 1, "x": 0}), "b": _track("b", {"k": 2})})
        assert merged["data"] == {"k": 2, "x": 0}
        assert merged["sources"]["k"] == "b"


class TestWeighted:
    def test_explicit_weights(self) -> None:
        merge = weighted({"a": 1.0, "b": 3.0})
        merged = merge({"a": _track("a", {"k": "A"}), "b": _track("b", {"k": "B"})})
        assert merged["data"]["k"] == "B"

    def test_metadata_weight_fallback(self) -> None:
        merge = weighted()
        merged = merge(
            {
                "a": _track("a", {"k": "A"}, metadata={"weight": 0.5}),
                "b": _track("b", {"k": "B"}),
            }
        )
        assert merged["sources"]["k"] == "b"

    def test_average_numeric(self) -> None:
        merge = weighted({"a": 1.0, "b": 3.0}, average_numeric=True)
        merged = merge(
            {
                "a": _track("a", {"score": 1.0, "label": "A"}),
                "b": _track("b", {"score": 3.0, "label": "B"}),
            }
        )
        assert merged["data"]["score"] == pytest.approx(2.5)
        assert merged["sources"]["score"] == "weighted_mean"
        assert merged["data"]["label"] == "B"

    def test_negative_weight_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            weighted({"a": -1.0})


class TestGetMergeStrategy:
    def test_resolution(self) -> None:
        assert get_merge_strategy(None) is by_track
        assert get_merge_strategy("most_confident") is most_confident
        assert get_merge_strategy("last") is last
        custom = lambda results: "custom"  # noqa: E731
        assert get_merge_strategy(custom) is custom
        assert callable(get_merge_strategy("weighted"))

    def test_unknown_name(self) -> None:
        with pytest.raises(ConfigurationError) as info:
            get_merge_strategy("majority")
        assert "by_track" in info.value.details["available"]
