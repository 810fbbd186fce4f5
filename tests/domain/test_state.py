"""Tests for ResearchState and its transition helpers."""

from __future__ import annotations

import dataclasses

import pytest

from datasleuth.domain.enums import DataSlot, ErrorCode, HaltReason
from datasleuth.domain.exceptions import NetworkError
from datasleuth.domain.state import (
    ErrorRecord,
    ResearchState,
    StepExecutionRecord,
    create_initial_state,
    slot_name,
)


class TestCreateInitialState:
    def test_defaults(self) -> None:
        state = create_initial_state("q")
        assert state.query == "q"
        assert state.results == ()
        assert state.errors == ()
        assert dict(state.data) == {}
        assert state.metadata.step_history == ()
        assert state.metadata.confidence_score == 0.0
        assert state.metadata.end_time is None
        assert state.metadata.start_time > 0
        assert not state.halted

    def test_initial_data_accepts_slots(self) -> None:
        state = create_initial_state("q", data={DataSlot.SUMMARY: "s", "custom": 1})
        assert state.get("summary") == "s"
        assert state.get(DataSlot.SUMMARY) == "s"
        assert state.has("custom")


class TestImmutability:
    def test_frozen(self, initial_state: ResearchState) -> None:
        with pytest.raises(dataclasses.FrozenInstanceError):
            initial_state.query = "other"  # type: ignore[misc]

    def test_data_is_read_only(self, initial_state: ResearchState) -> None:
        state = initial_state.with_data(x=1)
        with pytest.raises(TypeError):
            state.data["x"] = 2  # type: ignore[index]

    def test_with_data_returns_new_state(self, initial_state: ResearchState) -> None:
        updated = initial_state.with_data({DataSlot.SUMMARY: "text"}, extra=True)
        assert updated is not initial_state
        assert not initial_state.has(DataSlot.SUMMARY)
        assert updated.get(DataSlot.SUMMARY) == "text"
        assert updated.get("extra") is True

    def test_without_data(self, initial_state: ResearchState) -> None:
        state = initial_state.with_data(a=1, b=2).without_data("a", DataSlot.SUMMARY)
        assert dict(state.data) == {"b": 2}


class TestAppendOnly:
    def test_results_accumulate(self, initial_state: ResearchState) -> None:
        state = initial_state.with_result(1).with_results([2, 3])
        assert state.results == (1, 2, 3)
        assert state.last_result == 3
        assert initial_state.last_result is None

    def test_error_from_exception(self, initial_state: ResearchState) -> None:
        state = initial_state.with_error(NetworkError("down"), step="search")
        record = state.errors[0]
        assert record.code is ErrorCode.NETWORK
        assert record.step == "search"
        assert record.retryable is True
        assert isinstance(record.exception, NetworkError)

    def test_error_from_plain_exception(self, initial_state: ResearchState) -> None:
        record = initial_state.with_error(KeyError("k")).errors[0]
        assert record.code is ErrorCode.PROCESSING
        assert record.details["exception_type"] == "KeyError"

    def test_step_records(self, initial_state: ResearchState) -> None:
        record = StepExecutionRecord("a", start_time=1.0, end_time=1.5, success=True)
        state = initial_state.with_step_record(record)
        assert state.step_history == (record,)
        assert record.duration == pytest.approx(0.5)


class TestMetadata:
    def test_confidence_only_rises(self, initial_state: ResearchState) -> None:
        state = initial_state.with_confidence(0.6)
        assert state.metadata.confidence_score == 0.6
        assert state.with_confidence(0.2) is state

    def test_with_metadata_merges_extra(self, initial_state: ResearchState) -> None:
        state = initial_state.with_metadata(a=1).with_metadata(b=2)
        assert dict(state.metadata.extra) == {"a": 1, "b": 2}

    def test_halted_and_finished(self, initial_state: ResearchState) -> None:
        state = initial_state.halted_with(HaltReason.TIMEOUT).finished(end_time=42.0)
        assert state.halted
        assert state.metadata.halted_by is HaltReason.TIMEOUT
        assert state.metadata.end_time == 42.0


class TestErrorRecord:
    def test_to_dict(self) -> None:
        record = ErrorRecord(message="boom", code=ErrorCode.SEARCH, step="search_web")
        d = record.to_dict()
        assert d["code"] == "search_error"
        assert d["step"] == "search_web"
        assert "exception" not in d

    def test_exception_ignored_in_equality(self) -> None:
        a = ErrorRecord(message="m", timestamp=1.0, exception=ValueError("x"))
        b = ErrorRecord(message="m", timestamp=1.0, exception=None)
        assert a == b


def test_slot_name_normalises() -> None:
    assert slot_name(DataSlot.TRACKS) == "tracks"
    assert slot_name("tracks") == "tracks"
