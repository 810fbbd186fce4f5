"""Tests for the parallel executor."""

from __future__ import annotations

import pytest

from datasleuth.domain.enums import DataSlot, ErrorCode, HaltReason
from datasleuth.domain.exceptions import ConfigurationError, NetworkError, ResearchTimeoutError
from datasleuth.domain.state import ResearchState
from datasleuth.infrastructure.config import PipelineConfig
from datasleuth.services.parallel import Parallel, parallel, track_results
from datasleuth.services.pipeline import execute_pipeline
from datasleuth.services.track import Track
from datasleuth.testing import ScriptedStep


def _track(name: str, *, delay: float = 0.0, **step_kwargs) -> Track:
    return Track(name, [ScriptedStep(f"{name}_step", delay=delay, **step_kwargs)])


# ===================================================================== #
#  Construction                                                          #
# ===================================================================== #


class TestConstruction:
    def test_requires_tracks(self) -> None:
        with pytest.raises(ConfigurationError):
            parallel([])

    def test_duplicate_names(self) -> None:
        with pytest.raises(ConfigurationError) as info:
            parallel([_track("a"), _track("a")])
        assert info.value.details["duplicates"] == ["a"]

    @pytest.mark.parametrize("timeout", [0, -1.0])
    def test_non_positive_timeout(self, timeout: float) -> None:
        with pytest.raises(ConfigurationError):
            parallel([_track("a")], timeout=timeout)

    def test_unknown_merge_strategy(self) -> None:
        with pytest.raises(ConfigurationError):
            parallel([_track("a")], merge_function="nope")


# ===================================================================== #
#  Execution                                                             #
# ===================================================================== #


class TestExecution:
    @pytest.mark.asyncio
    async def test_results_in_declaration_order(self, initial_state: ResearchState) -> None:
        step = parallel(
            [
                _track("slow", delay=0.05, writes={"slow": 1}, result="s"),
                _track("fast", writes={"fast": 2}, result="f"),
            ]
        )
        updated = await step.execute(initial_state)

        assert list(track_results(updated)) == ["slow", "fast"]
        merged = updated.get(DataSlot.PARALLEL_MERGED)
        assert list(merged) == ["slow", "fast"]
        assert merged["slow"]["results"] == ["s"]
        assert updated.last_result == merged
        assert updated.get("slow") == 1 and updated.get("fast") == 2
        assert updated.metadata.extra["parallel_completed"] == 2

    @pytest.mark.asyncio
    async def test_tracks_run_concurrently(self, initial_state: ResearchState) -> None:
        import time

        started = time.monotonic()
        await parallel([_track(f"t{i}", delay=0.1) for i in range(5)]).execute(initial_state)
        assert time.monotonic() - started < 0.4

    @pytest.mark.asyncio
    async def test_failed_track_contained(self, initial_state: ResearchState) -> None:
        step = parallel([_track("ok", result=1), _track("bad", always_fail=ValueError("nope"))])
        updated = await step.execute(initial_state)

        tracks = track_results(updated)
        assert tracks["ok"].completed
        assert not tracks["bad"].completed
        assert updated.get(DataSlot.PARALLEL_MERGED)["bad"]["completed"] is False
        assert [e.message for e in tracks["bad"].errors] == ["nope"]
        assert [(e.step, e.message) for e in updated.errors] == [("bad_step", "nope")]
        assert not updated.halted

    @pytest.mark.asyncio
    async def test_failed_track_data_not_merged(self, initial_state: ResearchState) -> None:
        failing = Track(
            "bad",
            [ScriptedStep("partial", writes={"draft": 1}), ScriptedStep("boom", always_fail=ValueError("x"))],
        )
        updated = await parallel([_track("ok", writes={"final": 2}), failing]).execute(initial_state)

        assert updated.get("final") == 2
        assert not updated.has("draft")
        assert track_results(updated)["bad"].data["draft"] == 1

    @pytest.mark.asyncio
    async def test_fail_fast_cancels_siblings(self, initial_state: ResearchState) -> None:
        stuck = ScriptedStep("stuck", delay=float("inf"))
        step = parallel(
            [Track("stuck", [stuck]), _track("bad", always_fail=ValueError("nope"))],
            continue_on_error=False,
        )
        with pytest.raises(ValueError, match="nope"):
            await step.execute(initial_state)
        assert stuck.calls == 1

    @pytest.mark.asyncio
    async def test_timeout_discards_partial_state(self, initial_state: ResearchState) -> None:
        step = parallel([_track("done", writes={"x": 1}), _track("stuck", delay=float("inf"))], timeout=0.05)
        with pytest.raises(ResearchTimeoutError) as info:
            await step.execute(initial_state)
        assert info.value.details["unfinished_tracks"] == ["stuck"]

    @pytest.mark.asyncio
    async def test_merge_failure_is_non_fatal(self, initial_state: ResearchState) -> None:
        def broken(results, state):
            raise KeyError("missing")

        updated = await parallel([_track("a", writes={"x": 1})], merge_function=broken).execute(initial_state)
        assert updated.get("x") == 1
        assert not updated.has(DataSlot.PARALLEL_MERGED)
        assert updated.errors[0].code is ErrorCode.PROCESSING
        assert "merging" in updated.errors[0].message

    @pytest.mark.asyncio
    async def test_async_merge_function_awaited(self, initial_state: ResearchState) -> None:
        async def count_completed(results, state):
            return {"n": sum(r.completed for r in results.values())}

        updated = await parallel(
            [_track("a"), _track("b", always_fail=ValueError("x"))], merge_function=count_completed
        ).execute(initial_state)
        assert updated.get(DataSlot.PARALLEL_MERGED) == {"n": 1}
        assert updated.last_result == {"n": 1}

    @pytest.mark.asyncio
    async def test_merge_receives_starting_state(self, initial_state: ResearchState) -> None:
        seen: list[ResearchState] = []

        def remember(results, state):
            seen.append(state)
            return state.query

        parent = initial_state.with_data(seed=1)
        updated = await parallel([_track("a", writes={"x": 1})], merge_function=remember).execute(parent)
        assert seen[0] is parent
        assert updated.get(DataSlot.PARALLEL_MERGED) == parent.query

    @pytest.mark.asyncio
    async def test_async_merge_failure_is_non_fatal(self, initial_state: ResearchState) -> None:
        async def broken(results, state):
            raise RuntimeError("late")

        updated = await parallel([_track("a")], merge_function=broken).execute(initial_state)
        assert not updated.has(DataSlot.PARALLEL_MERGED)
        assert "late" in updated.errors[0].message

    @pytest.mark.asyncio
    async def test_not_in_results(self, initial_state: ResearchState) -> None:
        updated = await parallel([_track("a")], include_in_results=False).execute(initial_state)
        assert updated.results == ()
        assert updated.has(DataSlot.PARALLEL_MERGED)

    @pytest.mark.asyncio
    async def test_parent_confidence_raised(self, initial_state: ResearchState) -> None:
        updated = await parallel(
            [_track("a", confidence=0.4), _track("b", confidence=0.75)]
        ).execute(initial_state)
        assert updated.metadata.confidence_score == 0.75


# ===================================================================== #
#  Merge determinism                                                     #
# ===================================================================== #


class TestDeterministicMerge:
    @pytest.mark.asyncio
    async def test_most_confident_ignores_finish_order(self, initial_state: ResearchState) -> None:
        step = parallel(
            [
                _track("a", delay=0.05, writes={"answer": "A"}, confidence=0.9),
                _track("b", writes={"answer": "B"}, confidence=0.5),
            ],
            merge_function="most_confident",
        )
        updated = await step.execute(initial_state)
        merged = updated.get(DataSlot.PARALLEL_MERGED)
        assert merged["data"]["answer"] == "A"
        assert merged["sources"]["answer"] == "a"

    @pytest.mark.asyncio
    async def test_tie_independent_of_finish_order(self, initial_state: ResearchState) -> None:
        step = parallel(
            [
                _track("first", delay=0.05, writes={"k": "first"}, confidence=0.6),
                _track("second", writes={"k": "second"}, confidence=0.6),
            ],
            merge_function="most_confident",
        )
        merged = (await step.execute(initial_state)).get(DataSlot.PARALLEL_MERGED)
        assert merged["data"]["k"] == "first"


# ===================================================================== #
#  Inside a pipeline                                                     #
# ===================================================================== #


class TestInPipeline:
    @pytest.mark.asyncio
    async def test_tracks_inherit_pipeline_retry_policy(self, initial_state: ResearchState) -> None:
        flaky = ScriptedStep("flaky", failures=[NetworkError("blip")], writes={"x": 1})
        config = PipelineConfig(max_retries=1, retry_delay=0.0, timeout=5.0)
        final = await execute_pipeline(initial_state, [Parallel([Track("t", [flaky])])], config)

        assert flaky.calls == 2
        assert track_results(final)["t"].completed
        assert final.get("x") == 1

    @pytest.mark.asyncio
    async def test_fail_fast_halts_pipeline(self, initial_state: ResearchState) -> None:
        step = parallel([_track("bad", always_fail=ValueError("nope"))], continue_on_error=False)
        after = ScriptedStep("after")
        final = await execute_pipeline(
            initial_state, [step, after], PipelineConfig(max_retries=0, timeout=5.0)
        )
        assert after.calls == 0
        assert final.metadata.halted_by is HaltReason.STEP_FAILED
        assert final.errors[0].step == "parallel"
