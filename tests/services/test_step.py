"""Tests for the step abstraction and its builders."""

from __future__ import annotations

import pytest

from datasleuth.domain.exceptions import ProcessingError
from datasleuth.domain.state import ResearchState
from datasleuth.services.step import (
    BaseStep,
    Step,
    create_composite_step,
    create_step,
    get_rollback,
    is_step,
)
from datasleuth.testing import ScriptedStep


class TestCreateStep:
    @pytest.mark.asyncio
    async def test_sync_function_with_options(self, initial_state: ResearchState) -> None:
        step = create_step("write", lambda state, value: state.with_data(v=value), {"value": 3})
        updated = await step.execute(initial_state)
        assert updated.get("v") == 3
        assert step.name == "write"
        assert isinstance(step, Step)

    @pytest.mark.asyncio
    async def test_async_function(self, initial_state: ResearchState) -> None:
        async def add_result(state: ResearchState) -> ResearchState:
            return state.with_result("done")

        updated = await create_step("async", add_result).execute(initial_state)
        assert updated.results == ("done",)

    @pytest.mark.asyncio
    async def test_non_state_return_is_processing_error(self, initial_state: ResearchState) -> None:
        step = create_step("bad", lambda state: {"not": "a state"})
        with pytest.raises(ProcessingError, match="expected ResearchState"):
            await step.execute(initial_state)

    @pytest.mark.asyncio
    async def test_sync_rollback_is_awaitable(self, initial_state: ResearchState) -> None:
        step = create_step("s", lambda state: state, rollback=lambda state: state.with_data(undone=True))
        rollback = get_rollback(step)
        assert rollback is not None
        assert (await rollback(initial_state)).get("undone") is True

    def test_no_rollback(self) -> None:
        assert get_rollback(create_step("s", lambda state: state)) is None

    def test_empty_name_rejected(self) -> None:
        with pytest.raises(ValueError):
            create_step("", lambda state: state)


class TestIsStep:
    def test_valid(self) -> None:
        assert is_step(ScriptedStep("a"))

    def test_invalid(self) -> None:
        class NoExecute:
            name = "x"

        class EmptyName(BaseStep):
            async def execute(self, state: ResearchState) -> ResearchState:
                return state

        nameless = EmptyName("n")
        nameless.name = ""
        assert not is_step(NoExecute())
        assert not is_step(nameless)
        assert not is_step(object())


class TestCompositeStep:
    @pytest.mark.asyncio
    async def test_runs_children_in_order(self, initial_state: ResearchState) -> None:
        composite = create_composite_step(
            "both",
            [ScriptedStep("a", result="a"), ScriptedStep("b", result="b")],
        )
        updated = await composite.execute(initial_state)
        assert updated.results == ("a", "b")

    @pytest.mark.asyncio
    async def test_child_failure_propagates(self, initial_state: ResearchState) -> None:
        second = ScriptedStep("b")
        composite = create_composite_step(
            "both", [ScriptedStep("a", always_fail=ValueError("boom")), second]
        )
        with pytest.raises(ValueError):
            await composite.execute(initial_state)
        assert second.calls == 0

    @pytest.mark.asyncio
    async def test_rollback_reverse_order(self, initial_state: ResearchState) -> None:
        order: list[str] = []

        def undo(name: str):
            def _undo(state: ResearchState) -> ResearchState:
                order.append(name)
                return state

            return _undo

        composite = create_composite_step(
            "both",
            [
                ScriptedStep("a", rollback_fn=undo("a")),
                ScriptedStep("b"),
                ScriptedStep("c", rollback_fn=undo("c")),
            ],
        )
        await composite.rollback(initial_state)
        assert order == ["c", "a"]
