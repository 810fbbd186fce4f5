"""The step abstraction.

A step is a named asynchronous state transformer with an optional
compensating ``rollback``.  Every construct in the engine (tracks, parallel
blocks, loops, orchestration) is itself a step, so composition is closed.
"""

from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from datasleuth.domain.exceptions import ProcessingError
from datasleuth.domain.state import ResearchState

if TYPE_CHECKING:
    from datasleuth.services.retry import RetryPolicy

logger = logging.getLogger(__name__)

StepFunction = Callable[..., Awaitable[ResearchState] | ResearchState]
RollbackFunction = Callable[[ResearchState], Awaitable[ResearchState] | ResearchState]


@runtime_checkable
class Step(Protocol):
    """Structural contract every step satisfies.

    ``rollback`` and ``retry_policy`` are optional attributes and are looked
    up with ``getattr`` by the executors.
    """

    name: str

    async def execute(self, state: ResearchState) -> ResearchState: ...


def get_rollback(step: Any) -> RollbackFunction | None:
    rollback = getattr(step, "rollback", None)
    return rollback if callable(rollback) else None


def is_step(obj: Any) -> bool:
    """Return ``True`` if *obj* has a non-empty name and a callable ``execute``."""
    name = getattr(obj, "name", None)
    return isinstance(name, str) and bool(name) and callable(getattr(obj, "execute", None))


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class BaseStep(ABC):
    """Convenience base class for concrete steps.

    Parameters
    ----------
    name:
        Step name used in history records and error messages.
    retry_policy:
        Per-step override of the executor's default retry policy.
    """

    rollback: RollbackFunction | None = None
    description: str = ""

    def __init__(self, name: str, *, retry_policy: RetryPolicy | None = None) -> None:
        if not name:
            raise ValueError("step name must be a non-empty string")
        self.name = name
        self.retry_policy = retry_policy

    @abstractmethod
    async def execute(self, state: ResearchState) -> ResearchState:
        """Return the state after this step has run."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


class FunctionStep(BaseStep):
    """Step backed by a plain function ``fn(state, **options)``.

    The function may be synchronous or a coroutine function.  Its return
    value must be a :class:`ResearchState`.
    """

    def __init__(
        self,
        name: str,
        fn: StepFunction,
        options: Mapping[str, Any] | None = None,
        rollback: RollbackFunction | None = None,
        *,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        super().__init__(name, retry_policy=retry_policy)
        self._fn = fn
        self.options: dict[str, Any] = dict(options or {})
        if rollback is not None:
            self.rollback = self._wrap_rollback(rollback)

    async def execute(self, state: ResearchState) -> ResearchState:
        result = await _resolve(self._fn(state, **self.options))
        if not isinstance(result, ResearchState):
            raise ProcessingError(
                f"step '{self.name}' returned {type(result).__name__}, "
                "expected ResearchState",
                step=self.name,
            )
        return result

    @staticmethod
    def _wrap_rollback(fn: RollbackFunction) -> Callable[[ResearchState], Awaitable[ResearchState]]:
        async def rollback(state: ResearchState) -> ResearchState:
            return await _resolve(fn(state))

        return rollback


def create_step(
    name: str,
    fn: StepFunction,
    options: Mapping[str, Any] | None = None,
    rollback: RollbackFunction | None = None,
    *,
    retry_policy: RetryPolicy | None = None,
) -> FunctionStep:
    """Build a step from a function."""
    return FunctionStep(name, fn, options, rollback, retry_policy=retry_policy)


class CompositeStep(BaseStep):
    """Runs child steps in order as one step.

    Children are executed directly (no retry, no policy); any failure
    propagates.  ``rollback`` compensates children in reverse order.
    """

    def __init__(self, name: str, steps: Sequence[Step]) -> None:
        super().__init__(name)
        self.steps: tuple[Step, ...] = tuple(steps)

    async def execute(self, state: ResearchState) -> ResearchState:
        current = state
        for step in self.steps:
            logger.debug("Composite '%s' running child '%s'", self.name, step.name)
            current = await step.execute(current)
        return current

    async def rollback(self, state: ResearchState) -> ResearchState:  # type: ignore[override]
        current = state
        for step in reversed(self.steps):
            undo = get_rollback(step)
            if undo is not None:
                current = await undo(current)
        return current


def create_composite_step(name: str, steps: Sequence[Step]) -> CompositeStep:
    return CompositeStep(name, steps)
