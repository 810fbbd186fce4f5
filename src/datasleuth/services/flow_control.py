"""Flow-control combinators: ``evaluate`` and ``repeat_until``.

``evaluate`` records a boolean+confidence judgment about the state under
``data["evaluations"][criteria_name]``.  ``repeat_until`` is a bounded loop
that re-runs a list of steps until the condition step's most recent
evaluation passes or the iteration cap is hit.
"""

from __future__ import annotations

import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from datasleuth.domain.enums import DataSlot, LoopStatus
from datasleuth.domain.exceptions import ConfigurationError, MaxIterationsError, ValidationError
from datasleuth.domain.state import ResearchState
from datasleuth.domain.values import EvaluationRecord, IterationRecord
from datasleuth.services.retry import RetryPolicy, execute_with_retry
from datasleuth.services.step import BaseStep, Step

logger = logging.getLogger(__name__)

Criteria = Callable[[ResearchState], bool | float | Awaitable[bool | float]]

PASSED_CONFIDENCE = 0.8
FAILED_CONFIDENCE = 0.3


# ---------------------------------------------------------------------------
# evaluate
# ---------------------------------------------------------------------------


class Evaluate(BaseStep):
    """Step that judges the current state with a caller-supplied predicate.

    The predicate may return a ``bool`` (confidence 0.8 when it passes, 0.3
    otherwise) or a score in ``[0, 1]`` (used as the confidence; it passes
    when it reaches ``confidence_threshold``).  Exceptions raised by the
    predicate propagate as a step failure.
    """

    def __init__(
        self,
        criteria_fn: Criteria,
        *,
        criteria_name: str = "custom_evaluation",
        confidence_threshold: float = 0.7,
        store_result: bool = True,
        name: str | None = None,
    ) -> None:
        super().__init__(name or f"evaluate_{criteria_name}")
        if not (0.0 <= confidence_threshold <= 1.0):
            raise ConfigurationError(
                f"confidence_threshold must be in [0, 1], got {confidence_threshold}",
                step=self.name,
            )
        self.criteria_fn = criteria_fn
        self.criteria_name = criteria_name
        self.confidence_threshold = confidence_threshold
        self.store_result = store_result

    async def judge(self, state: ResearchState) -> EvaluationRecord:
        outcome: Any = self.criteria_fn(state)
        if inspect.isawaitable(outcome):
            outcome = await outcome

        if isinstance(outcome, bool):
            passed = outcome
            confidence = PASSED_CONFIDENCE if passed else FAILED_CONFIDENCE
        elif isinstance(outcome, (int, float)):
            confidence = min(1.0, max(0.0, float(outcome)))
            passed = confidence >= self.confidence_threshold
        else:
            raise ValidationError(
                f"criteria '{self.criteria_name}' returned {type(outcome).__name__}, "
                "expected bool or float",
                step=self.name,
            )
        return EvaluationRecord(passed=passed, confidence_score=confidence, timestamp=time.time())

    async def execute(self, state: ResearchState) -> ResearchState:
        record = await self.judge(state)
        logger.info(
            "Evaluation '%s': passed=%s confidence=%.2f",
            self.criteria_name, record.passed, record.confidence_score,
        )
        updated = state.with_confidence(record.confidence_score)
        if not self.store_result:
            return updated

        evaluations = {
            k: v for k, v in state.get(DataSlot.EVALUATIONS, {}).items()
            if k != self.criteria_name
        }
        # re-inserted so the newest judgment is always last
        evaluations[self.criteria_name] = record
        return updated.with_data({DataSlot.EVALUATIONS: evaluations})


def evaluate(
    criteria_fn: Criteria,
    *,
    criteria_name: str = "custom_evaluation",
    confidence_threshold: float = 0.7,
    store_result: bool = True,
    name: str | None = None,
) -> Evaluate:
    return Evaluate(
        criteria_fn,
        criteria_name=criteria_name,
        confidence_threshold=confidence_threshold,
        store_result=store_result,
        name=name,
    )


def latest_evaluation(state: ResearchState) -> EvaluationRecord | None:
    """Most recently written entry of ``data["evaluations"]``."""
    evaluations = state.get(DataSlot.EVALUATIONS, {})
    if not evaluations:
        return None
    return list(evaluations.values())[-1]


# ---------------------------------------------------------------------------
# repeat_until
# ---------------------------------------------------------------------------


class RepeatUntil(BaseStep):
    """Bounded loop over ``steps_to_repeat`` driven by a condition step.

    Each iteration runs ``condition_step``; if its newest evaluation passed
    the loop is done.  Otherwise the repeated steps run in order (each under
    the retry wrapper) and the loop continues.  Both run at most
    ``max_iterations`` times; the condition is not re-checked after the
    final repetition.  Errors from either side propagate immediately.

    The outcome is stored as an :class:`IterationRecord` under
    ``data["iterations"][condition_step.name]``.
    """

    def __init__(
        self,
        condition_step: Step,
        steps_to_repeat: Sequence[Step],
        *,
        max_iterations: int = 5,
        throw_on_max_iterations: bool = False,
        name: str | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        super().__init__(name or f"repeat_until_{condition_step.name}")
        if max_iterations < 1:
            raise ConfigurationError(
                f"max_iterations must be >= 1, got {max_iterations}", step=self.name
            )
        if not steps_to_repeat:
            raise ConfigurationError("repeat_until requires steps to repeat", step=self.name)
        self.condition_step = condition_step
        self.steps_to_repeat: tuple[Step, ...] = tuple(steps_to_repeat)
        self.max_iterations = max_iterations
        self.throw_on_max_iterations = throw_on_max_iterations
        self.step_retry_policy = retry_policy

    async def _condition_met(self, state: ResearchState) -> tuple[ResearchState, bool]:
        before = latest_evaluation(state)
        state = await self.condition_step.execute(state)
        after = latest_evaluation(state)
        return state, after is not None and after is not before and after.passed

    async def _repeat(self, state: ResearchState) -> ResearchState:
        current = state
        for step in self.steps_to_repeat:
            policy = getattr(step, "retry_policy", None) or self.step_retry_policy
            snapshot = current
            current = await execute_with_retry(lambda: step.execute(snapshot), policy)
        return current

    async def execute(self, state: ResearchState) -> ResearchState:
        # loop state is local: the same step may run in several tracks at once
        current = state
        iterations = 0
        status = LoopStatus.EVALUATING

        while status is LoopStatus.EVALUATING:
            if iterations >= self.max_iterations:
                status = LoopStatus.MAXED_OUT
                break
            current, met = await self._condition_met(current)
            if met:
                status = LoopStatus.DONE
                break
            status = LoopStatus.REPEATING
            iterations += 1
            logger.info(
                "Loop '%s' iteration %d/%d", self.name, iterations, self.max_iterations
            )
            current = await self._repeat(current)
            status = LoopStatus.EVALUATING

        maxed = status is LoopStatus.MAXED_OUT
        if maxed:
            logger.warning(
                "Loop '%s' reached max iterations (%d) without meeting its condition",
                self.name, self.max_iterations,
            )
            if self.throw_on_max_iterations:
                raise MaxIterationsError(
                    f"Maximum iterations ({self.max_iterations}) reached without "
                    "meeting condition",
                    step=self.name,
                    iterations=iterations,
                    suggestions=["Increase max_iterations", "Relax the loop condition"],
                )

        record = IterationRecord(completed=iterations, condition_met=not maxed, max_reached=maxed)
        loops = dict(current.get(DataSlot.ITERATIONS, {}))
        loops[self.condition_step.name] = record
        return current.with_data({DataSlot.ITERATIONS: loops})


def repeat_until(
    condition_step: Step,
    steps_to_repeat: Sequence[Step],
    *,
    max_iterations: int = 5,
    throw_on_max_iterations: bool = False,
    name: str | None = None,
    retry_policy: RetryPolicy | None = None,
) -> RepeatUntil:
    return RepeatUntil(
        condition_step,
        steps_to_repeat,
        max_iterations=max_iterations,
        throw_on_max_iterations=throw_on_max_iterations,
        name=name,
        retry_policy=retry_policy,
    )
