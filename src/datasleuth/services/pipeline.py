"""Sequential executor.

Runs an ordered list of steps against a state under one error-handling
policy, wrapping each step in the retry wrapper and racing the whole run
against a global deadline.

The executor never raises on step failure: halting from ``stop``,
``rollback`` or timeout still returns the best-known state, and callers
inspect ``state.errors`` and ``state.metadata.halted_by``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping, Sequence
from typing import Any

from datasleuth.domain.enums import ErrorHandling, HaltReason
from datasleuth.domain.exceptions import ProcessingError, ResearchTimeoutError
from datasleuth.domain.state import ErrorRecord, ResearchState, StepExecutionRecord
from datasleuth.infrastructure.config import PipelineConfig, coerce_pipeline_config
from datasleuth.services.retry import (
    RetryOutcome,
    RetryPolicy,
    Sleep,
    execute_with_retry,
    retry_policy_scope,
)
from datasleuth.services.step import Step, get_rollback

logger = logging.getLogger(__name__)


class RunProgress:
    """Best-known state of an in-flight run.

    Updated after every step so a deadline can return what was finished
    without waiting on the step still running.
    """

    __slots__ = ("state", "current_step", "step_started")

    def __init__(self, state: ResearchState) -> None:
        self.state = state
        self.current_step: str | None = None
        self.step_started: float | None = None


async def _attempt(step: Step, state: ResearchState) -> ResearchState:
    result = await step.execute(state)
    if not isinstance(result, ResearchState):
        raise ProcessingError(
            f"step '{step.name}' returned {type(result).__name__}, expected ResearchState",
            step=step.name,
        )
    return result


async def run_steps(
    state: ResearchState,
    steps: Sequence[Step],
    *,
    error_handling: ErrorHandling = ErrorHandling.STOP,
    retry_policy: RetryPolicy | None = None,
    sleep: Sleep = asyncio.sleep,
    progress: RunProgress | None = None,
) -> ResearchState:
    """Execute *steps* in order and return the resulting state.

    Parameters
    ----------
    state:
        Input state; never mutated.
    steps:
        Steps to run.  Step N+1 starts only after step N's final attempt.
    error_handling:
        Policy applied when a step's final attempt fails.
    retry_policy:
        Default retry parameters; a step's own ``retry_policy`` attribute
        takes precedence.
    sleep:
        Backoff sleep, injectable for tests.
    progress:
        Holder updated after every step.
    """
    current = state
    progress = progress or RunProgress(state)

    for step in steps:
        policy = getattr(step, "retry_policy", None) or retry_policy
        outcome = RetryOutcome()
        started = time.time()
        progress.current_step = step.name
        progress.step_started = started
        logger.info("Executing step '%s'", step.name)

        snapshot = current
        try:
            result = await execute_with_retry(
                lambda: _attempt(step, snapshot), policy, sleep=sleep, outcome=outcome
            )
        except Exception as exc:
            error = ErrorRecord.from_exception(exc, step=step.name)
            current = current.with_step_record(
                StepExecutionRecord(
                    step_name=step.name,
                    start_time=started,
                    end_time=time.time(),
                    success=False,
                    attempts=outcome.attempts,
                    error=error,
                )
            ).with_error(error)

            if error_handling is ErrorHandling.CONTINUE:
                logger.warning(
                    "Step '%s' failed after %d attempt(s), continuing: %s",
                    step.name, outcome.attempts, exc,
                )
                progress.state = current
                continue

            if error_handling is ErrorHandling.ROLLBACK:
                current = await _roll_back(step, current)
            else:
                logger.error(
                    "Step '%s' failed after %d attempt(s), stopping: %s",
                    step.name, outcome.attempts, exc,
                )
                current = current.halted_with(HaltReason.STEP_FAILED)
            progress.state = current
            break

        current = result.with_step_record(
            StepExecutionRecord(
                step_name=step.name,
                start_time=started,
                end_time=time.time(),
                success=True,
                attempts=outcome.attempts,
            )
        )
        progress.state = current

    progress.current_step = None
    progress.step_started = None
    return current


async def _roll_back(step: Step, state: ResearchState) -> ResearchState:
    rollback = get_rollback(step)
    if rollback is None:
        logger.error("Step '%s' failed and defines no rollback, stopping", step.name)
        return state.halted_with(HaltReason.STEP_FAILED)

    logger.warning("Rolling back step '%s'", step.name)
    try:
        rolled = await rollback(state)
    except Exception as exc:
        logger.exception("Rollback of step '%s' failed", step.name)
        failure = ProcessingError(
            f"Rollback failed: {exc}",
            step=step.name,
            details={"exception_type": type(exc).__name__},
        )
        return state.with_error(failure).halted_with(HaltReason.ROLLED_BACK)
    return rolled.halted_with(HaltReason.ROLLED_BACK)


def _timed_out(progress: RunProgress, timeout: float) -> ResearchState:
    current = progress.state
    step = progress.current_step
    error = ErrorRecord.from_exception(
        ResearchTimeoutError(
            f"Pipeline timed out after {timeout:g}s",
            step=step,
            details={"timeout": timeout},
            suggestions=[
                "Increase the pipeline timeout",
                "Reduce the number of steps or their work per step",
            ],
        )
    )
    if step is not None:
        current = current.with_step_record(
            StepExecutionRecord(
                step_name=step,
                start_time=progress.step_started or time.time(),
                end_time=time.time(),
                success=False,
                error=error,
            )
        )
    return current.with_error(error).halted_with(HaltReason.TIMEOUT)


def _discard_result(task: asyncio.Future[Any]) -> None:
    if not task.cancelled():
        task.exception()


async def execute_pipeline(
    initial_state: ResearchState,
    steps: Sequence[Step],
    config: PipelineConfig | Mapping[str, Any] | None = None,
    *,
    sleep: Sleep = asyncio.sleep,
) -> ResearchState:
    """Run *steps* sequentially under *config* and finalise the state.

    The run races against ``config.timeout``.  If the deadline wins, the
    in-flight step is cancelled and the state as of the last finished step
    is returned with exactly one timeout error appended.  ``end_time`` is
    set in every case.
    """
    cfg = coerce_pipeline_config(config)
    progress = RunProgress(initial_state)
    logger.info(
        "Starting pipeline for query %r: %d step(s), policy=%s, timeout=%s",
        initial_state.query, len(steps), cfg.error_handling.value, cfg.timeout,
    )

    policy = cfg.retry_policy()
    with retry_policy_scope(policy):
        task = asyncio.ensure_future(
            run_steps(
                initial_state,
                steps,
                error_handling=cfg.error_handling,
                retry_policy=policy,
                sleep=sleep,
                progress=progress,
            )
        )
    try:
        done, _ = await asyncio.wait({task}, timeout=cfg.timeout)
    except asyncio.CancelledError:
        task.cancel()
        raise

    if task in done:
        final = task.result()
    else:
        logger.error("Pipeline timed out after %gs", cfg.timeout)
        task.add_done_callback(_discard_result)
        task.cancel()
        final = _timed_out(progress, cfg.timeout or 0.0)

    final = final.finished()
    logger.info(
        "Pipeline finished: %d step(s) recorded, %d error(s), halted_by=%s",
        len(final.step_history), len(final.errors),
        final.metadata.halted_by.value if final.metadata.halted_by else None,
    )
    return final
