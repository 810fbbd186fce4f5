"""Tracks: named step sequences that run against their own state scope.

A track runs its steps with the sequential executor's ``stop`` semantics
against either an empty data scope (``isolate=True``) or the parent's data.
Its outcome is a :class:`~datasleuth.domain.values.TrackResult`.  Tracks are
steps themselves, and are the unit the parallel executor schedules.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from typing import Any

from datasleuth.domain.enums import DataSlot
from datasleuth.domain.exceptions import ConfigurationError, ProcessingError
from datasleuth.domain.state import ErrorRecord, ResearchState, StateMetadata
from datasleuth.domain.values import TrackResult
from datasleuth.services.pipeline import run_steps
from datasleuth.services.retry import RetryPolicy
from datasleuth.services.step import BaseStep, Step

logger = logging.getLogger(__name__)


class Track(BaseStep):
    """A named, independently executable step sequence.

    Parameters
    ----------
    name:
        Track name; unique within a parallel construct.
    steps:
        Steps to run in order.
    isolate:
        Start from an empty data scope instead of the parent's data.
    include_in_results:
        When run as a standalone step, append the ``TrackResult`` to the
        parent's results.
    continue_on_error:
        When run as a standalone step, contain a failure inside the
        ``TrackResult`` instead of raising it.
    description:
        Free text copied to the track state's metadata.
    metadata:
        Extra metadata; ``weight`` is read by the weighted merge.
    retry_policy:
        Retry parameters for the track's own steps.
    """

    def __init__(
        self,
        name: str,
        steps: Sequence[Step],
        *,
        isolate: bool = False,
        include_in_results: bool = True,
        continue_on_error: bool = True,
        description: str = "",
        metadata: Mapping[str, Any] | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        super().__init__(name)
        if not steps:
            raise ConfigurationError(f"track '{name}' has no steps", step=name)
        self.steps: tuple[Step, ...] = tuple(steps)
        self.isolate = isolate
        self.include_in_results = include_in_results
        self.continue_on_error = continue_on_error
        self.description = description
        self.metadata: dict[str, Any] = dict(metadata or {})
        self.step_retry_policy = retry_policy

    def _scope(self, parent: ResearchState) -> ResearchState:
        return ResearchState(
            query=parent.query,
            output_schema=parent.output_schema,
            data={} if self.isolate else parent.data,
            metadata=StateMetadata(
                start_time=time.time(),
                confidence_score=parent.metadata.confidence_score,
                extra={
                    **parent.metadata.extra,
                    "current_track": self.name,
                    "track_description": self.description,
                },
            ),
            default_llm=parent.default_llm,
        )

    async def run(self, parent: ResearchState, *, raise_on_error: bool = False) -> TrackResult:
        """Run the track and return its outcome.

        With *raise_on_error* the failing step's exception is re-raised
        instead of being contained in the result.
        """
        logger.info("Track '%s' starting (%d step(s))", self.name, len(self.steps))
        started = time.time()
        final = await run_steps(
            self._scope(parent), self.steps, retry_policy=self.step_retry_policy
        )
        completed = not final.halted
        if not completed:
            logger.warning(
                "Track '%s' failed: %s",
                self.name, final.errors[-1].message if final.errors else "unknown error",
            )
            if raise_on_error:
                raise _track_failure(self.name, final)
        else:
            logger.info("Track '%s' completed in %.2fs", self.name, time.time() - started)

        return TrackResult(
            name=self.name,
            results=final.results,
            data=dict(final.data),
            errors=final.errors,
            completed=completed,
            metadata={
                **self.metadata,
                "confidence_score": final.metadata.confidence_score,
                "description": self.description,
                "steps_executed": len(final.step_history),
                "duration": time.time() - started,
            },
        )

    async def execute(self, state: ResearchState) -> ResearchState:
        result = await self.run(state, raise_on_error=not self.continue_on_error)
        return apply_track_results(state, [result], include_in_results=self.include_in_results)


def _track_failure(name: str, final: ResearchState) -> Exception:
    if final.errors and isinstance(final.errors[-1].exception, Exception):
        return final.errors[-1].exception
    return ProcessingError(f"track '{name}' failed", step=name)


def apply_track_results(
    state: ResearchState,
    results: Sequence[TrackResult],
    *,
    include_in_results: bool,
) -> ResearchState:
    """Fold track outcomes into the parent state in the given order.

    A completed track's data is written over the parent's data; a failed
    track's partial data is not.  Every result is stored under
    ``data["tracks"][name]``, track errors are appended to the parent's
    errors, and the parent's confidence is raised to the best completed
    track's confidence.
    """
    data = dict(state.data)
    tracks = dict(data.get(DataSlot.TRACKS.value, {}))
    errors: list[ErrorRecord] = []
    for result in results:
        if result.completed:
            data.update(result.data)
        errors.extend(result.errors)
        tracks[result.name] = result
    data[DataSlot.TRACKS.value] = tracks

    updated = state.replace(data=data)
    if errors:
        updated = updated.with_errors(errors)
    if include_in_results:
        updated = updated.with_results(results)
    confidences = [r.confidence for r in results if r.completed]
    if confidences:
        updated = updated.with_confidence(max(confidences))
    return updated


def create_track(name: str, steps: Sequence[Step], **options: Any) -> Track:
    return Track(name, steps, **options)
