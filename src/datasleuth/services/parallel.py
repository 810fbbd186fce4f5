"""Parallel executor: run several tracks concurrently and merge the outcomes.

All tracks are scheduled as tasks before any is awaited, and a single
shared deadline governs them collectively.  Outcomes are always assembled
in track declaration order, so the merged value does not depend on which
track finished first.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from datasleuth.domain.enums import DataSlot
from datasleuth.domain.exceptions import (
    ConfigurationError,
    ProcessingError,
    ResearchTimeoutError,
)
from datasleuth.domain.state import ResearchState
from datasleuth.domain.values import TrackResult
from datasleuth.services.merge import MergeFunction, get_merge_strategy
from datasleuth.services.step import BaseStep
from datasleuth.services.track import Track, apply_track_results

logger = logging.getLogger(__name__)


class Parallel(BaseStep):
    """Step that runs tracks concurrently.

    Parameters
    ----------
    tracks:
        Tracks to run.  Names must be unique.
    continue_on_error:
        Contain a failing track inside its ``TrackResult``.  When ``False``
        the first track failure cancels the others and fails this step.
    timeout:
        Shared deadline in seconds for all tracks.  On expiry this step
        fails with a timeout error and no partial track state is kept.
    merge_function:
        Merge strategy name (``by_track``, ``most_confident``, ``weighted``,
        ``last``) or a callable taking ``(track_results, state)``, sync or
        async.  Defaults to ``by_track``.
    include_in_results:
        Append the merged value to the state's results.
    """

    def __init__(
        self,
        tracks: Sequence[Track],
        *,
        name: str = "parallel",
        continue_on_error: bool = True,
        timeout: float | None = 300.0,
        merge_function: str | MergeFunction | None = None,
        include_in_results: bool = True,
    ) -> None:
        super().__init__(name)
        if not tracks:
            raise ConfigurationError("parallel step requires at least one track", step=name)
        names = [t.name for t in tracks]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConfigurationError(
                f"duplicate track names: {duplicates}", step=name,
                details={"duplicates": duplicates},
            )
        if timeout is not None and timeout <= 0:
            raise ConfigurationError(f"timeout must be > 0, got {timeout}", step=name)
        self.tracks: tuple[Track, ...] = tuple(tracks)
        self.continue_on_error = continue_on_error
        self.timeout = timeout
        self.merge_function = get_merge_strategy(merge_function)
        self.include_in_results = include_in_results

    async def _run_tracks(self, state: ResearchState) -> dict[str, TrackResult]:
        tasks = [
            asyncio.create_task(
                track.run(state, raise_on_error=not self.continue_on_error),
                name=f"{self.name}:{track.name}",
            )
            for track in self.tracks
        ]
        return_when = (
            asyncio.ALL_COMPLETED if self.continue_on_error else asyncio.FIRST_EXCEPTION
        )
        try:
            done, pending = await asyncio.wait(tasks, timeout=self.timeout, return_when=return_when)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise

        failed = [t for t in tasks if t in done and not t.cancelled() and t.exception()]
        if failed or pending:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.wait(pending)
        if failed:
            exc = failed[0].exception()
            logger.error("Parallel step '%s' aborted by a track failure: %s", self.name, exc)
            raise exc  # type: ignore[misc]
        if pending:
            unfinished = [t.name for t, task in zip(self.tracks, tasks) if task in pending]
            logger.error(
                "Parallel step '%s' timed out after %gs; unfinished tracks: %s",
                self.name, self.timeout, unfinished,
            )
            raise ResearchTimeoutError(
                f"Parallel execution timed out after {self.timeout:g}s",
                step=self.name,
                details={"unfinished_tracks": unfinished, "timeout": self.timeout},
            )

        return {track.name: task.result() for track, task in zip(self.tracks, tasks)}

    async def execute(self, state: ResearchState) -> ResearchState:
        logger.info("Parallel step '%s' starting %d track(s)", self.name, len(self.tracks))
        results = await self._run_tracks(state)

        updated = apply_track_results(state, list(results.values()), include_in_results=False)
        completed = sum(1 for r in results.values() if r.completed)
        updated = updated.with_metadata(
            parallel_tracks=len(results), parallel_completed=completed
        )

        try:
            merged: Any = self.merge_function(results, state)
            if inspect.isawaitable(merged):
                merged = await merged
        except Exception as exc:
            logger.warning("Merge function of '%s' failed: %s", self.name, exc)
            return updated.with_error(
                ProcessingError(
                    f"Error merging parallel track results: {exc}",
                    step=self.name,
                    details={"stage": "merge"},
                )
            )

        updated = updated.with_data({DataSlot.PARALLEL_MERGED: merged})
        if self.include_in_results:
            updated = updated.with_result(merged)
        logger.info(
            "Parallel step '%s' finished: %d/%d track(s) completed",
            self.name, completed, len(results),
        )
        return updated


def parallel(
    tracks: Sequence[Track],
    *,
    name: str = "parallel",
    continue_on_error: bool = True,
    timeout: float | None = 300.0,
    merge_function: str | MergeFunction | None = None,
    include_in_results: bool = True,
) -> Parallel:
    """Build a :class:`Parallel` step."""
    return Parallel(
        tracks,
        name=name,
        continue_on_error=continue_on_error,
        timeout=timeout,
        merge_function=merge_function,
        include_in_results=include_in_results,
    )


def track_results(state: ResearchState) -> Mapping[str, TrackResult]:
    """Convenience accessor for ``data["tracks"]``."""
    return state.get(DataSlot.TRACKS, {})
