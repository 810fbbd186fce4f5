"""The research state threaded through every step.

``ResearchState`` is a frozen dataclass.  Steps never mutate it; every
transition goes through one of the ``with_*`` helpers and yields a new value.
``results``, ``errors`` and ``metadata.step_history`` are tuples that can
only be extended, so the append-only contract holds by construction.
"""

from __future__ import annotations

import dataclasses
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from datasleuth.domain.enums import DataSlot, ErrorCode, HaltReason
from datasleuth.domain.exceptions import ResearchError, error_code_of

SlotKey = str | DataSlot


def slot_name(key: SlotKey) -> str:
    """Normalise a slot key so ``DataSlot`` members and plain strings agree."""
    if isinstance(key, DataSlot):
        return key.value
    return key


def _frozen_mapping(data: Mapping[Any, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType({slot_name(k): v for k, v in (data or {}).items()})


# ---------------------------------------------------------------------------
# ErrorRecord
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ErrorRecord:
    """One entry of the append-only error log.

    Attributes
    ----------
    message:
        Human-readable failure description.
    code:
        Classification of the failure.
    step:
        Name of the step that failed, if known.
    timestamp:
        Wall-clock time at which the failure was recorded.
    retryable:
        Whether the underlying error was flagged as transient.
    details:
        Structured context copied from the originating exception.
    exception:
        The originating exception, kept for re-raising.  Excluded from
        equality and ``repr``.
    """

    message: str
    code: ErrorCode = ErrorCode.UNKNOWN
    step: str | None = None
    timestamp: float = field(default_factory=time.time)
    retryable: bool = False
    details: Mapping[str, Any] = field(default_factory=dict)
    exception: BaseException | None = field(default=None, compare=False, repr=False)

    @classmethod
    def from_exception(cls, exc: BaseException, *, step: str | None = None) -> ErrorRecord:
        if isinstance(exc, ResearchError):
            return cls(
                message=exc.message or str(exc),
                code=exc.code,
                step=exc.step or step,
                retryable=exc.retry,
                details=dict(exc.details),
                exception=exc,
            )
        return cls(
            message=str(exc) or type(exc).__name__,
            code=error_code_of(exc),
            step=step,
            details={"exception_type": type(exc).__name__},
            exception=exc,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code.value,
            "step": self.step,
            "timestamp": self.timestamp,
            "retryable": self.retryable,
            "details": dict(self.details),
        }


# ---------------------------------------------------------------------------
# StepExecutionRecord
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StepExecutionRecord:
    """Final outcome of one step inside a sequential run.

    ``attempts`` counts how many times the retry wrapper invoked the step;
    a single record is written per step regardless of retries.
    """

    step_name: str
    start_time: float
    end_time: float
    success: bool
    attempts: int = 1
    error: ErrorRecord | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


# ---------------------------------------------------------------------------
# StateMetadata
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StateMetadata:
    """Execution telemetry and coordination flags.

    Attributes
    ----------
    start_time:
        Set once when the state is created.
    end_time:
        Set when the top-level run finishes, for whatever reason.
    step_history:
        One :class:`StepExecutionRecord` per executed step.
    confidence_score:
        Running confidence in the research outcome; only ever raised.
    halted_by:
        Why the sequential run stopped early, or ``None``.
    extra:
        Free-form flags (e.g. ``current_track``).
    """

    start_time: float = field(default_factory=time.time)
    end_time: float | None = None
    step_history: tuple[StepExecutionRecord, ...] = ()
    confidence_score: float = 0.0
    halted_by: HaltReason | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "step_history", tuple(self.step_history))
        object.__setattr__(self, "extra", MappingProxyType(dict(self.extra)))


# ---------------------------------------------------------------------------
# ResearchState
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResearchState:
    """Functionally-updated aggregate passed between steps.

    Attributes
    ----------
    query:
        The original research request.
    output_schema:
        Opaque validator applied to the final result at the pipeline
        boundary.  The engine never inspects it.
    data:
        Read-only scratch space keyed by slot name.  See
        :class:`~datasleuth.domain.enums.DataSlot` for the well-known names.
    results:
        Caller-visible partial outputs; the last one is the candidate result.
    errors:
        Append-only failure log.
    metadata:
        Execution telemetry.
    default_llm:
        Chat model LLM-backed steps fall back to when none is given.
    """

    query: str
    output_schema: Any = None
    data: Mapping[str, Any] = field(default_factory=dict)
    results: tuple[Any, ...] = ()
    errors: tuple[ErrorRecord, ...] = ()
    metadata: StateMetadata = field(default_factory=StateMetadata)
    default_llm: Any = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", _frozen_mapping(self.data))
        object.__setattr__(self, "results", tuple(self.results))
        object.__setattr__(self, "errors", tuple(self.errors))

    # -- reads ---------------------------------------------------------------

    def get(self, key: SlotKey, default: Any = None) -> Any:
        return self.data.get(slot_name(key), default)

    def has(self, key: SlotKey) -> bool:
        return slot_name(key) in self.data

    @property
    def last_result(self) -> Any:
        return self.results[-1] if self.results else None

    @property
    def step_history(self) -> tuple[StepExecutionRecord, ...]:
        return self.metadata.step_history

    @property
    def halted(self) -> bool:
        return self.metadata.halted_by is not None

    # -- transitions ---------------------------------------------------------

    def replace(self, **changes: Any) -> ResearchState:
        return dataclasses.replace(self, **changes)

    def with_data(
        self, slots: Mapping[SlotKey, Any] | None = None, **kwargs: Any
    ) -> ResearchState:
        """Return a new state with the given slots written."""
        merged = dict(self.data)
        for key, value in (slots or {}).items():
            merged[slot_name(key)] = value
        merged.update(kwargs)
        return self.replace(data=merged)

    def without_data(self, *keys: SlotKey) -> ResearchState:
        names = {slot_name(k) for k in keys}
        return self.replace(data={k: v for k, v in self.data.items() if k not in names})

    def with_result(self, value: Any) -> ResearchState:
        return self.replace(results=(*self.results, value))

    def with_results(self, values: Iterable[Any]) -> ResearchState:
        return self.replace(results=(*self.results, *values))

    def with_error(
        self, error: ErrorRecord | BaseException, *, step: str | None = None
    ) -> ResearchState:
        if not isinstance(error, ErrorRecord):
            error = ErrorRecord.from_exception(error, step=step)
        return self.replace(errors=(*self.errors, error))

    def with_errors(self, errors: Iterable[ErrorRecord]) -> ResearchState:
        return self.replace(errors=(*self.errors, *errors))

    def with_step_record(self, record: StepExecutionRecord) -> ResearchState:
        meta = dataclasses.replace(
            self.metadata, step_history=(*self.metadata.step_history, record)
        )
        return self.replace(metadata=meta)

    def with_metadata(self, **extra: Any) -> ResearchState:
        meta = dataclasses.replace(self.metadata, extra={**self.metadata.extra, **extra})
        return self.replace(metadata=meta)

    def with_confidence(self, score: float) -> ResearchState:
        """Raise ``confidence_score`` to *score* if it is higher."""
        current = self.metadata.confidence_score
        if score <= current:
            return self
        return self.replace(metadata=dataclasses.replace(self.metadata, confidence_score=score))

    def halted_with(self, reason: HaltReason) -> ResearchState:
        return self.replace(metadata=dataclasses.replace(self.metadata, halted_by=reason))

    def finished(self, end_time: float | None = None) -> ResearchState:
        meta = dataclasses.replace(
            self.metadata, end_time=time.time() if end_time is None else end_time
        )
        return self.replace(metadata=meta)


def create_initial_state(
    query: str,
    output_schema: Any = None,
    *,
    default_llm: Any = None,
    data: Mapping[SlotKey, Any] | None = None,
) -> ResearchState:
    """Build the state a top-level pipeline run starts from."""
    return ResearchState(
        query=query,
        output_schema=output_schema,
        data=data or {},
        metadata=StateMetadata(start_time=time.time()),
        default_llm=default_llm,
    )
