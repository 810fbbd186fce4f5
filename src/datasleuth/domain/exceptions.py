"""Domain exceptions for datasleuth.

All research errors inherit from ``ResearchError`` so callers can catch the
full family with a single ``except`` clause.  Each subclass pins an
:class:`~datasleuth.domain.enums.ErrorCode` and a default ``retry`` flag; the
retry wrapper consults that flag to decide whether an attempt is repeated.
"""

from __future__ import annotations

from typing import Any

from datasleuth.domain.enums import ErrorCode


class ResearchError(Exception):
    """Base exception for all datasleuth errors.

    Parameters
    ----------
    message:
        Human-readable description.
    step:
        Name of the step the error originated in, when known.
    details:
        Free-form structured context.
    retry:
        ``True`` when the failure is transient and safe to re-attempt.
    suggestions:
        Hints shown to the user alongside the message.
    """

    default_code: ErrorCode = ErrorCode.UNKNOWN
    default_retry: bool = False

    def __init__(
        self,
        message: str = "",
        *,
        step: str | None = None,
        details: dict[str, Any] | None = None,
        retry: bool | None = None,
        suggestions: list[str] | None = None,
        code: ErrorCode | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.step = step
        self.details: dict[str, Any] = details or {}
        self.retry = self.default_retry if retry is None else retry
        self.suggestions: list[str] = suggestions or []
        self.code = code or self.default_code

    def formatted_message(self) -> str:
        """Render the error with step, code and suggestions for display."""
        text = f"[{self.code.value}] {self.message}"
        if self.step:
            text = f"[Step: {self.step}] {text}"
        if self.suggestions:
            lines = "\n".join(f"- {s}" for s in self.suggestions)
            text = f"{text}\n\nSuggestions:\n{lines}"
        return text

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.message!r}, code={self.code.value}, "
            f"step={self.step!r}, retry={self.retry})"
        )


class ConfigurationError(ResearchError):
    """Raised when a construct is built with missing or invalid inputs.

    Examples: an empty track list, a non-positive timeout, an orchestration
    loop without tools or a decision-maker.
    """

    default_code = ErrorCode.CONFIGURATION


class ValidationError(ResearchError):
    """Raised on schema mismatch or a malformed decision-maker selection."""

    default_code = ErrorCode.VALIDATION


class NetworkError(ResearchError):
    """Transient network failure.  Retryable by default."""

    default_code = ErrorCode.NETWORK
    default_retry = True


class ApiError(ResearchError):
    """An external API answered with an error status."""

    default_code = ErrorCode.API

    def __init__(
        self,
        message: str = "",
        *,
        status_code: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code
        if status_code is not None:
            self.details.setdefault("status_code", status_code)


class LLMError(ResearchError):
    """The language model call failed.  Retryable by default."""

    default_code = ErrorCode.LLM
    default_retry = True


class SearchError(ResearchError):
    """The search provider failed.  Retryable by default."""

    default_code = ErrorCode.SEARCH
    default_retry = True


class ExtractionError(ResearchError):
    """Content could not be fetched or parsed."""

    default_code = ErrorCode.EXTRACTION


class PipelineError(ResearchError):
    """The top-level pipeline halted or produced no usable result."""

    default_code = ErrorCode.PIPELINE


class ProcessingError(ResearchError):
    """A step's own logic failed."""

    default_code = ErrorCode.PROCESSING


class ResearchTimeoutError(ResearchError):
    """A deadline elapsed before the protected operation finished."""

    default_code = ErrorCode.TIMEOUT


class MaxIterationsError(ResearchError):
    """A bounded loop exhausted ``max_iterations`` without success."""

    default_code = ErrorCode.MAX_ITERATIONS

    def __init__(
        self,
        message: str = "Maximum iterations reached",
        *,
        iterations: int = 0,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.iterations = iterations
        self.details.setdefault("iterations", iterations)


# ---------------------------------------------------------------------------
# Type guards
# ---------------------------------------------------------------------------


def is_research_error(exc: object) -> bool:
    return isinstance(exc, ResearchError)


def is_network_error(exc: object) -> bool:
    return isinstance(exc, NetworkError)


def is_api_error(exc: object) -> bool:
    return isinstance(exc, ApiError)


def is_llm_error(exc: object) -> bool:
    return isinstance(exc, LLMError)


def is_search_error(exc: object) -> bool:
    return isinstance(exc, SearchError)


def is_retryable(exc: object) -> bool:
    """Default retry predicate: only errors explicitly flagged ``retry``."""
    return isinstance(exc, ResearchError) and exc.retry


def error_code_of(exc: BaseException) -> ErrorCode:
    """Classify an arbitrary exception.

    Research errors carry their own code; anything else raised by a step is
    treated as a processing failure.
    """
    if isinstance(exc, ResearchError):
        return exc.code
    return ErrorCode.PROCESSING
