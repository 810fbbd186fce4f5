"""Top-level research entry point.

``research()`` assembles a step list (the caller's or the default chain),
runs it through :func:`execute_pipeline` and validates the last result
against the output schema.  It returns the validated result or raises a
:class:`~datasleuth.domain.exceptions.ResearchError` carrying a message, the
originating step and a machine-checkable code.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from langchain_core.language_models import BaseChatModel

from datasleuth.domain.enums import ErrorCode, HaltReason
from datasleuth.domain.exceptions import (
    ConfigurationError,
    PipelineError,
    ResearchError,
    ResearchTimeoutError,
    ValidationError,
)
from datasleuth.domain.state import ResearchState, create_initial_state
from datasleuth.infrastructure.config import PipelineConfig, ResearchConfig
from datasleuth.infrastructure.providers import ContentExtractor, SearchProvider
from datasleuth.infrastructure.schema import as_validator
from datasleuth.services.pipeline import execute_pipeline
from datasleuth.services.step import Step, is_step
from datasleuth.steps import ExtractContent, FactCheck, Plan, SearchWeb, Summarize

logger = logging.getLogger(__name__)


def default_steps(
    search_provider: SearchProvider,
    *,
    content_extractor: ContentExtractor | None = None,
    options: ResearchConfig | None = None,
) -> list[Step]:
    """plan -> search_web -> extract_content -> fact_check -> summarize."""
    options = options or ResearchConfig()
    options.validate()
    return [
        Plan(),
        SearchWeb(search_provider, max_results=options.max_results),
        ExtractContent(
            content_extractor,
            max_urls=options.max_urls,
            max_content_length=options.max_content_length,
        ),
        FactCheck(threshold=options.fact_check_threshold),
        Summarize(
            max_length=options.summary_max_length,
            format=options.summary_format,
            include_citations=True,
            include_in_results=True,
        ),
    ]


def _raise_for_halt(state: ResearchState) -> None:
    reason = state.metadata.halted_by
    if reason is None:
        return
    last = state.errors[-1] if state.errors else None
    message = "; ".join(e.message for e in state.errors) or "pipeline halted"
    details = {
        "halted_by": reason.value,
        "errors": [e.to_dict() for e in state.errors],
    }
    if reason is HaltReason.TIMEOUT:
        raise ResearchTimeoutError(
            f"Research timed out: {message}",
            step=last.step if last else None,
            details=details,
        )
    raise PipelineError(
        f"Research pipeline failed: {message}",
        step=last.step if last else None,
        details={**details, "cause_code": (last.code if last else ErrorCode.UNKNOWN).value},
        suggestions=["Inspect details['errors'] for the failing step"],
    )


async def research(
    query: str,
    output_schema: Any,
    *,
    steps: Sequence[Step] | None = None,
    config: PipelineConfig | Mapping[str, Any] | None = None,
    default_llm: BaseChatModel | None = None,
    search_provider: SearchProvider | None = None,
    content_extractor: ContentExtractor | None = None,
    research_options: ResearchConfig | None = None,
) -> Any:
    """Run a research pipeline and return the validated final result.

    Parameters
    ----------
    query:
        The research question.
    output_schema:
        Pydantic model class, ``TypeAdapter``, validator object or callable
        the last result is validated with.
    steps:
        Custom step list.  Defaults to the standard research chain, which
        requires ``search_provider``.
    config:
        Pipeline configuration (``error_handling``, ``max_retries``,
        ``timeout`` in seconds, ...).
    default_llm:
        Chat model used by LLM-backed steps that were not given one.
    search_provider, content_extractor:
        Collaborators for the default chain.
    research_options:
        Tuning of the default chain.

    Raises
    ------
    ValidationError
        Invalid inputs, or a final result that fails the output schema.
    ConfigurationError
        Default chain requested without a search provider.
    PipelineError
        The pipeline halted on a failing step or produced no results.
    ResearchTimeoutError
        The pipeline deadline elapsed.
    """
    if not isinstance(query, str) or not query.strip():
        raise ValidationError("query must be a non-empty string")
    if output_schema is None:
        raise ValidationError("output_schema is required")
    validator = as_validator(output_schema)

    if steps is None:
        if search_provider is None:
            raise ConfigurationError(
                "The default research chain needs a search provider",
                suggestions=["Pass search_provider=... or supply custom steps"],
            )
        steps = default_steps(
            search_provider, content_extractor=content_extractor, options=research_options
        )
    else:
        invalid = [repr(s) for s in steps if not is_step(s)]
        if invalid:
            raise ValidationError(
                f"Invalid step(s): {', '.join(invalid)}",
                details={"invalid_steps": invalid},
                suggestions=["Steps need a non-empty 'name' and an async 'execute(state)'"],
            )
        if not steps:
            raise ValidationError("steps must not be empty")

    state = create_initial_state(query, validator, default_llm=default_llm)
    final = await execute_pipeline(state, steps, config)

    _raise_for_halt(final)
    if final.errors:
        logger.warning(
            "Research completed with %d contained error(s): %s",
            len(final.errors), "; ".join(e.message for e in final.errors),
        )
    if not final.results:
        raise PipelineError(
            "Research pipeline produced no results",
            details={"steps": [r.step_name for r in final.step_history]},
            suggestions=["Make sure the last step appends a result"],
        )

    try:
        return validator.validate(final.last_result)
    except ResearchError:
        raise
    except Exception as exc:
        raise ValidationError(f"Result failed validation: {exc}") from exc


def research_sync(query: str, output_schema: Any, **kwargs: Any) -> Any:
    """Blocking wrapper around :func:`research` for scripts."""
    return asyncio.run(research(query, output_schema, **kwargs))
