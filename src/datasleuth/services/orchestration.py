"""Orchestration loop: agent-driven selection among a registry of tools.

Each iteration a :class:`ToolSelector` picks one tool (a step) by name, the
tool runs under the retry wrapper, and the outcome is appended to the
iteration log.  The loop ends when the selector chooses to finish, when the
exit criteria hold, or after ``max_iterations``::

    Selecting -> Executing -> (exit criteria met? -> Done
                               | max iterations?  -> Done
                               | else             -> Selecting)

How a tool is chosen is pluggable.  ``RoundRobinSelector`` is deterministic;
``LLMToolSelector`` asks a chat model through structured output.
"""

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from langchain_core.language_models import BaseChatModel
from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel, Field

from datasleuth.domain.enums import DataSlot
from datasleuth.domain.exceptions import (
    ConfigurationError,
    LLMError,
    ProcessingError,
    ValidationError,
)
from datasleuth.domain.state import ErrorRecord, ResearchState
from datasleuth.domain.values import OrchestrationIteration, OrchestrationSummary
from datasleuth.services.retry import RetryPolicy, execute_with_retry
from datasleuth.services.step import BaseStep, Step

logger = logging.getLogger(__name__)

ExitCriteria = Callable[[ResearchState], bool | Awaitable[bool]]

FINISH = "finish"


# ===================================================================== #
#  Tool selection                                                        #
# ===================================================================== #


@dataclass(frozen=True)
class ToolSelection:
    """A selector's decision for one iteration."""

    tool: str
    reasoning: str = ""
    finish: bool = False


@runtime_checkable
class ToolSelector(Protocol):
    """Strategy that decides which tool runs next."""

    async def select(
        self,
        state: ResearchState,
        tools: Mapping[str, Step],
        history: Sequence[OrchestrationIteration],
    ) -> ToolSelection: ...


class RoundRobinSelector:
    """Cycles through the registry in order.

    Parameters
    ----------
    order:
        Tool names to cycle through.  Defaults to the registry order.
    rounds:
        Finish after this many full cycles.  ``None`` never finishes.
    """

    def __init__(self, order: Sequence[str] | None = None, *, rounds: int | None = None) -> None:
        self.order = list(order) if order is not None else None
        self.rounds = rounds

    async def select(
        self,
        state: ResearchState,
        tools: Mapping[str, Step],
        history: Sequence[OrchestrationIteration],
    ) -> ToolSelection:
        order = self.order if self.order is not None else list(tools)
        position = len(history)
        if self.rounds is not None and position >= self.rounds * len(order):
            return ToolSelection(tool=FINISH, reasoning="completed all rounds", finish=True)
        return ToolSelection(
            tool=order[position % len(order)], reasoning=f"round-robin choice #{position + 1}"
        )


class ToolChoice(BaseModel):
    """Structured output schema for the LLM tool selector."""

    tool_name: str = Field(description="Name of the tool to run next, or 'finish'")
    reasoning: str = Field(description="Why this tool is the best next action")
    finish: bool = Field(
        default=False, description="True when the research is complete and no tool should run"
    )


_DEFAULT_SYSTEM_PROMPT = (
    "You are a research orchestrator. You have a set of research tools and "
    "must decide which one to use next to best answer the research query. "
    "Pick exactly one tool per turn. When enough information has been "
    "gathered, choose 'finish'."
)

_SELECTION_HUMAN = (
    "## Research query\n{query}\n\n"
    "## Available tools\n{tools}\n\n"
    "## Current progress\n{progress}\n\n"
    "## Previous iterations\n{history}\n\n"
    "Choose the next tool to run, or 'finish'."
)


class LLMToolSelector:
    """Selector backed by a chat model with structured output.

    Parameters
    ----------
    model:
        A LangChain ``BaseChatModel`` supporting ``with_structured_output``.
    custom_prompt:
        Replaces the default system prompt.
    """

    def __init__(self, model: BaseChatModel, custom_prompt: str | None = None) -> None:
        self._model = model
        prompt = ChatPromptTemplate.from_messages(
            [
                ("system", custom_prompt or _DEFAULT_SYSTEM_PROMPT),
                ("human", _SELECTION_HUMAN),
            ]
        )
        self._chain = prompt | model.with_structured_output(ToolChoice)

    async def select(
        self,
        state: ResearchState,
        tools: Mapping[str, Step],
        history: Sequence[OrchestrationIteration],
    ) -> ToolSelection:
        try:
            choice: ToolChoice = await self._chain.ainvoke(
                {
                    "query": state.query,
                    "tools": "\n".join(
                        f"- {name}: {_describe(step)}" for name, step in tools.items()
                    ),
                    "progress": _progress_summary(state),
                    "history": "\n".join(
                        f"{it.iteration}. {it.tool_chosen}"
                        + (f" (failed: {it.error})" if it.error else "")
                        for it in history
                    ) or "(none)",
                }
            )
        except Exception as exc:
            raise LLMError(f"Tool selection failed: {exc}", step="orchestrate") from exc

        finish = choice.finish or choice.tool_name.strip().lower() == FINISH
        return ToolSelection(tool=choice.tool_name.strip(), reasoning=choice.reasoning, finish=finish)


def _describe(step: Step) -> str:
    return getattr(step, "description", "") or step.name


def _progress_summary(state: ResearchState) -> str:
    summary = {
        key: (len(value) if isinstance(value, (list, tuple, dict)) else type(value).__name__)
        for key, value in state.data.items()
        if key != DataSlot.ORCHESTRATION.value
    }
    return json.dumps(summary, sort_keys=True) if summary else "(no data gathered yet)"


# ===================================================================== #
#  Orchestrate step                                                      #
# ===================================================================== #


class Orchestrate(BaseStep):
    """Step running the orchestration loop.

    Parameters
    ----------
    tools:
        Tool registry, as a mapping or as a sequence of steps keyed by name.
    selector:
        Decision strategy.  When omitted, ``model`` is wrapped in an
        :class:`LLMToolSelector`.
    model:
        Chat model used when no selector is given.
    custom_prompt:
        System prompt override for the LLM selector.
    max_iterations:
        Upper bound on iterations.
    exit_criteria:
        Checked after every successful tool run; ``True`` ends the loop.
        Errors it raises are always fatal.
    include_in_results:
        Append the :class:`OrchestrationSummary` to results.
    continue_on_error:
        Record a failing or unknown tool in the iteration log and move on,
        instead of failing the step.
    retry_policy:
        Retry parameters for tool executions.
    """

    def __init__(
        self,
        tools: Mapping[str, Step] | Sequence[Step],
        *,
        selector: ToolSelector | None = None,
        model: BaseChatModel | None = None,
        custom_prompt: str | None = None,
        max_iterations: int = 10,
        exit_criteria: ExitCriteria | None = None,
        include_in_results: bool = True,
        continue_on_error: bool = False,
        retry_policy: RetryPolicy | None = None,
        name: str = "orchestrate",
    ) -> None:
        super().__init__(name)
        registry = dict(tools) if isinstance(tools, Mapping) else {t.name: t for t in tools}
        if not registry:
            raise ConfigurationError("orchestration requires at least one tool", step=name)
        if max_iterations < 1:
            raise ConfigurationError(
                f"max_iterations must be >= 1, got {max_iterations}", step=name
            )
        if selector is None:
            if model is None:
                raise ConfigurationError(
                    "orchestration requires a tool selector or a model",
                    step=name,
                    suggestions=["Pass selector=RoundRobinSelector() or model=<chat model>"],
                )
            selector = LLMToolSelector(model, custom_prompt)
        self.tools: dict[str, Step] = registry
        self.selector = selector
        self.max_iterations = max_iterations
        self.exit_criteria = exit_criteria
        self.include_in_results = include_in_results
        self.continue_on_error = continue_on_error
        self.tool_retry_policy = retry_policy or RetryPolicy(max_retries=2, retry_delay=1.0)

    async def _exit_criteria_met(self, state: ResearchState) -> bool:
        if self.exit_criteria is None:
            return False
        try:
            met = self.exit_criteria(state)
            if inspect.isawaitable(met):
                met = await met
        except Exception as exc:
            raise ProcessingError(
                f"Exit criteria evaluation failed: {exc}", step=self.name
            ) from exc
        return bool(met)

    def _fail(
        self, exc: Exception, iteration: int, selection: ToolSelection, log: list[OrchestrationIteration]
    ) -> ErrorRecord:
        log.append(
            OrchestrationIteration(
                iteration=iteration,
                tool_chosen=selection.tool,
                reasoning=selection.reasoning,
                error=str(exc),
            )
        )
        if not self.continue_on_error:
            raise exc
        logger.warning(
            "Orchestration iteration %d (%s) failed, skipping: %s",
            iteration, selection.tool, exc,
        )
        return ErrorRecord.from_exception(exc, step=selection.tool)

    async def execute(self, state: ResearchState) -> ResearchState:
        log: list[OrchestrationIteration] = []
        tools_used: list[str] = []
        tool_errors: list[ErrorRecord] = []
        exit_reason = "max_iterations"
        current = state

        for iteration in range(1, self.max_iterations + 1):
            selection = await self.selector.select(current, self.tools, tuple(log))
            if selection.finish:
                logger.info("Orchestrator chose to finish at iteration %d", iteration)
                exit_reason = "selector_finished"
                break

            if not selection.tool:
                malformed = ValidationError(
                    "Tool selector returned an empty tool name", step=self.name
                )
                tool_errors.append(self._fail(malformed, iteration, selection, log))
                continue

            tool = self.tools.get(selection.tool)
            if tool is None:
                unknown = ConfigurationError(
                    f"Unknown tool '{selection.tool}'",
                    step=self.name,
                    details={"available_tools": list(self.tools)},
                )
                tool_errors.append(self._fail(unknown, iteration, selection, log))
                continue

            logger.info(
                "Orchestration iteration %d/%d: running '%s'",
                iteration, self.max_iterations, selection.tool,
            )
            snapshot = current
            try:
                current = await execute_with_retry(
                    lambda: tool.execute(snapshot), self.tool_retry_policy
                )
            except Exception as exc:
                tool_errors.append(self._fail(exc, iteration, selection, log))
                continue

            log.append(
                OrchestrationIteration(
                    iteration=iteration,
                    tool_chosen=selection.tool,
                    reasoning=selection.reasoning,
                )
            )
            tools_used.append(selection.tool)

            if await self._exit_criteria_met(current):
                logger.info("Exit criteria met after iteration %d", iteration)
                exit_reason = "exit_criteria"
                break

        summary = _summarise(log, tools_used, exit_reason)
        logger.info(
            "Orchestration finished (%s): %d iteration(s), success rate %.2f",
            exit_reason, len(log), summary.success_rate,
        )

        updated = current.with_data(
            {
                DataSlot.ORCHESTRATION: {
                    "available_tools": list(self.tools),
                    "iterations": tuple(log),
                    "summary": summary,
                }
            }
        ).with_metadata(
            orchestration_success_rate=summary.success_rate,
            orchestration_iterations=len(log),
        )
        if tool_errors:
            updated = updated.with_errors(tool_errors)
        if self.include_in_results:
            updated = updated.with_result(summary)
        return updated.with_confidence(summary.confidence)


def _summarise(
    log: Sequence[OrchestrationIteration], tools_used: Sequence[str], exit_reason: str
) -> OrchestrationSummary:
    total = len(log)
    successes = sum(1 for it in log if it.succeeded)
    success_rate = successes / max(1, total)
    distinct = tuple(dict.fromkeys(tools_used))
    text = (
        f"Completed {total} iteration(s) using {len(distinct)} distinct tool(s)"
        + (f": {', '.join(distinct)}" if distinct else "")
        + f". {successes} succeeded, {total - successes} failed."
    )
    return OrchestrationSummary(
        summary=text,
        tools_used=distinct,
        success_rate=success_rate,
        confidence=0.8 * success_rate,
        iterations=total,
        error_count=total - successes,
        exit_reason=exit_reason,
    )


def orchestrate(
    tools: Mapping[str, Step] | Sequence[Step],
    *,
    selector: ToolSelector | None = None,
    model: BaseChatModel | None = None,
    **options: Any,
) -> Orchestrate:
    """Build an :class:`Orchestrate` step.  See the class for options."""
    return Orchestrate(tools, selector=selector, model=model, **options)
