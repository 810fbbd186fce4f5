"""Query refinement step."""

from __future__ import annotations

import logging
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel, Field

from datasleuth.domain.enums import DataSlot
from datasleuth.domain.exceptions import ConfigurationError
from datasleuth.domain.state import ResearchState
from datasleuth.infrastructure.registry import registry
from datasleuth.steps.base import LLMStep

logger = logging.getLogger(__name__)

REFINEMENT_BASES = ("findings", "gaps", "factuality", "all")


class RefinedQuery(BaseModel):
    original_query: str
    refined_query: str
    refinement_strategy: str = ""
    targeted_aspects: list[str] = Field(default_factory=list)
    reason_for_refinement: str = ""


class RefinedQueries(BaseModel):
    """Structured output schema for query refinement."""

    queries: list[RefinedQuery] = Field(description="Refined search queries")


_REFINE_PROMPT = ChatPromptTemplate.from_messages(
    [
        (
            "system",
            "You improve web search queries for an ongoing research task. "
            "Propose at most {max_queries} refined queries based on {based_on}.",
        ),
        (
            "human",
            "## Research query\n{query}\n\n"
            "## Queries already run\n{previous}\n\n"
            "## Findings so far\n{findings}\n\n"
            "## Disputed statements\n{disputed}",
        ),
    ]
)


class RefineQuery(LLMStep):
    """Stores up to ``max_queries`` :class:`RefinedQuery` objects under
    ``refined_queries``."""

    description = "Refine the search queries based on what has been found"

    def __init__(
        self,
        llm: BaseChatModel | None = None,
        *,
        based_on: str = "all",
        max_queries: int = 3,
        include_in_results: bool = False,
        name: str = "refine_query",
    ) -> None:
        super().__init__(name, llm, include_in_results=include_in_results)
        if based_on not in REFINEMENT_BASES:
            raise ConfigurationError(
                f"based_on must be one of {REFINEMENT_BASES}, got '{based_on}'", step=name
            )
        if max_queries < 1:
            raise ConfigurationError(f"max_queries must be >= 1, got {max_queries}", step=name)
        self.based_on = based_on
        self.max_queries = max_queries

    async def execute(self, state: ResearchState) -> ResearchState:
        plan = state.get(DataSlot.RESEARCH_PLAN)
        previous = list(getattr(plan, "search_queries", [])) or [state.query]
        findings = [c.title for c in state.get(DataSlot.EXTRACTED_CONTENT, ())]
        disputed = [c.statement for c in state.get(DataSlot.FACT_CHECKS, ()) if not c.is_valid]

        output = await self.invoke_structured(
            state,
            _REFINE_PROMPT,
            RefinedQueries,
            {
                "max_queries": self.max_queries,
                "based_on": "all available information" if self.based_on == "all" else self.based_on,
                "query": state.query,
                "previous": "\n".join(f"- {q}" for q in previous),
                "findings": "\n".join(f"- {f}" for f in findings) or "(none)",
                "disputed": "\n".join(f"- {d}" for d in disputed) or "(none)",
            },
        )
        refined = tuple(output.queries[: self.max_queries])
        logger.info("Produced %d refined quer(ies)", len(refined))

        updated = state.with_data({DataSlot.REFINED_QUERIES: refined})
        if self.include_in_results:
            updated = updated.with_result(list(refined))
        return updated


@registry.register("step", "refine_query")
def refine_query(llm: BaseChatModel | None = None, **options: Any) -> RefineQuery:
    return RefineQuery(llm, **options)
