"""Research planning step."""

from __future__ import annotations

import logging
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel, Field

from datasleuth.domain.enums import DataSlot
from datasleuth.domain.state import ResearchState
from datasleuth.infrastructure.registry import registry
from datasleuth.steps.base import LLMStep

logger = logging.getLogger(__name__)


class ResearchPlan(BaseModel):
    """Structured output schema for the planning step."""

    objectives: list[str] = Field(description="What the research must find out")
    search_queries: list[str] = Field(description="Web search queries to run")
    relevant_factors: list[str] = Field(
        default_factory=list, description="Factors worth paying attention to"
    )
    data_gathering_strategy: str = Field(
        default="", description="How information should be gathered"
    )
    expected_outcomes: list[str] = Field(
        default_factory=list, description="What a good answer will contain"
    )


_SYSTEM_PROMPT = (
    "You are a research planning assistant. Given a research query, produce a "
    "focused plan: clear objectives, 3-5 specific web search queries, the "
    "factors that matter, a data gathering strategy and the expected outcomes."
)

_PLAN_PROMPT = ChatPromptTemplate.from_messages(
    [
        ("system", "{system_prompt}"),
        ("human", "Research query: {query}\n\nCreate the research plan."),
    ]
)


class Plan(LLMStep):
    """Creates a :class:`ResearchPlan` and stores it under ``research_plan``."""

    description = "Create a research plan with objectives and search queries"

    def __init__(
        self,
        llm: BaseChatModel | None = None,
        *,
        custom_prompt: str | None = None,
        include_in_results: bool = False,
        name: str = "plan",
    ) -> None:
        super().__init__(name, llm, include_in_results=include_in_results)
        self.system_prompt = custom_prompt or _SYSTEM_PROMPT

    async def execute(self, state: ResearchState) -> ResearchState:
        logger.info("Planning research for %r", state.query)
        plan = await self.invoke_structured(
            state,
            _PLAN_PROMPT,
            ResearchPlan,
            {"system_prompt": self.system_prompt, "query": state.query},
        )
        logger.info(
            "Plan has %d objective(s) and %d search quer(ies)",
            len(plan.objectives), len(plan.search_queries),
        )
        updated = state.with_data({DataSlot.RESEARCH_PLAN: plan})
        if self.include_in_results:
            updated = updated.with_result(plan)
        return updated


@registry.register("step", "plan")
def plan(llm: BaseChatModel | None = None, **options: Any) -> Plan:
    return Plan(llm, **options)
