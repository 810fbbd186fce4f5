"""Focused analysis step."""

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

ANALYSIS_DEPTHS = ("basic", "detailed", "comprehensive")


class AnalysisResult(BaseModel):
    """Structured output schema for an analysis."""

    focus: str
    insights: list[str] = Field(description="Key insights about the focus area")
    confidence: float = Field(ge=0, le=1, description="Confidence in the analysis [0, 1]")
    supporting_evidence: list[str] = Field(default_factory=list)
    limitations: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


_ANALYZE_PROMPT = ChatPromptTemplate.from_messages(
    [
        (
            "system",
            "You are an expert analyst. Produce a {depth} analysis focused on "
            "{focus}. Base every insight on the provided material.{extras}",
        ),
        (
            "human",
            "## Research query\n{query}\n\n"
            "## Summary so far\n{summary}\n\n"
            "## Sources\n{sources}",
        ),
    ]
)


class Analyze(LLMStep):
    """Stores an :class:`AnalysisResult` under ``analysis[focus]``."""

    description = "Analyze the gathered information with a specific focus"

    def __init__(
        self,
        focus: str,
        llm: BaseChatModel | None = None,
        *,
        depth: str = "detailed",
        include_evidence: bool = True,
        include_recommendations: bool = True,
        include_in_results: bool = True,
        name: str | None = None,
    ) -> None:
        super().__init__(name or f"analyze_{focus}", llm, include_in_results=include_in_results)
        if not focus:
            raise ConfigurationError("analyze requires a focus", step=self.name)
        if depth not in ANALYSIS_DEPTHS:
            raise ConfigurationError(
                f"depth must be one of {ANALYSIS_DEPTHS}, got '{depth}'", step=self.name
            )
        self.focus = focus
        self.depth = depth
        self.include_evidence = include_evidence
        self.include_recommendations = include_recommendations

    async def execute(self, state: ResearchState) -> ResearchState:
        contents = state.get(DataSlot.EXTRACTED_CONTENT, ())
        extras = ""
        if self.include_evidence:
            extras += " Cite supporting evidence."
        if self.include_recommendations:
            extras += " Finish with actionable recommendations."

        result = await self.invoke_structured(
            state,
            _ANALYZE_PROMPT,
            AnalysisResult,
            {
                "depth": self.depth,
                "focus": self.focus,
                "extras": extras,
                "query": state.query,
                "summary": state.get(DataSlot.SUMMARY, "(none)"),
                "sources": "\n\n".join(f"### {c.title}\n{c.content[:1000]}" for c in contents)
                or "(none)",
            },
        )
        logger.info(
            "Analysis '%s' produced %d insight(s) at confidence %.2f",
            self.focus, len(result.insights), result.confidence,
        )

        analyses = dict(state.get(DataSlot.ANALYSIS, {}))
        analyses[self.focus] = result
        updated = state.with_data({DataSlot.ANALYSIS: analyses})
        if self.include_in_results:
            updated = updated.with_result(result)
        return updated


@registry.register("step", "analyze")
def analyze(focus: str, llm: BaseChatModel | None = None, **options: Any) -> Analyze:
    return Analyze(focus, llm, **options)
