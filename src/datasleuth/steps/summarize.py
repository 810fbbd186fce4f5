"""Summarisation step."""

from __future__ import annotations

import logging
from collections.abc import Sequence
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

SUMMARY_FORMATS = ("paragraph", "bullet", "structured")

_FORMAT_INSTRUCTIONS = {
    "paragraph": "Write flowing prose paragraphs.",
    "bullet": "Write the summary as concise bullet points.",
    "structured": "Use short titled sections (overview, key findings, caveats).",
}

# characters of each page passed to the model
_CONTENT_EXCERPT = 1500


class SummaryOutput(BaseModel):
    """Structured output schema for the summary."""

    summary: str = Field(description="The synthesized research summary")
    key_points: list[str] = Field(default_factory=list, description="Most important findings")
    citations: list[str] = Field(default_factory=list, description="URLs of the sources used")


_SUMMARY_PROMPT = ChatPromptTemplate.from_messages(
    [
        (
            "system",
            "You are a research synthesis assistant. Combine the gathered "
            "material into an accurate summary that answers the research "
            "query. Do not invent facts that are not supported by the sources. "
            "{format_instructions} Keep it under {max_length} characters."
            "{citation_instructions}{focus_instructions}{additional_instructions}",
        ),
        (
            "human",
            "## Research query\n{query}\n\n"
            "## Research objectives\n{objectives}\n\n"
            "## Verified facts\n{facts}\n\n"
            "## Sources\n{sources}",
        ),
    ]
)


class Summarize(LLMStep):
    """Writes the summary text under ``summary`` and appends
    ``{"summary", "key_points", "citations"}`` to the results."""

    description = "Synthesize the gathered information into a summary"

    def __init__(
        self,
        llm: BaseChatModel | None = None,
        *,
        max_length: int = 2000,
        format: str = "paragraph",
        focus: Sequence[str] = (),
        include_citations: bool = True,
        additional_instructions: str | None = None,
        include_in_results: bool = True,
        name: str = "summarize",
    ) -> None:
        super().__init__(name, llm, include_in_results=include_in_results)
        if format not in SUMMARY_FORMATS:
            raise ConfigurationError(
                f"format must be one of {SUMMARY_FORMATS}, got '{format}'", step=name
            )
        if max_length < 1:
            raise ConfigurationError(f"max_length must be >= 1, got {max_length}", step=name)
        self.max_length = max_length
        self.format = format
        self.focus = tuple(focus)
        self.include_citations = include_citations
        self.additional_instructions = additional_instructions

    def _inputs(self, state: ResearchState) -> dict[str, Any]:
        contents = state.get(DataSlot.EXTRACTED_CONTENT, ())
        plan = state.get(DataSlot.RESEARCH_PLAN)
        facts = [c for c in state.get(DataSlot.FACT_CHECKS, ()) if c.is_valid]
        return {
            "query": state.query,
            "objectives": "\n".join(f"- {o}" for o in getattr(plan, "objectives", [])) or "(none)",
            "facts": "\n".join(f"- {f.statement}" for f in facts) or "(none)",
            "sources": "\n\n".join(
                f"### {c.title}\nURL: {c.url}\n{c.content[:_CONTENT_EXCERPT]}" for c in contents
            ),
            "format_instructions": _FORMAT_INSTRUCTIONS[self.format],
            "max_length": self.max_length,
            "citation_instructions": (
                " Cite the URLs of the sources you rely on." if self.include_citations else ""
            ),
            "focus_instructions": (
                f" Focus on: {', '.join(self.focus)}." if self.focus else ""
            ),
            "additional_instructions": (
                f" {self.additional_instructions}" if self.additional_instructions else ""
            ),
        }

    async def execute(self, state: ResearchState) -> ResearchState:
        if not state.get(DataSlot.EXTRACTED_CONTENT):
            logger.warning("No extracted content to summarize")
            return state

        output = await self.invoke_structured(state, _SUMMARY_PROMPT, SummaryOutput, self._inputs(state))
        summary = output.summary[: self.max_length]
        citations = list(output.citations) if self.include_citations else []
        logger.info("Summary written (%d characters, %d citation(s))", len(summary), len(citations))

        updated = state.with_data({DataSlot.SUMMARY: summary})
        if self.include_in_results:
            updated = updated.with_result(
                {"summary": summary, "key_points": list(output.key_points), "citations": citations}
            )
        return updated


@registry.register("step", "summarize")
def summarize(llm: BaseChatModel | None = None, **options: Any) -> Summarize:
    return Summarize(llm, **options)
