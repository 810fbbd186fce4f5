"""Fact-checking step.

Statements are taken from the step options or split out of the extracted
content, then judged one by one by the model.  A statement counts as valid
only when the model calls it valid with at least ``threshold`` confidence.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from typing import Any

import numpy as np
from langchain_core.language_models import BaseChatModel
from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel, Field

from datasleuth.domain.enums import DataSlot
from datasleuth.domain.exceptions import ConfigurationError
from datasleuth.domain.state import ResearchState
from datasleuth.domain.values import FactCheckResult
from datasleuth.infrastructure.registry import registry
from datasleuth.steps.base import LLMStep

logger = logging.getLogger(__name__)

_SENTENCE_SPLIT = re.compile(r"[.!?]+")
MIN_STATEMENT_LENGTH = 20
MAX_STATEMENT_LENGTH = 200


class FactCheckOutput(BaseModel):
    """Structured output schema for a single statement verdict."""

    is_valid: bool = Field(description="Whether the statement is factually accurate")
    confidence: float = Field(ge=0, le=1, description="Confidence in the verdict [0, 1]")
    evidence: list[str] = Field(default_factory=list, description="Supporting or refuting evidence")
    sources: list[str] = Field(default_factory=list, description="Sources backing the verdict")
    corrections: str | None = Field(default=None, description="Corrected statement, if invalid")


_FACT_CHECK_PROMPT = ChatPromptTemplate.from_messages(
    [
        (
            "system",
            "You are a meticulous fact checker. Judge whether the statement is "
            "accurate given the research context and your knowledge. Be "
            "conservative: if you cannot verify a claim, lower your confidence.",
        ),
        (
            "human",
            "## Research query\n{query}\n\n"
            "## Statement\n{statement}\n\n"
            "Return your verdict{evidence_hint}.",
        ),
    ]
)


def extract_statements(contents: Sequence[Any], limit: int) -> list[str]:
    """Split content into candidate factual statements.

    Sentences shorter than ``MIN_STATEMENT_LENGTH`` or longer than
    ``MAX_STATEMENT_LENGTH`` characters are dropped, as are repeats.
    """
    statements: list[str] = []
    seen: set[str] = set()
    for item in contents:
        text = getattr(item, "content", item)
        for sentence in _SENTENCE_SPLIT.split(str(text)):
            sentence = " ".join(sentence.split())
            if not (MIN_STATEMENT_LENGTH < len(sentence) < MAX_STATEMENT_LENGTH):
                continue
            if sentence in seen:
                continue
            seen.add(sentence)
            statements.append(sentence)
            if len(statements) >= limit:
                return statements
    return statements


class FactCheck(LLMStep):
    """Stores verdicts under ``fact_checks`` and the share of valid statements
    under ``factual_accuracy_score``."""

    description = "Verify factual statements found in the extracted content"

    def __init__(
        self,
        llm: BaseChatModel | None = None,
        *,
        threshold: float = 0.7,
        statements: Sequence[str] = (),
        max_statements: int = 10,
        include_evidence: bool = True,
        include_in_results: bool = False,
        name: str = "fact_check",
    ) -> None:
        super().__init__(name, llm, include_in_results=include_in_results)
        if not (0.0 <= threshold <= 1.0):
            raise ConfigurationError(f"threshold must be in [0, 1], got {threshold}", step=name)
        if max_statements < 1:
            raise ConfigurationError(
                f"max_statements must be >= 1, got {max_statements}", step=name
            )
        self.threshold = threshold
        self.statements = tuple(statements)
        self.max_statements = max_statements
        self.include_evidence = include_evidence

    async def _check(self, state: ResearchState, statement: str) -> FactCheckResult:
        verdict = await self.invoke_structured(
            state,
            _FACT_CHECK_PROMPT,
            FactCheckOutput,
            {
                "query": state.query,
                "statement": statement,
                "evidence_hint": " with evidence and sources" if self.include_evidence else "",
            },
        )
        return FactCheckResult(
            statement=statement,
            is_valid=verdict.is_valid and verdict.confidence >= self.threshold,
            confidence=verdict.confidence,
            evidence=tuple(verdict.evidence) if self.include_evidence else (),
            sources=tuple(verdict.sources),
            corrections=verdict.corrections,
        )

    async def execute(self, state: ResearchState) -> ResearchState:
        statements = list(self.statements[: self.max_statements]) or extract_statements(
            state.get(DataSlot.EXTRACTED_CONTENT, ()), self.max_statements
        )
        if not statements:
            logger.warning("No statements to fact-check")
            return state

        # one at a time so verdict order matches statement order
        checks = tuple([await self._check(state, s) for s in statements])
        valid = sum(1 for c in checks if c.is_valid)
        accuracy = valid / len(checks)
        mean_confidence = float(np.mean([c.confidence for c in checks]))
        logger.info(
            "Fact-checked %d statement(s): %d valid, accuracy %.2f",
            len(checks), valid, accuracy,
        )

        updated = (
            state.with_data(
                {
                    DataSlot.FACT_CHECKS: checks,
                    DataSlot.FACTUAL_ACCURACY_SCORE: accuracy,
                }
            )
            .with_metadata(fact_check_mean_confidence=mean_confidence)
            .with_confidence(accuracy)
        )
        if self.include_in_results:
            updated = updated.with_result(list(checks))
        return updated


@registry.register("step", "fact_check")
def fact_check(llm: BaseChatModel | None = None, **options: Any) -> FactCheck:
    return FactCheck(llm, **options)
