"""Shared base for language-model backed research steps."""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from langchain_core.language_models import BaseChatModel
from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel

from datasleuth.domain.exceptions import ConfigurationError, LLMError, ResearchError
from datasleuth.domain.state import ResearchState
from datasleuth.services.retry import RetryPolicy
from datasleuth.services.step import BaseStep

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class LLMStep(BaseStep):
    """A step that calls a chat model through structured output.

    Parameters
    ----------
    name:
        Step name.
    llm:
        Chat model; falls back to ``state.default_llm`` when ``None``.
    include_in_results:
        Append the step's main output to the state's results.
    retry_policy:
        Per-step retry override.
    """

    def __init__(
        self,
        name: str,
        llm: BaseChatModel | None = None,
        *,
        include_in_results: bool = False,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        super().__init__(name, retry_policy=retry_policy)
        self.llm = llm
        self.include_in_results = include_in_results

    def resolve_llm(self, state: ResearchState) -> BaseChatModel:
        model = self.llm or state.default_llm
        if model is None:
            raise ConfigurationError(
                f"No language model available for step '{self.name}'",
                step=self.name,
                suggestions=[
                    "Pass llm=... to the step",
                    "Or provide default_llm when starting the research",
                ],
            )
        return model

    async def invoke_structured(
        self,
        state: ResearchState,
        prompt: ChatPromptTemplate,
        schema: type[SchemaT],
        inputs: dict[str, Any],
    ) -> SchemaT:
        """Run ``prompt | model.with_structured_output(schema)``.

        Failures of the model call surface as retryable :class:`LLMError`.
        """
        model = self.resolve_llm(state)
        chain = prompt | model.with_structured_output(schema)
        try:
            result = await chain.ainvoke(inputs)
        except ResearchError:
            raise
        except Exception as exc:
            raise LLMError(
                f"Language model call failed: {exc}",
                step=self.name,
                details={"schema": schema.__name__},
            ) from exc
        if result is None:
            raise LLMError("Language model returned no output", step=self.name)
        if isinstance(result, dict):
            result = schema.model_validate(result)
        logger.debug("Step '%s' received %s", self.name, type(result).__name__)
        return result
