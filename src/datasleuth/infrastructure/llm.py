"""Chat model construction.

Provider packages are imported lazily so the engine works without them;
only the provider actually requested has to be installed.

Usage::

    model = create_chat_model(ModelConfig(provider="anthropic"))
"""

from __future__ import annotations

import logging
from typing import Any

from langchain_core.language_models import BaseChatModel

from datasleuth.domain.exceptions import ConfigurationError
from datasleuth.infrastructure.config import ModelConfig
from datasleuth.infrastructure.registry import registry

logger = logging.getLogger(__name__)

DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-5",
    "openai": "gpt-4o-mini",
}


@registry.register("model", "anthropic")
def _anthropic(model: str, temperature: float, **kwargs: Any) -> BaseChatModel:
    from langchain_anthropic import ChatAnthropic

    return ChatAnthropic(model=model, temperature=temperature, **kwargs)


@registry.register("model", "openai")
def _openai(model: str, temperature: float, **kwargs: Any) -> BaseChatModel:
    from langchain_openai import ChatOpenAI

    return ChatOpenAI(model=model, temperature=temperature, **kwargs)


def create_chat_model(config: ModelConfig, **kwargs: Any) -> BaseChatModel:
    """Build the chat model described by *config*.

    Raises
    ------
    ConfigurationError
        Unknown provider, or its LangChain integration is not installed.
    """
    config.validate()
    model_name = config.model or DEFAULT_MODELS[config.provider]
    try:
        model = registry.create("model", config.provider, model_name, config.temperature, **kwargs)
    except ImportError as exc:
        raise ConfigurationError(
            f"Provider '{config.provider}' is not installed: {exc}",
            suggestions=[f"pip install 'datasleuth[{config.provider}]'"],
        ) from exc
    logger.info("Using %s model %s", config.provider, model_name)
    return model
