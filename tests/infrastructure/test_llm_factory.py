"""Tests for chat model construction."""

from __future__ import annotations

import pytest

from datasleuth.domain.exceptions import ConfigurationError
from datasleuth.infrastructure.config import ModelConfig
from datasleuth.infrastructure.llm import DEFAULT_MODELS, create_chat_model
from datasleuth.infrastructure.registry import registry
from datasleuth.testing import MockStructuredChatModel


class TestCreateChatModel:
    def test_default_model_name(self) -> None:
        captured: dict = {}

        def fake(model: str, temperature: float, **kwargs):
            captured.update(model=model, temperature=temperature, **kwargs)
            return MockStructuredChatModel()

        with registry.override("model", "anthropic", fake):
            model = create_chat_model(ModelConfig(temperature=0.1), max_tokens=256)

        assert isinstance(model, MockStructuredChatModel)
        assert captured == {
            "model": DEFAULT_MODELS["anthropic"],
            "temperature": 0.1,
            "max_tokens": 256,
        }

    def test_explicit_model_name(self) -> None:
        names: list[str] = []

        def fake(model: str, temperature: float):
            names.append(model)
            return MockStructuredChatModel()

        with registry.override("model", "openai", fake):
            create_chat_model(ModelConfig(provider="openai", model="gpt-4.1"))
        assert names == ["gpt-4.1"]

    def test_missing_integration(self) -> None:
        def not_installed(model: str, temperature: float):
            raise ImportError("No module named 'langchain_openai'")

        with registry.override("model", "openai", not_installed):
            with pytest.raises(ConfigurationError) as info:
                create_chat_model(ModelConfig(provider="openai"))
        assert "datasleuth[openai]" in info.value.suggestions[0]

    def test_unknown_provider(self) -> None:
        with pytest.raises(ValueError):
            create_chat_model(ModelConfig(provider="mystery"))
