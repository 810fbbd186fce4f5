"""Tests for the datasleuth command-line interface."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from datasleuth import __version__
from datasleuth.cli import main
from datasleuth.steps import FactCheckOutput, ResearchPlan, SummaryOutput
from datasleuth.testing import MockStructuredChatModel, StaticContentExtractor

URL = "https://example.com/electrolytes"


def _run(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as info:
        main(argv)
    return info.value.code


@pytest.fixture
def fixture_file(tmp_path: Path) -> Path:
    path = tmp_path / "results.json"
    path.write_text(json.dumps([{"url": URL, "title": "Electrolytes"}]), encoding="utf-8")
    return path


@pytest.fixture
def fake_model(monkeypatch: pytest.MonkeyPatch) -> MockStructuredChatModel:
    model = MockStructuredChatModel(
        structured_responses=[
            ResearchPlan(objectives=["o"], search_queries=["electrolytes"]),
            FactCheckOutput(is_valid=True, confidence=0.9),
            SummaryOutput(summary="Sulfides conduct well.", citations=[URL]),
        ]
    )
    monkeypatch.setattr("datasleuth.infrastructure.llm.create_chat_model", lambda config: model)
    return model


@pytest.fixture
def fake_extractor(monkeypatch: pytest.MonkeyPatch) -> StaticContentExtractor:
    extractor = StaticContentExtractor(
        {URL: ("Electrolytes", "Sulfide electrolytes conduct ions well at room temperature.")}
    )
    monkeypatch.setattr(
        "datasleuth.steps.extract.HttpContentExtractor", lambda timeout=10.0: extractor
    )
    return extractor


class TestBasics:
    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["--version"]) == 0
        assert capsys.readouterr().out.strip() == f"datasleuth {__version__}"

    def test_no_command_prints_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run([]) == 0
        assert "usage: datasleuth" in capsys.readouterr().out

    def test_info(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["info"]) == 0
        out = capsys.readouterr().out
        assert f"datasleuth v{__version__}" in out
        assert "[installed] pydantic" in out
        assert "merge: by_track, last, most_confident, weighted" in out
        assert "model: anthropic, openai" in out

    def test_run_requires_fixture(self) -> None:
        assert _run(["run", "query"]) == 2


class TestRun:
    def test_successful_run(
        self,
        fixture_file: Path,
        fake_model: MockStructuredChatModel,
        fake_extractor: StaticContentExtractor,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        code = _run(["run", "How do sulfide electrolytes behave?", "--search-fixture", str(fixture_file)])
        out = capsys.readouterr().out

        assert code == 0
        assert fake_extractor.requested == [URL]
        assert len(fake_model.calls) == 3
        assert "Step history" in out
        assert "Sulfides conduct well." in out

    def test_empty_search_exits_non_zero(
        self,
        tmp_path: Path,
        fake_model: MockStructuredChatModel,
        fake_extractor: StaticContentExtractor,
    ) -> None:
        empty = tmp_path / "empty.json"
        empty.write_text("[]", encoding="utf-8")
        assert _run(["run", "q", "--search-fixture", str(empty)]) == 1
        assert fake_extractor.requested == []

    def test_config_file_and_overrides(
        self,
        tmp_path: Path,
        fixture_file: Path,
        fake_model: MockStructuredChatModel,
        fake_extractor: StaticContentExtractor,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        seen: list = []

        def recording_model(config):
            seen.append(config)
            return fake_model

        monkeypatch.setattr("datasleuth.infrastructure.llm.create_chat_model", recording_model)
        config = tmp_path / "datasleuth.yaml"
        config.write_text("model:\n  provider: openai\n  model: gpt-4.1\n", encoding="utf-8")

        code = _run(
            [
                "run", "q",
                "--search-fixture", str(fixture_file),
                "--config", str(config),
                "--model", "gpt-4.1-mini",
                "--error-handling", "continue",
            ]
        )
        assert code == 0
        assert seen[0].provider == "openai"
        assert seen[0].model == "gpt-4.1-mini"

    def test_missing_fixture_reported(
        self,
        tmp_path: Path,
        fake_model: MockStructuredChatModel,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        code = _run(["run", "q", "--search-fixture", str(tmp_path / "nope.json")])
        assert code == 1
        assert "Error: [search_error]" in capsys.readouterr().err
