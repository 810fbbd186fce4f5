"""Command-line interface for datasleuth.

Subcommands import their heavier dependencies lazily so that
``datasleuth info`` works even when provider packages are missing.

Entry point
-----------
The ``main()`` function is registered as a console script in
``pyproject.toml``::

    [project.scripts]
    datasleuth = "datasleuth.cli:main"

Usage examples::

    datasleuth run "What is the state of solid-state batteries?" \\
        --search-fixture results.json --provider anthropic
    datasleuth run "..." --search-fixture results.json --config research.yaml --format json
    datasleuth info
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any

import yaml
from pydantic import BaseModel, Field

from datasleuth.domain.exceptions import ResearchError


class ResearchSummary(BaseModel):
    """Output schema of the default research chain."""

    summary: str
    key_points: list[str] = Field(default_factory=list)
    citations: list[str] = Field(default_factory=list)


def _build_parser() -> argparse.ArgumentParser:
    """Build the top-level argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="datasleuth",
        description="datasleuth -- composable research pipelines.",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        default=False,
        help="Show version and exit.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level. (default: WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available subcommands")

    # -- run ---------------------------------------------------------------
    run_parser = subparsers.add_parser(
        "run",
        help="Run the default research chain for a query.",
        description=(
            "Run plan -> search -> extract -> fact-check -> summarize for a query "
            "and print the validated summary."
        ),
    )
    run_parser.add_argument("query", type=str, help="The research question.")
    run_parser.add_argument(
        "--search-fixture",
        type=str,
        required=True,
        help="JSON file of search results served to the search step.",
    )
    run_parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="JSON or YAML config file with pipeline/model/research sections.",
    )
    run_parser.add_argument(
        "--provider",
        type=str,
        default=None,
        choices=["anthropic", "openai"],
        help="Chat model provider. Overrides the config file.",
    )
    run_parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="Model name. Overrides the config file.",
    )
    run_parser.add_argument(
        "--error-handling",
        type=str,
        default=None,
        choices=["stop", "continue", "rollback"],
        help="Pipeline error-handling policy. Overrides the config file.",
    )
    run_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Pipeline timeout in seconds. Overrides the config file.",
    )
    run_parser.add_argument(
        "--format",
        type=str,
        default="table",
        choices=["table", "json"],
        help="Output format. (default: table)",
    )
    run_parser.set_defaults(handler=_cmd_run)

    # -- info --------------------------------------------------------------
    info_parser = subparsers.add_parser(
        "info",
        help="Show version, dependencies and registered components.",
    )
    info_parser.set_defaults(handler=_cmd_info)

    return parser


# =========================================================================
# Subcommand handlers
# =========================================================================


def _load_sections(args: argparse.Namespace) -> dict[str, Any]:
    from datasleuth.infrastructure.config import (
        ModelConfig,
        PipelineConfig,
        ResearchConfig,
        load_config_file,
    )

    sections = load_config_file(args.config) if args.config else {}
    pipeline = sections.get("pipeline") or PipelineConfig()
    overrides = {
        "error_handling": args.error_handling,
        "timeout": args.timeout,
    }
    pipeline = PipelineConfig.from_dict(
        {**pipeline.to_dict(), **{k: v for k, v in overrides.items() if v is not None}}
    )

    model = sections.get("model") or ModelConfig()
    model = ModelConfig.from_dict(
        {
            **model.to_dict(),
            **({"provider": args.provider} if args.provider else {}),
            **({"model": args.model} if args.model else {}),
        }
    )
    return {
        "pipeline": pipeline,
        "model": model,
        "research": sections.get("research") or ResearchConfig(),
    }


def _cmd_run(args: argparse.Namespace) -> int:
    """Handle the ``run`` subcommand."""
    from datasleuth.domain.state import create_initial_state
    from datasleuth.infrastructure.llm import create_chat_model
    from datasleuth.infrastructure.providers import JsonFileSearchProvider
    from datasleuth.infrastructure.schema import as_validator
    from datasleuth.presentation.console import ConsoleDashboard
    from datasleuth.services.pipeline import execute_pipeline
    from datasleuth.services.research import default_steps

    sections = _load_sections(args)
    model = create_chat_model(sections["model"])
    steps = default_steps(
        JsonFileSearchProvider(args.search_fixture), options=sections["research"]
    )
    validator = as_validator(ResearchSummary)
    state = create_initial_state(args.query, validator, default_llm=model)
    final = asyncio.run(execute_pipeline(state, steps, sections["pipeline"]))

    dashboard = ConsoleDashboard()
    if args.format == "json":
        dashboard.print_json(final)
    else:
        dashboard.print_state(final)

    if final.halted or not final.results:
        return 1
    try:
        result = validator.validate(final.last_result)
    except ResearchError as exc:
        print(exc.formatted_message(), file=sys.stderr)
        return 1
    if args.format == "table":
        dashboard.print_result(result)
    return 0


# import name -> what it is used for; the last two are optional extras
_DEPENDENCIES = (
    ("langchain_core", "structured LLM calls"),
    ("pydantic", "schemas and validation"),
    ("httpx", "page fetching"),
    ("bs4", "HTML text extraction"),
    ("numpy", "merge and scoring arithmetic"),
    ("rich", "console output"),
    ("yaml", "YAML config files"),
    ("langchain_anthropic", "Anthropic chat models (extra: anthropic)"),
    ("langchain_openai", "OpenAI chat models (extra: openai)"),
)


def _dependency_line(module_name: str, purpose: str) -> str:
    import importlib

    try:
        module = importlib.import_module(module_name)
    except ImportError:
        return f"  [missing]   {module_name} -- {purpose}"
    return f"  [installed] {module_name} {getattr(module, '__version__', '?')} -- {purpose}"


def _cmd_info(args: argparse.Namespace) -> int:
    """Print the version, dependency status and registry contents."""
    import datasleuth.infrastructure.llm  # noqa: F401
    import datasleuth.services  # noqa: F401
    from datasleuth import __version__
    from datasleuth.infrastructure.registry import registry

    lines = [f"datasleuth v{__version__}", "", "Dependencies:"]
    lines += [_dependency_line(name, purpose) for name, purpose in _DEPENDENCIES]
    lines += ["", "Registered Components:"]
    for category in sorted(registry.categories()):
        lines.append(f"  {category}: {', '.join(sorted(registry.names(category)))}")
    print("\n".join(lines))
    return 0


# =========================================================================
# Main entry point
# =========================================================================


def main(argv: list[str] | None = None) -> None:
    """Parse *argv* (default ``sys.argv[1:]``), dispatch, and exit with the
    handler's status code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.version:
        from datasleuth import __version__

        print(f"datasleuth {__version__}")
        sys.exit(0)

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        sys.exit(0)

    try:
        status = handler(args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        status = 130
    except ResearchError as exc:
        print(f"Error: {exc.formatted_message()}", file=sys.stderr)
        status = 1
    except (OSError, ValueError, yaml.YAMLError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        status = 1

    sys.exit(status)


if __name__ == "__main__":
    main()
