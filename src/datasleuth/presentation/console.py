"""Rich-based console rendering of research runs.

:class:`ConsoleDashboard` prints the step history, errors, evaluations and
track outcomes of a finished :class:`ResearchState`, plus the final result.
:func:`state_to_dict` produces a JSON-serialisable view of the same data.
"""

from __future__ import annotations

import dataclasses
import json
import sys
from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from datasleuth.domain.enums import DataSlot
from datasleuth.domain.state import ResearchState

# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------


def to_jsonable(value: Any) -> Any:
    """Convert dataclasses, pydantic models, enums and mappings to plain JSON."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, Enum):
        return value.value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            f.name: to_jsonable(getattr(value, f.name))
            for f in dataclasses.fields(value)
            if f.repr and not isinstance(getattr(value, f.name), BaseException)
        }
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return repr(value)


def state_to_dict(state: ResearchState) -> dict[str, Any]:
    """JSON-serialisable view of a state (the output schema is omitted)."""
    meta = state.metadata
    return {
        "query": state.query,
        "data": to_jsonable(state.data),
        "results": to_jsonable(state.results),
        "errors": [e.to_dict() for e in state.errors],
        "metadata": {
            "start_time": meta.start_time,
            "end_time": meta.end_time,
            "confidence_score": meta.confidence_score,
            "halted_by": meta.halted_by.value if meta.halted_by else None,
            "step_history": to_jsonable(meta.step_history),
            **to_jsonable(meta.extra),
        },
    }


# ---------------------------------------------------------------------------
# ConsoleDashboard
# ---------------------------------------------------------------------------


class ConsoleDashboard:
    """Console presentation of a research run.

    Parameters
    ----------
    file:
        Output stream.  Defaults to ``sys.stdout``.
    """

    def __init__(self, file: Any = None) -> None:
        self._console = Console(file=file or sys.stdout)

    def print_state(self, state: ResearchState) -> None:
        self._print_header(state)
        self._print_steps(state)
        if state.errors:
            self._print_errors(state)
        if state.get(DataSlot.EVALUATIONS):
            self._print_evaluations(state)
        if state.get(DataSlot.TRACKS):
            self._print_tracks(state)

    def print_result(self, result: Any) -> None:
        rendered = json.dumps(to_jsonable(result), indent=2, ensure_ascii=False)
        self._console.print(Panel(rendered, title="Result", expand=False))

    def print_json(self, state: ResearchState) -> None:
        self._console.print_json(json.dumps(state_to_dict(state), default=repr))

    # -- sections ----------------------------------------------------------

    def _print_header(self, state: ResearchState) -> None:
        meta = state.metadata
        duration = (meta.end_time - meta.start_time) if meta.end_time else None
        lines = [
            f"[bold]Query:[/bold] {state.query}",
            f"[bold]Confidence:[/bold] {meta.confidence_score:.2f}",
            f"[bold]Results:[/bold] {len(state.results)}   "
            f"[bold]Errors:[/bold] {len(state.errors)}",
        ]
        if duration is not None:
            lines.append(f"[bold]Duration:[/bold] {duration:.2f}s")
        if meta.halted_by is not None:
            lines.append(f"[bold red]Halted by:[/bold red] {meta.halted_by.value}")
        self._console.print(Panel("\n".join(lines), title="Research run", expand=False))

    def _print_steps(self, state: ResearchState) -> None:
        table = Table(title="Step history")
        table.add_column("#", justify="right")
        table.add_column("Step", style="cyan")
        table.add_column("Status")
        table.add_column("Attempts", justify="right")
        table.add_column("Duration", justify="right")
        for i, record in enumerate(state.step_history, start=1):
            status = "[green]ok[/green]" if record.success else "[red]failed[/red]"
            table.add_row(
                str(i), record.step_name, status, str(record.attempts), f"{record.duration:.2f}s"
            )
        self._console.print(table)

    def _print_errors(self, state: ResearchState) -> None:
        table = Table(title="Errors")
        table.add_column("Step", style="cyan")
        table.add_column("Code", style="magenta")
        table.add_column("Message")
        for error in state.errors:
            table.add_row(error.step or "-", error.code.value, error.message)
        self._console.print(table)

    def _print_evaluations(self, state: ResearchState) -> None:
        table = Table(title="Evaluations")
        table.add_column("Criteria", style="cyan")
        table.add_column("Passed")
        table.add_column("Confidence", justify="right")
        for name, record in state.get(DataSlot.EVALUATIONS).items():
            table.add_row(name, "yes" if record.passed else "no", f"{record.confidence_score:.2f}")
        self._console.print(table)

    def _print_tracks(self, state: ResearchState) -> None:
        table = Table(title="Tracks")
        table.add_column("Track", style="cyan")
        table.add_column("Completed")
        table.add_column("Results", justify="right")
        table.add_column("Errors", justify="right")
        table.add_column("Confidence", justify="right")
        for name, result in state.get(DataSlot.TRACKS).items():
            table.add_row(
                name,
                "yes" if result.completed else "[red]no[/red]",
                str(len(result.results)),
                str(len(result.errors)),
                f"{result.confidence:.2f}",
            )
        self._console.print(table)
