"""Presentation layer: console rendering and JSON export."""

from datasleuth.presentation.console import ConsoleDashboard, state_to_dict, to_jsonable

__all__ = ["ConsoleDashboard", "state_to_dict", "to_jsonable"]
