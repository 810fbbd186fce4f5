"""Named lookup of pluggable components.

Three categories are populated at import time:

``merge``
    Track merge strategies (:mod:`datasleuth.services.merge`).
``step``
    Factories for the built-in research steps (:mod:`datasleuth.steps`).
``model``
    Chat model constructors keyed by provider (:mod:`datasleuth.infrastructure.llm`).

Callers extend any category with ``@registry.register(category, name)`` or
``registry.add(category, name, component)``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UnknownComponentError(KeyError):
    """No component is registered under the requested name."""

    def __init__(self, category: str, name: str, available: list[str]) -> None:
        super().__init__(
            f"No {category} component named '{name}' is registered "
            f"(available: {', '.join(available) or 'none'})"
        )
        self.category = category
        self.name = name
        self.available = available

    def __str__(self) -> str:
        return str(self.args[0])


class ComponentRegistry:
    """Components grouped by category, then by name.

    Names are unique within a category; re-registering one raises
    ``ValueError`` unless ``overwrite=True``.
    """

    def __init__(self) -> None:
        self._by_category: dict[str, dict[str, Any]] = {}

    def register(self, category: str, name: str, *, overwrite: bool = False) -> Callable[[T], T]:
        """Decorator form of :meth:`add`; returns the decorated object unchanged."""

        def decorator(component: T) -> T:
            self.add(category, name, component, overwrite=overwrite)
            return component

        return decorator

    def add(self, category: str, name: str, component: Any, *, overwrite: bool = False) -> None:
        entries = self._by_category.setdefault(category, {})
        if name in entries and not overwrite:
            raise ValueError(
                f"A {category} component named '{name}' is already registered; "
                f"pass overwrite=True to replace it"
            )
        entries[name] = component
        logger.debug("Registered %s component '%s'", category, name)

    def remove(self, category: str, name: str) -> Any:
        """Unregister and return a component."""
        if not self.has(category, name):
            raise UnknownComponentError(category, name, self.names(category))
        return self._by_category[category].pop(name)

    def get(self, category: str, name: str) -> Any:
        if not self.has(category, name):
            raise UnknownComponentError(category, name, self.names(category))
        return self._by_category[category][name]

    def create(self, category: str, name: str, *args: Any, **kwargs: Any) -> Any:
        """Look up a factory and call it with the given arguments."""
        return self.get(category, name)(*args, **kwargs)

    def has(self, category: str, name: str) -> bool:
        return name in self._by_category.get(category, {})

    def names(self, category: str) -> list[str]:
        """Registered names in *category*, in registration order."""
        return list(self._by_category.get(category, {}))

    def categories(self) -> list[str]:
        return [c for c, entries in self._by_category.items() if entries]

    @contextmanager
    def override(self, category: str, name: str, component: Any) -> Iterator[Any]:
        """Temporarily replace (or add) a component, restoring the previous
        entry on exit."""
        had_previous = self.has(category, name)
        previous = self._by_category.get(category, {}).get(name)
        self.add(category, name, component, overwrite=True)
        try:
            yield component
        finally:
            if had_previous:
                self._by_category[category][name] = previous
            else:
                self._by_category[category].pop(name, None)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, tuple) and len(key) == 2 and self.has(*key)

    def __repr__(self) -> str:
        counts = ", ".join(f"{c}={len(e)}" for c, e in self._by_category.items())
        return f"ComponentRegistry({counts})"


registry = ComponentRegistry()
