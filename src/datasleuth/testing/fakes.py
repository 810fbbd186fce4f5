"""In-memory collaborators and scripted steps for tests and examples."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any
from urllib.parse import urlparse

from datasleuth.domain.exceptions import ExtractionError
from datasleuth.domain.state import ResearchState
from datasleuth.domain.values import ExtractedContent, SearchResult
from datasleuth.services.step import BaseStep


class StaticSearchProvider:
    """Search provider serving canned results.

    Parameters
    ----------
    results:
        Either one list served for every query, or a mapping from query to
        list.  Items may be :class:`SearchResult` or plain dicts.
    fail_queries:
        Queries that raise *error* instead of returning results.
    """

    name = "static"

    def __init__(
        self,
        results: Sequence[Any] | Mapping[str, Sequence[Any]] = (),
        *,
        fail_queries: Sequence[str] = (),
        error: Exception | None = None,
    ) -> None:
        self._results = results
        self.fail_queries = set(fail_queries)
        self.error = error or RuntimeError("search backend unavailable")
        self.queries: list[str] = []

    async def search(self, query: str, max_results: int = 10, **filters: Any) -> list[SearchResult]:
        self.queries.append(query)
        if query in self.fail_queries:
            raise self.error
        raw = self._results.get(query, ()) if isinstance(self._results, Mapping) else self._results
        hits = [r if isinstance(r, SearchResult) else SearchResult.from_dict(r) for r in raw]
        return hits[:max_results]


class StaticContentExtractor:
    """Content extractor serving canned page text keyed by URL."""

    def __init__(self, pages: Mapping[str, str | tuple[str, str]]) -> None:
        self.pages = dict(pages)
        self.requested: list[str] = []

    async def extract(self, url: str, selectors: str = "", max_length: int = 10000) -> ExtractedContent:
        self.requested.append(url)
        if url not in self.pages:
            raise ExtractionError(f"No content for {url}", details={"url": url})
        page = self.pages[url]
        title, content = page if isinstance(page, tuple) else (url, page)
        return ExtractedContent(
            url=url,
            title=title,
            content=content[:max_length],
            extracted_at=time.time(),
            metadata={"domain": urlparse(url).netloc, "word_count": len(content.split())},
        )


class ScriptedStep(BaseStep):
    """Step with scripted behaviour that records how often it ran.

    Parameters
    ----------
    name:
        Step name.
    writes:
        Data slots written on success.
    result:
        Value appended to results on success, if not ``None``.
    confidence:
        Confidence the state is raised to on success.
    failures:
        Exceptions raised by the first ``len(failures)`` calls, in order.
    always_fail:
        Exception raised on every call.
    delay:
        Seconds to sleep before acting.  ``float("inf")`` never finishes.
    transform:
        Extra ``state -> state`` function applied on success.
    rollback_fn:
        If given, exposed as ``rollback``.
    """

    def __init__(
        self,
        name: str,
        *,
        writes: Mapping[str, Any] | None = None,
        result: Any = None,
        confidence: float | None = None,
        failures: Sequence[Exception] = (),
        always_fail: Exception | None = None,
        delay: float = 0.0,
        transform: Callable[[ResearchState], ResearchState] | None = None,
        rollback_fn: Callable[[ResearchState], ResearchState] | None = None,
    ) -> None:
        super().__init__(name)
        self.writes = dict(writes or {})
        self.result = result
        self.confidence = confidence
        self._failures = list(failures)
        self.always_fail = always_fail
        self.delay = delay
        self.transform = transform
        self.calls = 0
        self.rollback_calls = 0
        if rollback_fn is not None:
            self._rollback_fn = rollback_fn
            self.rollback = self._rollback

    async def _rollback(self, state: ResearchState) -> ResearchState:
        self.rollback_calls += 1
        return self._rollback_fn(state)

    async def execute(self, state: ResearchState) -> ResearchState:
        self.calls += 1
        if self.delay == float("inf"):
            await asyncio.Event().wait()
        elif self.delay:
            await asyncio.sleep(self.delay)
        if self.always_fail is not None:
            raise self.always_fail
        if self._failures:
            raise self._failures.pop(0)

        updated = state.with_data(self.writes) if self.writes else state
        if self.result is not None:
            updated = updated.with_result(self.result)
        if self.confidence is not None:
            updated = updated.with_confidence(self.confidence)
        if self.transform is not None:
            updated = self.transform(updated)
        return updated
