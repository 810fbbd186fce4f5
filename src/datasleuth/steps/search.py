"""Web search step."""

from __future__ import annotations

import logging
from typing import Any

from datasleuth.domain.enums import DataSlot
from datasleuth.domain.exceptions import ConfigurationError, SearchError
from datasleuth.domain.state import ResearchState
from datasleuth.domain.values import SearchResult
from datasleuth.infrastructure.providers import SearchProvider, unique_by_url
from datasleuth.infrastructure.registry import registry
from datasleuth.services.step import BaseStep

logger = logging.getLogger(__name__)


class SearchWeb(BaseStep):
    """Runs search queries and stores de-duplicated hits under ``search_results``.

    Queries come from, in order of preference: the explicit ``query``
    option, the research plan's ``search_queries`` (when
    ``use_queries_from_plan``), or the state's own query.  A failing query
    is logged and skipped; the step fails only when every query failed.
    """

    description = "Search the web for sources relevant to the query"

    def __init__(
        self,
        provider: SearchProvider,
        *,
        query: str | None = None,
        max_results: int = 10,
        use_queries_from_plan: bool = True,
        filters: dict[str, Any] | None = None,
        include_in_results: bool = False,
        name: str = "search_web",
    ) -> None:
        super().__init__(name)
        if provider is None:
            raise ConfigurationError("search_web requires a search provider", step=name)
        if max_results < 1:
            raise ConfigurationError(f"max_results must be >= 1, got {max_results}", step=name)
        self.provider = provider
        self.query = query
        self.max_results = max_results
        self.use_queries_from_plan = use_queries_from_plan
        self.filters = dict(filters or {})
        self.include_in_results = include_in_results

    def queries_for(self, state: ResearchState) -> list[str]:
        if self.query:
            return [self.query]
        plan = state.get(DataSlot.RESEARCH_PLAN)
        if self.use_queries_from_plan and plan is not None:
            planned = [q for q in getattr(plan, "search_queries", []) if q.strip()]
            if planned:
                return planned
        return [state.query]

    async def execute(self, state: ResearchState) -> ResearchState:
        queries = self.queries_for(state)
        collected: list[SearchResult] = []
        failures: dict[str, str] = {}

        for query in queries:
            try:
                hits = await self.provider.search(query, self.max_results, **self.filters)
            except Exception as exc:
                logger.warning("Search for %r failed, skipping: %s", query, exc)
                failures[query] = str(exc)
                continue
            logger.info("Search for %r returned %d result(s)", query, len(hits))
            collected.extend(hits)

        if failures and len(failures) == len(queries):
            raise SearchError(
                f"All {len(queries)} search quer(ies) failed",
                step=self.name,
                details={"failures": failures, "provider": getattr(self.provider, "name", "")},
            )

        results = unique_by_url(collected)[: self.max_results]
        updated = state.with_data({DataSlot.SEARCH_RESULTS: tuple(results)})
        if self.include_in_results:
            updated = updated.with_result(list(results))
        return updated


@registry.register("step", "search_web")
def search_web(provider: SearchProvider, **options: Any) -> SearchWeb:
    return SearchWeb(provider, **options)
