"""Content extraction step."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from datasleuth.domain.enums import DataSlot
from datasleuth.domain.exceptions import ConfigurationError, ExtractionError
from datasleuth.domain.state import ResearchState
from datasleuth.domain.values import ExtractedContent, SearchResult
from datasleuth.infrastructure.providers import (
    DEFAULT_SELECTORS,
    ContentExtractor,
    HttpContentExtractor,
)
from datasleuth.infrastructure.registry import registry
from datasleuth.services.step import BaseStep

logger = logging.getLogger(__name__)


class ExtractContent(BaseStep):
    """Fetches the top search results and stores their text under
    ``extracted_content``.

    Pages are fetched concurrently.  Individual failures are logged and
    skipped; the step fails only if no page could be extracted.
    """

    description = "Fetch and extract the text of the top search results"

    def __init__(
        self,
        extractor: ContentExtractor | None = None,
        *,
        selectors: str = DEFAULT_SELECTORS,
        max_urls: int = 5,
        max_content_length: int = 10000,
        timeout: float = 10.0,
        include_in_results: bool = False,
        name: str = "extract_content",
    ) -> None:
        super().__init__(name)
        if max_urls < 1:
            raise ConfigurationError(f"max_urls must be >= 1, got {max_urls}", step=name)
        if max_content_length < 1:
            raise ConfigurationError(
                f"max_content_length must be >= 1, got {max_content_length}", step=name
            )
        self.extractor = extractor or HttpContentExtractor(timeout=timeout)
        self.selectors = selectors
        self.max_urls = max_urls
        self.max_content_length = max_content_length
        self.include_in_results = include_in_results

    async def _extract_one(self, result: SearchResult) -> ExtractedContent | None:
        try:
            return await self.extractor.extract(
                result.url, self.selectors, self.max_content_length
            )
        except Exception as exc:
            logger.warning("Extraction from %s failed, skipping: %s", result.url, exc)
            return None

    async def execute(self, state: ResearchState) -> ResearchState:
        search_results = list(state.get(DataSlot.SEARCH_RESULTS, ()))[: self.max_urls]
        if not search_results:
            logger.warning("No search results to extract content from")
            return state

        extracted = await asyncio.gather(*(self._extract_one(r) for r in search_results))
        contents = tuple(c for c in extracted if c is not None)
        if not contents:
            raise ExtractionError(
                f"Content extraction failed for all {len(search_results)} URL(s)",
                step=self.name,
                details={"urls": [r.url for r in search_results]},
            )
        logger.info("Extracted content from %d/%d URL(s)", len(contents), len(search_results))

        updated = state.with_data({DataSlot.EXTRACTED_CONTENT: contents})
        if self.include_in_results:
            updated = updated.with_result(list(contents))
        return updated


@registry.register("step", "extract_content")
def extract_content(extractor: ContentExtractor | None = None, **options: Any) -> ExtractContent:
    return ExtractContent(extractor, **options)
