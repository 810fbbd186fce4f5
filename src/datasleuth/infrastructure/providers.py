"""External collaborators consumed by the research steps.

Defines the search-provider and content-extractor interfaces plus concrete
implementations: a JSON-fixture search provider (used by the CLI) and an
``httpx``-based page extractor that scrapes text with BeautifulSoup CSS
selectors.
"""

from __future__ import annotations

import json
import logging
import re
import time
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Protocol, runtime_checkable
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup, Tag
from soupsieve import SelectorSyntaxError

from datasleuth.domain.exceptions import ApiError, ExtractionError, NetworkError, SearchError
from datasleuth.domain.values import ExtractedContent, SearchResult

logger = logging.getLogger(__name__)

DEFAULT_SELECTORS = "article, .content, main, #content, .article, .post"


# ===================================================================== #
#  Interfaces                                                            #
# ===================================================================== #


@runtime_checkable
class SearchProvider(Protocol):
    """Web search backend."""

    name: str

    async def search(
        self, query: str, max_results: int = 10, **filters: Any
    ) -> list[SearchResult]: ...


@runtime_checkable
class ContentExtractor(Protocol):
    """Fetches a page and returns its main text."""

    async def extract(
        self, url: str, selectors: str = DEFAULT_SELECTORS, max_length: int = 10000
    ) -> ExtractedContent: ...


# ===================================================================== #
#  Fixture search provider                                               #
# ===================================================================== #


class JsonFileSearchProvider:
    """Search provider that serves results from a JSON file.

    The file holds either a list of result objects (served for every query)
    or an object mapping query strings to such lists.  Each result needs at
    least a ``url``.
    """

    name = "json-file"

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        try:
            self._raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise SearchError(
                f"Could not load search fixture {self.path}: {exc}", retry=False
            ) from exc

    async def search(self, query: str, max_results: int = 10, **filters: Any) -> list[SearchResult]:
        raw = self._raw.get(query, []) if isinstance(self._raw, dict) else self._raw
        return [SearchResult.from_dict({**item, "provider": self.name}) for item in raw][:max_results]


# ===================================================================== #
#  HTML text extraction                                                  #
# ===================================================================== #


_SKIP_TAGS = ["script", "style", "noscript", "svg", "nav", "footer", "header", "aside", "title"]
_BLOCK_TAGS = [
    "article", "main", "section", "div", "p", "li", "blockquote", "pre",
    "h1", "h2", "h3", "h4", "h5", "h6",
]


def _clean(text: str) -> str:
    text = text.replace("\u00a0", " ")
    text = re.sub(r"[ \t\r\f\v]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n\s*\n+", "\n\n", text)
    return text.strip()


def extract_text(markup: str, selectors: str = DEFAULT_SELECTORS) -> tuple[str, str]:
    """Return ``(title, main_text)`` for an HTML document.

    The main text is that of the first element matching the CSS selector
    list *selectors*; without a match (or with an empty one) it is the text
    of the whole body.  Scripts, styles and page chrome are dropped first.

    Raises
    ------
    ExtractionError
        *selectors* is not valid CSS.
    """
    soup = BeautifulSoup(markup or "", "html.parser")
    title = _clean(soup.title.get_text()) if soup.title else ""

    for tag in soup.find_all(_SKIP_TAGS):
        # nested skip tags go with their ancestor
        if not tag.decomposed:
            tag.decompose()
    for tag in soup.find_all(["br", "hr"]):
        tag.replace_with("\n")
    for tag in soup.find_all(_BLOCK_TAGS):
        tag.insert_before("\n")
        tag.insert_after("\n")

    page: Tag = soup.body or soup
    try:
        match = soup.select_one(selectors) if selectors.strip() else None
    except SelectorSyntaxError as exc:
        raise ExtractionError(
            f"Invalid CSS selectors '{selectors}': {exc}", details={"selectors": selectors}
        ) from exc

    text = _clean(match.get_text()) if match is not None else ""
    return title, text or _clean(page.get_text())


# ===================================================================== #
#  HTTP extractor                                                        #
# ===================================================================== #


class HttpContentExtractor:
    """Fetches pages with ``httpx.AsyncClient`` and scrapes their text.

    Parameters
    ----------
    timeout:
        Per-request timeout in seconds.
    client:
        Optional pre-configured client (e.g. with a mock transport).
    headers:
        Extra request headers.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.timeout = timeout
        self._client = client
        self._headers = {"User-Agent": "datasleuth/0.1 (+research pipeline)", **(headers or {})}

    async def _fetch(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        try:
            response = await client.get(url, headers=self._headers, timeout=self.timeout)
        except httpx.TimeoutException as exc:
            raise NetworkError(f"Timed out fetching {url}", details={"url": url}) from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"Network error fetching {url}: {exc}", details={"url": url}) from exc
        if response.status_code >= 400:
            raise ApiError(
                f"HTTP {response.status_code} fetching {url}",
                status_code=response.status_code,
                details={"url": url},
                retry=response.status_code in (429, 502, 503, 504),
            )
        return response

    async def extract(
        self, url: str, selectors: str = DEFAULT_SELECTORS, max_length: int = 10000
    ) -> ExtractedContent:
        if self._client is not None:
            response = await self._fetch(self._client, url)
        else:
            async with httpx.AsyncClient(follow_redirects=True) as client:
                response = await self._fetch(client, url)

        content_type = response.headers.get("content-type", "")
        if "html" not in content_type and "text" not in content_type:
            raise ExtractionError(
                f"Unsupported content type '{content_type}' at {url}", details={"url": url}
            )

        title, text = extract_text(response.text, selectors)
        if not text:
            raise ExtractionError(f"No text content found at {url}", details={"url": url})
        logger.debug("Extracted %d characters from %s", len(text), url)
        return ExtractedContent(
            url=url,
            title=title or url,
            content=text[:max_length],
            extracted_at=time.time(),
            metadata={
                "word_count": len(text.split()),
                "domain": urlparse(url).netloc,
                "status_code": response.status_code,
                "truncated": len(text) > max_length,
            },
        )


def unique_by_url(results: Sequence[SearchResult]) -> list[SearchResult]:
    """Drop repeated URLs, keeping first occurrences."""
    seen: set[str] = set()
    unique: list[SearchResult] = []
    for result in results:
        if result.url in seen:
            continue
        seen.add(result.url)
        unique.append(result)
    return unique
