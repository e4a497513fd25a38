"""
Tavily search aggregation for trend research.

Runs a batch of full-text search queries concurrently and folds the results
into a single research digest:

- every query runs at once; the first failure aborts the whole batch
- result text is taken from ``raw_content``, else ``content``, else
  ``snippet``, whitespace-collapsed and capped at ``MAX_ITEM_CHARS``
- pieces are appended in query/result order while they fit inside
  ``total_chars_limit`` (each piece costs its length plus the two-character
  separator)
- every result URL is collected, duplicates included; callers dedupe

Configure via environment variable:
    TAVILY_API_KEY
"""

import asyncio
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from tavily import TavilyClient

from app.exceptions import ConfigurationError, SearchProviderError

logger = logging.getLogger(__name__)

MAX_ITEM_CHARS = 2000
PIECE_SEPARATOR = "\n\n"
DEFAULT_PER_QUERY_MAX_RESULTS = 10
DEFAULT_TOTAL_CHARS_LIMIT = 12000

_WHITESPACE_RE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Result containers
# ---------------------------------------------------------------------------


@dataclass
class SearchResult:
    """A single search result from Tavily."""

    url: str = ""
    title: str = ""
    raw_content: Optional[str] = None
    content: Optional[str] = None
    snippet: Optional[str] = None

    @classmethod
    def from_dict(cls, item: Dict[str, Any]) -> "SearchResult":
        return cls(
            url=item.get("url") or "",
            title=item.get("title") or "",
            raw_content=item.get("raw_content"),
            content=item.get("content"),
            snippet=item.get("snippet"),
        )

    @property
    def text(self) -> str:
        return (self.raw_content or self.content or self.snippet or "").strip()


@dataclass
class AggregatedResearch:
    """Merged research text plus every source URL seen."""

    merged_text: str = ""
    sources: List[str] = field(default_factory=list)

    def unique_sources(self, limit: Optional[int] = None) -> List[str]:
        """Sources with duplicates removed, first occurrence order kept."""
        unique = list(dict.fromkeys(self.sources))
        return unique[:limit] if limit is not None else unique


# ---------------------------------------------------------------------------
# Tavily adapter
# ---------------------------------------------------------------------------


def is_available() -> bool:
    return bool(os.getenv("TAVILY_API_KEY", ""))


class TavilySearchProvider:
    """Thin async wrapper around the synchronous ``TavilyClient``."""

    def __init__(self, api_key: Optional[str] = None, client: Optional[TavilyClient] = None):
        if client is None:
            api_key = api_key or os.getenv("TAVILY_API_KEY", "")
            if not api_key:
                raise ConfigurationError("Missing required environment variable: TAVILY_API_KEY.")
            client = TavilyClient(api_key=api_key)
        self._client = client

    async def search(self, query: str, max_results: int) -> List[SearchResult]:
        try:
            response = await asyncio.to_thread(
                self._client.search,
                query=query,
                search_depth="advanced",
                include_answer=False,
                include_raw_content=True,
                max_results=max_results,
            )
        except Exception as e:
            status_code = getattr(getattr(e, "response", None), "status_code", None)
            logger.error(f"Tavily request failed: status={status_code} query={query!r} error={e}")
            raise SearchProviderError(status_code, str(e)) from e

        return [SearchResult.from_dict(item) for item in (response or {}).get("results") or []]


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def clean_text(text: str) -> str:
    """Collapse whitespace runs and cap the length of a result body."""
    return _WHITESPACE_RE.sub(" ", text)[:MAX_ITEM_CHARS]


def merge_results(
    result_sets: Sequence[Sequence[SearchResult]],
    total_chars_limit: int = DEFAULT_TOTAL_CHARS_LIMIT,
) -> AggregatedResearch:
    """Fold per-query result lists into one budgeted digest."""
    pieces: List[str] = []
    sources: List[str] = []
    char_count = 0

    for results in result_sets:
        for item in results:
            if char_count >= total_chars_limit:
                break
            text = item.text
            if text:
                cleaned = clean_text(text)
                next_count = char_count + len(cleaned) + len(PIECE_SEPARATOR)
                if next_count <= total_chars_limit:
                    pieces.append(cleaned)
                    char_count = next_count
            if item.url:
                sources.append(item.url)
        if char_count >= total_chars_limit:
            break

    return AggregatedResearch(merged_text=PIECE_SEPARATOR.join(pieces), sources=sources)


async def aggregate_search(
    provider: TavilySearchProvider,
    queries: Sequence[str],
    per_query_max_results: int = DEFAULT_PER_QUERY_MAX_RESULTS,
    total_chars_limit: int = DEFAULT_TOTAL_CHARS_LIMIT,
) -> AggregatedResearch:
    """Run *queries* concurrently and merge them under the character budget.

    Raises:
        SearchProviderError: if any single query fails
    """
    logger.info(f"Running {len(queries)} Tavily queries (limit {total_chars_limit} chars)")
    result_sets = await asyncio.gather(
        *(provider.search(query, per_query_max_results) for query in queries)
    )
    research = merge_results(result_sets, total_chars_limit)
    logger.info(
        f"Aggregated {len(research.merged_text)} chars from {len(research.sources)} sources"
    )
    return research
