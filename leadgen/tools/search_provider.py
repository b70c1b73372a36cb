from __future__ import annotations

from dataclasses import dataclass

from leadgen.config import settings
from leadgen.errors import ToolError
from leadgen.tools import serper, tavily_search
from leadgen.tools.tavily_search import SearchResult


@dataclass
class SearchResponse:
    results: list[SearchResult]
    provider: str
    fallback_from: str | None = None
    fallback_reason: str | None = None


async def _tavily_fallback(query: str, max_results: int, reason: str) -> SearchResponse:
    results = await tavily_search.search(query=query, max_results=max_results)
    return SearchResponse(
        results=results,
        provider="tavily",
        fallback_from="serper",
        fallback_reason=reason,
    )


async def search(query: str, *, country: str = "", max_results: int = 5) -> SearchResponse:
    """Web search through the configured provider, falling back to Tavily when Serper fails or is empty."""
    provider = settings.search_provider.lower().strip()
    use_fallback = settings.search_fallback_to_tavily

    if provider == "tavily":
        results = await tavily_search.search(query=query, max_results=max_results)
        return SearchResponse(results=results, provider="tavily")

    if provider == "serper":
        try:
            results = await serper.search(query, country, limit=max_results)
        except ToolError as e:
            if not use_fallback:
                raise
            return await _tavily_fallback(query, max_results, str(e))
        if results or not use_fallback:
            return SearchResponse(results=results, provider="serper")
        return await _tavily_fallback(query, max_results, "serper returned zero results")

    raise ValueError(f"Unsupported SEARCH_PROVIDER: {settings.search_provider}")


def results_to_dicts(results: list[SearchResult]) -> list[dict]:
    return tavily_search.results_to_dicts(results)
