from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from tavily import AsyncTavilyClient

from leadgen.config import settings
from leadgen.errors import ToolError


@dataclass
class SearchResult:
    title: str
    url: str
    content: str
    score: float


async def search(
    query: str,
    *,
    search_depth: str = "basic",
    max_results: int = 5,
    topic: str = "general",
) -> list[SearchResult]:
    """Execute a Tavily web search and return structured results."""
    if not settings.tavily_api_key:
        raise ToolError("TAVILY_API_KEY is not configured")
    client = AsyncTavilyClient(api_key=settings.tavily_api_key)
    try:
        response = await client.search(
            query=query,
            search_depth=search_depth,
            max_results=max_results,
            topic=topic,
        )
    except Exception as exc:
        raise ToolError(f"tavily search failed: {exc}") from exc

    return [
        SearchResult(
            title=r.get("title", ""),
            url=r.get("url", ""),
            content=r.get("content", ""),
            score=r.get("score", 0.0),
        )
        for r in response.get("results", [])
    ]


def results_to_dicts(results: list[SearchResult]) -> list[dict[str, Any]]:
    """Convert SearchResult list to JSON-serializable dicts."""
    return [
        {"title": r.title, "url": r.url, "content": r.content, "score": r.score}
        for r in results
    ]
