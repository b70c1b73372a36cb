from __future__ import annotations

import asyncio
import json
from typing import Any

from pydantic import ValidationError

from leadgen.agents.base import TaskExecutor
from leadgen.config import settings
from leadgen.errors import MarketResearchFailed, ProviderError
from leadgen.llm_client import CompletionResponse, ProviderClient
from leadgen.models.events import EventType
from leadgen.models.market import MarketInsights, Source
from leadgen.models.search import Phase, SearchContext
from leadgen.services import supabase as db
from leadgen.services.json_utils import extract_json_object
from leadgen.services.logger import log_task_step, logger
from leadgen.services.prompt_store import render_prompt
from leadgen.services.retry import with_retry
from leadgen.tools import search_provider


def dedupe_sources(results: list[dict[str, Any]], limit: int) -> list[dict[str, Any]]:
    by_url: dict[str, dict[str, Any]] = {}
    for item in results:
        url = (item.get("url") or "").strip()
        key = url.lower().rstrip("/")
        if not key or key in by_url:
            continue
        by_url[key] = {"title": item.get("title") or url, "url": url, "snippet": (item.get("content") or "")[:500]}
    return list(by_url.values())[:limit]


class MarketResearchExecutor(TaskExecutor):
    """Web-grounded market sizing. Advisory: its failure does not fail the search."""

    key = "market_research"
    weight = 20
    phase = Phase.MARKET_RESEARCH
    essential = False
    ready_event = EventType.MARKET_RESEARCH_READY

    query_suffixes: tuple[str, ...] = (
        "market size report",
        "competitors top players",
        "growth rate CAGR",
        "trends forecast",
    )
    source_budget_factor: float = 1.0
    max_tokens_factor: float = 1.0

    @property
    def max_sources(self) -> int:
        return max(int(settings.research_max_sources * self.source_budget_factor), 1)

    def build_queries(self, context: SearchContext) -> list[tuple[str, str]]:
        countries = list(context.countries[: settings.research_max_countries]) or [""]
        industry = context.industries[0] if context.industries else ""
        queries: list[tuple[str, str]] = []
        for country in countries:
            base = " ".join(f"{context.product_service} {industry} {country}".split())
            for suffix in self.query_suffixes:
                queries.append((f"{base} {suffix}", country))
        return queries

    def ordered_providers(self) -> list[ProviderClient]:
        return list(self.deps.chain.providers)

    async def _search(self, query: str, country: str) -> list[dict[str, Any]]:
        async with self.deps.limiter:
            response = await search_provider.search(query, country=country, max_results=5)
        if response.fallback_from:
            logger.info(f"Research search fell back from {response.fallback_from}: {response.fallback_reason}")
        return search_provider.results_to_dicts(response.results)

    async def gather_sources(self, context: SearchContext) -> list[dict[str, Any]]:
        queries = self.build_queries(context)
        raw = await asyncio.gather(
            *(self._search(query, country) for query, country in queries),
            return_exceptions=True,
        )
        merged: list[dict[str, Any]] = []
        for (query, _), item in zip(queries, raw):
            if isinstance(item, Exception):
                logger.warning(f"Research search failed for '{query}': {item}")
                continue
            merged.extend(item)
        return dedupe_sources(merged, self.max_sources)

    async def _complete(self, system: str, user: str) -> CompletionResponse:
        max_tokens = int(settings.research_max_tokens * self.max_tokens_factor)
        last_error: ProviderError | None = None
        for provider in self.ordered_providers():

            async def call(provider: ProviderClient = provider) -> CompletionResponse:
                async with self.deps.limiter:
                    return await provider.complete(
                        system=system,
                        user=user,
                        max_tokens=max_tokens,
                        timeout=settings.research_timeout_seconds,
                        caller=self.key,
                    )

            try:
                return await with_retry(call, label=provider.provider_id)
            except ProviderError as exc:
                last_error = exc
                logger.warning(f"Market research generation failed on {provider.provider_id}: {exc}")
        raise MarketResearchFailed(f"no provider produced market research: {last_error}")

    @staticmethod
    def parse_insights(text: str, sources: list[dict[str, Any]]) -> MarketInsights:
        """Validate generator output. Unparseable or incomplete output is a hard failure."""
        try:
            payload = extract_json_object(text)
            insights = MarketInsights.model_validate(payload)
        except (json.JSONDecodeError, ValidationError) as exc:
            raise MarketResearchFailed(f"market research response is not valid structured data: {exc}") from exc
        if not insights.sources:
            insights.sources = [Source(title=s["title"], url=s["url"]) for s in sources]
        return insights

    async def execute(self, context: SearchContext) -> dict[str, Any]:
        sources = await self.gather_sources(context)
        if not sources:
            raise MarketResearchFailed("no web references found")

        user = render_prompt(
            "market_research.user",
            product_service=context.product_service,
            industries=", ".join(context.industries) or "any",
            countries=", ".join(context.countries) or "global",
            search_type=context.search_type.value,
            sources_json=json.dumps(sources, ensure_ascii=False),
        )
        response = await self._complete(render_prompt("market_research.system"), user)
        insights = self.parse_insights(response.text, sources)

        await db.insert_market_insights(insights.to_row(context.id, context.user_id))
        summary = {"sources": len(insights.sources), "provider": response.provider}
        log_task_step(context.id, self.key, "done", summary)
        return summary


class AdvancedMarketResearchExecutor(MarketResearchExecutor):
    """Broader query set and source budget, with the higher-quality providers tried first."""

    query_suffixes = MarketResearchExecutor.query_suffixes + (
        "pricing benchmarks",
        "regulation outlook",
    )
    source_budget_factor = 1.5
    max_tokens_factor = 1.5

    def ordered_providers(self) -> list[ProviderClient]:
        providers = list(self.deps.chain.providers)
        return providers[1:] + providers[:1]
