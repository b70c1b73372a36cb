from __future__ import annotations

import asyncio
import re
from typing import Any

from leadgen.agents.base import TaskExecutor
from leadgen.config import settings
from leadgen.errors import ToolError
from leadgen.models.events import EventType
from leadgen.models.search import Phase, SearchContext, SearchType
from leadgen.services import supabase as db
from leadgen.services.logger import log_task_step, logger
from leadgen.tools import search_provider, serper
from leadgen.tools.serper import Place
from leadgen.tools.tavily_search import SearchResult

# Keyword → departments that usually own the purchase, used when a listing has no detail.
DEPARTMENT_HINTS: tuple[tuple[tuple[str, ...], tuple[str, ...]], ...] = (
    (("software", "crm", "saas", "cloud", "it ", "technology", "data"), ("IT", "Operations", "Sales")),
    (("marketing", "advertis", "media", "brand"), ("Marketing", "Sales")),
    (("logistic", "shipping", "freight", "supply"), ("Supply Chain", "Operations", "Procurement")),
    (("health", "clinic", "hospital", "medical", "pharma"), ("Clinical Operations", "Procurement", "IT")),
    (("bank", "finance", "fintech", "insurance", "payment"), ("Finance", "Risk", "IT")),
    (("manufactur", "industrial", "factory", "equipment"), ("Production", "Procurement", "Engineering")),
    (("retail", "store", "ecommerce", "shop"), ("Merchandising", "Operations", "Marketing")),
    (("construction", "real estate", "property"), ("Projects", "Procurement", "Facilities")),
)
DEFAULT_DEPARTMENTS = ("Operations", "Procurement")

WEB_RESULTS_PER_COUNTRY = 5
# Ranking and directory pages describe many businesses, not one.
LISTING_TITLE_RE = re.compile(
    r"^\s*(?:top|best|leading|list|\d+)\b|\b(?:companies|suppliers|manufacturers|directory|list of)\b",
    re.IGNORECASE,
)
_TITLE_SPLIT_RE = re.compile(r"\s+[|\-–—:]\s+")


def _type_terms(context: SearchContext) -> str:
    return "supplier manufacturer" if context.search_type is SearchType.SUPPLIER else "companies users"


def build_queries(context: SearchContext, country: str) -> list[tuple[str, str]]:
    """(industry, query) pairs for one country."""
    type_terms = _type_terms(context)
    industries = context.industries or ("",)
    queries: list[tuple[str, str]] = []
    for industry in industries:
        for query in (
            f"{context.product_service} {industry} {country}",
            f"{industry} {type_terms} {country}",
        ):
            query = " ".join(query.split())
            if query and (industry, query) not in queries:
                queries.append((industry, query))
    return queries


def _web_industry(context: SearchContext) -> str:
    return context.industries[0] if context.industries else ""


def build_web_query(context: SearchContext, country: str) -> str:
    return " ".join(f"{context.product_service} {_web_industry(context)} {_type_terms(context)} {country}".split())


def place_from_web_result(result: SearchResult) -> Place | None:
    """Single-business listing from a web result; None for ranking or directory pages."""
    name = _TITLE_SPLIT_RE.split(result.title.strip(), maxsplit=1)[0].strip()
    if not name or LISTING_TITLE_RE.search(name):
        return None
    return Place(name=name, website=result.url, description=result.content.strip())


def infer_departments(context: SearchContext, industry: str, place: Place) -> list[str]:
    haystack = f" {context.product_service} {industry} {place.category} ".lower()
    departments: list[str] = []
    for keywords, hints in DEPARTMENT_HINTS:
        if any(keyword in haystack for keyword in keywords):
            for hint in hints:
                if hint not in departments:
                    departments.append(hint)
    return departments or list(DEFAULT_DEPARTMENTS)


def infer_products(context: SearchContext, industry: str, place: Place) -> list[str]:
    products = [p for p in (place.category, f"{industry} services".strip() if industry else "") if p]
    if context.search_type is SearchType.SUPPLIER:
        products.append(context.product_service)
    return list(dict.fromkeys(products)) or [context.product_service]


def infer_activity(place: Place) -> list[str]:
    tags: list[str] = []
    if place.website:
        tags.append("Active web presence")
    if place.rating is not None and place.rating >= 4.0:
        tags.append("Highly rated by customers")
    if place.phone:
        tags.append("Reachable by phone")
    return tags or ["Listed business directory entry"]


def build_business_row(context: SearchContext, place: Place, *, industry: str, country: str) -> dict[str, Any]:
    return {
        "search_id": context.id,
        "user_id": context.user_id,
        "persona_id": None,
        "name": place.name,
        "industry": industry or context.primary_industry,
        "country": country,
        "address": place.address or None,
        "city": place.city or None,
        "phone": place.phone or None,
        "website": place.website or None,
        "rating": place.rating,
        "size": None,
        "revenue": None,
        "description": place.description or place.category or place.name,
        "match_score": 85 if industry and industry.lower() in place.category.lower() else 75,
        "relevant_departments": infer_departments(context, industry, place),
        "key_products": infer_products(context, industry, place),
        "recent_activity": infer_activity(place),
        "persona_type": "business",
    }


class BusinessDiscoveryExecutor(TaskExecutor):
    key = "business_discovery"
    weight = 40
    phase = Phase.BUSINESS_DISCOVERY
    ready_event = EventType.BUSINESSES_FOUND

    async def _lookup(self, query: str, country: str) -> list[Place]:
        async with self.deps.limiter:
            return await serper.places(query, country, limit=settings.discovery_max_per_country)

    async def _web_lookup(self, query: str, country: str) -> list[Place]:
        async with self.deps.limiter:
            response = await search_provider.search(query, country=country, max_results=WEB_RESULTS_PER_COUNTRY)
        logger.debug(f"Web lookup for '{query}' answered by {response.provider}")
        return [place for place in map(place_from_web_result, response.results) if place is not None]

    async def _discover_country(self, context: SearchContext, country: str) -> list[dict[str, Any]]:
        queries = build_queries(context, country)
        web_query = build_web_query(context, country)
        # Places results come first so they win the name dedupe over web listings.
        raw = await asyncio.gather(
            *(self._lookup(query, country) for _, query in queries),
            self._web_lookup(web_query, country),
            return_exceptions=True,
        )

        lookups = queries + [(_web_industry(context), web_query)]
        rows: list[dict[str, Any]] = []
        seen: set[str] = set()
        failures = 0
        for (industry, query), item in zip(lookups, raw):
            if isinstance(item, BaseException):
                if not isinstance(item, Exception):
                    raise item
                failures += 1
                logger.warning(f"Discovery lookup failed for '{query}': {item}")
                continue
            for place in item:
                name_key = place.name.strip().lower()
                if not name_key or name_key in seen:
                    continue
                seen.add(name_key)
                rows.append(build_business_row(context, place, industry=industry, country=country))

        if failures == len(lookups):
            raise ToolError(f"every discovery lookup failed for {country}")
        return rows[: settings.discovery_max_per_country]

    async def execute(self, context: SearchContext) -> dict[str, Any]:
        countries = list(context.countries) or [context.primary_country]
        results = await asyncio.gather(
            *(self._discover_country(context, country) for country in countries),
            return_exceptions=True,
        )

        rows: list[dict[str, Any]] = []
        seen: set[str] = set()
        failed_countries: list[str] = []
        for country, item in zip(countries, results):
            if isinstance(item, BaseException):
                if not isinstance(item, Exception):
                    raise item
                failed_countries.append(country)
                logger.warning(f"Business discovery skipped {country} for search {context.id}: {item}")
                continue
            for row in item:
                name_key = row["name"].strip().lower()
                if name_key in seen:
                    continue
                seen.add(name_key)
                rows.append(row)

        if not rows:
            raise ToolError(
                f"no businesses found for search {context.id}"
                + (f" (failed countries: {', '.join(failed_countries)})" if failed_countries else "")
            )

        await db.insert_businesses(rows)
        summary = {"count": len(rows), "failed_countries": failed_countries}
        log_task_step(context.id, self.key, "done", summary)
        return summary
