from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from leadgen.agents.base import TaskDeps
from leadgen.agents.business_discovery import (
    BusinessDiscoveryExecutor,
    build_business_row,
    build_queries,
    build_web_query,
    place_from_web_result,
)
from leadgen.errors import ToolError
from leadgen.models.search import SearchContext, SearchType
from leadgen.tools.search_provider import SearchResponse
from leadgen.tools.serper import Place
from leadgen.tools.tavily_search import SearchResult

NO_WEB_RESULTS = SearchResponse(results=[], provider="serper")


def _executor() -> BusinessDiscoveryExecutor:
    return BusinessDiscoveryExecutor(TaskDeps(limiter=asyncio.Semaphore(2), chain=None))


def _context(*countries: str) -> SearchContext:
    return SearchContext(
        id="search-1",
        user_id="user-1",
        product_service="CRM software",
        industries=("Technology",),
        countries=countries,
    )


def _web(title: str, url: str, content: str = "") -> SearchResult:
    return SearchResult(title=title, url=url, content=content, score=0.8)


def test_build_queries_per_industry_and_search_type():
    customer = build_queries(_context("Saudi Arabia"), "Saudi Arabia")
    supplier = build_queries(
        SearchContext(id="s", user_id="u", product_service="Steel", industries=("Construction",), search_type=SearchType.SUPPLIER),
        "UAE",
    )

    assert customer == [
        ("Technology", "CRM software Technology Saudi Arabia"),
        ("Technology", "Technology companies users Saudi Arabia"),
    ]
    assert supplier[1] == ("Construction", "Construction supplier manufacturer UAE")


def test_build_web_query():
    assert build_web_query(_context("Qatar"), "Qatar") == "CRM software Technology companies users Qatar"
    assert (
        build_web_query(SearchContext(id="s", user_id="u", product_service="Steel", search_type=SearchType.SUPPLIER), "UAE")
        == "Steel supplier manufacturer UAE"
    )


def test_web_result_becomes_single_business_listing():
    place = place_from_web_result(_web("Gulf CRM Systems | Home", "https://gulfcrm.sa", " Cloud CRM for retailers. "))

    assert place == Place(name="Gulf CRM Systems", website="https://gulfcrm.sa", description="Cloud CRM for retailers.")
    assert place_from_web_result(_web("Top 10 CRM Companies in Saudi Arabia", "https://ranks.example")) is None
    assert place_from_web_result(_web("CRM suppliers directory - Riyadh", "https://dir.example")) is None
    assert place_from_web_result(_web("   ", "https://blank.example")) is None


def test_business_row_is_enriched_heuristically():
    place = Place(name="Riyadh Cloud Co", website="https://rc.sa", rating=4.6, category="Technology consultancy")

    row = build_business_row(_context("Saudi Arabia"), place, industry="Technology", country="Saudi Arabia")

    assert row["search_id"] == "search-1"
    assert row["match_score"] == 85
    assert row["relevant_departments"][:2] == ["IT", "Operations"]
    assert "Technology consultancy" in row["key_products"]
    assert row["recent_activity"] == ["Active web presence", "Highly rated by customers"]
    assert row["persona_id"] is None
    assert row["description"] == "Technology consultancy"


@pytest.mark.asyncio
async def test_failing_country_is_tolerated():
    async def fake_places(query, country, *, limit):
        if country == "Qatar":
            raise ToolError("serper places failed")
        return [Place(name=f"{country} Systems", address="Riyadh, Saudi Arabia", category="Software")]

    async def fake_web(query, *, country, max_results):
        if country == "Qatar":
            raise ToolError("serper search failed")
        return NO_WEB_RESULTS

    with patch("leadgen.agents.business_discovery.serper.places", new=fake_places), patch(
        "leadgen.agents.business_discovery.search_provider.search", new=fake_web
    ), patch("leadgen.agents.business_discovery.db.insert_businesses", new=AsyncMock()) as insert:
        summary = await _executor().execute(_context("Saudi Arabia", "Qatar"))

    assert summary == {"count": 1, "failed_countries": ["Qatar"]}
    rows = insert.await_args.args[0]
    assert [r["name"] for r in rows] == ["Saudi Arabia Systems"]


@pytest.mark.asyncio
async def test_web_results_merge_into_name_dedupe():
    places = [Place(name="Gulf CRM Systems", address="Riyadh, Saudi Arabia", category="CRM software")]
    web = SearchResponse(
        results=[
            _web("Gulf CRM Systems - Official Site", "https://gulfcrm.sa/about"),
            _web("Top 10 CRM Companies in Saudi Arabia", "https://ranks.example"),
            _web("Najd Sales Cloud | CRM for retail", "https://najdcloud.sa", "Retail CRM platform in Riyadh."),
        ],
        provider="serper",
    )
    web_search = AsyncMock(return_value=web)

    with patch("leadgen.agents.business_discovery.serper.places", new=AsyncMock(return_value=places)), patch(
        "leadgen.agents.business_discovery.search_provider.search", new=web_search
    ), patch("leadgen.agents.business_discovery.db.insert_businesses", new=AsyncMock()) as insert:
        summary = await _executor().execute(_context("Saudi Arabia"))

    rows = insert.await_args.args[0]
    assert summary["count"] == 2
    assert [r["name"] for r in rows] == ["Gulf CRM Systems", "Najd Sales Cloud"]
    assert rows[0]["address"] == "Riyadh, Saudi Arabia"
    assert rows[1]["website"] == "https://najdcloud.sa"
    assert rows[1]["description"] == "Retail CRM platform in Riyadh."
    assert rows[1]["industry"] == "Technology"
    web_search.assert_awaited_once_with(
        "CRM software Technology companies users Saudi Arabia", country="Saudi Arabia", max_results=5
    )


@pytest.mark.asyncio
async def test_web_lookup_failure_keeps_places_results():
    places = [Place(name="Gulf CRM Systems", category="CRM software")]

    with patch("leadgen.agents.business_discovery.serper.places", new=AsyncMock(return_value=places)), patch(
        "leadgen.agents.business_discovery.search_provider.search", new=AsyncMock(side_effect=ToolError("search down"))
    ), patch("leadgen.agents.business_discovery.db.insert_businesses", new=AsyncMock()) as insert:
        summary = await _executor().execute(_context("Saudi Arabia"))

    assert summary == {"count": 1, "failed_countries": []}
    assert [r["name"] for r in insert.await_args.args[0]] == ["Gulf CRM Systems"]


@pytest.mark.asyncio
async def test_web_results_alone_satisfy_a_country():
    web = SearchResponse(results=[_web("Doha Data Co", "https://dohadata.qa")], provider="tavily")

    with patch(
        "leadgen.agents.business_discovery.serper.places", new=AsyncMock(side_effect=ToolError("serper places failed"))
    ), patch("leadgen.agents.business_discovery.search_provider.search", new=AsyncMock(return_value=web)), patch(
        "leadgen.agents.business_discovery.db.insert_businesses", new=AsyncMock()
    ) as insert:
        summary = await _executor().execute(_context("Qatar"))

    assert summary == {"count": 1, "failed_countries": []}
    assert insert.await_args.args[0][0]["name"] == "Doha Data Co"


@pytest.mark.asyncio
async def test_duplicates_are_removed_and_country_is_capped():
    places = [Place(name=f"Company {i}", category="Software") for i in range(6)]
    places.append(Place(name="company 0 ", category="Software"))

    with patch("leadgen.agents.business_discovery.serper.places", new=AsyncMock(return_value=places)), patch(
        "leadgen.agents.business_discovery.search_provider.search", new=AsyncMock(return_value=NO_WEB_RESULTS)
    ), patch("leadgen.agents.business_discovery.db.insert_businesses", new=AsyncMock()) as insert, patch(
        "leadgen.agents.business_discovery.settings"
    ) as mock_settings:
        mock_settings.discovery_max_per_country = 4
        summary = await _executor().execute(_context("Saudi Arabia"))

    rows = insert.await_args.args[0]
    assert summary["count"] == 4
    assert [r["name"] for r in rows] == ["Company 0", "Company 1", "Company 2", "Company 3"]


@pytest.mark.asyncio
async def test_no_businesses_fails_the_task():
    with patch(
        "leadgen.agents.business_discovery.serper.places", new=AsyncMock(side_effect=ToolError("serper places failed"))
    ), patch(
        "leadgen.agents.business_discovery.search_provider.search", new=AsyncMock(side_effect=ToolError("search down"))
    ), patch("leadgen.agents.business_discovery.db.insert_businesses", new=AsyncMock()) as insert:
        with pytest.raises(ToolError, match="failed countries: Saudi Arabia"):
            await _executor().execute(_context("Saudi Arabia"))

    insert.assert_not_awaited()


@pytest.mark.asyncio
async def test_missing_countries_use_global_default():
    lookup = AsyncMock(return_value=[Place(name="Acme", category="Software")])
    web_search = AsyncMock(return_value=NO_WEB_RESULTS)

    with patch("leadgen.agents.business_discovery.serper.places", new=lookup), patch(
        "leadgen.agents.business_discovery.search_provider.search", new=web_search
    ), patch("leadgen.agents.business_discovery.db.insert_businesses", new=AsyncMock()):
        await _executor().execute(_context())

    assert all(call.args[1] == "Global" for call in lookup.await_args_list)
    assert web_search.await_args.kwargs["country"] == "Global"
