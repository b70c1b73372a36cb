from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from leadgen.errors import ToolError
from leadgen.tools.tavily_search import SearchResult

RESULT = SearchResult(title="Saudi CRM market", url="https://example.com/crm", content="Market size...", score=0.9)


@pytest.mark.asyncio
async def test_search_provider_uses_tavily_when_configured():
    from leadgen.tools import search_provider

    with patch("leadgen.tools.search_provider.settings") as mock_settings, patch(
        "leadgen.tools.search_provider.tavily_search.search", new=AsyncMock(return_value=[RESULT])
    ):
        mock_settings.search_provider = "tavily"

        result = await search_provider.search("query", max_results=3)

    assert result.provider == "tavily"
    assert result.fallback_from is None


@pytest.mark.asyncio
async def test_serper_error_falls_back_to_tavily():
    from leadgen.tools import search_provider

    with patch("leadgen.tools.search_provider.settings") as mock_settings, patch(
        "leadgen.tools.search_provider.serper.search", new=AsyncMock(side_effect=ToolError("serper down"))
    ), patch("leadgen.tools.search_provider.tavily_search.search", new=AsyncMock(return_value=[RESULT])):
        mock_settings.search_provider = "serper"
        mock_settings.search_fallback_to_tavily = True

        result = await search_provider.search("query", country="Saudi Arabia")

    assert result.provider == "tavily"
    assert result.fallback_from == "serper"
    assert result.fallback_reason == "serper down"


@pytest.mark.asyncio
async def test_serper_empty_results_fall_back_to_tavily():
    from leadgen.tools import search_provider

    with patch("leadgen.tools.search_provider.settings") as mock_settings, patch(
        "leadgen.tools.search_provider.serper.search", new=AsyncMock(return_value=[])
    ), patch("leadgen.tools.search_provider.tavily_search.search", new=AsyncMock(return_value=[RESULT])):
        mock_settings.search_provider = "serper"
        mock_settings.search_fallback_to_tavily = True

        result = await search_provider.search("query")

    assert result.provider == "tavily"
    assert result.fallback_reason == "serper returned zero results"


@pytest.mark.asyncio
async def test_serper_error_propagates_without_fallback():
    from leadgen.tools import search_provider

    with patch("leadgen.tools.search_provider.settings") as mock_settings, patch(
        "leadgen.tools.search_provider.serper.search", new=AsyncMock(side_effect=ToolError("serper down"))
    ):
        mock_settings.search_provider = "serper"
        mock_settings.search_fallback_to_tavily = False

        with pytest.raises(ToolError):
            await search_provider.search("query")


@pytest.mark.asyncio
async def test_search_provider_raises_when_provider_unsupported():
    with patch("leadgen.tools.search_provider.settings") as mock_settings:
        mock_settings.search_provider = "unknown-provider"

        from leadgen.tools import search_provider

        with pytest.raises(ValueError):
            await search_provider.search("query")


@pytest.mark.asyncio
async def test_serper_requires_api_key():
    from leadgen.tools import serper

    with patch("leadgen.tools.serper.settings") as mock_settings:
        mock_settings.serper_api_key = ""

        with pytest.raises(ToolError):
            await serper.places("crm companies", "Saudi Arabia")


@pytest.mark.asyncio
async def test_serper_places_filters_by_country_signal():
    from leadgen.tools import serper

    payload = {
        "places": [
            {"title": "Dubai Tech LLC", "address": "Sheikh Zayed Rd, Dubai, United Arab Emirates", "rating": 4.5},
            {"title": "Elsewhere Inc", "address": "1 Main St, Springfield"},
            {"title": "Site Match", "address": "", "website": "https://sitematch.ae/"},
            {"title": "", "address": "Dubai, United Arab Emirates"},
        ]
    }
    with patch("leadgen.tools.serper._post", new=AsyncMock(return_value=payload)):
        found = await serper.places("crm companies", "UAE", limit=5)

    assert [p.name for p in found] == ["Dubai Tech LLC", "Site Match"]
    assert found[0].city == "Sheikh Zayed Rd"
    assert found[0].rating == 4.5
    assert found[1].city == "UAE"


@pytest.mark.asyncio
async def test_serper_places_resolves_iso2_country():
    from leadgen.tools import serper

    payload = {"places": [{"title": "Berlin GmbH", "address": "Hauptstr. 1, Berlin, Germany"}]}
    with patch("leadgen.tools.serper._post", new=AsyncMock(return_value=payload)) as post:
        found = await serper.places("crm companies", "DE", limit=5)

    assert post.await_args.args[1]["gl"] == "de"
    assert [p.name for p in found] == ["Berlin GmbH"]


@pytest.mark.asyncio
async def test_serper_places_filters_unmapped_country_by_name():
    from leadgen.tools import serper

    payload = {
        "places": [
            {"title": "Lima Software SAC", "address": "Av. Arequipa 100, Lima, Peru"},
            {"title": "Austin Software LLC", "address": "100 Congress Ave, Austin, TX"},
            {"title": "No Address Co"},
        ]
    }
    with patch("leadgen.tools.serper._post", new=AsyncMock(return_value=payload)):
        found = await serper.places("crm companies", "Peru", limit=5)

    assert [p.name for p in found] == ["Lima Software SAC"]


@pytest.mark.asyncio
async def test_serper_places_global_search_is_not_filtered():
    from leadgen.tools import serper

    payload = {"places": [{"title": "Austin Software LLC", "address": "100 Congress Ave, Austin, TX"}]}
    with patch("leadgen.tools.serper._post", new=AsyncMock(return_value=payload)):
        found = await serper.places("crm companies", "Global", limit=5)

    assert [p.name for p in found] == ["Austin Software LLC"]
