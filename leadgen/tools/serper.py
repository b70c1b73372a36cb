from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from leadgen.config import settings
from leadgen.errors import ToolError
from leadgen.tools.countries import DEFAULT_REGION, GLOBAL_LABELS, country_name, match_region, region_code
from leadgen.tools.tavily_search import SearchResult

SERPER_PLACES_URL = "https://google.serper.dev/places"
SERPER_SEARCH_URL = "https://google.serper.dev/search"


@dataclass
class Place:
    name: str
    address: str = ""
    city: str = ""
    phone: str = ""
    website: str = ""
    rating: float | None = None
    category: str = ""
    description: str = ""


async def _post(url: str, body: dict[str, Any]) -> dict[str, Any]:
    if not settings.serper_api_key:
        raise ToolError("SERPER_API_KEY is not configured")
    try:
        async with httpx.AsyncClient(timeout=settings.tool_timeout_seconds) as client:
            response = await client.post(
                url,
                json=body,
                headers={"X-API-KEY": settings.serper_api_key, "Content-Type": "application/json"},
            )
            response.raise_for_status()
            return response.json()
    except httpx.HTTPError as exc:
        raise ToolError(f"serper {url.rsplit('/', 1)[-1]} failed: {exc}") from exc


def _has_country_signal(place: Place, gl: str | None, country: str) -> bool:
    # Addresses in Saudi Arabia and the US often omit the country, so those markets are not filtered.
    if gl in ("sa", "us"):
        return True
    # City falls back to the searched country, so only the listed address counts as a signal.
    address = place.address.lower()
    if gl is None:
        name = country.strip().lower()
        return name in GLOBAL_LABELS or name in address
    site = place.website.lower()
    tld = f".{gl}"
    return (
        country_name(gl).lower() in address
        or site.endswith(tld)
        or f"{tld}/" in site
    )


async def places(query: str, country: str, *, limit: int = 10) -> list[Place]:
    """Serper Places lookup, filtered to results that plausibly sit in `country`."""
    gl = match_region(country)
    payload = await _post(SERPER_PLACES_URL, {"q": query, "gl": gl or DEFAULT_REGION, "num": min(max(limit, 10), 15)})

    found: list[Place] = []
    for item in payload.get("places", []) or []:
        title = (item.get("title") or "").strip()
        if not title:
            continue
        address = item.get("address") or ""
        parts = [part.strip() for part in address.split(",") if part.strip()]
        rating = item.get("rating")
        found.append(
            Place(
                name=title,
                address=address,
                city=parts[0] if len(parts) > 1 else country,
                phone=item.get("phoneNumber") or "",
                website=item.get("website") or "",
                rating=float(rating) if isinstance(rating, (int, float)) else None,
                category=item.get("category") or "",
            )
        )
    return [p for p in found if _has_country_signal(p, gl, country)][:limit]


async def search(query: str, country: str = "", *, limit: int = 5) -> list[SearchResult]:
    """Serper web search normalized to SearchResult."""
    body: dict[str, Any] = {"q": query, "num": limit}
    if country:
        body["gl"] = region_code(country)
    payload = await _post(SERPER_SEARCH_URL, body)

    organic = payload.get("organic", []) or []
    total = max(len(organic), 1)
    return [
        SearchResult(
            title=item.get("title", ""),
            url=item.get("link", ""),
            content=item.get("snippet", ""),
            # Serper ranks results but exposes no score; use position.
            score=max(0.0, 1.0 - (idx / total)),
        )
        for idx, item in enumerate(organic[:limit])
        if item.get("link")
    ]
