from __future__ import annotations

import copy
import json
from typing import Any

import pytest

from leadgen.errors import ProviderError
from leadgen.models.search import SearchContext, SearchType


class FakeProvider:
    """Stands in for ProviderClient: replays scripted texts or raises scripted errors."""

    def __init__(self, provider_id: str, responses: list[Any] | None = None, *, configured: bool = True):
        self.provider_id = provider_id
        self.model = f"{provider_id}-model"
        self.timeout = 1.0
        self.configured = configured
        self.responses = list(responses or [])
        self.calls: list[dict[str, Any]] = []

    async def complete(self, **kwargs: Any):
        from leadgen.llm_client import CompletionResponse, Usage

        self.calls.append(kwargs)
        if not self.responses:
            raise ProviderError(self.provider_id, "no scripted response")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return CompletionResponse(
            text=item,
            provider=self.provider_id,
            model=self.model,
            usage=Usage(input_tokens=10, output_tokens=20),
            latency_ms=5,
        )


BUSINESS_PERSONAS = [
    {
        "title": "Riyadh Fintech Scaleups",
        "rank": 1,
        "match_score": 92,
        "demographics": {"industry": "Technology", "companySize": "50-200", "geography": "Riyadh", "revenue": "$10M-$50M"},
        "characteristics": {
            "painPoints": ["Manual lead tracking", "Siloed customer data"],
            "motivations": ["Faster sales cycles"],
            "challenges": ["Hiring sales ops talent"],
            "decisionFactors": ["Arabic localization", "Price"],
        },
        "behaviors": {
            "buyingProcess": "Trial then annual contract",
            "decisionTimeline": "2-3 months",
            "budgetRange": "$20K-$60K",
            "preferredChannels": ["LinkedIn", "Events"],
        },
        "market_potential": {"totalCompanies": 850, "avgDealSize": "$35K", "conversionRate": 5},
        "locations": ["Riyadh", "Jeddah"],
    },
    {
        "title": "Jeddah Logistics Operators",
        "rank": 2,
        "match_score": 84,
        "demographics": {"industry": "Logistics", "companySize": "200-1000", "geography": "Jeddah", "revenue": "$50M-$200M"},
        "characteristics": {
            "painPoints": ["Fragmented account history"],
            "motivations": ["Customer retention"],
            "challenges": ["Legacy ERP"],
            "decisionFactors": ["Integrations"],
        },
        "behaviors": {
            "buyingProcess": "RFP with IT review",
            "decisionTimeline": "4-6 months",
            "budgetRange": "$60K-$150K",
            "preferredChannels": ["Email"],
        },
        "market_potential": {"totalCompanies": 300, "avgDealSize": "$90K", "conversionRate": 3},
        "locations": ["Jeddah"],
    },
    {
        "title": "Dammam Industrial Distributors",
        "rank": 3,
        "match_score": 78,
        "demographics": {"industry": "Wholesale", "companySize": "20-100", "geography": "Dammam", "revenue": "$5M-$20M"},
        "characteristics": {
            "painPoints": ["Spreadsheet pipelines"],
            "motivations": ["Visibility into reps"],
            "challenges": ["Low IT budget"],
            "decisionFactors": ["Ease of use"],
        },
        "behaviors": {
            "buyingProcess": "Owner-led purchase",
            "decisionTimeline": "1 month",
            "budgetRange": "$5K-$15K",
            "preferredChannels": ["WhatsApp", "Referral"],
        },
        "market_potential": {"totalCompanies": 1400, "avgDealSize": "$9K", "conversionRate": 7},
        "locations": ["Dammam"],
    },
]


@pytest.fixture
def search_context() -> SearchContext:
    return SearchContext(
        id="search-1",
        user_id="user-1",
        product_service="CRM software",
        industries=("Technology",),
        countries=("Saudi Arabia",),
        search_type=SearchType.CUSTOMER,
    )


@pytest.fixture
def search_row() -> dict[str, Any]:
    return {
        "id": "search-1",
        "user_id": "user-1",
        "product_service": "CRM software",
        "industries": ["Technology"],
        "countries": ["Saudi Arabia"],
        "search_type": "customer",
        "agent_metadata": {},
    }


@pytest.fixture
def business_personas() -> list[dict[str, Any]]:
    return copy.deepcopy(BUSINESS_PERSONAS)


@pytest.fixture
def business_payload(business_personas) -> str:
    return json.dumps({"personas": business_personas})


@pytest.fixture
def make_provider():
    return FakeProvider
