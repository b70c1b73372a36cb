from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator


class MarketSize(BaseModel):
    value: str
    growth: str | None = None
    description: str
    calculation: str | None = None
    source: str | None = None

    @field_validator("value", "description", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if isinstance(value, (int, float)):
            return str(value)
        return value


class Competitor(BaseModel):
    name: str
    marketShare: str | None = None
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    source: str | None = None


class Trend(BaseModel):
    trend: str
    impact: str | None = None
    growth: str | None = None
    timeline: str | None = None
    description: str | None = None
    source: str | None = None


class Source(BaseModel):
    title: str
    url: str
    date: str | None = None
    used_for: list[str] = Field(default_factory=list)


class MarketInsights(BaseModel):
    tam_data: MarketSize
    sam_data: MarketSize
    som_data: MarketSize
    competitor_data: list[Competitor] = Field(default_factory=list)
    trends: list[Trend] = Field(default_factory=list)
    opportunities: dict[str, Any] | list[Any] = Field(default_factory=dict)
    sources: list[Source] = Field(default_factory=list)
    analysis_summary: str = ""
    research_methodology: str = ""

    def to_row(self, search_id: str, user_id: str) -> dict[str, Any]:
        payload = self.model_dump()
        return {"search_id": search_id, "user_id": user_id, **payload}
