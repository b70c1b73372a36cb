from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SearchType(str, Enum):
    CUSTOMER = "customer"
    SUPPLIER = "supplier"


class Phase(str, Enum):
    """Search phases in their fixed forward order."""

    STARTING = "starting"
    BUSINESS_PERSONAS = "business_personas"
    DM_PERSONAS = "dm_personas"
    BUSINESS_DISCOVERY = "business_discovery"
    DECISION_MAKERS = "decision_makers"
    MARKET_RESEARCH = "market_research"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def position(self) -> int:
        return PHASE_ORDER.index(self)

    @property
    def is_terminal(self) -> bool:
        return self in (Phase.COMPLETED, Phase.FAILED)


PHASE_ORDER: list[Phase] = list(Phase)


class SearchStatus(str, Enum):
    STARTING = "starting"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskOutcome(str, Enum):
    DONE = "done"
    FAILED = "failed"


def _string_list(value: Any) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    out: list[str] = []
    for item in value:
        if isinstance(item, str) and item.strip():
            out.append(item.strip())
    return out


@dataclass(frozen=True, slots=True)
class SearchContext:
    """Immutable view of one search shared by every task of a run."""

    id: str
    user_id: str
    product_service: str
    industries: tuple[str, ...] = ()
    countries: tuple[str, ...] = ()
    search_type: SearchType = SearchType.CUSTOMER
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def primary_industry(self) -> str:
        return self.industries[0] if self.industries else "General"

    @property
    def primary_country(self) -> str:
        return self.countries[0] if self.countries else "Global"

    @classmethod
    def from_row(cls, row: dict[str, Any], user_id: str | None = None) -> "SearchContext":
        """Normalize a `user_searches` row.

        `product_service` must be a non-empty string. Industries and countries
        default to empty lists when missing or malformed.
        """
        product = row.get("product_service")
        if not isinstance(product, str) or not product.strip():
            raise ValueError("Search is missing product_service")

        raw_type = str(row.get("search_type") or "").strip().lower()
        search_type = SearchType.SUPPLIER if raw_type == SearchType.SUPPLIER.value else SearchType.CUSTOMER

        return cls(
            id=str(row.get("id", "")),
            user_id=str(user_id or row.get("user_id") or ""),
            product_service=product.strip(),
            industries=tuple(_string_list(row.get("industries"))),
            countries=tuple(_string_list(row.get("countries"))),
            search_type=search_type,
            metadata=row.get("agent_metadata") if isinstance(row.get("agent_metadata"), dict) else {},
        )
