from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class PersonaKind(str, Enum):
    BUSINESS = "business"
    DECISION_MAKER = "decision_maker"

    @property
    def table(self) -> str:
        return PERSONA_TABLES[self]


PERSONA_TABLES = {
    PersonaKind.BUSINESS: "business_personas",
    PersonaKind.DECISION_MAKER: "decision_maker_personas",
}

PERSONA_BATCH_SIZE = 3


@dataclass(frozen=True, slots=True)
class PersonaSchema:
    """Declared fields of one persona kind, grouped by section and type."""

    strings: dict[str, tuple[str, ...]]
    lists: dict[str, tuple[str, ...]]
    numbers: dict[str, tuple[str, ...]]
    has_locations: bool = False

    def sections(self) -> tuple[str, ...]:
        ordered: list[str] = []
        for group in (self.strings, self.lists, self.numbers):
            for section in group:
                if section not in ordered:
                    ordered.append(section)
        return tuple(ordered)


BUSINESS_SCHEMA = PersonaSchema(
    strings={
        "demographics": ("industry", "companySize", "geography", "revenue"),
        "behaviors": ("buyingProcess", "decisionTimeline", "budgetRange"),
        "market_potential": ("avgDealSize",),
    },
    lists={
        "characteristics": ("painPoints", "motivations", "challenges", "decisionFactors"),
        "behaviors": ("preferredChannels",),
    },
    numbers={
        "market_potential": ("totalCompanies", "conversionRate"),
    },
    has_locations=True,
)

DECISION_MAKER_SCHEMA = PersonaSchema(
    strings={
        "demographics": ("level", "department", "experience", "geography"),
        "behaviors": ("decisionMaking", "communicationStyle", "buyingProcess"),
    },
    lists={
        "characteristics": ("responsibilities", "painPoints", "motivations", "challenges", "decisionFactors"),
        "behaviors": ("preferredChannels",),
    },
    numbers={
        "market_potential": ("totalDecisionMakers", "avgInfluence", "conversionRate"),
    },
)

SCHEMAS = {
    PersonaKind.BUSINESS: BUSINESS_SCHEMA,
    PersonaKind.DECISION_MAKER: DECISION_MAKER_SCHEMA,
}
