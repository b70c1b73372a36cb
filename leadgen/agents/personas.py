"""Business and decision-maker persona generation tasks."""
from __future__ import annotations

from typing import Any

from leadgen.agents.base import TaskExecutor
from leadgen.config import settings
from leadgen.errors import PersistenceError
from leadgen.models.events import EventType
from leadgen.models.persona import PERSONA_BATCH_SIZE, PersonaKind
from leadgen.models.search import Phase, SearchContext, SearchType
from leadgen.services import supabase as db
from leadgen.services.fallback_chain import GenerationRequest
from leadgen.services.logger import log_task_step
from leadgen.services.prompt_store import render_prompt

PERSONA_COLUMNS = ("title", "rank", "match_score", "demographics", "characteristics", "behaviors", "market_potential")


def build_request(kind: PersonaKind, context: SearchContext) -> GenerationRequest:
    prompt_key = "personas.business" if kind is PersonaKind.BUSINESS else "personas.decision_maker"
    relationship = "supply" if context.search_type is SearchType.SUPPLIER else "buy"
    user = render_prompt(
        prompt_key,
        count=PERSONA_BATCH_SIZE,
        relationship=relationship,
        product_service=context.product_service,
        industries=", ".join(context.industries) or "any industry",
        countries=", ".join(context.countries) or "any country",
    )
    return GenerationRequest(
        kind=kind,
        context=context,
        system=render_prompt("personas.system", count=PERSONA_BATCH_SIZE),
        user=user,
        count=PERSONA_BATCH_SIZE,
        max_tokens=settings.persona_max_tokens,
    )


def to_rows(kind: PersonaKind, context: SearchContext, records: list[dict[str, Any]]) -> list[dict[str, Any]]:
    rows = []
    for record in sorted(records, key=lambda r: r["rank"]):
        row = {"search_id": context.id, "user_id": context.user_id}
        row.update({column: record[column] for column in PERSONA_COLUMNS})
        if kind is PersonaKind.BUSINESS:
            row["locations"] = record.get("locations") or []
        rows.append(row)
    return rows


class PersonaTaskExecutor(TaskExecutor):
    kind: PersonaKind = PersonaKind.BUSINESS

    async def execute(self, context: SearchContext) -> dict[str, Any]:
        result = await self.deps.chain.generate(build_request(self.kind, context))
        rows = to_rows(self.kind, context, result.records)
        await db.replace_personas(self.kind, context.id, rows)

        stored = await db.get_personas(self.kind, context.id)
        if len(stored) != PERSONA_BATCH_SIZE:
            raise PersistenceError(
                "verify",
                self.kind.table,
                f"expected {PERSONA_BATCH_SIZE} rows, found {len(stored)}",
            )

        summary = {"count": len(rows), "source": result.source, "titles": [r["title"] for r in rows]}
        log_task_step(context.id, self.key, "done", summary)
        return summary


class BusinessPersonasExecutor(PersonaTaskExecutor):
    key = "business_personas"
    weight = 10
    phase = Phase.BUSINESS_PERSONAS
    ready_event = EventType.PERSONAS_READY
    kind = PersonaKind.BUSINESS


class DecisionMakerPersonasExecutor(PersonaTaskExecutor):
    key = "dm_personas"
    weight = 10
    phase = Phase.DM_PERSONAS
    ready_event = EventType.PERSONAS_READY
    kind = PersonaKind.DECISION_MAKER
