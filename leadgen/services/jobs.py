from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from leadgen.config import settings
from leadgen.services import supabase as db
from leadgen.services.logger import log_event, logger

PERSONA_MAPPING = "persona_mapping"
DM_PERSONA_MAPPING = "dm_persona_mapping"

JobInserter = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


@dataclass(slots=True)
class DispatchFailure:
    job_type: str
    payload: dict[str, Any]
    error: str


@dataclass
class JobDispatcher:
    """Fire-and-forget job enqueueing with an explicit failure sink.

    `enqueue` never raises: failures are logged and kept in `failures` so
    callers can report them without escalating.
    """

    inserter: JobInserter = db.insert_job
    failures: list[DispatchFailure] = field(default_factory=list)

    async def enqueue(self, job_type: str, payload: dict[str, Any]) -> bool:
        row = {
            "type": job_type,
            "payload": payload,
            "status": "queued",
            "run_at": datetime.now(timezone.utc).isoformat(),
            "attempts": 0,
            "max_attempts": settings.job_max_attempts,
        }
        try:
            await self.inserter(row)
        except Exception as exc:
            failure = DispatchFailure(job_type=job_type, payload=payload, error=str(exc))
            self.failures.append(failure)
            logger.error(f"Job enqueue failed: type={job_type} payload={payload} error={exc}")
            return False
        log_event("job_enqueued", f"Enqueued {job_type}", payload=payload)
        return True
