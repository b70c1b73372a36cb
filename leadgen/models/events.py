from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable


class EventType(str, Enum):
    PROGRESS = "progress"
    PERSONAS_READY = "personas_ready"
    BUSINESSES_FOUND = "businesses_found"
    MARKET_RESEARCH_READY = "market_research_ready"
    TASK_FAILED = "task_failed"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class OrchestrationEvent:
    event: EventType
    data: dict[str, Any] = field(default_factory=dict)

    def to_sse(self) -> dict[str, str]:
        return {"event": self.event.value, "data": json.dumps(self.data)}


EventListener = Callable[[OrchestrationEvent], Awaitable[None]]
