from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from leadgen.models.events import EventType
from leadgen.models.search import Phase, SearchContext
from leadgen.services.fallback_chain import FallbackChain


@dataclass
class TaskDeps:
    """Collaborators shared by every task of one orchestration run."""

    limiter: asyncio.Semaphore
    chain: FallbackChain


class TaskExecutor:
    """One independent unit of work in an orchestration run.

    Subclasses set the class attributes and implement `execute`, which
    persists its own output and raises on failure. The return value is a
    small summary dict used for events and logs.
    """

    key: str = "base"
    weight: int = 0
    phase: Phase = Phase.STARTING
    essential: bool = True
    ready_event: EventType | None = None

    def __init__(self, deps: TaskDeps):
        self.deps = deps

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key={self.key!r}, weight={self.weight})"

    async def execute(self, context: SearchContext) -> dict[str, Any]:
        raise NotImplementedError(f"Task {self.key} has no execute implementation")
