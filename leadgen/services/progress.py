from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from leadgen.models.search import Phase, SearchStatus, TaskOutcome
from leadgen.services import supabase as db
from leadgen.services.logger import logger

ProgressWriter = Callable[..., Awaitable[None]]

START_PROGRESS = 5
BASELINE_PROGRESS = 20


@dataclass(slots=True)
class ProgressState:
    phase: Phase = Phase.STARTING
    progress_pct: int = 0
    status: SearchStatus = SearchStatus.STARTING
    status_detail: dict[str, str] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.phase.is_terminal


class ProgressTracker:
    """Monotonic phase/percentage state for one search, scoped to one orchestration run.

    Requested values are clamped so `progress_pct` never decreases and `phase`
    never moves back in the fixed phase order. After a terminal write every
    further update is ignored. Writes are serialized so concurrent task
    completions persist in the order they were applied.
    """

    def __init__(self, search_id: str, *, writer: ProgressWriter | None = None):
        self.search_id = search_id
        self._writer = writer or db.update_search_progress
        self._lock = asyncio.Lock()
        self.state = ProgressState()

    def snapshot(self) -> ProgressState:
        return ProgressState(
            phase=self.state.phase,
            progress_pct=self.state.progress_pct,
            status=self.state.status,
            status_detail=dict(self.state.status_detail),
        )

    def _next(self, phase: Phase, progress_pct: int, status: SearchStatus) -> ProgressState:
        state = self.snapshot()
        if phase.position >= state.phase.position:
            state.phase = phase
        state.progress_pct = max(state.progress_pct, min(max(int(progress_pct), 0), 100))
        state.status = status
        return state

    async def _persist(self, state: ProgressState) -> None:
        await self._writer(
            self.search_id,
            phase=state.phase.value,
            progress_pct=state.progress_pct,
            status=state.status.value,
            status_detail=dict(state.status_detail),
        )

    async def advance(
        self,
        phase: Phase,
        progress_pct: int,
        status: SearchStatus = SearchStatus.IN_PROGRESS,
    ) -> ProgressState:
        """Persist a clamped update; the in-memory state only changes once the write succeeds."""
        async with self._lock:
            if self.state.is_terminal:
                logger.debug(f"Ignoring progress update for terminal search {self.search_id}")
                return self.snapshot()
            state = self._next(phase, progress_pct, status)
            await self._persist(state)
            self.state = state
            return self.snapshot()

    async def start(self) -> ProgressState:
        await self.advance(Phase.STARTING, START_PROGRESS)
        return await self.advance(Phase.STARTING, BASELINE_PROGRESS)

    async def record_task(self, task_key: str, outcome: TaskOutcome, weight: int, phase: Phase) -> ProgressState:
        """Add a settled task's weight and status; called only after the task's outcome is known.

        The accounting is kept even if the write fails, so later writes carry it.
        """
        async with self._lock:
            if self.state.is_terminal:
                return self.snapshot()
            self.state.status_detail[task_key] = outcome.value
            self.state = self._next(phase, self.state.progress_pct + weight, SearchStatus.IN_PROGRESS)
            await self._persist(self.state)
            return self.snapshot()

    async def complete(self) -> ProgressState:
        return await self.advance(Phase.COMPLETED, 100, SearchStatus.COMPLETED)

    async def fail(self) -> ProgressState:
        return await self.advance(Phase.FAILED, self.state.progress_pct, SearchStatus.FAILED)
