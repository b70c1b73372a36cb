"""Runs one search through its four concurrent tasks and settles the outcome.

Business personas, decision-maker personas and business discovery are
essential: the search completes only when all three are done. Market
research is advisory: its failure is recorded in `status_detail` and
flagged in `agent_metadata` but does not fail the search.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any

from leadgen.agents.base import TaskDeps, TaskExecutor
from leadgen.agents.registry import build_executors
from leadgen.config import settings
from leadgen.errors import SearchNotFound
from leadgen.llm_client import ProviderClient
from leadgen.models.events import EventListener, EventType, OrchestrationEvent
from leadgen.models.search import SearchContext, SearchStatus, TaskOutcome
from leadgen.services import supabase as db
from leadgen.services.fallback_chain import GenerationCache, build_fallback_chain
from leadgen.services.jobs import DM_PERSONA_MAPPING, PERSONA_MAPPING, DispatchFailure, JobDispatcher
from leadgen.services.logger import log_event, log_task_step, logger
from leadgen.services.progress import ProgressTracker

DOWNSTREAM_JOBS = (PERSONA_MAPPING, DM_PERSONA_MAPPING)


@dataclass(slots=True)
class TaskResult:
    key: str
    weight: int
    outcome: TaskOutcome
    error: str | None = None
    essential: bool = True
    duration_ms: int = 0
    summary: dict[str, Any] = field(default_factory=dict)


@dataclass
class OrchestrationResult:
    search_id: str
    success: bool
    status: SearchStatus
    per_task_status: dict[str, str] = field(default_factory=dict)
    tasks: list[TaskResult] = field(default_factory=list)
    dispatch_failures: list[DispatchFailure] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "search_id": self.search_id,
            "success": self.success,
            "status": self.status.value,
            "per_task_status": dict(self.per_task_status),
            "tasks": [
                {
                    "key": t.key,
                    "weight": t.weight,
                    "outcome": t.outcome.value,
                    "essential": t.essential,
                    "error": t.error,
                    "duration_ms": t.duration_ms,
                }
                for t in self.tasks
            ],
            "dispatch_failures": [{"job_type": f.job_type, "error": f.error} for f in self.dispatch_failures],
            "error": self.error,
        }


def decide_success(results: list[TaskResult]) -> bool:
    """True when every essential task is done; advisory outcomes are ignored."""
    return all(r.outcome is TaskOutcome.DONE for r in results if r.essential)


class SearchOrchestrator:
    def __init__(
        self,
        *,
        listener: EventListener | None = None,
        providers: list[ProviderClient] | None = None,
        tracker: ProgressTracker | None = None,
        dispatcher: JobDispatcher | None = None,
        executors: list[TaskExecutor] | None = None,
        market_research_mode: str | None = None,
        task_timeout: float | None = None,
    ):
        self.listener = listener
        self.providers = providers
        self.tracker = tracker
        self.dispatcher = dispatcher or JobDispatcher()
        self.executors = executors
        self.market_research_mode = market_research_mode
        self.task_timeout = task_timeout if task_timeout is not None else settings.task_timeout_seconds

    async def _emit(self, event_type: EventType, **data: Any) -> None:
        if self.listener is None:
            return
        try:
            await self.listener(OrchestrationEvent(event=event_type, data=data))
        except Exception as exc:
            logger.warning(f"Event listener failed on {event_type.value}: {exc}")

    def _build_executors(self, row: dict[str, Any]) -> list[TaskExecutor]:
        if self.executors is not None:
            return self.executors
        limiter = asyncio.Semaphore(max(settings.max_parallel_calls, 1))
        chain = build_fallback_chain(
            limiter=limiter,
            cache=GenerationCache(persistent=settings.persona_cache_enabled),
            providers=self.providers,
        )
        mode = self.market_research_mode
        if mode is None and row.get("use_advanced_research"):
            mode = "advanced"
        return build_executors(TaskDeps(limiter=limiter, chain=chain), mode)

    async def _run_task(
        self,
        executor: TaskExecutor,
        context: SearchContext,
        tracker: ProgressTracker,
    ) -> TaskResult:
        started = time.perf_counter()
        result = TaskResult(
            key=executor.key,
            weight=executor.weight,
            outcome=TaskOutcome.DONE,
            essential=executor.essential,
        )
        try:
            result.summary = await asyncio.wait_for(executor.execute(context), timeout=self.task_timeout)
        except asyncio.TimeoutError:
            result.outcome = TaskOutcome.FAILED
            result.error = f"timed out after {self.task_timeout}s"
        except Exception as exc:
            result.outcome = TaskOutcome.FAILED
            result.error = f"{type(exc).__name__}: {exc}"
        result.duration_ms = int((time.perf_counter() - started) * 1000)

        if result.outcome is TaskOutcome.FAILED:
            log_task_step(context.id, executor.key, "failed", {"error": result.error})
            if not executor.essential:
                try:
                    await db.merge_agent_metadata(context.id, {f"{executor.key}_warning": True})
                except Exception as exc:
                    logger.warning(f"Could not flag {executor.key} warning for search {context.id}: {exc}")

        try:
            state = await tracker.record_task(executor.key, result.outcome, executor.weight, executor.phase)
        except Exception as exc:
            logger.warning(f"Failed to persist progress for {executor.key} on search {context.id}: {exc}")
            state = tracker.snapshot()

        await self._emit(EventType.PROGRESS, phase=state.phase.value, progress=state.progress_pct, task=executor.key)
        if result.outcome is TaskOutcome.DONE and executor.ready_event is not None:
            await self._emit(executor.ready_event, search_id=context.id, task=executor.key, **result.summary)
        elif result.outcome is TaskOutcome.FAILED:
            await self._emit(EventType.TASK_FAILED, search_id=context.id, task=executor.key, error=result.error)
        return result

    async def _dispatch_downstream(self, search_id: str) -> list[DispatchFailure]:
        before = len(self.dispatcher.failures)
        for job_type in DOWNSTREAM_JOBS:
            await self.dispatcher.enqueue(job_type, {"search_id": search_id})
        return self.dispatcher.failures[before:]

    async def run(self, search_id: str, user_id: str) -> OrchestrationResult:
        """Drive one search to a terminal state.

        Raises SearchNotFound when the search row does not exist. Any other
        failure is converted into a terminal `failed` write and a failed result.
        """
        tracker = self.tracker or ProgressTracker(search_id)
        log_event("orchestration_started", f"Starting orchestration for {search_id}", user_id=user_id)

        try:
            row = await db.get_search(search_id)
            if row is None:
                raise SearchNotFound(search_id)
            context = SearchContext.from_row(row, user_id)

            state = await tracker.start()
            await self._emit(EventType.PROGRESS, phase=state.phase.value, progress=state.progress_pct)

            executors = self._build_executors(row)
            results = list(await asyncio.gather(*(self._run_task(ex, context, tracker) for ex in executors)))
            per_task_status = {r.key: r.outcome.value for r in results}

            if decide_success(results):
                await tracker.complete()
                failures = await self._dispatch_downstream(search_id)
                await self._emit(EventType.COMPLETED, search_id=search_id, progress=100, per_task_status=per_task_status)
                log_event("orchestration_completed", f"Search {search_id} completed", per_task_status=per_task_status)
                return OrchestrationResult(
                    search_id=search_id,
                    success=True,
                    status=SearchStatus.COMPLETED,
                    per_task_status=per_task_status,
                    tasks=results,
                    dispatch_failures=failures,
                )

            await tracker.fail()
            failed = [r.key for r in results if r.essential and r.outcome is TaskOutcome.FAILED]
            message = f"Essential tasks failed: {', '.join(failed)}"
            await self._emit(EventType.ERROR, search_id=search_id, message=message, per_task_status=per_task_status)
            log_event("orchestration_failed", message, search_id=search_id, per_task_status=per_task_status)
            return OrchestrationResult(
                search_id=search_id,
                success=False,
                status=SearchStatus.FAILED,
                per_task_status=per_task_status,
                tasks=results,
                error=message,
            )
        except SearchNotFound:
            logger.error(f"Orchestration aborted: search {search_id} not found")
            raise
        except Exception as exc:
            logger.exception(f"Orchestration crashed for search {search_id}: {exc}")
            try:
                await tracker.fail()
            except Exception as write_exc:
                logger.error(f"Could not mark search {search_id} failed after crash: {write_exc}")
            await self._emit(EventType.ERROR, search_id=search_id, message="Orchestration failed")
            return OrchestrationResult(
                search_id=search_id,
                success=False,
                status=SearchStatus.FAILED,
                per_task_status=dict(tracker.state.status_detail),
                error=f"{type(exc).__name__}: {exc}",
            )


async def run_orchestration(
    search_id: str,
    user_id: str,
    *,
    listener: EventListener | None = None,
) -> OrchestrationResult:
    """Entry point invoked once per search by an external trigger."""
    return await SearchOrchestrator(listener=listener).run(search_id, user_id)
