from __future__ import annotations

import asyncio

from fastapi import APIRouter, HTTPException
from sse_starlette.sse import EventSourceResponse

from leadgen.agents.orchestrator import run_orchestration
from leadgen.errors import SearchNotFound
from leadgen.models.events import EventType, OrchestrationEvent
from leadgen.models.schemas import OrchestrationResponse, RunSearchRequest
from leadgen.services import supabase as db

router = APIRouter(prefix="/api/searches", tags=["searches"])

_background_runs: set[asyncio.Task] = set()


@router.post("/{search_id}/run", response_model=OrchestrationResponse)
async def run_search(search_id: str, request: RunSearchRequest):
    """Run orchestration to completion and return the per-task outcome."""
    try:
        result = await run_orchestration(search_id, request.user_id)
    except SearchNotFound:
        raise HTTPException(status_code=404, detail="Search not found")
    return result.to_dict()


@router.get("/{search_id}/stream")
async def stream_search(search_id: str, user_id: str):
    """SSE endpoint that runs orchestration and streams its progress events."""
    search = await db.get_search(search_id)
    if not search:
        raise HTTPException(status_code=404, detail="Search not found")

    queue: asyncio.Queue[OrchestrationEvent | None] = asyncio.Queue()

    async def listener(event: OrchestrationEvent) -> None:
        await queue.put(event)

    async def runner() -> None:
        try:
            await run_orchestration(search_id, user_id, listener=listener)
        except SearchNotFound:
            await queue.put(OrchestrationEvent(event=EventType.ERROR, data={"message": "Search not found"}))
        finally:
            await queue.put(None)

    async def event_generator():
        # The run is not tied to the connection: a client disconnect still lets the search settle.
        task = asyncio.create_task(runner())
        _background_runs.add(task)
        task.add_done_callback(_background_runs.discard)
        while True:
            event = await queue.get()
            if event is None:
                break
            yield event.to_sse()

    return EventSourceResponse(event_generator())
