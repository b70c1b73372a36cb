from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from leadgen.services.jobs import DM_PERSONA_MAPPING, PERSONA_MAPPING, JobDispatcher


@pytest.mark.asyncio
async def test_enqueue_builds_queued_job_row():
    inserter = AsyncMock(return_value={"id": "job-1"})
    dispatcher = JobDispatcher(inserter=inserter)

    assert await dispatcher.enqueue(PERSONA_MAPPING, {"search_id": "search-1"}) is True

    row = inserter.await_args.args[0]
    assert row["type"] == "persona_mapping"
    assert row["payload"] == {"search_id": "search-1"}
    assert row["status"] == "queued"
    assert row["attempts"] == 0
    assert row["max_attempts"] >= 1
    assert row["run_at"]


@pytest.mark.asyncio
async def test_enqueue_failure_is_collected_not_raised():
    dispatcher = JobDispatcher(inserter=AsyncMock(side_effect=RuntimeError("insert denied")))

    ok = await dispatcher.enqueue(DM_PERSONA_MAPPING, {"search_id": "search-1"})

    assert ok is False
    assert len(dispatcher.failures) == 1
    assert dispatcher.failures[0].job_type == "dm_persona_mapping"
    assert "insert denied" in dispatcher.failures[0].error
