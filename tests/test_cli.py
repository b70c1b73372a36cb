from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

import main as cli
from leadgen.agents.orchestrator import OrchestrationResult
from leadgen.errors import SearchNotFound
from leadgen.models.search import SearchStatus


@pytest.mark.asyncio
@pytest.mark.parametrize("success,expected", [(True, 0), (False, 1)])
async def test_exit_code_follows_outcome(success, expected, capsys):
    result = OrchestrationResult(
        search_id="search-1",
        success=success,
        status=SearchStatus.COMPLETED if success else SearchStatus.FAILED,
        per_task_status={"business_discovery": "done" if success else "failed"},
    )
    with patch("main.run_orchestration", new=AsyncMock(return_value=result)):
        code = await cli.run_search("search-1", "user-1")

    assert code == expected
    assert "business_discovery" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_missing_search_exits_with_2():
    with patch("main.run_orchestration", new=AsyncMock(side_effect=SearchNotFound("missing"))):
        assert await cli.run_search("missing", "user-1") == 2
