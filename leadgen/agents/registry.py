from __future__ import annotations

from leadgen.agents.base import TaskDeps, TaskExecutor
from leadgen.agents.business_discovery import BusinessDiscoveryExecutor
from leadgen.agents.market_research import AdvancedMarketResearchExecutor, MarketResearchExecutor
from leadgen.agents.personas import BusinessPersonasExecutor, DecisionMakerPersonasExecutor
from leadgen.config import settings

MARKET_RESEARCH_EXECUTORS: dict[str, type[TaskExecutor]] = {
    "standard": MarketResearchExecutor,
    "advanced": AdvancedMarketResearchExecutor,
}


def executor_classes(market_research_mode: str | None = None) -> list[type[TaskExecutor]]:
    """The four task executors of a run, in launch order."""
    mode = (market_research_mode or settings.market_research_mode).lower().strip()
    if mode not in MARKET_RESEARCH_EXECUTORS:
        raise ValueError(f"Unsupported MARKET_RESEARCH_MODE: {mode}")
    return [
        BusinessPersonasExecutor,
        DecisionMakerPersonasExecutor,
        BusinessDiscoveryExecutor,
        MARKET_RESEARCH_EXECUTORS[mode],
    ]


def build_executors(deps: TaskDeps, market_research_mode: str | None = None) -> list[TaskExecutor]:
    return [cls(deps) for cls in executor_classes(market_research_mode)]
