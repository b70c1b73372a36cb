from __future__ import annotations

from pydantic import BaseModel


# --- Requests ---


class RunSearchRequest(BaseModel):
    user_id: str


# --- Responses ---


class TaskStatusResponse(BaseModel):
    key: str
    weight: int
    outcome: str
    essential: bool
    error: str | None = None
    duration_ms: int = 0


class DispatchFailureResponse(BaseModel):
    job_type: str
    error: str


class OrchestrationResponse(BaseModel):
    search_id: str
    success: bool
    status: str
    per_task_status: dict[str, str]
    tasks: list[TaskStatusResponse] = []
    dispatch_failures: list[DispatchFailureResponse] = []
    error: str | None = None
