from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from supabase import Client, create_client

from leadgen.config import settings
from leadgen.errors import PersistenceError
from leadgen.models.persona import PersonaKind
from leadgen.services.logger import log_db_operation, logger


def get_client() -> Client:
    return create_client(settings.supabase_url, settings.supabase_service_key)


_client: Client | None = None


def client() -> Client:
    global _client
    if _client is None:
        _client = get_client()
    return _client


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _execute(query: Any) -> Any:
    """Run blocking Supabase query execution in a worker thread."""
    return await asyncio.to_thread(query.execute)


async def _run(operation: str, table: str, build_query: Callable[[], Any], details: str | None = None) -> Any:
    """Build and execute a query; client creation errors surface as PersistenceError too."""
    try:
        result = await _execute(build_query())
    except Exception as exc:
        log_db_operation(operation, table, "failed", details=details, error=str(exc))
        raise PersistenceError(operation, table, str(exc)) from exc
    log_db_operation(operation, table, "ok", details=details)
    return result


def _coerce_json_object(value: Any) -> dict[str, Any]:
    """Normalize legacy JSON-string fields into dictionaries."""
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


# --- Searches ---


async def get_search(search_id: str) -> dict[str, Any] | None:
    result = await _run(
        "select",
        "user_searches",
        lambda: client().table("user_searches").select("*").eq("id", search_id),
        details=search_id,
    )
    if not result.data:
        return None
    row = dict(result.data[0])
    row["agent_metadata"] = _coerce_json_object(row.get("agent_metadata"))
    return row


async def update_search_progress(
    search_id: str,
    *,
    phase: str,
    progress_pct: int,
    status: str,
    status_detail: dict[str, str] | None = None,
) -> None:
    data: dict[str, Any] = {
        "phase": phase,
        "progress_pct": progress_pct,
        "status": status,
        "updated_at": _now(),
    }
    if status_detail is not None:
        data["status_detail"] = status_detail
    await _run(
        "update",
        "user_searches",
        lambda: client().table("user_searches").update(data).eq("id", search_id),
        details=f"{phase}:{progress_pct}",
    )


async def merge_agent_metadata(search_id: str, patch: dict[str, Any]) -> dict[str, Any]:
    row = await get_search(search_id)
    merged = {**(row or {}).get("agent_metadata", {}), **patch}
    await _run(
        "update",
        "user_searches",
        lambda: client()
        .table("user_searches")
        .update({"agent_metadata": merged, "updated_at": _now()})
        .eq("id", search_id),
        details="agent_metadata",
    )
    return merged


# --- Personas ---


async def replace_personas(kind: PersonaKind, search_id: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Replace every persona of one kind for a search so reruns never accumulate duplicates."""
    table = kind.table
    await _run("delete", table, lambda: client().table(table).delete().eq("search_id", search_id), details=search_id)
    if not rows:
        return []
    result = await _run("insert", table, lambda: client().table(table).insert(rows), details=f"{len(rows)} rows")
    return result.data or []


async def get_personas(kind: PersonaKind, search_id: str) -> list[dict[str, Any]]:
    table = kind.table
    result = await _run(
        "select",
        table,
        lambda: client().table(table).select("*").eq("search_id", search_id).order("rank"),
    )
    return result.data or []


# --- Businesses and market insights ---


async def insert_businesses(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    if not rows:
        return []
    result = await _run(
        "insert",
        "businesses",
        lambda: client().table("businesses").insert(rows),
        details=f"{len(rows)} rows",
    )
    return result.data or []


async def insert_market_insights(row: dict[str, Any]) -> dict[str, Any]:
    result = await _run("insert", "market_insights", lambda: client().table("market_insights").insert(row))
    return result.data[0] if result.data else {}


# --- Jobs ---


async def insert_job(row: dict[str, Any]) -> dict[str, Any]:
    result = await _run("insert", "jobs", lambda: client().table("jobs").insert(row), details=row.get("type"))
    return result.data[0] if result.data else {}


# --- Persona cache ---


async def get_cached_personas(cache_key: str, kind: PersonaKind) -> list[dict[str, Any]] | None:
    result = await _run(
        "select",
        "persona_cache",
        lambda: client()
        .table("persona_cache")
        .select("personas, created_at")
        .eq("cache_key", cache_key)
        .eq("kind", kind.value)
        .order("created_at", desc=True)
        .limit(1),
    )
    if not result.data:
        return None
    row = result.data[0]
    created_at = row.get("created_at")
    if isinstance(created_at, str):
        try:
            created = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
        except ValueError:
            created = None
        if created and datetime.now(timezone.utc) - created > timedelta(hours=settings.persona_cache_ttl_hours):
            return None
    personas = row.get("personas")
    if isinstance(personas, str):
        try:
            personas = json.loads(personas)
        except json.JSONDecodeError:
            return None
    return personas if isinstance(personas, list) else None


async def set_cached_personas(cache_key: str, kind: PersonaKind, personas: list[dict[str, Any]]) -> None:
    await _run(
        "upsert",
        "persona_cache",
        lambda: client()
        .table("persona_cache")
        .upsert(
            {"cache_key": cache_key, "kind": kind.value, "personas": personas, "created_at": _now()},
            on_conflict="cache_key,kind",
        ),
    )


# --- API usage ---


async def log_api_usage(
    *,
    provider: str,
    endpoint: str,
    status: str,
    ms: int = 0,
    tokens: int = 0,
    search_id: str | None = None,
    user_id: str | None = None,
    request: dict[str, Any] | None = None,
    response: dict[str, Any] | None = None,
) -> None:
    """Best-effort usage row. Never raises."""
    row = {
        "provider": provider,
        "endpoint": endpoint,
        "status": status,
        "ms": ms,
        "tokens": tokens,
        "search_id": search_id,
        "user_id": user_id,
        "request": request or {},
        "response": response or {},
        "created_at": _now(),
    }
    try:
        await _execute(client().table("api_usage_logs").insert(row))
    except Exception as exc:
        logger.debug(f"api_usage_logs insert skipped: {exc}")
