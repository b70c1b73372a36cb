"""Provider fallback chain for persona generation.

Order of steps for one `generate` call:

1. cache lookup for the normalized (kind, product, industries, countries) key
2. providers in order (or raced, see `RacingStrategy`), each parsed and
   checked with the realism gate
3. one repair call on the best parsed-but-invalid batch
4. deterministic template personas

Only rate-limit errors are retried in place; everything else moves to the
next step.
"""
from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol

from leadgen.config import settings
from leadgen.errors import ProviderError, ValidationFailure
from leadgen.llm_client import ProviderClient, build_providers
from leadgen.models.persona import PERSONA_BATCH_SIZE, PersonaKind
from leadgen.models.search import SearchContext
from leadgen.services import supabase as db
from leadgen.services.deterministic import deterministic_personas
from leadgen.services.json_utils import extract_json_object, extract_list
from leadgen.services.logger import logger
from leadgen.services.prompt_store import render_prompt
from leadgen.services.retry import BackoffPolicy, with_retry
from leadgen.services.validation import batch_problems, sanitize

UsageSink = Callable[..., Awaitable[None]]

SOURCE_CACHE = "cache"
SOURCE_DETERMINISTIC = "deterministic"


@dataclass(slots=True)
class ProviderAttempt:
    provider_id: str
    raw_output: str = ""
    parsed_ok: bool = False
    validated_ok: bool = False
    latency_ms: int = 0
    error: str | None = None
    records: list[dict[str, Any]] = field(default_factory=list)
    problems: list[str] = field(default_factory=list)


@dataclass(slots=True)
class GenerationRequest:
    kind: PersonaKind
    context: SearchContext
    system: str
    user: str
    count: int = PERSONA_BATCH_SIZE
    max_tokens: int = 4000


@dataclass(slots=True)
class GenerationResult:
    records: list[dict[str, Any]]
    source: str
    attempts: list[ProviderAttempt] = field(default_factory=list)

    @property
    def used_fallback(self) -> bool:
        return self.source == SOURCE_DETERMINISTIC


def cache_key(kind: PersonaKind, context: SearchContext) -> str:
    base = "|".join(
        [
            context.product_service,
            ",".join(sorted(context.industries)),
            ",".join(sorted(context.countries)),
        ]
    ).lower()
    return f"{kind.value}:{base}"


class GenerationCache:
    """Run-scoped cache of accepted persona batches, optionally backed by the store."""

    def __init__(self, *, persistent: bool = False):
        self.persistent = persistent
        self._entries: dict[str, list[dict[str, Any]]] = {}

    async def get(self, kind: PersonaKind, context: SearchContext) -> list[dict[str, Any]] | None:
        key = cache_key(kind, context)
        if key in self._entries:
            return self._entries[key]
        if not self.persistent:
            return None
        try:
            cached = await db.get_cached_personas(key, kind)
        except Exception as exc:
            logger.warning(f"Persona cache read failed for {key}: {exc}")
            return None
        if cached:
            self._entries[key] = cached
        return cached

    async def set(self, kind: PersonaKind, context: SearchContext, records: list[dict[str, Any]]) -> None:
        key = cache_key(kind, context)
        stored = [{k: v for k, v in r.items() if k not in ("search_id", "user_id")} for r in records]
        self._entries[key] = stored
        if not self.persistent:
            return
        try:
            await db.set_cached_personas(key, kind, stored)
        except Exception as exc:
            logger.warning(f"Persona cache write failed for {key}: {exc}")


def parse_attempt(attempt: ProviderAttempt, request: GenerationRequest) -> ProviderAttempt:
    """Fill parse/validation fields of an attempt from its raw output."""
    try:
        payload = extract_json_object(attempt.raw_output)
    except json.JSONDecodeError as exc:
        attempt.error = f"malformed JSON: {exc.msg}"
        return attempt

    raw_items = extract_list(payload, "personas", "items", "data")
    attempt.parsed_ok = True
    attempt.records = [
        sanitize(request.kind, item, index, request.context)
        for index, item in enumerate(raw_items[: request.count])
    ]
    problems = batch_problems(request.kind, attempt.records)
    if len(attempt.records) != request.count:
        problems.insert(0, f"expected {request.count} personas, got {len(attempt.records)}")
    attempt.problems = problems
    attempt.validated_ok = not problems
    return attempt


class ProviderStrategy(Protocol):
    async def run(self, chain: "FallbackChain", request: GenerationRequest) -> list[ProviderAttempt]:
        """Return attempts in the order they finished; stop early once one validates."""
        ...


class SequentialStrategy:
    """Try providers strictly one after another."""

    async def run(self, chain: "FallbackChain", request: GenerationRequest) -> list[ProviderAttempt]:
        attempts: list[ProviderAttempt] = []
        for provider in chain.providers:
            attempt = await chain.attempt(provider, request)
            attempts.append(attempt)
            if attempt.validated_ok:
                break
        return attempts


class RacingStrategy:
    """Start every provider at once; the first validated batch wins and the rest are cancelled."""

    async def run(self, chain: "FallbackChain", request: GenerationRequest) -> list[ProviderAttempt]:
        tasks = [asyncio.create_task(chain.attempt(provider, request)) for provider in chain.providers]
        attempts: list[ProviderAttempt] = []
        try:
            for next_done in asyncio.as_completed(tasks):
                attempt = await next_done
                attempts.append(attempt)
                if attempt.validated_ok:
                    break
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        return attempts


STRATEGIES: dict[str, type] = {
    "sequential": SequentialStrategy,
    "racing": RacingStrategy,
}


class FallbackChain:
    def __init__(
        self,
        providers: list[ProviderClient],
        *,
        limiter: asyncio.Semaphore,
        cache: GenerationCache | None = None,
        strategy: ProviderStrategy | None = None,
        policy: BackoffPolicy | None = None,
        usage_sink: UsageSink | None = None,
        repair_timeout: float | None = None,
    ):
        self.providers = [p for p in providers if p.configured]
        self.limiter = limiter
        self.cache = cache
        self.strategy = strategy or SequentialStrategy()
        self.policy = policy or BackoffPolicy.from_settings()
        self.usage_sink = usage_sink
        self.repair_timeout = repair_timeout if repair_timeout is not None else settings.repair_timeout_seconds

    async def _call(
        self,
        provider: ProviderClient,
        request: GenerationRequest,
        *,
        user: str,
        timeout: float | None = None,
        endpoint: str = "generate",
    ) -> ProviderAttempt:
        attempt = ProviderAttempt(provider_id=provider.provider_id)
        started = time.perf_counter()

        async def call() -> Any:
            async with self.limiter:
                return await provider.complete(
                    system=request.system,
                    user=user,
                    max_tokens=request.max_tokens,
                    timeout=timeout,
                    caller=f"{request.kind.value}_personas",
                )

        try:
            response = await with_retry(call, policy=self.policy, label=provider.provider_id)
        except ProviderError as exc:
            attempt.error = str(exc)
            attempt.latency_ms = int((time.perf_counter() - started) * 1000)
            await self._record_usage(request, attempt, endpoint, tokens=0)
            return attempt

        attempt.raw_output = response.text
        attempt.latency_ms = int((time.perf_counter() - started) * 1000)
        parse_attempt(attempt, request)
        await self._record_usage(request, attempt, endpoint, tokens=response.usage.total_tokens)
        return attempt

    async def attempt(self, provider: ProviderClient, request: GenerationRequest) -> ProviderAttempt:
        attempt = await self._call(provider, request, user=request.user)
        if attempt.validated_ok:
            logger.info(f"{request.kind.value} personas accepted from {provider.provider_id} in {attempt.latency_ms}ms")
        else:
            reason = attempt.error or "; ".join(attempt.problems[:3])
            logger.warning(f"{request.kind.value} personas rejected from {provider.provider_id}: {reason}")
        return attempt

    async def repair(self, request: GenerationRequest, best: ProviderAttempt) -> ProviderAttempt | None:
        """One repair call asking the first provider to fix only the invalid fields."""
        if not self.providers:
            return None
        context = request.context
        label = "business personas" if request.kind is PersonaKind.BUSINESS else "decision-maker personas"
        prompt = render_prompt(
            "personas.repair",
            count=request.count,
            label=label,
            product_service=context.product_service,
            industries=", ".join(context.industries) or "any",
            countries=", ".join(context.countries) or "any",
            problems="\n".join(f"- {p}" for p in best.problems[:20]),
            personas_json=json.dumps(
                [{k: v for k, v in r.items() if k not in ("search_id", "user_id")} for r in best.records]
            ),
        )
        provider = self.providers[0]
        attempt = await self._call(provider, request, user=prompt, timeout=self.repair_timeout, endpoint="repair")
        logger.info(
            f"{request.kind.value} persona repair via {provider.provider_id}: "
            f"{'accepted' if attempt.validated_ok else attempt.error or 'still invalid'}"
        )
        return attempt

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Return a validated batch; falls back to templates when every generator fails."""
        kind, context = request.kind, request.context

        if self.cache is not None:
            cached = await self.cache.get(kind, context)
            if cached:
                records = [sanitize(kind, item, i, context) for i, item in enumerate(cached[: request.count])]
                if len(records) == request.count and not batch_problems(kind, records):
                    logger.info(f"{kind.value} personas served from cache for search {context.id}")
                    return GenerationResult(records=records, source=SOURCE_CACHE)

        attempts = await self.strategy.run(self, request)
        for attempt in attempts:
            if attempt.validated_ok:
                await self._remember(request, attempt.records)
                return GenerationResult(records=attempt.records, source=attempt.provider_id, attempts=attempts)

        parsed = [a for a in attempts if a.parsed_ok and a.records]
        if parsed:
            best = min(parsed, key=lambda a: len(a.problems))
            repaired = await self.repair(request, best)
            if repaired is not None:
                attempts.append(repaired)
                if repaired.validated_ok:
                    await self._remember(request, repaired.records)
                    return GenerationResult(
                        records=repaired.records,
                        source=f"repair:{repaired.provider_id}",
                        attempts=attempts,
                    )

        records = [sanitize(kind, item, i, context) for i, item in enumerate(deterministic_personas(kind, context))]
        problems = batch_problems(kind, records)
        if problems:
            raise ValidationFailure(f"deterministic {kind.value} personas rejected: {problems[:3]}")
        logger.warning(f"{kind.value} personas for search {context.id} fell back to deterministic templates")
        return GenerationResult(records=records, source=SOURCE_DETERMINISTIC, attempts=attempts)

    async def _remember(self, request: GenerationRequest, records: list[dict[str, Any]]) -> None:
        if self.cache is not None:
            await self.cache.set(request.kind, request.context, records)

    async def _record_usage(self, request: GenerationRequest, attempt: ProviderAttempt, endpoint: str, *, tokens: int) -> None:
        if self.usage_sink is None:
            return
        status = "ok" if attempt.validated_ok else "invalid" if attempt.parsed_ok else "error"
        await self.usage_sink(
            provider=attempt.provider_id,
            endpoint=f"{request.kind.value}_personas:{endpoint}",
            status=status,
            ms=attempt.latency_ms,
            tokens=tokens,
            search_id=request.context.id,
            user_id=request.context.user_id,
            response={"error": attempt.error, "problems": attempt.problems[:5]},
        )


def build_fallback_chain(
    *,
    limiter: asyncio.Semaphore,
    cache: GenerationCache | None = None,
    providers: list[ProviderClient] | None = None,
) -> FallbackChain:
    """Chain wired from settings: configured providers, strategy and usage logging."""
    strategy_name = settings.provider_strategy.lower().strip()
    if strategy_name not in STRATEGIES:
        raise ValueError(f"Unsupported PROVIDER_STRATEGY: {settings.provider_strategy}")
    return FallbackChain(
        providers if providers is not None else build_providers(),
        limiter=limiter,
        cache=cache,
        strategy=STRATEGIES[strategy_name](),
        usage_sink=db.log_api_usage,
    )
