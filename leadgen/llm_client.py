"""OpenAI-compatible generator clients for the provider fallback chain.

Every backend (OpenAI, Gemini, DeepSeek) speaks the chat-completions wire
format, so a single adapter over `openai.AsyncOpenAI` with a per-provider
base URL covers all of them.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any

import openai
from openai import AsyncOpenAI

from leadgen.config import settings
from leadgen.errors import ProviderError, RateLimitError
from leadgen.services.logger import log_llm_call, logger


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class CompletionResponse:
    text: str
    provider: str
    model: str
    usage: Usage = field(default_factory=Usage)
    latency_ms: int = 0


def _temperature_for_model(model: str) -> float:
    # GPT-5 family endpoints only accept the default temperature.
    lowered = (model or "").lower()
    if "gpt-5" in lowered:
        return 1
    return 0.7


class ProviderClient:
    """One generator backend with its own model and default timeout."""

    def __init__(
        self,
        provider_id: str,
        *,
        model: str,
        base_url: str,
        api_key: str,
        timeout: float,
        openai_client: Any | None = None,
    ):
        self.provider_id = provider_id
        self.model = model
        self.timeout = timeout
        self.configured = bool(api_key)
        # Retries are owned by the fallback chain, so the SDK must not retry 429s itself.
        self._client = openai_client or AsyncOpenAI(
            api_key=api_key or "unset",
            base_url=base_url,
            max_retries=0,
        )

    def __repr__(self) -> str:
        return f"ProviderClient({self.provider_id!r}, model={self.model!r})"

    async def complete(
        self,
        *,
        system: str,
        user: str,
        max_tokens: int,
        timeout: float | None = None,
        json_mode: bool = True,
        caller: str = "fallback_chain",
    ) -> CompletionResponse:
        """Run one chat completion and classify failures.

        Raises RateLimitError for HTTP 429 and ProviderError for every other
        failure, including timeouts and empty responses.
        """
        if not self.configured:
            raise ProviderError(self.provider_id, "API key is not configured")

        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "max_tokens": max_tokens,
            "temperature": _temperature_for_model(self.model),
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        budget = timeout if timeout is not None else self.timeout
        started = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(**kwargs),
                timeout=budget,
            )
        except asyncio.TimeoutError as exc:
            self._log_failure(caller, started, f"timeout after {budget}s")
            raise ProviderError(self.provider_id, f"timeout after {budget}s") from exc
        except openai.RateLimitError as exc:
            self._log_failure(caller, started, "rate limited")
            raise RateLimitError(self.provider_id) from exc
        except openai.APIStatusError as exc:
            self._log_failure(caller, started, f"HTTP {exc.status_code}")
            if exc.status_code == 429:
                raise RateLimitError(self.provider_id) from exc
            raise ProviderError(self.provider_id, f"HTTP {exc.status_code}", status_code=exc.status_code) from exc
        except openai.APIError as exc:
            self._log_failure(caller, started, str(exc))
            raise ProviderError(self.provider_id, str(exc)) from exc

        latency_ms = int((time.perf_counter() - started) * 1000)
        choices = getattr(response, "choices", None) or []
        text = ""
        if choices:
            message = getattr(choices[0], "message", None)
            text = getattr(message, "content", None) or ""
        usage = getattr(response, "usage", None)
        mapped_usage = Usage(
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
        )
        log_llm_call(
            provider=self.provider_id,
            model=self.model,
            caller=caller,
            input_tokens=mapped_usage.input_tokens,
            output_tokens=mapped_usage.output_tokens,
            duration_ms=latency_ms,
        )
        if not text.strip():
            raise ProviderError(self.provider_id, "empty response")
        return CompletionResponse(
            text=text,
            provider=self.provider_id,
            model=self.model,
            usage=mapped_usage,
            latency_ms=latency_ms,
        )

    def _log_failure(self, caller: str, started: float, error: str) -> None:
        log_llm_call(
            provider=self.provider_id,
            model=self.model,
            caller=caller,
            duration_ms=int((time.perf_counter() - started) * 1000),
            status="error",
            error=error,
        )


def build_providers() -> list[ProviderClient]:
    """Providers in fallback order: fast OpenAI tier, Gemini, DeepSeek."""
    providers = [
        ProviderClient(
            "openai",
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            api_key=settings.openai_api_key,
            timeout=settings.openai_timeout_seconds,
        ),
        ProviderClient(
            "gemini",
            model=settings.gemini_model,
            base_url=settings.gemini_base_url,
            api_key=settings.gemini_api_key,
            timeout=settings.gemini_timeout_seconds,
        ),
        ProviderClient(
            "deepseek",
            model=settings.deepseek_model,
            base_url=settings.deepseek_base_url,
            api_key=settings.deepseek_api_key,
            timeout=settings.deepseek_timeout_seconds,
        ),
    ]
    missing = [p.provider_id for p in providers if not p.configured]
    if missing:
        logger.warning(f"Providers without API keys will be skipped: {missing}")
    return providers
