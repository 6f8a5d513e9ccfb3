"""OpenRouter completion client over the OpenAI-compatible SDK."""
from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator

from openai import AsyncOpenAI, OpenAIError

from ithbat.config import settings
from ithbat.services.logger import log_llm_call


class ModelTier(str, Enum):
    QUICK = "quick"
    HIGH = "high"


class CompletionServiceError(RuntimeError):
    """The completion service is misconfigured or failed mid-call."""


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass(frozen=True)
class ModelSpec:
    id: str
    max_tokens: int
    temperature: float


def model_for(tier: ModelTier) -> ModelSpec:
    if tier == ModelTier.HIGH:
        return ModelSpec(settings.high_model, settings.high_max_tokens, settings.llm_temperature)
    return ModelSpec(settings.quick_model, settings.quick_max_tokens, settings.llm_temperature)


def get_openai_client() -> AsyncOpenAI:
    """OpenRouter via the OpenAI SDK, with the app attribution headers."""
    if not settings.openrouter_api_key:
        raise CompletionServiceError("OPENROUTER_API_KEY is not set")
    base_url = settings.openrouter_base_url.strip() or "https://openrouter.ai/api/v1"
    return AsyncOpenAI(
        api_key=settings.openrouter_api_key,
        base_url=base_url,
        default_headers={
            "HTTP-Referer": settings.app_referer,
            "X-Title": settings.app_title,
        },
    )


class CompletionClient:
    """Streams chat completions for a model tier and logs every call."""

    def __init__(self, openai_client: Any | None = None):
        self._client = openai_client

    @property
    def openai(self) -> Any:
        if self._client is None:
            self._client = get_openai_client()
        return self._client

    async def stream_chat(
        self,
        messages: list[dict[str, Any]],
        tier: ModelTier = ModelTier.QUICK,
        *,
        caller: str = "completion",
    ) -> AsyncIterator[str]:
        """Yield text deltas as the model produces them."""
        spec = model_for(tier)
        usage = Usage()
        t0 = time.monotonic()
        try:
            stream = await self.openai.chat.completions.create(
                model=spec.id,
                messages=messages,
                max_tokens=spec.max_tokens,
                temperature=spec.temperature,
                stream=True,
                stream_options={"include_usage": True},
            )
            async for chunk in stream:
                chunk_usage = getattr(chunk, "usage", None)
                if chunk_usage:
                    usage = Usage(
                        input_tokens=getattr(chunk_usage, "prompt_tokens", 0) or 0,
                        output_tokens=getattr(chunk_usage, "completion_tokens", 0) or 0,
                    )
                choices = getattr(chunk, "choices", None) or []
                if not choices:
                    continue
                delta = getattr(choices[0], "delta", None)
                text = getattr(delta, "content", None) if delta else None
                if text:
                    yield text
        except OpenAIError as exc:
            log_llm_call(
                model=spec.id,
                caller=caller,
                duration_ms=int((time.monotonic() - t0) * 1000),
                status="error",
                error=str(exc),
            )
            raise CompletionServiceError(f"Completion service error: {exc}") from exc

        log_llm_call(
            model=spec.id,
            caller=caller,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )

    async def complete(
        self,
        messages: list[dict[str, Any]],
        tier: ModelTier = ModelTier.QUICK,
        *,
        caller: str = "completion",
    ) -> str:
        parts: list[str] = []
        async for text in self.stream_chat(messages, tier, caller=caller):
            parts.append(text)
        return "".join(parts)


_client: CompletionClient | None = None


def client() -> CompletionClient:
    """Get or create the completion client."""
    global _client
    if _client is None:
        _client = CompletionClient()
    return _client
