"""Web research through a search-capable completion model.

The search service answers with prose plus the URLs it cited. Perplexity is
the primary provider; an OpenRouter web-search model is the fallback when
Perplexity is unconfigured or fails.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Iterable

from loguru import logger
from openai import AsyncOpenAI, OpenAIError

from ithbat.config import settings
from ithbat.llm_client import CompletionServiceError, get_openai_client
from ithbat.models.research import ConversationTurn
from ithbat.services.logger import log_llm_call
from ithbat.services.prompt_store import render_history, render_prompt


class SearchServiceError(RuntimeError):
    """No search provider could answer."""


@dataclass(frozen=True)
class SearchCitation:
    url: str
    title: str = ""


@dataclass
class SearchResponse:
    prose: str
    citations: list[SearchCitation] = field(default_factory=list)
    provider: str = ""
    fallback_from: str | None = None
    fallback_reason: str | None = None

    @property
    def urls(self) -> list[str]:
        return [c.url for c in self.citations]


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    value = getattr(obj, name, None)
    if value is None:
        extra = getattr(obj, "model_extra", None) or {}
        value = extra.get(name)
    return value


def _dedupe(citations: Iterable[SearchCitation]) -> list[SearchCitation]:
    seen: set[str] = set()
    unique: list[SearchCitation] = []
    for citation in citations:
        if citation.url and citation.url not in seen:
            seen.add(citation.url)
            unique.append(citation)
    return unique


def build_messages(
    query: str,
    understanding: str = "",
    history: Iterable[ConversationTurn] | None = None,
) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": render_prompt("research.system")},
        {
            "role": "user",
            "content": render_prompt(
                "research.web_research",
                history=render_history(history),
                query=query,
                understanding=understanding or "Not available",
            ),
        },
    ]


def perplexity_citations(response: Any) -> list[SearchCitation]:
    """Citations from a Perplexity response.

    ``search_results`` carries titles; the older ``citations`` field is a
    bare URL list.
    """
    citations: list[SearchCitation] = []
    for result in _field(response, "search_results") or []:
        url = _field(result, "url")
        if url:
            citations.append(SearchCitation(url=url, title=_field(result, "title") or ""))
    for url in _field(response, "citations") or []:
        if isinstance(url, str):
            citations.append(SearchCitation(url=url))
    return _dedupe(citations)


def annotation_citations(message: Any) -> list[SearchCitation]:
    """``url_citation`` annotations from an OpenRouter web-search reply."""
    citations: list[SearchCitation] = []
    for annotation in _field(message, "annotations") or []:
        if _field(annotation, "type") != "url_citation":
            continue
        # Annotations nest the fields under url_citation; older replies inline them.
        detail = _field(annotation, "url_citation") or annotation
        url = _field(detail, "url")
        if url:
            citations.append(SearchCitation(url=url, title=_field(detail, "title") or ""))
    return _dedupe(citations)


async def _search_perplexity(messages: list[dict[str, str]]) -> SearchResponse:
    if not settings.perplexity_api_key:
        raise SearchServiceError("PERPLEXITY_API_KEY is not set")
    openai_client = AsyncOpenAI(
        api_key=settings.perplexity_api_key,
        base_url=settings.perplexity_base_url,
    )
    t0 = time.monotonic()
    try:
        response = await openai_client.chat.completions.create(
            model=settings.perplexity_model,
            messages=messages,
            max_tokens=settings.search_max_tokens,
            temperature=settings.llm_temperature,
        )
    except OpenAIError as exc:
        log_llm_call(
            model=settings.perplexity_model,
            caller="search.perplexity",
            duration_ms=int((time.monotonic() - t0) * 1000),
            status="error",
            error=str(exc),
        )
        raise SearchServiceError(f"Perplexity search failed: {exc}") from exc

    usage = getattr(response, "usage", None)
    log_llm_call(
        model=settings.perplexity_model,
        caller="search.perplexity",
        input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
        output_tokens=getattr(usage, "completion_tokens", 0) or 0,
        duration_ms=int((time.monotonic() - t0) * 1000),
    )
    prose = (response.choices[0].message.content or "") if response.choices else ""
    return SearchResponse(prose=prose, citations=perplexity_citations(response), provider="perplexity")


async def _search_openrouter(messages: list[dict[str, str]]) -> SearchResponse:
    try:
        openai_client = get_openai_client()
    except CompletionServiceError as exc:
        raise SearchServiceError(str(exc)) from exc
    t0 = time.monotonic()
    try:
        response = await openai_client.chat.completions.create(
            model=settings.openrouter_search_model,
            messages=messages,
            max_tokens=settings.search_max_tokens,
            temperature=settings.llm_temperature,
        )
    except OpenAIError as exc:
        log_llm_call(
            model=settings.openrouter_search_model,
            caller="search.openrouter",
            duration_ms=int((time.monotonic() - t0) * 1000),
            status="error",
            error=str(exc),
        )
        raise SearchServiceError(f"OpenRouter search failed: {exc}") from exc

    usage = getattr(response, "usage", None)
    log_llm_call(
        model=settings.openrouter_search_model,
        caller="search.openrouter",
        input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
        output_tokens=getattr(usage, "completion_tokens", 0) or 0,
        duration_ms=int((time.monotonic() - t0) * 1000),
    )
    if not response.choices:
        return SearchResponse(prose="", provider="openrouter")
    message = response.choices[0].message
    citations = annotation_citations(message) or perplexity_citations(response)
    return SearchResponse(prose=message.content or "", citations=citations, provider="openrouter")


async def search(
    query: str,
    *,
    understanding: str = "",
    history: Iterable[ConversationTurn] | None = None,
) -> SearchResponse:
    provider = settings.search_provider.lower().strip()
    messages = build_messages(query, understanding, history)

    if provider == "openrouter":
        return await _search_openrouter(messages)

    if provider == "perplexity":
        try:
            return await _search_perplexity(messages)
        except SearchServiceError as exc:
            if not settings.search_fallback_to_openrouter:
                raise
            logger.warning(f"Perplexity search unavailable, falling back to OpenRouter: {exc}")
            fallback = await _search_openrouter(messages)
            fallback.fallback_from = "perplexity"
            fallback.fallback_reason = str(exc)
            return fallback

    raise ValueError(f"Unsupported SEARCH_PROVIDER: {settings.search_provider}")
