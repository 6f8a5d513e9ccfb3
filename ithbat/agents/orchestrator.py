from __future__ import annotations

import asyncio
import time
import uuid
from typing import Any, AsyncGenerator, AsyncIterator, Awaitable, Callable, Iterable

from loguru import logger

from ithbat.agents.evidence_extractor import EvidenceExtractor
from ithbat.config import settings
from ithbat.llm_client import CompletionClient, ModelTier, client as llm_client
from ithbat.models.events import SSEEvent
from ithbat.models.research import (
    DEFAULT_STEP_TITLES,
    ConversationTurn,
    PipelineStep,
    Source,
    StepStatus,
    StepType,
    session_state,
)
from ithbat.research_core.evidence.accumulator import EvidenceAccumulator
from ithbat.research_core.references.resolver import extract_urls
from ithbat.services import streaming
from ithbat.services.logger import log_event, log_research_step
from ithbat.services.personal_question import is_personal_question
from ithbat.services.prompt_store import render_history, render_prompt
from ithbat.tools import search_provider, web_utils
from ithbat.tools.crawler import CrawledPage, Crawler, CrawlProgress
from ithbat.tools.search_provider import SearchResponse
from ithbat.traverser.config_store import SiteConfigStore, get_config_store

SearchFn = Callable[..., Awaitable[SearchResponse]]


class ResearchInputError(ValueError):
    """The query is missing or blank."""


class ResearchCancelled(Exception):
    """Raised at a checkpoint once the session's cancel flag is set."""


_END = object()


class EventChannel:
    """The session's single ordered event stream.

    Any stage may emit; one consumer drains. Nothing is delivered once the
    cancel flag is set.
    """

    def __init__(self, cancel_event: asyncio.Event):
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._cancel = cancel_event
        self._closed = False

    def emit(self, event: SSEEvent) -> None:
        if self._closed or self._cancel.is_set():
            return
        self._queue.put_nowait(event)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_END)

    async def __aiter__(self) -> AsyncIterator[SSEEvent]:
        while not self._cancel.is_set():
            item = await self._queue.get()
            if item is _END or self._cancel.is_set():
                return
            yield item


def chunk_text(text: str, size: int) -> list[str]:
    size = max(size, 1)
    return [text[i : i + size] for i in range(0, len(text), size)]


class ResearchOrchestrator:
    """Runs one research session as an ordered stream of events.

    Flow:
      1. understanding: the completion service analyses the question (streamed)
      2. searching: the search service answers with prose and cited URLs
      3. exploring: cited pages are crawled in batches and mined for evidence
      4. synthesizing: the evidence appendix is formatted and linked
      5. the search prose, then the appendix, stream as the response

    Steps, sources and response text are kept on the instance so callers can
    compare them with a client-side replay of the same events.
    """

    def __init__(
        self,
        *,
        session_id: str | None = None,
        completion: CompletionClient | None = None,
        search: SearchFn | None = None,
        crawler: Crawler | None = None,
        extractor: EvidenceExtractor | None = None,
        config_store: SiteConfigStore | None = None,
        cancel_event: asyncio.Event | None = None,
        chunk_size: int | None = None,
        chunk_delay_ms: int | None = None,
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self.completion = completion
        self.search = search or search_provider.search
        self.config_store = config_store or get_config_store()
        self.crawler = crawler or Crawler(config_store=self.config_store)
        self.extractor = extractor or EvidenceExtractor(completion)
        self.cancel_event = cancel_event or asyncio.Event()
        self.chunk_size = chunk_size or settings.response_chunk_size
        self.chunk_delay_ms = (
            settings.response_chunk_delay_ms if chunk_delay_ms is None else chunk_delay_ms
        )

        self.steps: list[PipelineStep] = []
        self.sources: list[Source] = []
        self.response = ""
        self.accumulator = EvidenceAccumulator()
        self._source_urls: set[str] = set()
        self._channel: EventChannel | None = None

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def state(self) -> dict[str, Any]:
        return session_state(self.steps, self.sources, self.response)

    def _emit(self, event: SSEEvent) -> None:
        if self._channel is not None:
            self._channel.emit(event)

    def _checkpoint(self) -> None:
        if self.cancelled:
            raise ResearchCancelled()

    def _start_step(self, step_type: StepType) -> PipelineStep:
        self._checkpoint()
        step = PipelineStep(
            id=f"{self.session_id}-{step_type.value}",
            type=step_type,
            title=DEFAULT_STEP_TITLES[step_type],
        )
        step.start()
        self.steps.append(step)
        log_research_step(self.session_id, step_type.value, "in_progress")
        self._emit(streaming.step_start(step_type, step.title))
        return step

    def _append(self, step: PipelineStep, content: str) -> None:
        if not content or self.cancelled or step.status != StepStatus.IN_PROGRESS:
            return
        step.append(content)
        self._emit(streaming.step_content(step.type, content))

    def _complete_step(self, step: PipelineStep, **data: Any) -> None:
        self._checkpoint()
        step.complete()
        log_research_step(self.session_id, step.type.value, "completed", data or None)
        self._emit(streaming.step_complete(step.type))

    def _add_source(self, url: str, title: str = "") -> Source | None:
        """Number a newly discovered URL; ids start at 1 and never repeat."""
        if url in self._source_urls or self.cancelled:
            return None
        self._source_urls.add(url)
        domain = web_utils.extract_domain(url)
        src = Source(
            id=len(self.sources) + 1,
            title=(title or domain).strip()[:200],
            url=url,
            domain=domain,
            trusted=self.config_store.is_trusted(url),
        )
        self.sources.append(src)
        self._emit(streaming.source(src))
        return src

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _stream_completion(
        self,
        step: PipelineStep,
        messages: list[dict[str, str]],
        tier: ModelTier,
        caller: str,
    ) -> str:
        completion = self.completion or llm_client()
        parts: list[str] = []
        async for text in completion.stream_chat(messages, tier, caller=caller):
            self._checkpoint()
            parts.append(text)
            self._append(step, text)
        return "".join(parts)

    async def _understand(self, query: str, history: list[ConversationTurn]) -> str:
        step = self._start_step(StepType.UNDERSTANDING)
        messages = [
            {"role": "system", "content": render_prompt("research.system")},
            {
                "role": "user",
                "content": render_prompt(
                    "research.understanding", history=render_history(history), query=query
                ),
            },
        ]
        understanding = await self._stream_completion(
            step, messages, ModelTier.QUICK, "orchestrator.understanding"
        )
        self._complete_step(step, chars=len(understanding))
        return understanding

    async def _search(
        self,
        query: str,
        understanding: str,
        history: list[ConversationTurn],
    ) -> tuple[str, list[str]]:
        step = self._start_step(StepType.SEARCHING)
        self._append(step, f'Searching for "{query}"...\n\n')

        result = await self.search(query, understanding=understanding, history=history)
        self._checkpoint()
        if result.fallback_from:
            self._append(step, f"Using {result.provider} search ({result.fallback_from} unavailable)\n")

        titles = {c.url: c.title for c in result.citations}
        urls: list[str] = []
        for url in [*titles, *extract_urls(result.prose)]:
            if web_utils.is_valid_url(url) and url not in urls:
                urls.append(url)
        for url in urls:
            self._add_source(url, titles.get(url, ""))

        self._append(step, f"Found {len(urls)} candidate sources\n")
        self._complete_step(step, provider=result.provider, urls=len(urls))
        return result.prose, urls

    async def _explore(self, query: str, urls: list[str]) -> list[CrawledPage]:
        step = self._start_step(StepType.EXPLORING)
        capped = urls[: self.crawler.max_urls]
        self._append(step, f"Verifying {len(capped)} of {len(urls)} sources...\n\n")

        def on_progress(progress: CrawlProgress) -> None:
            if progress.type == "found":
                self._append(step, f"✓ Found: {(progress.title or 'Page')[:60]}\n")
                self._add_source(progress.url, progress.title)
            else:
                self._append(step, f"✗ Failed: {progress.url}\n")

        async def on_page(page: CrawledPage) -> None:
            evidence = await self.extractor.extract_evidence(
                page.url,
                page.content,
                query,
                on_progress=lambda message: self._append(step, f"  {message}\n"),
            )
            if self.cancelled:
                return
            self.accumulator.add_evidence(evidence, page.url)

        pages = await self.crawler.crawl(
            capped, on_progress=on_progress, cancel_event=self.cancel_event, on_page=on_page
        )
        self._checkpoint()

        self._append(
            step,
            f"\n━━━ Verified {len(pages)} pages: {self.accumulator.summary()} ━━━\n",
        )
        self._complete_step(step, pages=len(pages), evidence=self.accumulator.get_evidence().total)
        return pages

    def _synthesize(self) -> str:
        step = self._start_step(StepType.SYNTHESIZING)
        section = ""
        if self.accumulator.has_evidence():
            self._append(step, f"Compiling {self.accumulator.summary()}...\n")
            section = self.accumulator.format_evidence_section()
        else:
            self._append(step, "No structured evidence extracted; presenting research findings.\n")
        self._complete_step(step, evidence_section=bool(section))
        return section

    async def _stream_response(self, *parts: str) -> None:
        self._checkpoint()
        self._emit(streaming.response_start())
        for part in parts:
            for chunk in chunk_text(part, self.chunk_size):
                self._checkpoint()
                self.response += chunk
                self._emit(streaming.response_content(chunk))
                if self.chunk_delay_ms > 0:
                    await asyncio.sleep(self.chunk_delay_ms / 1000)

    async def _run(
        self,
        channel: EventChannel,
        query: str,
        history: list[ConversationTurn],
        language: str,
    ) -> None:
        t0 = time.monotonic()
        try:
            self._emit(streaming.session_init(self.session_id))
            if is_personal_question(query, language):
                self._emit(streaming.personal_question())

            understanding = await self._understand(query, history)
            prose, urls = await self._search(query, understanding, history)
            if urls:
                await self._explore(query, urls)
            section = self._synthesize()
            await self._stream_response(prose, section)

            self._checkpoint()
            self._emit(streaming.done())
            log_event(
                "research_complete",
                "Research complete",
                session_id=self.session_id,
                sources=len(self.sources),
                runtime_ms=int((time.monotonic() - t0) * 1000),
            )
        except ResearchCancelled:
            logger.info(f"Research {self.session_id} cancelled")
        except Exception as exc:
            logger.exception(f"Research {self.session_id} failed: {exc}")
            for step in self.steps:
                if step.status == StepStatus.IN_PROGRESS:
                    step.fail()
                    log_research_step(self.session_id, step.type.value, "error", {"error": str(exc)})
            self._emit(streaming.error(str(exc) or type(exc).__name__))
        finally:
            channel.close()

    async def research(
        self,
        query: str,
        conversation_history: Iterable[ConversationTurn] | None = None,
        language: str = "en",
    ) -> AsyncGenerator[SSEEvent, None]:
        """Yield the session's events in order.

        Raises ResearchInputError before any event when the query is blank.
        Ends without a ``done`` event on error or cancellation.
        """
        query = (query or "").strip()
        if not query:
            raise ResearchInputError("Query is required")

        log_event("research_started", "Research started", session_id=self.session_id, query=query[:100])
        channel = self._channel = EventChannel(self.cancel_event)
        task = asyncio.create_task(self._run(channel, query, list(conversation_history or []), language))
        try:
            async for event in channel:
                yield event
        finally:
            if not task.done():
                # Consumer went away: let the pipeline reach a checkpoint, then stop it.
                self.cancel_event.set()
                await asyncio.wait({task}, timeout=settings.crawl_timeout_seconds)
                if not task.done():
                    task.cancel()
            await asyncio.gather(task, return_exceptions=True)
