"""Bounded, batched page crawling.

URLs are fetched in small concurrent batches; each batch is waited on as a
whole before the next starts. A failing URL is reported and dropped without
affecting the rest of its batch. Cancellation is cooperative: the flag is
checked before every batch and raced against in-flight work, which is then
abandoned rather than interrupted.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

import httpx
from loguru import logger

from ithbat.config import settings
from ithbat.services.logger import log_crawl
from ithbat.tools import web_utils
from ithbat.traverser.config_store import SiteConfigStore, get_config_store
from ithbat.traverser.extraction import extract_content
from ithbat.traverser.types import ExtractedContent

Fetcher = Callable[[str], Awaitable[str]]


@dataclass(frozen=True)
class CrawlProgress:
    type: str  # found | error
    url: str
    title: str = ""
    message: str = ""


@dataclass(frozen=True)
class CrawledPage:
    url: str
    title: str
    content: str
    source: str
    trusted: bool
    links: tuple[str, ...] = ()
    extracted: ExtractedContent | None = None


ProgressCallback = Callable[[CrawlProgress], None]
PageCallback = Callable[[CrawledPage], Awaitable[None]]


def _discard(task: asyncio.Future) -> None:
    if not task.cancelled():
        task.exception()


class Crawler:
    def __init__(
        self,
        fetcher: Fetcher | None = None,
        config_store: SiteConfigStore | None = None,
        *,
        timeout: float | None = None,
        batch_size: int | None = None,
        max_urls: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.fetcher = fetcher or self.fetch
        self.transport = transport
        self.config_store = config_store or get_config_store()
        self.timeout = timeout if timeout is not None else settings.crawl_timeout_seconds
        self.batch_size = max(batch_size or settings.crawl_batch_size, 1)
        self.max_urls = max(max_urls or settings.crawl_max_urls, 1)
        self.max_html_chars = settings.crawl_max_html_chars

    async def fetch(self, url: str) -> str:
        headers = {
            "User-Agent": settings.crawl_user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
        }
        async with httpx.AsyncClient(follow_redirects=True, transport=self.transport) as client:
            response = await client.get(url, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            return response.text

    async def crawl_page(self, url: str) -> CrawledPage:
        """Fetch and extract one page. Raises on any failure."""
        html = await asyncio.wait_for(self.fetcher(url), timeout=self.timeout)
        config = self.config_store.get(url)
        # Parse off the event loop.
        html = (html or "")[: self.max_html_chars]
        extracted = await asyncio.to_thread(extract_content, html, url, config)
        return CrawledPage(
            url=url,
            title=extracted.title or "Untitled Page",
            content=extracted.content,
            source=extracted.source,
            trusted=config is not None,
            links=extracted.related_links,
            extracted=extracted,
        )

    async def _attempt(self, url: str) -> CrawledPage | Exception:
        t0 = time.monotonic()
        try:
            page = await self.crawl_page(url)
        except Exception as exc:
            reason = str(exc) or type(exc).__name__
            log_crawl(url, "error", int((time.monotonic() - t0) * 1000), reason)
            return exc
        log_crawl(url, "success", int((time.monotonic() - t0) * 1000))
        return page

    async def crawl(
        self,
        urls: list[str],
        on_progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
        on_page: PageCallback | None = None,
    ) -> list[CrawledPage]:
        """Crawl up to ``max_urls`` URLs; returns fetched pages in completion order.

        ``on_page`` runs for each fetched page inside its batch, so the batch
        is only finished once every page's follow-up work is too.
        """
        targets: list[str] = []
        for url in urls:
            if web_utils.is_valid_url(url) and url not in targets:
                targets.append(url)
        targets = targets[: self.max_urls]

        pages: list[CrawledPage] = []
        for start in range(0, len(targets), self.batch_size):
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"Crawl cancelled before batch {start // self.batch_size + 1}")
                break
            batch = targets[start : start + self.batch_size]
            finished = await self._run_batch(batch, pages, on_progress, cancel_event, on_page)
            if not finished:
                break
        return pages

    async def _run_batch(
        self,
        batch: list[str],
        pages: list[CrawledPage],
        on_progress: ProgressCallback | None,
        cancel_event: asyncio.Event | None,
        on_page: PageCallback | None,
    ) -> bool:
        fetches = {asyncio.ensure_future(self._attempt(url)): url for url in batch}
        order = {task: i for i, task in enumerate(fetches)}
        pending: set[asyncio.Future] = set(fetches)
        waiter = asyncio.ensure_future(cancel_event.wait()) if cancel_event is not None else None

        try:
            while pending:
                watch = pending | {waiter} if waiter is not None else pending
                done, _ = await asyncio.wait(watch, return_when=asyncio.FIRST_COMPLETED)
                if waiter is not None and waiter in done:
                    logger.info(f"Crawl cancelled with {len(pending)} tasks in flight")
                    return False

                for task in sorted(done, key=lambda t: order.get(t, len(order))):
                    pending.discard(task)
                    if task not in fetches:
                        if task.exception() is not None:
                            logger.error(f"Page follow-up failed: {task.exception()}")
                        continue
                    url = fetches[task]
                    result = task.result()
                    if isinstance(result, Exception):
                        if on_progress:
                            on_progress(CrawlProgress(type="error", url=url, message=str(result)))
                        continue
                    pages.append(result)
                    if on_progress:
                        on_progress(CrawlProgress(type="found", url=url, title=result.title))
                    if on_page is not None:
                        pending.add(asyncio.ensure_future(on_page(result)))
            return True
        finally:
            if waiter is not None:
                waiter.cancel()
            # Abandoned work keeps running; its results are dropped.
            for task in pending:
                if not task.done():
                    task.add_done_callback(_discard)
