from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from ithbat.agents.orchestrator import (
    ResearchInputError,
    ResearchOrchestrator,
    chunk_text,
)
from ithbat.models.evidence import ExtractedEvidence, HadithEvidence, ScholarlyOpinionEvidence
from ithbat.models.research import ConversationTurn, ResearchTranscript
from ithbat.tools.crawler import Crawler
from ithbat.tools.search_provider import SearchCitation, SearchResponse, SearchServiceError
from ithbat.traverser.config_store import SiteConfigStore

BUKHARI_URL = "https://sunnah.com/bukhari:5590"
FATWA_URL = "https://islamqa.info/en/answers/5000"
PROSE = f"Music is debated among scholars [1].\n\nSee {FATWA_URL}"


class FakeCompletion:
    def __init__(self, chunks=("The question concerns ", "the fiqh of music.")):
        self.chunks = chunks

    async def stream_chat(self, messages, tier=None, *, caller=""):
        for chunk in self.chunks:
            yield chunk


async def fake_fetch(url: str) -> str:
    return (
        "<html><body><h1>Evidence page heading</h1>"
        f"<article>{'Text about music and its ruling. ' * 5}</article></body></html>"
    )


async def hadith_on_sunnah(url, page_text, query, on_progress=None):
    if "sunnah.com" not in url:
        return ExtractedEvidence()
    return ExtractedEvidence(
        hadith=[
            HadithEvidence(
                collection="Sahih Bukhari",
                number="5590",
                grade="sahih",
                text="From among my followers there will be some people...",
                source_url=url,
            )
        ]
    )


def search_returning(prose=PROSE, citations=None) -> AsyncMock:
    if citations is None:
        citations = [SearchCitation(url=BUKHARI_URL, title="Sahih al-Bukhari 5590")]
    return AsyncMock(return_value=SearchResponse(prose=prose, citations=citations, provider="perplexity"))


def make_orchestrator(search=None, extract=hadith_on_sunnah, **kwargs) -> ResearchOrchestrator:
    store = SiteConfigStore()
    extractor = MagicMock()
    extractor.extract_evidence = AsyncMock(side_effect=extract)
    return ResearchOrchestrator(
        session_id="session-1",
        completion=FakeCompletion(),
        search=search or search_returning(),
        crawler=Crawler(fetcher=fake_fetch, config_store=store, timeout=1.0),
        extractor=extractor,
        config_store=store,
        chunk_size=kwargs.pop("chunk_size", 20),
        chunk_delay_ms=0,
        **kwargs,
    )


async def collect(orchestrator, query="Is music haram?", **kwargs):
    return [event async for event in orchestrator.research(query, **kwargs)]


def types_of(events):
    return [e.event.value for e in events]


def started_steps(events):
    return [e.data["step"] for e in events if e.event.value == "step_start"]


@pytest.mark.asyncio
async def test_full_session_event_order():
    orchestrator = make_orchestrator()
    events = await collect(orchestrator)
    types = types_of(events)

    assert types[0] == "session_init"
    assert events[0].data["sessionId"] == "session-1"
    assert types[-1] == "done"
    assert started_steps(events) == ["understanding", "searching", "exploring", "synthesizing"]
    assert types.index("response_start") > types.index("step_complete")
    assert "personal_question" not in types
    assert "error" not in types


@pytest.mark.asyncio
async def test_sources_are_numbered_once_in_discovery_order():
    orchestrator = make_orchestrator()
    events = await collect(orchestrator)

    sources = [e.data["source"] for e in events if e.event.value == "source"]
    assert [s["id"] for s in sources] == [1, 2]
    assert [s["url"] for s in sources] == [BUKHARI_URL, FATWA_URL]
    assert sources[0]["title"] == "Sahih al-Bukhari 5590"
    assert sources[1]["title"] == "islamqa.info"
    assert all(s["trusted"] for s in sources)


@pytest.mark.asyncio
async def test_response_is_prose_followed_by_linked_evidence():
    orchestrator = make_orchestrator()
    events = await collect(orchestrator)

    chunks = [e.data["content"] for e in events if e.event.value == "response_content"]
    response = "".join(chunks)
    assert response == orchestrator.response
    assert response.startswith(PROSE)
    assert "## Verified Evidence" in response
    assert "[Sahih Bukhari 5590](https://sunnah.com/bukhari:5590)" in response
    assert all(len(chunk) <= 20 for chunk in chunks)


@pytest.mark.asyncio
async def test_links_quoted_from_pages_do_not_unlink_the_evidence():
    async def hadith_and_linked_quote(url, page_text, query, on_progress=None):
        if "sunnah.com" in url:
            return await hadith_on_sunnah(url, page_text, query)
        return ExtractedEvidence(
            scholarly_opinions=[
                ScholarlyOpinionEvidence(
                    scholar="Shaykh Muhammad Salih al-Munajjid",
                    quote="See [this answer](https://islamqa.info/en/answers/2) for the details.",
                    source_url=url,
                )
            ]
        )

    orchestrator = make_orchestrator(extract=hadith_and_linked_quote)
    await collect(orchestrator)

    response = orchestrator.response
    assert "[Sahih Bukhari 5590](https://sunnah.com/bukhari:5590)" in response
    assert '"See this answer for the details."' in response
    assert "[this answer]" not in response
    assert f"Source: [islamqa.info]({FATWA_URL})" in response


@pytest.mark.asyncio
async def test_exploring_reports_each_page_and_a_summary():
    orchestrator = make_orchestrator()
    await collect(orchestrator)

    exploring = next(s for s in orchestrator.steps if s.type.value == "exploring")
    assert exploring.content.startswith("Verifying 2 of 2 sources...")
    assert exploring.content.count("✓ Found: Evidence page heading") == 2
    assert "Verified 2 pages: 1 hadith, 0 Quran verses, 0 scholarly opinions, 0 fatwas" in exploring.content
    assert orchestrator.extractor.extract_evidence.await_count == 2


@pytest.mark.asyncio
async def test_no_evidence_means_no_evidence_section():
    async def nothing(url, page_text, query, on_progress=None):
        return ExtractedEvidence()

    orchestrator = make_orchestrator(extract=nothing)
    await collect(orchestrator)

    assert orchestrator.response == PROSE
    synthesizing = orchestrator.steps[-1]
    assert "No structured evidence extracted" in synthesizing.content


@pytest.mark.asyncio
async def test_no_urls_skips_exploring():
    orchestrator = make_orchestrator(search=search_returning(prose="Nothing was cited.", citations=[]))
    events = await collect(orchestrator)

    assert started_steps(events) == ["understanding", "searching", "synthesizing"]
    assert "source" not in types_of(events)
    assert orchestrator.response == "Nothing was cited."
    assert types_of(events)[-1] == "done"


@pytest.mark.asyncio
async def test_replay_rebuilds_the_same_state():
    orchestrator = make_orchestrator()
    transcript = ResearchTranscript()

    for event in await collect(orchestrator):
        transcript.apply(event)

    assert transcript.done
    assert transcript.session_id == "session-1"
    assert transcript.state() == orchestrator.state()


@pytest.mark.asyncio
async def test_search_failure_ends_with_error_and_no_done():
    orchestrator = make_orchestrator(search=AsyncMock(side_effect=SearchServiceError("search down")))
    transcript = ResearchTranscript()
    events = await collect(orchestrator)
    for event in events:
        transcript.apply(event)

    types = types_of(events)
    assert types[-1] == "error"
    assert events[-1].data["error"] == "search down"
    assert "done" not in types
    assert "response_start" not in types
    searching = next(s for s in orchestrator.steps if s.type.value == "searching")
    assert searching.status.value == "error"
    assert transcript.state() == orchestrator.state()


@pytest.mark.asyncio
async def test_cancel_during_exploring_stops_the_stream():
    orchestrator = make_orchestrator()
    after_cancel = []
    cancelled = False

    async for event in orchestrator.research("Is music haram?"):
        if cancelled:
            after_cancel.append(event)
        elif event.event.value == "step_start" and event.data["step"] == "exploring":
            orchestrator.cancel()
            cancelled = True

    assert cancelled
    assert after_cancel == []
    assert orchestrator.cancelled
    assert orchestrator.response == ""


@pytest.mark.asyncio
async def test_consumer_leaving_cancels_the_session():
    orchestrator = make_orchestrator()
    stream = orchestrator.research("Is music haram?")

    first = await stream.__anext__()
    await stream.aclose()

    assert first.event.value == "session_init"
    assert orchestrator.cancelled


@pytest.mark.asyncio
async def test_blank_query_is_rejected():
    with pytest.raises(ResearchInputError):
        await collect(make_orchestrator(), query="   ")


@pytest.mark.asyncio
async def test_personal_question_is_flagged_after_session_init():
    events = await collect(make_orchestrator(), query="Should I stop listening to music?")

    assert types_of(events)[:2] == ["session_init", "personal_question"]


@pytest.mark.asyncio
async def test_history_reaches_the_search_service():
    search = search_returning()
    history = [ConversationTurn(query="Is music haram?", response="Scholars differ.")]

    await collect(make_orchestrator(search=search), query="What about the daf?", conversation_history=history)

    kwargs = search.await_args.kwargs
    assert kwargs["history"] == history
    assert kwargs["understanding"] == "The question concerns the fiqh of music."


def test_chunk_text():
    assert chunk_text("abcdefg", 3) == ["abc", "def", "g"]
    assert chunk_text("", 3) == []
    assert chunk_text("ab", 0) == ["a", "b"]
