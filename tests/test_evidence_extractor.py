from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from ithbat.agents.evidence_extractor import (
    EvidenceExtractor,
    HadithHint,
    build_extraction_messages,
    parse_evidence_reply,
    parse_fatwa_url,
    parse_hadith_url,
    source_name,
)
from ithbat.llm_client import CompletionServiceError, ModelTier

BUKHARI_URL = "https://sunnah.com/bukhari:5590"
FATWA_URL = "https://islamqa.info/en/answers/20406/ruling-on-music"


def completion_returning(reply=None, error=None) -> MagicMock:
    completion = MagicMock()
    completion.complete = AsyncMock(return_value=reply, side_effect=error)
    return completion


def test_hadith_url_hints():
    assert parse_hadith_url(BUKHARI_URL) == HadithHint(collection="Sahih Bukhari", number="5590")
    assert parse_hadith_url("https://sunnah.com/muslim/5/123") == HadithHint("Sahih Muslim", "123")
    assert parse_hadith_url("https://sunnah.com/search?q=music") is None
    assert parse_hadith_url("https://example.org/bukhari:1") is None


def test_fatwa_url_hints():
    assert parse_fatwa_url(FATWA_URL) == "20406"
    assert parse_fatwa_url("https://www.islamweb.net/en/fatwa/12345/") == "12345"
    assert parse_fatwa_url("https://islamqa.info/en/categories/1") is None


def test_source_name():
    assert source_name(FATWA_URL) == "IslamQA"
    assert source_name("https://www.seekersguidance.org/answers/x") == "seekersguidance.org"
    assert source_name("not a url") == "Unknown"


def test_reply_json_is_found_inside_prose():
    reply = 'Here you go:\n{"hadith": [], "quranVerses": [{"surah": "2", "ayahStart": 255}]}\nDone.'

    evidence = parse_evidence_reply(reply, "https://quran.com/2/255")
    assert evidence is not None
    verse = evidence.quran_verses[0]
    assert (verse.surah, verse.ayah_start, verse.url) == (2, 255, "https://quran.com/2/255")


def test_unreadable_replies_return_none():
    assert parse_evidence_reply("no json here", BUKHARI_URL) is None
    assert parse_evidence_reply("{broken: json}", BUKHARI_URL) is None


def test_url_hint_fills_missing_hadith_number():
    reply = json.dumps({"hadith": [{"collection": "Bukhari", "number": None, "text": "Some text", "grade": "Sahih"}]})

    evidence = parse_evidence_reply(reply, BUKHARI_URL, parse_hadith_url(BUKHARI_URL))
    hadith = evidence.hadith[0]
    assert hadith.collection == "Sahih Bukhari"
    assert hadith.number == "5590"
    assert hadith.grade == "sahih"
    assert hadith.url == BUKHARI_URL


def test_hadith_without_number_gets_no_link():
    reply = json.dumps({"hadith": [{"collection": "Musnad Ahmad", "number": "null", "text": "Some text"}]})

    hadith = parse_evidence_reply(reply, "https://example.org/article").hadith[0]
    assert hadith.number is None
    assert hadith.url is None


def test_invalid_fragments_are_dropped():
    reply = json.dumps(
        {
            "hadith": [{"grade": "sahih"}, "not an object"],
            "quranVerses": [{"surah": 200, "ayahStart": 1}, {"surah": 1}],
            "scholarlyOpinions": [{"context": "only context"}],
            "fatwas": [{"question": "only a question"}],
        }
    )

    assert parse_evidence_reply(reply, "https://example.org/x").is_empty()


def test_fatwa_fields_come_from_the_page_url():
    reply = json.dumps(
        {"fatwas": [{"title": "Ruling on Music", "ruling": "haram", "evidence": ["Bukhari 5590", None]}]}
    )

    fatwa = parse_evidence_reply(reply, FATWA_URL).fatwas[0]
    assert fatwa.source == "IslamQA"
    assert fatwa.question_number == "20406"
    assert fatwa.evidence == ("Bukhari 5590",)
    assert fatwa.url == FATWA_URL


def test_messages_carry_url_hints_and_truncated_page(monkeypatch):
    monkeypatch.setattr("ithbat.agents.evidence_extractor.settings.evidence_max_page_chars", 20)

    messages, hint = build_extraction_messages(BUKHARI_URL, "x" * 50, "Is music haram?")
    user = messages[1]["content"]

    assert hint == HadithHint("Sahih Bukhari", "5590")
    assert "Sahih Bukhari hadith #5590" in user
    assert "x" * 20 in user and "x" * 21 not in user
    assert "Is music haram?" in user


@pytest.mark.asyncio
async def test_extract_evidence_reports_counts():
    reply = json.dumps(
        {
            "hadith": [{"collection": "Sahih Bukhari", "number": "5590", "text": "There will be people..."}],
            "quranVerses": [{"surah": 31, "ayahStart": 6}],
        }
    )
    completion = completion_returning(reply)
    progress: list[str] = []

    evidence = await EvidenceExtractor(completion).extract_evidence(
        BUKHARI_URL, "page text", "Is music haram?", on_progress=progress.append
    )

    assert evidence.total == 2
    assert progress == ["✓ Extracted 1 hadith, 1 verses, 0 opinions"]
    args, kwargs = completion.complete.await_args
    assert args[1] == ModelTier.QUICK
    assert kwargs["caller"] == "evidence_extractor"


@pytest.mark.asyncio
async def test_completion_failure_yields_empty_evidence():
    completion = completion_returning(error=CompletionServiceError("rate limited"))
    progress: list[str] = []

    evidence = await EvidenceExtractor(completion).extract_evidence(
        BUKHARI_URL, "page text", "q", on_progress=progress.append
    )

    assert evidence.is_empty()
    assert progress == [f"⚠ Extraction error for {BUKHARI_URL}: rate limited"]


@pytest.mark.asyncio
async def test_unparseable_reply_yields_empty_evidence():
    progress: list[str] = []

    evidence = await EvidenceExtractor(completion_returning("I could not find anything.")).extract_evidence(
        FATWA_URL, "page text", "q", on_progress=progress.append
    )

    assert evidence.is_empty()
    assert progress == [f"⚠ Could not parse evidence from {FATWA_URL}"]


@pytest.mark.asyncio
async def test_empty_evidence_is_silent():
    progress: list[str] = []

    evidence = await EvidenceExtractor(completion_returning('{"hadith": []}')).extract_evidence(
        FATWA_URL, "page text", "q", on_progress=progress.append
    )

    assert evidence.is_empty()
    assert progress == []


def test_book_and_hadith_number_links_to_the_hadith():
    reply = json.dumps(
        {"hadith": [{"collection": "Sahih Bukhari", "number": "Book 2, Hadith 15", "text": "Some text"}]}
    )

    hadith = parse_evidence_reply(reply, "https://example.org/article").hadith[0]
    assert hadith.number == "15"
    assert hadith.url == "https://sunnah.com/bukhari:15"


def test_unreadable_hadith_number_gets_no_link():
    reply = json.dumps({"hadith": [{"collection": "Sahih Bukhari", "number": "Vol. 7, p. 80", "text": "Some text"}]})

    hadith = parse_evidence_reply(reply, "https://example.org/article").hadith[0]
    assert hadith.number is None
    assert hadith.url is None
