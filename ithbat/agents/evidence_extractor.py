"""Turns a crawled page into typed evidence fragments.

The completion service does the reading; this module builds the prompt and
parses the reply. Any failure for a page yields an empty result for that
page and never propagates.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import urlparse

from loguru import logger

from ithbat.config import settings
from ithbat.llm_client import CompletionClient, ModelTier, client as llm_client
from ithbat.models.evidence import (
    ExtractedEvidence,
    FatwaEvidence,
    HadithEvidence,
    QuranVerseEvidence,
    ScholarlyOpinionEvidence,
)
from ithbat.research_core.references.canonical import (
    SURAH_COUNT,
    collection_name,
    hadith_number,
    hadith_url,
    normalize_grade,
)
from ithbat.services.prompt_store import render_prompt

_HADITH_COLON_RE = re.compile(
    r"sunnah\.com/(bukhari|muslim|tirmidhi|abudawud|nasai|ibnmajah|malik|ahmad|darimi|"
    r"nawawi40|riyadussalihin|mishkat):(\d+)",
    re.IGNORECASE,
)
_HADITH_BOOK_RE = re.compile(
    r"sunnah\.com/(bukhari|muslim|tirmidhi|abudawud|nasai|ibnmajah|malik|ahmad)/\d+/(\d+)",
    re.IGNORECASE,
)
_FATWA_RES = (
    re.compile(r"islamqa\.info/\w+/answers/(\d+)"),
    re.compile(r"islamweb\.net/\w+/fatwa/(\d+)"),
)
_QUESTION_NUMBER_RE = re.compile(r"answers/(\d+)")
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True)
class HadithHint:
    collection: str
    number: str


def parse_hadith_url(url: str) -> HadithHint | None:
    """Collection display name and hadith number encoded in a sunnah.com URL."""
    if "sunnah.com" not in url:
        return None
    match = _HADITH_COLON_RE.search(url) or _HADITH_BOOK_RE.search(url)
    if match is None:
        return None
    return HadithHint(collection=collection_name(match.group(1).lower()), number=match.group(2))


def parse_fatwa_url(url: str) -> str | None:
    for pattern in _FATWA_RES:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def source_name(url: str) -> str:
    host = urlparse(url).hostname or ""
    if not host:
        return "Unknown"
    host = host[4:] if host.startswith("www.") else host
    if "islamqa" in host:
        return "IslamQA"
    if "sunnah" in host:
        return "Sunnah.com"
    if "quran" in host:
        return "Quran.com"
    return host


def question_number(url: str) -> str | None:
    match = _QUESTION_NUMBER_RE.search(url)
    return match.group(1) if match else None


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in ("null", "none", "undefined"):
        return None
    return text


def _int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    match = re.search(r"\d+", str(value)) if value is not None else None
    return int(match.group(0)) if match else None


def _items(payload: dict[str, Any], key: str) -> list[dict[str, Any]]:
    value = payload.get(key)
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _hadith(item: dict[str, Any], url: str, hint: HadithHint | None) -> HadithEvidence | None:
    collection = _text(item.get("collection"))
    number = hadith_number(item.get("number"))
    if hint is not None and number is None:
        collection, number = hint.collection, hint.number
    text = _text(item.get("text"))
    if collection is None and text is None:
        return None
    return HadithEvidence(
        collection=collection or "",
        source_url=url,
        number=number,
        grade=normalize_grade(item.get("grade")),
        arabic_text=_text(item.get("arabicText")),
        text=text,
        narrator=_text(item.get("narrator")),
        chapter=_text(item.get("chapter")),
        url=hadith_url(collection, number) or None,
    )


def _verse(item: dict[str, Any], url: str) -> QuranVerseEvidence | None:
    surah = _int(item.get("surah"))
    ayah = _int(item.get("ayahStart", item.get("ayah")))
    if surah is None or ayah is None or not 1 <= surah <= SURAH_COUNT or ayah < 1:
        return None
    end = _int(item.get("ayahEnd"))
    if end is not None and end <= ayah:
        end = None
    return QuranVerseEvidence(
        surah=surah,
        ayah_start=ayah,
        ayah_end=end,
        source_url=url,
        surah_name=_text(item.get("surahName")),
        arabic_text=_text(item.get("arabicText")),
        translation=_text(item.get("translation")),
        translation_source=_text(item.get("translationSource")),
    )


def _opinion(item: dict[str, Any], url: str) -> ScholarlyOpinionEvidence | None:
    scholar = _text(item.get("scholar"))
    quote = _text(item.get("quote"))
    if scholar is None and quote is None:
        return None
    return ScholarlyOpinionEvidence(
        source_url=url,
        scholar=scholar,
        quote=quote,
        context=_text(item.get("context")),
        source=source_name(url),
        url=url,
    )


def _fatwa(item: dict[str, Any], url: str) -> FatwaEvidence | None:
    title = _text(item.get("title"))
    ruling = _text(item.get("ruling"))
    explanation = _text(item.get("explanation"))
    if title is None and ruling is None and explanation is None:
        return None
    raw_evidence = item.get("evidence")
    evidence = tuple(
        text for text in (_text(e) for e in raw_evidence) if text
    ) if isinstance(raw_evidence, list) else ()
    return FatwaEvidence(
        source_url=url,
        title=title,
        question=_text(item.get("question")),
        ruling=ruling,
        explanation=explanation,
        evidence=evidence,
        source=source_name(url),
        question_number=question_number(url),
        url=url,
    )


def parse_evidence_reply(reply: str, url: str, hadith_hint: HadithHint | None = None) -> ExtractedEvidence | None:
    """Parse the model's JSON reply; None when no JSON object can be read."""
    match = _JSON_OBJECT_RE.search(reply or "")
    if match is None:
        return None
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict):
        return None

    evidence = ExtractedEvidence()
    for item in _items(payload, "hadith"):
        if (h := _hadith(item, url, hadith_hint)) is not None:
            evidence.hadith.append(h)
    for item in _items(payload, "quranVerses"):
        if (v := _verse(item, url)) is not None:
            evidence.quran_verses.append(v)
    for item in _items(payload, "scholarlyOpinions"):
        if (o := _opinion(item, url)) is not None:
            evidence.scholarly_opinions.append(o)
    for item in _items(payload, "fatwas"):
        if (f := _fatwa(item, url)) is not None:
            evidence.fatwas.append(f)
    return evidence


def build_extraction_messages(url: str, page_text: str, query: str) -> tuple[list[dict[str, str]], HadithHint | None]:
    hint = parse_hadith_url(url)
    fatwa_number = parse_fatwa_url(url)
    url_hint = ""
    if hint is not None:
        url_hint = render_prompt(
            "evidence_extractor.hadith_hint", collection=hint.collection, number=hint.number
        )
    if fatwa_number is not None:
        url_hint += render_prompt("evidence_extractor.fatwa_hint", number=fatwa_number)

    content = url_hint + page_text[: settings.evidence_max_page_chars]
    messages = [
        {"role": "system", "content": render_prompt("evidence_extractor.system")},
        {
            "role": "user",
            "content": render_prompt("evidence_extractor.user", query=query, url=url, content=content),
        },
    ]
    return messages, hint


class EvidenceExtractor:
    def __init__(self, completion: CompletionClient | None = None):
        self.completion = completion

    async def extract_evidence(
        self,
        url: str,
        page_text: str,
        query: str,
        on_progress: Callable[[str], None] | None = None,
    ) -> ExtractedEvidence:
        messages, hint = build_extraction_messages(url, page_text, query)
        try:
            reply = await (self.completion or llm_client()).complete(
                messages, ModelTier.QUICK, caller="evidence_extractor"
            )
        except Exception as exc:
            logger.warning(f"Evidence extraction failed for {url}: {exc}")
            if on_progress:
                on_progress(f"⚠ Extraction error for {url}: {exc}")
            return ExtractedEvidence()

        evidence = parse_evidence_reply(reply, url, hint)
        if evidence is None:
            logger.warning(f"Unparseable evidence reply for {url}")
            if on_progress:
                on_progress(f"⚠ Could not parse evidence from {url}")
            return ExtractedEvidence()

        if not evidence.is_empty() and on_progress:
            on_progress(
                f"✓ Extracted {len(evidence.hadith)} hadith, {len(evidence.quran_verses)} verses, "
                f"{len(evidence.scholarly_opinions)} opinions"
            )
        return evidence
