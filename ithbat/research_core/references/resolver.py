"""Turns textual citations into canonical, numbered markdown links.

Passes run in a fixed order so later passes never touch the output of
earlier ones:

1. numbered ``[n]`` citations resolved against the trailing Sources list
2. Quran and hadith mentions rewritten to quran.com / sunnah.com links
3. remaining bare URLs wrapped as ``[host](url)``

Passes 2 and 3 only see text outside existing markdown links.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable
from urllib.parse import urlparse

from ithbat.research_core.references.canonical import (
    COLLECTION_ALIASES,
    SURAH_COUNT,
    collection_slug,
    hadith_url,
    quran_url,
    surah_number,
)

INLINE_LINK_RE = re.compile(r"\[[^\]]+\]\(https?://[^)]+\)")
# Markdown links, including ones whose label is itself bracketed ("[[1]](url)").
_MARKDOWN_LINK_RE = re.compile(r"\[(?:[^\[\]\n]|\[[^\[\]\n]*\])*\]\([^)\s]+\)")
_URL_RE = re.compile(r"https?://[^\s<>\"'\]\)]+")
_TRAILING_PUNCT_RE = re.compile(r"[)\].,;:!?]+$")

_SOURCES_HEADING_RE = re.compile(r"##\s*Sources", re.IGNORECASE)
_SOURCE_BRACKET_RE = re.compile(r"\[(\d+)\]\s*([^\-\[\]\n]*?)(?:\s*-\s*)?(https?://[^\s)]+)")
_SOURCE_MARKDOWN_RE = re.compile(r"\[(\d+)\]\s*\[([^\]]+)\]\((https?://[^\s)]+)\)")
_SOURCE_NUMBERED_RE = re.compile(r"^(\d+)\.\s*([^\-\n]+?)\s*-\s*(https?://\S+)", re.MULTILINE)
_LINE_NUMBER_RE = re.compile(r"\[(\d+)\]")
_LINE_URL_RE = re.compile(r"(https?://[^\s)]+)")

_COMBINED_CITATION_RE = re.compile(r"\[(\d+(?:\s*,\s*\d+)+)\]")
# A bracketed number followed on the same line by a URL is a Sources list entry.
_CITATION_RE = re.compile(r"\[(\d+)\](?!\()(?![^\[\]\n]*https?://)")
_SOURCE_LINE_RE = re.compile(r"^([ \t]*)\[(\d+)\][^\n]*$", re.MULTILINE)

_QURAN_NAMED_RE = re.compile(
    r"\b(?:(?:Surah|Surat|Sura)\s+)?(?P<name>[A-Za-z][A-Za-z'\-]*)[\s,]*"
    r"(?P<surah>\d{1,3}):(?P<ayah>\d{1,3})(?:-(?P<end>\d{1,3}))?",
    re.IGNORECASE,
)
_QURAN_NUMBERED_RE = re.compile(
    r"\bSurah\s+(?P<surah>\d{1,3})[\s,]*(?:Ayah|Verse)\s+(?P<ayah>\d{1,3})(?:-(?P<end>\d{1,3}))?",
    re.IGNORECASE,
)
# Words after which the chapter number is taken as written.
_QURAN_WORDS = {"quran", "qur'an", "koran", "surah", "surat", "sura"}

# Person names that double as collection aliases produce too many false hits.
_AMBIGUOUS_COLLECTIONS = {"malik", "ahmad", "nawawi", "baihaqi", "qudsi", "mishkat"}
_COLLECTION_ALTERNATION = "|".join(
    re.escape(alias).replace(r"\ ", r"\s+")
    for alias in sorted(COLLECTION_ALIASES, key=len, reverse=True)
    if alias not in _AMBIGUOUS_COLLECTIONS
)
_HADITH_RE = re.compile(
    rf"\b(?P<collection>{_COLLECTION_ALTERNATION})\b[\s,]*"
    r"(?:(?:Book|Vol\.?|Volume)\s+(?P<book>\d+)[\s,]*)?"
    r"(?:(?:Hadith|No\.?|Number|#)\s*)?"
    r"(?P<first>\d+)(?::(?P<second>\d+))?",
    re.IGNORECASE,
)


@dataclass(frozen=True, slots=True)
class ParsedReference:
    type: str  # quran | hadith | scholar | url
    text: str
    url: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "text": self.text, "url": self.url, "details": self.details}


@dataclass(frozen=True, slots=True)
class SourceEntry:
    title: str
    url: str


@dataclass
class ReferenceExtraction:
    processed_text: str
    references: list[ParsedReference] = field(default_factory=list)


def has_inline_links(text: str) -> bool:
    """True when the text already carries ``[label](http...)`` links.

    Such text is assumed to have been cited upstream and is left alone, so
    links are never wrapped twice.
    """
    return bool(INLINE_LINK_RE.search(text))


def _clean_url(url: str) -> str:
    return _TRAILING_PUNCT_RE.sub("", url.strip())


def _host_label(url: str) -> str:
    host = urlparse(url).hostname or url
    return host[4:] if host.startswith("www.") else host


def extract_urls(text: str) -> list[str]:
    """Every distinct http(s) URL in the text, in order of appearance."""
    seen: set[str] = set()
    urls: list[str] = []
    for match in _URL_RE.finditer(text):
        url = _clean_url(match.group(0))
        if url and url not in seen and urlparse(url).hostname:
            seen.add(url)
            urls.append(url)
    return urls


def parse_sources_list(text: str) -> dict[int, SourceEntry]:
    """Build the ``{number: (title, url)}`` table from a Sources list.

    Three patterns are tried from strictest to loosest, then every line
    holding both ``[n]`` and a URL. The first entry seen for a number wins.
    """
    heading = _SOURCES_HEADING_RE.search(text)
    section = text[heading.start():] if heading else text
    sources: dict[int, SourceEntry] = {}

    def _add(num: str, title: str, url: str) -> None:
        n = int(num)
        if n not in sources:
            clean = _clean_url(url)
            sources[n] = SourceEntry(title=title.strip() or _host_label(clean), url=clean)

    for match in _SOURCE_BRACKET_RE.finditer(section):
        _add(match.group(1), match.group(2), match.group(3))
    for match in _SOURCE_MARKDOWN_RE.finditer(section):
        _add(match.group(1), match.group(2), match.group(3))
    for match in _SOURCE_NUMBERED_RE.finditer(section):
        _add(match.group(1), match.group(2), match.group(3))

    for line in text.split("\n"):
        num = _LINE_NUMBER_RE.search(line)
        url = _LINE_URL_RE.search(line)
        if not (num and url) or int(num.group(1)) in sources:
            continue
        clean = _clean_url(url.group(1))
        title = _LINE_NUMBER_RE.sub("", line, count=1).replace(url.group(1), "")
        title = title.replace("-", " ").strip()
        _add(num.group(1), title, clean)

    return sources


def expand_combined_citations(text: str) -> str:
    """``[1, 2, 3]`` becomes ``[1] [2] [3]``."""
    return _COMBINED_CITATION_RE.sub(
        lambda m: " ".join(f"[{n.strip()}]" for n in m.group(1).split(",")),
        text,
    )


def _link_citations(text: str, sources: dict[int, SourceEntry]) -> str:
    expanded = expand_combined_citations(text)
    heading = _SOURCES_HEADING_RE.search(expanded)
    split_at = heading.start() if heading and heading.start() > 0 else len(expanded)
    main, section = expanded[:split_at], expanded[split_at:]

    def _cite(match: re.Match[str]) -> str:
        source = sources.get(int(match.group(1)))
        if source is None:
            return match.group(0)
        return f"[[{match.group(1)}]]({source.url})"

    main = _CITATION_RE.sub(_cite, main)

    def _entry(match: re.Match[str]) -> str:
        source = sources.get(int(match.group(2)))
        if source is None or source.url not in match.group(0):
            return match.group(0)
        return f"{match.group(1)}[{match.group(2)}] [{source.title}]({source.url})"

    if section:
        section = _SOURCE_LINE_RE.sub(_entry, section)
    return main + section


def _map_unlinked(text: str, fn: Callable[[str], str]) -> str:
    """Apply ``fn`` to the stretches of text outside markdown links."""
    out: list[str] = []
    pos = 0
    for match in _MARKDOWN_LINK_RE.finditer(text):
        out.append(fn(text[pos:match.start()]))
        out.append(match.group(0))
        pos = match.end()
    out.append(fn(text[pos:]))
    return "".join(out)


def parse_quran_mention(match: re.Match[str]) -> ParsedReference | None:
    groups = match.groupdict()
    name = groups.get("name")
    surah: int | None
    if name is None:
        surah = int(groups["surah"])
    elif name.lower() in _QURAN_WORDS:
        surah = int(groups["surah"])
    else:
        surah = surah_number(name)
        if surah is None:
            return None
    ayah = int(groups["ayah"])
    end = int(groups["end"]) if groups.get("end") else None
    if not 1 <= surah <= SURAH_COUNT or ayah < 1:
        return None
    if end is not None and end <= ayah:
        end = None
    return ParsedReference(
        type="quran",
        text=match.group(0).strip(),
        url=quran_url(surah, ayah, end),
        details={"surah": surah, "ayah": ayah, "ayahEnd": end},
    )


def parse_hadith_mention(match: re.Match[str]) -> ParsedReference | None:
    collection = collection_slug(match.group("collection"))
    book = int(match.group("book")) if match.group("book") else None
    first, second = match.group("first"), match.group("second")
    if second is not None:
        # "Muslim 4:19" reads as book 4, hadith 19.
        book, number = int(first), int(second)
    else:
        number = int(first)
    url = hadith_url(collection, number)
    if not url:
        return None
    return ParsedReference(
        type="hadith",
        text=match.group(0).strip(),
        url=url,
        details={"collection": collection, "book": book, "hadith": number},
    )


def _rewrite(
    pattern: re.Pattern[str],
    parse: Callable[[re.Match[str]], ParsedReference | None],
    references: list[ParsedReference],
) -> Callable[[str], str]:
    def _segment(segment: str) -> str:
        def _sub(match: re.Match[str]) -> str:
            ref = parse(match)
            if ref is None:
                return match.group(0)
            references.append(ref)
            return f"[{match.group(0)}]({ref.url})"

        return pattern.sub(_sub, segment)

    return _segment


def _wrap_bare_urls(references: list[ParsedReference]) -> Callable[[str], str]:
    def _segment(segment: str) -> str:
        def _sub(match: re.Match[str]) -> str:
            raw = match.group(0)
            url = _clean_url(raw)
            if not urlparse(url).hostname:
                return raw
            label = _host_label(url)
            references.append(
                ParsedReference(type="url", text=label, url=url, details={"source": label})
            )
            return f"[{label}]({url}){raw[len(url):]}"

        return _URL_RE.sub(_sub, segment)

    return _segment


def extract_references(text: str) -> ReferenceExtraction:
    """Rewrite citations in ``text`` into canonical markdown links.

    Text that already contains markdown links is returned unchanged.
    """
    if has_inline_links(text):
        return ReferenceExtraction(processed_text=text, references=[])

    references: list[ParsedReference] = []
    processed = text

    sources = parse_sources_list(text)
    if sources:
        processed = _link_citations(processed, sources)
        for entry in sources.values():
            references.append(
                ParsedReference(
                    type="url", text=entry.title, url=entry.url, details={"source": entry.title}
                )
            )

    for pattern, parse in (
        (_QURAN_NAMED_RE, parse_quran_mention),
        (_QURAN_NUMBERED_RE, parse_quran_mention),
        (_HADITH_RE, parse_hadith_mention),
    ):
        processed = _map_unlinked(processed, _rewrite(pattern, parse, references))

    processed = _map_unlinked(processed, _wrap_bare_urls(references))
    return ReferenceExtraction(processed_text=processed, references=references)
