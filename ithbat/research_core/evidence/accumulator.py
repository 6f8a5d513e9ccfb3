from __future__ import annotations

import hashlib
import re

from ithbat.models.evidence import (
    EvidenceFragment,
    ExtractedEvidence,
    FatwaEvidence,
    HadithEvidence,
    QuranVerseEvidence,
    ScholarlyOpinionEvidence,
)
from ithbat.research_core.references.canonical import (
    collection_name,
    collection_slug,
    hadith_number,
    hadith_url,
)
from ithbat.tools.web_utils import extract_domain

EVIDENCE_SECTION_HEADING = "## Verified Evidence"
AUTHENTIC_GRADES = ("sahih", "hasan")
_MARKDOWN_LINK_RE = re.compile(r"\[([^\]\n]*)\]\([^)\s]*\)")


def _collapse(text: str | None) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def _quoted(text: str | None) -> str:
    """Page text for the appendix, with any markdown links reduced to their labels."""
    return _MARKDOWN_LINK_RE.sub(r"\1", _collapse(text))


def _link(label: str, url: str | None) -> str:
    return f"[{label}]({url})" if url else label


def _source_link(url: str | None) -> str:
    return f" Source: {_link(extract_domain(url), url)}" if url else ""


def text_hash(text: str | None) -> str:
    normalized = _collapse(text).lower()
    return hashlib.sha1(normalized.encode("utf-8")).hexdigest()[:12]


def hadith_key(h: HadithEvidence) -> str:
    return f"{collection_slug(h.collection)}|{hadith_number(h.number) or text_hash(h.text)}"


def verse_key(v: QuranVerseEvidence) -> str:
    return f"{v.surah}:{v.ayah_start}-{v.ayah_end or v.ayah_start}"


def opinion_key(o: ScholarlyOpinionEvidence) -> str:
    who = _collapse(o.scholar or o.source).lower()
    return f"{who}|{text_hash(o.quote)}"


def fatwa_key(f: FatwaEvidence) -> str:
    return f"{_collapse(f.title).lower()}|{_collapse(f.source).lower()}"


def canonical_key(fragment: EvidenceFragment) -> str:
    if isinstance(fragment, HadithEvidence):
        return "hadith:" + hadith_key(fragment)
    if isinstance(fragment, QuranVerseEvidence):
        return "quran:" + verse_key(fragment)
    if isinstance(fragment, ScholarlyOpinionEvidence):
        return "opinion:" + opinion_key(fragment)
    if isinstance(fragment, FatwaEvidence):
        return "fatwa:" + fatwa_key(fragment)
    raise TypeError(f"Unsupported evidence fragment: {type(fragment).__name__}")


class EvidenceAccumulator:
    """Session-scoped store of evidence, deduplicated by canonical key.

    Merging is first-write-wins: a fragment whose key is already present is
    dropped, even when it carries more fields than the stored one.
    """

    def __init__(self) -> None:
        self._hadith: list[HadithEvidence] = []
        self._verses: list[QuranVerseEvidence] = []
        self._opinions: list[ScholarlyOpinionEvidence] = []
        self._fatwas: list[FatwaEvidence] = []
        self._seen: set[str] = set()
        self.sources_processed: list[str] = []

    def add_evidence(self, fragments: ExtractedEvidence, source_url: str) -> int:
        """Merge one page's fragments. Returns how many were new."""
        self.sources_processed.append(source_url)
        added = 0
        for fragment in fragments.fragments():
            key = canonical_key(fragment)
            if key in self._seen:
                continue
            self._seen.add(key)
            if isinstance(fragment, HadithEvidence):
                self._hadith.append(fragment)
            elif isinstance(fragment, QuranVerseEvidence):
                self._verses.append(fragment)
            elif isinstance(fragment, ScholarlyOpinionEvidence):
                self._opinions.append(fragment)
            else:
                self._fatwas.append(fragment)
            added += 1
        return added

    def get_evidence(self) -> ExtractedEvidence:
        """Snapshot; mutating it does not touch the accumulator."""
        return ExtractedEvidence(
            hadith=list(self._hadith),
            quran_verses=list(self._verses),
            scholarly_opinions=list(self._opinions),
            fatwas=list(self._fatwas),
        )

    def has_evidence(self) -> bool:
        return bool(self._seen)

    def summary(self) -> str:
        return (
            f"{len(self._hadith)} hadith, {len(self._verses)} Quran verses, "
            f"{len(self._opinions)} scholarly opinions, {len(self._fatwas)} fatwas"
        )

    def authentic_hadith(self) -> list[HadithEvidence]:
        return [h for h in self._hadith if (h.grade or "") in AUTHENTIC_GRADES]

    def format_for_synthesis(self) -> str:
        """Structured dump of all evidence for a completion-service prompt."""
        out = ["# EXTRACTED EVIDENCE", ""]

        if self._hadith:
            out += ["## HADITH EVIDENCE", ""]
            for h in self._hadith:
                number = hadith_number(h.number)
                name = h.collection or "Hadith"
                out.append(f"### {name} {number}" if number else f"### {name}")
                out.append(f"**Grade:** {h.grade or 'unknown'}")
                if h.narrator:
                    out.append(f"**Narrator:** {h.narrator}")
                if h.arabic_text:
                    out.append(f"**Arabic:** {h.arabic_text}")
                out.append(f"**Text:** {h.text or ''}")
                if number and h.url:
                    out.append(f"**URL:** {h.url}")
                    out.append("**HAS_VERIFIED_LINK:** YES")
                else:
                    out.append(f"**Source:** {name}")
                    out.append(
                        "**HAS_VERIFIED_LINK:** NO - Do NOT create a sunnah.com link "
                        "for this hadith. Just cite the collection name."
                    )
                out.append("")

        if self._verses:
            out += ["## QURAN VERSES", ""]
            for v in self._verses:
                name = f" ({v.surah_name})" if v.surah_name else ""
                out.append(f"### Quran {v.reference}{name}")
                if v.arabic_text:
                    out.append(f"**Arabic:** {v.arabic_text}")
                out.append(f"**Translation:** {v.translation or ''}")
                if v.translation_source:
                    out.append(f"**Source:** {v.translation_source}")
                out.append(f"**URL:** {v.url}")
                out.append("")

        if self._opinions:
            out += ["## SCHOLARLY OPINIONS", ""]
            for o in self._opinions:
                out.append(f"### {o.scholar or 'Scholar'} ({o.source or 'Unknown'})")
                if o.context:
                    out.append(f"**Context:** {o.context}")
                out.append(f'**Quote:** "{o.quote or ""}"')
                out.append(f"**URL:** {o.url or o.source_url}")
                out.append("")

        if self._fatwas:
            out += ["## FATWA RULINGS", ""]
            for f in self._fatwas:
                number = f" #{f.question_number}" if f.question_number else ""
                out.append(f"### {f.title or 'Fatwa'} ({f.source or 'Unknown'}{number})")
                if f.question:
                    out.append(f"**Question:** {f.question}")
                out.append(f"**Ruling:** {f.ruling or ''}")
                out.append(f"**Explanation:** {f.explanation or ''}")
                if f.evidence:
                    out.append(f"**Evidence cited:** {'; '.join(f.evidence)}")
                out.append(f"**URL:** {f.url or f.source_url}")
                out.append("")

        return "\n".join(out)

    def format_evidence_section(self) -> str:
        """Markdown appendix of the deduplicated evidence, or "" when empty.

        Each entry carries its canonical link (sunnah.com, quran.com or the
        page it came from). Links inside quoted page text are reduced to
        their labels.
        """
        if not self.has_evidence():
            return ""

        out = ["", "", "---", "", EVIDENCE_SECTION_HEADING, ""]

        if self._verses:
            out += ["### Quran", ""]
            for v in self._verses:
                line = "- " + _link(f"Quran {v.reference}", v.url)
                if v.surah_name:
                    line += f" ({_quoted(v.surah_name)})"
                if v.translation:
                    line += f': "{_quoted(v.translation)}"'
                out.append(line)
            out.append("")

        if self._hadith:
            out += ["### Hadith", ""]
            for h in self._hadith:
                name = collection_name(collection_slug(h.collection)) if h.collection else "Hadith"
                number = hadith_number(h.number)
                label = f"{name} {number}" if number else name
                line = "- " + _link(label, hadith_url(h.collection, number))
                line += f" (grade: {h.grade or 'unknown'})"
                if h.narrator:
                    line += f". {_quoted(h.narrator)}"
                if h.text:
                    line += f': "{_quoted(h.text)}"'
                out.append(line)
            out.append("")

        if self._opinions:
            out += ["### Scholarly Opinions", ""]
            for o in self._opinions:
                line = f"- {_quoted(o.scholar) or 'Scholar'}"
                if o.source:
                    line += f" ({_quoted(o.source)})"
                if o.quote:
                    line += f': "{_quoted(o.quote)}"'
                line += _source_link(o.url or o.source_url)
                out.append(line)
            out.append("")

        if self._fatwas:
            out += ["### Fatwas", ""]
            for f in self._fatwas:
                number = f" #{f.question_number}" if f.question_number else ""
                line = f"- {_quoted(f.title) or 'Fatwa'}"
                if f.source:
                    line += f" ({_quoted(f.source)}{number})"
                if f.ruling:
                    line += f": {_quoted(f.ruling)}."
                if f.explanation:
                    line += f" {_quoted(f.explanation)}"
                line += _source_link(f.url or f.source_url)
                out.append(line)
            out.append("")

        return "\n".join(out)
