from __future__ import annotations

from dataclasses import dataclass, field

from ithbat.research_core.references.canonical import quran_url


@dataclass(frozen=True, slots=True)
class HadithEvidence:
    collection: str
    source_url: str
    number: str | None = None
    grade: str | None = None
    arabic_text: str | None = None
    text: str | None = None
    narrator: str | None = None
    chapter: str | None = None
    url: str | None = None


@dataclass(frozen=True, slots=True)
class QuranVerseEvidence:
    surah: int
    ayah_start: int
    source_url: str
    ayah_end: int | None = None
    surah_name: str | None = None
    arabic_text: str | None = None
    translation: str | None = None
    translation_source: str | None = None
    url: str = ""

    def __post_init__(self) -> None:
        if not self.url:
            object.__setattr__(self, "url", quran_url(self.surah, self.ayah_start, self.ayah_end))

    @property
    def reference(self) -> str:
        if self.ayah_end and self.ayah_end != self.ayah_start:
            return f"{self.surah}:{self.ayah_start}-{self.ayah_end}"
        return f"{self.surah}:{self.ayah_start}"


@dataclass(frozen=True, slots=True)
class ScholarlyOpinionEvidence:
    source_url: str
    scholar: str | None = None
    quote: str | None = None
    context: str | None = None
    source: str | None = None
    question_number: str | None = None
    url: str | None = None


@dataclass(frozen=True, slots=True)
class FatwaEvidence:
    source_url: str
    title: str | None = None
    question: str | None = None
    ruling: str | None = None
    explanation: str | None = None
    evidence: tuple[str, ...] = ()
    source: str | None = None
    question_number: str | None = None
    url: str | None = None


EvidenceFragment = HadithEvidence | QuranVerseEvidence | ScholarlyOpinionEvidence | FatwaEvidence


@dataclass
class ExtractedEvidence:
    """Typed evidence found on one page (or a snapshot across pages)."""

    hadith: list[HadithEvidence] = field(default_factory=list)
    quran_verses: list[QuranVerseEvidence] = field(default_factory=list)
    scholarly_opinions: list[ScholarlyOpinionEvidence] = field(default_factory=list)
    fatwas: list[FatwaEvidence] = field(default_factory=list)

    @property
    def total(self) -> int:
        return (
            len(self.hadith)
            + len(self.quran_verses)
            + len(self.scholarly_opinions)
            + len(self.fatwas)
        )

    def is_empty(self) -> bool:
        return self.total == 0

    def fragments(self) -> list[EvidenceFragment]:
        return [*self.hadith, *self.quran_verses, *self.scholarly_opinions, *self.fatwas]
