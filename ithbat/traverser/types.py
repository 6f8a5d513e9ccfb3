from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EvidenceType(str, Enum):
    HADITH = "hadith"
    QURAN = "quran"
    TAFSIR = "tafsir"
    FATWA = "fatwa"
    SCHOLARLY_OPINION = "scholarly_opinion"
    FIQH = "fiqh"


METADATA_TYPES = ("string", "number", "grade", "reference", "list")


class SiteConfigError(ValueError):
    """A site configuration record is missing fields or malformed."""


def _str_list(raw: Any, where: str) -> tuple[str, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
        raise SiteConfigError(f"{where} must be a list of strings")
    return tuple(raw)


def _section(raw: dict[str, Any], key: str, domain: str) -> dict[str, Any]:
    value = raw.get(key)
    if not isinstance(value, dict):
        raise SiteConfigError(f"{domain}: '{key}' section is required")
    return value


@dataclass(frozen=True, slots=True)
class MetadataField:
    selector: str
    description: str = ""
    type: str = "string"
    value_map: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True, slots=True)
class SearchConfig:
    url_template: str
    result_selector: str
    result_link_selector: str
    search_tips: str = ""


@dataclass(frozen=True, slots=True)
class ContentPageConfig:
    url_patterns: tuple[re.Pattern[str], ...]
    description: str = ""

    def matches(self, url: str) -> bool:
        return any(p.search(url) for p in self.url_patterns)


@dataclass(frozen=True, slots=True)
class ExtractionConfig:
    title: tuple[str, ...]
    main_content: tuple[str, ...]
    metadata: tuple[tuple[str, MetadataField], ...] = ()


@dataclass(frozen=True, slots=True)
class NavigationConfig:
    related_links: tuple[str, ...]
    exclude_patterns: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class SiteTraversalConfig:
    """Per-domain extraction rules. Immutable once loaded."""

    domain: str
    name: str
    search: SearchConfig
    content_page: ContentPageConfig
    extraction: ExtractionConfig
    navigation: NavigationConfig
    evidence_types: tuple[EvidenceType, ...] = ()
    languages: tuple[str, ...] = ()
    description: str = ""
    ai_notes: str = ""

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "SiteTraversalConfig":
        if not isinstance(raw, dict):
            raise SiteConfigError("Site config must be a JSON object")
        domain = raw.get("domain")
        if not isinstance(domain, str) or not domain.strip():
            raise SiteConfigError("Site config requires a 'domain'")
        domain = domain.strip().lower()

        search_raw = _section(raw, "search", domain)
        content_raw = _section(raw, "contentPage", domain)
        extraction_raw = _section(raw, "extraction", domain)
        navigation_raw = _section(raw, "navigation", domain)

        try:
            patterns = tuple(
                re.compile(p) for p in _str_list(content_raw.get("urlPatterns"), f"{domain}: contentPage.urlPatterns")
            )
        except re.error as exc:
            raise SiteConfigError(f"{domain}: invalid content page pattern: {exc}") from exc

        metadata: list[tuple[str, MetadataField]] = []
        for key, spec in (extraction_raw.get("metadata") or {}).items():
            if isinstance(spec, str):
                spec = {"selector": spec}
            if not isinstance(spec, dict) or not isinstance(spec.get("selector"), str):
                raise SiteConfigError(f"{domain}: metadata field '{key}' needs a selector")
            field_type = spec.get("type", "string")
            if field_type not in METADATA_TYPES:
                raise SiteConfigError(f"{domain}: metadata field '{key}' has unknown type '{field_type}'")
            metadata.append(
                (
                    key,
                    MetadataField(
                        selector=spec["selector"],
                        description=str(spec.get("description", "")),
                        type=field_type,
                        value_map=tuple((spec.get("valueMap") or {}).items()),
                    ),
                )
            )

        try:
            evidence_types = tuple(EvidenceType(t) for t in raw.get("evidenceTypes") or [])
        except ValueError as exc:
            raise SiteConfigError(f"{domain}: {exc}") from exc

        url_template = search_raw.get("urlTemplate", "")
        if "{query}" not in url_template:
            raise SiteConfigError(f"{domain}: search.urlTemplate must contain {{query}}")

        return cls(
            domain=domain,
            name=str(raw.get("name") or domain),
            description=str(raw.get("description", "")),
            languages=_str_list(raw.get("languages"), f"{domain}: languages"),
            evidence_types=evidence_types,
            search=SearchConfig(
                url_template=url_template,
                result_selector=str(search_raw.get("resultSelector", "")),
                result_link_selector=str(search_raw.get("resultLinkSelector", "a")),
                search_tips=str(search_raw.get("searchTips", "")),
            ),
            content_page=ContentPageConfig(
                url_patterns=patterns,
                description=str(content_raw.get("description", "")),
            ),
            extraction=ExtractionConfig(
                title=_str_list(extraction_raw.get("title"), f"{domain}: extraction.title"),
                main_content=_str_list(extraction_raw.get("mainContent"), f"{domain}: extraction.mainContent"),
                metadata=tuple(metadata),
            ),
            navigation=NavigationConfig(
                related_links=_str_list(navigation_raw.get("relatedLinks"), f"{domain}: navigation.relatedLinks"),
                exclude_patterns=_str_list(navigation_raw.get("excludePatterns"), f"{domain}: navigation.excludePatterns"),
            ),
            ai_notes=str(raw.get("aiNotes", "")),
        )


@dataclass(frozen=True, slots=True)
class ExtractedContent:
    url: str
    is_content_page: bool
    title: str
    content: str
    source: str
    metadata: dict[str, Any] = field(default_factory=dict)
    related_links: tuple[str, ...] = ()
    evidence_type: EvidenceType | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "isContentPage": self.is_content_page,
            "title": self.title,
            "content": self.content,
            "metadata": self.metadata,
            "relatedLinks": list(self.related_links),
            "source": self.source,
            "evidenceType": self.evidence_type.value if self.evidence_type else None,
        }
