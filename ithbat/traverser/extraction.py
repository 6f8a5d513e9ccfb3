"""Config-driven structured extraction from fetched pages.

Every field is resolved the same way: the site's own selectors in priority
order, then the generic selectors, then a whole-page fallback. Unknown
domains go straight to the generic rules and never raise.
"""
from __future__ import annotations

import re
from typing import Any, Iterable
from urllib.parse import quote, urljoin, urlparse

from bs4 import BeautifulSoup
from loguru import logger
from soupsieve import SelectorSyntaxError

from ithbat.research_core.references.canonical import normalize_grade
from ithbat.traverser.config_store import GENERIC_CONFIG, normalize_domain
from ithbat.traverser.types import (
    EvidenceType,
    ExtractedContent,
    MetadataField,
    SiteTraversalConfig,
)

MIN_TEXT_LENGTH = 10
MIN_CONTENT_LENGTH = 100
MAX_TITLE_CHARS = 500
MAX_CONTENT_CHARS = 10000
MAX_RELATED_LINKS = 50

NOISE_SELECTOR = (
    "script, style, noscript, nav, footer, header, aside, .sidebar, .menu, "
    ".navigation, .cookie, .popup, .modal, .ad, .advertisement"
)

_WHITESPACE = re.compile(r"\s+")
_NUMBER = re.compile(r"\d+")


def _clean(text: str) -> str:
    return _WHITESPACE.sub(" ", text.replace("\xa0", " ")).strip()


def _select(soup: BeautifulSoup, selector: str) -> list[Any]:
    try:
        return soup.select(selector)
    except (SelectorSyntaxError, ValueError) as exc:
        logger.debug(f"Skipping invalid selector {selector!r}: {exc}")
        return []


def _select_text(soup: BeautifulSoup, selectors: Iterable[str], *, first_only: bool = False) -> str:
    """Text of the first selector that yields non-trivial text."""
    for selector in selectors:
        texts = []
        for element in _select(soup, selector):
            text = _clean(element.get_text(" "))
            if len(text) > MIN_TEXT_LENGTH:
                texts.append(text)
                if first_only:
                    break
        if texts:
            return "\n\n".join(texts)
    return ""


def _metadata_value(soup: BeautifulSoup, spec: MetadataField) -> Any:
    elements = _select(soup, spec.selector)
    if not elements:
        return None
    if spec.type == "list":
        values = [_clean(e.get_text(" ")) for e in elements]
        return [v for v in values if v] or None

    text = _clean(elements[0].get_text(" "))
    if not text:
        return None
    if spec.type == "number":
        match = _NUMBER.search(text)
        return int(match.group(0)) if match else None
    if spec.type == "grade":
        return normalize_grade(text)
    return text


def extract_metadata(soup: BeautifulSoup, config: SiteTraversalConfig | None) -> dict[str, Any]:
    if config is None:
        return {}
    metadata: dict[str, Any] = {}
    for key, spec in config.extraction.metadata:
        value = _metadata_value(soup, spec)
        if value is not None:
            metadata[key] = value
    return metadata


def is_content_page(url: str, config: SiteTraversalConfig | None) -> bool:
    if config is None:
        return False
    return config.content_page.matches(url)


def get_evidence_type(url: str, config: SiteTraversalConfig | None) -> EvidenceType | None:
    """Single declared type wins; otherwise URL keyword hints, then the first declared type."""
    if config is None:
        return None
    if len(config.evidence_types) == 1:
        return config.evidence_types[0]

    lower = url.lower()
    path = urlparse(lower).path
    if (
        "/hadith" in lower
        or any(name in lower for name in ("bukhari", "muslim", "tirmidhi"))
        or (":" in path and config.domain == "sunnah.com")
    ):
        return EvidenceType.HADITH
    if (
        "/quran" in lower
        or "/surah" in lower
        or (config.domain == "quran.com" and re.search(r"/\d+/\d+", path))
    ):
        return EvidenceType.QURAN
    if "/tafsir" in lower or "exegesis" in lower:
        return EvidenceType.TAFSIR
    if "/fatwa" in lower or "/answers" in lower:
        return EvidenceType.FATWA
    if "/fiqh" in lower or "/ruling" in lower:
        return EvidenceType.FIQH
    return config.evidence_types[0] if config.evidence_types else None


def _same_domain(url: str, domain: str) -> bool:
    host = normalize_domain(url)
    return host == domain or host.endswith("." + domain)


def find_related_links(
    soup: BeautifulSoup,
    url: str,
    config: SiteTraversalConfig | None,
) -> list[str]:
    """Absolute same-domain links worth following, deduplicated, at most 50."""
    navigation = config.navigation if config else GENERIC_CONFIG.navigation
    domain = config.domain if config else normalize_domain(url)
    links: list[str] = []
    seen: set[str] = set()

    for selector in navigation.related_links:
        for element in _select(soup, selector):
            href = (element.get("href") or "").strip()
            if not href:
                continue
            full_url = urljoin(url, href)
            if urlparse(full_url).scheme not in ("http", "https"):
                continue
            if not _same_domain(full_url, domain):
                continue
            if any(pattern in full_url for pattern in navigation.exclude_patterns):
                continue
            if config is not None and not config.content_page.matches(full_url):
                continue
            if full_url in seen:
                continue
            seen.add(full_url)
            links.append(full_url)
            if len(links) >= MAX_RELATED_LINKS:
                return links
    return links


def extract_content(
    html: str,
    url: str,
    config: SiteTraversalConfig | None = None,
) -> ExtractedContent:
    """Normalize one fetched page into an ExtractedContent record."""
    soup = BeautifulSoup(html or "", "html.parser")

    # Links first: navigation blocks are stripped below.
    related_links = find_related_links(soup, url, config)

    document_title = _clean(soup.title.get_text()) if soup.title else ""
    for element in _select(soup, NOISE_SELECTOR):
        element.decompose()

    title = ""
    if config is not None:
        title = _select_text(soup, config.extraction.title, first_only=True)
    if not title:
        title = _select_text(soup, GENERIC_CONFIG.extraction.title, first_only=True)
    if not title:
        h1 = soup.find("h1")
        title = _clean(h1.get_text(" ")) if h1 else document_title

    content = ""
    if config is not None:
        content = _select_text(soup, config.extraction.main_content)
    if not content:
        content = _select_text(soup, GENERIC_CONFIG.extraction.main_content)
    if len(content) < MIN_CONTENT_LENGTH:
        body = soup.body or soup
        body_text = _clean(body.get_text(" "))[:MAX_CONTENT_CHARS]
        if len(body_text) > len(content):
            content = body_text

    return ExtractedContent(
        url=url,
        is_content_page=is_content_page(url, config),
        title=title[:MAX_TITLE_CHARS],
        content=content[:MAX_CONTENT_CHARS],
        source=config.name if config else normalize_domain(url),
        metadata=extract_metadata(soup, config),
        related_links=tuple(related_links),
        evidence_type=get_evidence_type(url, config),
    )


def search_url(query: str, config: SiteTraversalConfig) -> str:
    return config.search.url_template.replace("{query}", quote(query, safe=""))


def is_search_page(url: str, config: SiteTraversalConfig) -> bool:
    base = config.search.url_template.split("{query}")[0]
    base = base.replace("https://", "").replace("http://", "")
    return base in url


def extract_search_results(html: str, config: SiteTraversalConfig) -> list[str]:
    """Content-page links from a site search page.

    Configured result selectors are tried first; if they find nothing
    (script-rendered pages), any same-domain content-page link is used.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    base_url = f"https://{config.domain}/"
    links: list[str] = []

    def _add(href: str | None) -> None:
        if not href:
            return
        full_url = urljoin(base_url, href.strip())
        if (
            _same_domain(full_url, config.domain)
            and config.content_page.matches(full_url)
            and full_url not in links
        ):
            links.append(full_url)

    if config.search.result_selector:
        for result in _select(soup, config.search.result_selector):
            link = None
            if config.search.result_link_selector:
                try:
                    link = result.select_one(config.search.result_link_selector)
                except (SelectorSyntaxError, ValueError):
                    link = None
            link = link or result.find("a", href=True)
            if link is not None:
                _add(link.get("href"))

    if not links:
        for anchor in soup.find_all("a", href=True):
            _add(anchor.get("href"))

    return links


def site_summary(config: SiteTraversalConfig) -> str:
    """Human-readable description of a site config."""
    metadata = "\n".join(
        f"- {key}: {spec.description or spec.type}" for key, spec in config.extraction.metadata
    ) or "None"
    return "\n".join(
        [
            f"## {config.name}",
            f"Domain: {config.domain}",
            f"Languages: {', '.join(config.languages) or 'unknown'}",
            f"Evidence Types: {', '.join(t.value for t in config.evidence_types) or 'none'}",
            "",
            config.description or "",
            "",
            "### Search:",
            config.search.search_tips or f"Search URL: {config.search.url_template}",
            "",
            "### Metadata:",
            metadata,
            "",
            "### Notes:",
            config.ai_notes or "No specific notes",
        ]
    ).strip()
