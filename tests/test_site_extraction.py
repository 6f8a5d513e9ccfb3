from __future__ import annotations

from ithbat.traverser.config_store import SiteConfigStore
from ithbat.traverser.extraction import (
    extract_content,
    extract_search_results,
    get_evidence_type,
    is_search_page,
    search_url,
    site_summary,
)
from ithbat.traverser.types import EvidenceType, SiteTraversalConfig

HADITH_PAGE = """
<html><head><title>Sahih al-Bukhari 1 - Revelation - sunnah.com</title></head>
<body>
<nav><a href="/bukhari:2">Next hadith</a></nav>
<div class="hadith_reference"><table><tr><td>Reference</td><td>: Sahih al-Bukhari 1</td></tr></table></div>
<div class="hadith_narrated">Narrated 'Umar bin Al-Khattab:</div>
<div class="english_hadith_full">I heard Allah's Messenger saying, "The reward of deeds depends upon
the intentions and every person will get the reward according to what he has intended."</div>
<div class="gradetable"><span class="english_grade">Sahih (Darussalam)</span></div>
<a href="/bukhari:3">Hadith 3</a>
<a href="/bukhari:3">Hadith 3 again</a>
<a href="/search?q=intentions">Search</a>
<a href="https://example.com/bukhari:9">Elsewhere</a>
<a href="/about">About</a>
</body></html>
"""


def sunnah_config() -> SiteTraversalConfig:
    config = SiteConfigStore().get("sunnah.com")
    assert config is not None
    return config


def make_config(**overrides) -> SiteTraversalConfig:
    raw = {
        "domain": "example.org",
        "name": "Example Fatwas",
        "evidenceTypes": ["scholarly_opinion", "fatwa"],
        "search": {"urlTemplate": "https://example.org/find?term={query}", "resultSelector": ".hit"},
        "contentPage": {"urlPatterns": [r"example\.org/(answers|fatwa|tafsir|hadith)/\d+"]},
        "extraction": {"title": [".primary", "h1"], "mainContent": [".body-text"]},
        "navigation": {"relatedLinks": ["a[href]"], "excludePatterns": ["#"]},
    }
    raw.update(overrides)
    return SiteTraversalConfig.from_dict(raw)


def test_configured_hadith_page():
    extracted = extract_content(HADITH_PAGE, "https://sunnah.com/bukhari:1", sunnah_config())

    assert extracted.is_content_page
    assert "Sahih al-Bukhari 1" in extracted.title
    assert extracted.content.startswith("I heard Allah's Messenger")
    assert extracted.source == "Sunnah.com"
    assert extracted.evidence_type == EvidenceType.HADITH


def test_metadata_fields_are_typed():
    extracted = extract_content(HADITH_PAGE, "https://sunnah.com/bukhari:1", sunnah_config())

    assert extracted.metadata["grade"] == "sahih"
    assert extracted.metadata["narrator"] == "Narrated 'Umar bin Al-Khattab:"
    assert "Sahih al-Bukhari 1" in extracted.metadata["reference"]
    # Missing on the page, so absent rather than None.
    assert "hadithNumber" not in extracted.metadata
    assert "arabicText" not in extracted.metadata


def test_related_links_are_same_domain_content_pages():
    extracted = extract_content(HADITH_PAGE, "https://sunnah.com/bukhari:1", sunnah_config())

    # Navigation links are gathered before nav blocks are stripped.
    assert extracted.related_links == (
        "https://sunnah.com/bukhari:2",
        "https://sunnah.com/bukhari:3",
    )


def test_unconfigured_domain_uses_generic_rules():
    html = """
    <html><head><title>Doc Title Here</title></head>
    <body><header><h1>Site Banner Heading</h1></header>
    <div><h1>Main Heading Text</h1><p>Short.</p></div>
    <a href="/page/2">Next page</a><a href="https://other.net/x">Off site</a>
    </body></html>
    """
    extracted = extract_content(html, "https://www.unknown-blog.net/post/1")

    assert extracted.title == "Main Heading Text"
    assert "Short." in extracted.content
    assert extracted.source == "unknown-blog.net"
    assert extracted.metadata == {}
    assert extracted.evidence_type is None
    assert not extracted.is_content_page
    assert extracted.related_links == ("https://www.unknown-blog.net/page/2",)


def test_title_falls_back_to_document_title():
    html = "<html><head><title>Home</title></head><body><p>Hi</p></body></html>"
    assert extract_content(html, "https://unknown.net/").title == "Home"


def test_empty_html_never_raises():
    extracted = extract_content("", "https://unknown.net/")
    assert extracted.title == ""
    assert extracted.content == ""


def test_selector_priority_skips_trivial_text():
    config = make_config()
    html = """
    <html><body><div class="primary">Tiny</div><h1>The Ruling on Music</h1>
    <div class="body-text">Scholars differ on this matter.</div></body></html>
    """
    extracted = extract_content(html, "https://example.org/answers/12", config)

    assert extracted.title == "The Ruling on Music"


def test_invalid_selectors_are_skipped():
    config = make_config(
        extraction={"title": ["div[", "h1"], "mainContent": ["p:unknown-pseudo", "p"]},
    )
    html = "<html><body><h1>A Valid Heading</h1><p>Some paragraph text here.</p></body></html>"

    extracted = extract_content(html, "https://example.org/answers/12", config)
    assert extracted.title == "A Valid Heading"
    assert "Some paragraph text here." in extracted.content


def test_short_content_falls_back_to_body_text():
    config = make_config()
    html = """
    <html><body><div class="body-text">Brief answer.</div>
    <section>The longer explanation lives outside the configured container and carries the detail.</section>
    </body></html>
    """
    extracted = extract_content(html, "https://example.org/answers/12", config)

    assert "longer explanation" in extracted.content


def test_content_is_capped():
    html = f"<html><body><article>{'word ' * 5000}</article></body></html>"
    extracted = extract_content(html, "https://unknown.net/long")

    assert len(extracted.content) <= 10000


def test_evidence_type_hints():
    config = make_config()

    assert get_evidence_type("https://example.org/fatwa/12", config) == EvidenceType.FATWA
    assert get_evidence_type("https://example.org/answers/5", config) == EvidenceType.FATWA
    assert get_evidence_type("https://example.org/hadith/3", config) == EvidenceType.HADITH
    assert get_evidence_type("https://example.org/tafsir/1", config) == EvidenceType.TAFSIR
    assert get_evidence_type("https://example.org/misc", config) == EvidenceType.SCHOLARLY_OPINION
    assert get_evidence_type("https://example.org/misc", None) is None


def test_search_url_encodes_query():
    assert search_url("fasting in ramadan", sunnah_config()) == (
        "https://sunnah.com/search?q=fasting%20in%20ramadan"
    )


def test_is_search_page():
    config = sunnah_config()
    assert is_search_page("https://sunnah.com/search?q=prayer", config)
    assert not is_search_page("https://sunnah.com/bukhari:1", config)


def test_search_results_from_result_containers():
    html = """
    <div class="boh"><a href="/about">About</a><a href="/bukhari:1">Bukhari 1</a></div>
    <div class="boh"><a href="/muslim:5">Muslim 5</a></div>
    <a href="/tirmidhi:7">Outside results</a>
    """
    assert extract_search_results(html, sunnah_config()) == [
        "https://sunnah.com/bukhari:1",
        "https://sunnah.com/muslim:5",
    ]


def test_search_results_fall_back_to_any_content_link():
    html = '<a href="/about">About</a><a href="/abudawud:20">Abu Dawud 20</a>'
    assert extract_search_results(html, sunnah_config()) == ["https://sunnah.com/abudawud:20"]


def test_site_summary_lists_metadata():
    summary = site_summary(sunnah_config())

    assert summary.startswith("## Sunnah.com")
    assert "Domain: sunnah.com" in summary
    assert "- grade: Authenticity grade" in summary
