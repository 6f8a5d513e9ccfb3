from __future__ import annotations

import json

import pytest

from ithbat.traverser.config_store import SiteConfigStore, normalize_domain
from ithbat.traverser.types import SiteConfigError, SiteTraversalConfig


def site_record(domain: str, /, **overrides) -> dict:
    record = {
        "domain": domain,
        "name": domain.title(),
        "evidenceTypes": ["fatwa"],
        "search": {"urlTemplate": f"https://{domain}/search?q={{query}}"},
        "contentPage": {"urlPatterns": [r"/answers/\d+"]},
        "extraction": {"title": ["h1"], "mainContent": ["article"]},
        "navigation": {"relatedLinks": ["a[href]"], "excludePatterns": []},
    }
    record.update(overrides)
    return record


@pytest.fixture
def sites_dir(tmp_path):
    good = site_record("example.org")
    bad = site_record("broken.org")
    del bad["search"]
    (tmp_path / "example.org.json").write_text(json.dumps(good))
    (tmp_path / "broken.org.json").write_text(json.dumps(bad))
    (tmp_path / "garbage.json").write_text("{not json")
    (tmp_path / "sites.json").write_text(
        json.dumps({"sites": ["example.org.json", "broken.org.json", "garbage.json", "missing.json"]})
    )
    return tmp_path


def test_invalid_records_are_skipped(sites_dir):
    store = SiteConfigStore(sites_dir)

    assert store.available_domains() == ["example.org"]


def test_lookup_by_url_and_subdomain(sites_dir):
    store = SiteConfigStore(sites_dir)

    assert store.get("https://www.example.org/answers/1").domain == "example.org"
    assert store.get("fatwa.example.org").domain == "example.org"
    assert store.get("notexample.org") is None
    assert store.is_trusted("https://example.org/x")
    assert not store.is_trusted("https://elsewhere.net/x")


def test_missing_enable_list_loads_nothing(tmp_path):
    store = SiteConfigStore(tmp_path)

    assert store.all() == []
    assert store.get("sunnah.com") is None


def test_configs_load_once(sites_dir):
    store = SiteConfigStore(sites_dir)
    first = store.all()
    (sites_dir / "sites.json").write_text(json.dumps({"sites": []}))

    assert store.all() == first


def test_bundled_sites():
    store = SiteConfigStore()

    assert {"sunnah.com", "quran.com", "islamqa.info"} <= set(store.available_domains())
    assert store.get("https://sunnah.com/bukhari:1").content_page.matches("https://sunnah.com/bukhari:1")
    assert store.get("quran.com").content_page.matches("https://quran.com/2/255")
    assert store.get("islamqa.info").content_page.matches("https://islamqa.info/en/answers/20406")


def test_normalize_domain():
    assert normalize_domain("https://WWW.Sunnah.com:443/bukhari:1") == "sunnah.com"
    assert normalize_domain("www.islamqa.info/en") == "islamqa.info"
    assert normalize_domain("") == ""


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"search": {"urlTemplate": "https://x.org/search"}}, "urlTemplate"),
        ({"contentPage": {"urlPatterns": ["("]}}, "invalid content page pattern"),
        ({"evidenceTypes": ["rumour"]}, "rumour"),
        ({"extraction": {"title": "h1"}}, "list of strings"),
        ({"domain": ""}, "domain"),
    ],
)
def test_malformed_records_raise(overrides, message):
    with pytest.raises(SiteConfigError, match=message):
        SiteTraversalConfig.from_dict(site_record("x.org", **overrides))


def test_metadata_string_shorthand():
    config = SiteTraversalConfig.from_dict(
        site_record("x.org", extraction={"title": [], "mainContent": [], "metadata": {"mufti": ".author"}})
    )

    key, spec = config.extraction.metadata[0]
    assert key == "mufti"
    assert spec.selector == ".author"
    assert spec.type == "string"
