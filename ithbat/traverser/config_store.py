from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from loguru import logger

from ithbat.config import settings
from ithbat.traverser.types import (
    ExtractionConfig,
    NavigationConfig,
    SiteConfigError,
    SiteTraversalConfig,
)

BUNDLED_SITES_DIR = Path(__file__).resolve().parent / "sites"
ENABLED_SITES_FILE = "sites.json"


@dataclass(frozen=True, slots=True)
class GenericConfig:
    extraction: ExtractionConfig
    navigation: NavigationConfig


# Used for every domain without its own record.
GENERIC_CONFIG = GenericConfig(
    extraction=ExtractionConfig(
        title=("h1", "title", ".title", ".post-title", ".article-title"),
        main_content=(
            "article",
            "main",
            ".content",
            ".post-content",
            ".article-content",
            ".entry-content",
            "p",
        ),
    ),
    navigation=NavigationConfig(
        related_links=("a[href]",),
        exclude_patterns=(
            "/search",
            "?q=",
            "?s=",
            "/login",
            "/register",
            "/about",
            "/contact",
            "/privacy",
            "/terms",
            "javascript:",
            "mailto:",
            "#",
        ),
    ),
)


def normalize_domain(value: str) -> str:
    """Bare lowercase host for a domain or URL, without ``www.`` or port."""
    value = (value or "").strip().lower()
    if "://" in value:
        host = urlparse(value).hostname or ""
    else:
        host = value.split("/", 1)[0].split(":", 1)[0]
    if host.startswith("www."):
        host = host[4:]
    return host


class SiteConfigStore:
    """Lazily loads the enabled site configs once per process.

    The enable list (``sites.json``) names one JSON file per site. Records
    that fail validation are logged and skipped. After the first load the
    mapping is never mutated, so concurrent readers need no locking.
    """

    def __init__(self, sites_dir: str | Path | None = None):
        configured = sites_dir or settings.site_configs_dir
        self.sites_dir = Path(configured) if configured else BUNDLED_SITES_DIR
        self._configs: dict[str, SiteTraversalConfig] | None = None
        self._lock = threading.Lock()

    def _load(self) -> dict[str, SiteTraversalConfig]:
        enabled_path = self.sites_dir / ENABLED_SITES_FILE
        try:
            enabled = json.loads(enabled_path.read_text(encoding="utf-8")).get("sites", [])
        except FileNotFoundError:
            logger.warning(f"No {ENABLED_SITES_FILE} in {self.sites_dir}; no trusted sites loaded")
            return {}

        configs: dict[str, SiteTraversalConfig] = {}
        for filename in enabled:
            path = self.sites_dir / filename
            try:
                config = SiteTraversalConfig.from_dict(json.loads(path.read_text(encoding="utf-8")))
            except FileNotFoundError:
                logger.warning(f"Enabled site config missing: {path}")
                continue
            except (json.JSONDecodeError, SiteConfigError) as exc:
                logger.error(f"Invalid site config {path}: {exc}")
                continue
            configs[config.domain] = config
        logger.info(f"Loaded {len(configs)} site configs from {self.sites_dir}")
        return configs

    def _ensure_loaded(self) -> dict[str, SiteTraversalConfig]:
        if self._configs is None:
            with self._lock:
                if self._configs is None:
                    self._configs = self._load()
        return self._configs

    def get(self, domain_or_url: str) -> SiteTraversalConfig | None:
        """Config for a domain or URL; subdomains resolve to their parent."""
        configs = self._ensure_loaded()
        host = normalize_domain(domain_or_url)
        while host:
            if host in configs:
                return configs[host]
            if "." not in host:
                break
            host = host.split(".", 1)[1]
        return None

    def all(self) -> list[SiteTraversalConfig]:
        return list(self._ensure_loaded().values())

    def available_domains(self) -> list[str]:
        return list(self._ensure_loaded().keys())

    def is_trusted(self, domain_or_url: str) -> bool:
        return self.get(domain_or_url) is not None


_store: SiteConfigStore | None = None


def get_config_store() -> SiteConfigStore:
    """Get or create the process-wide config store."""
    global _store
    if _store is None:
        _store = SiteConfigStore()
    return _store
