from __future__ import annotations

from urllib.parse import urlparse


def is_valid_url(url: str) -> bool:
    """Basic URL validation."""
    try:
        result = urlparse(url)
        return all([result.scheme in ("http", "https"), result.netloc])
    except ValueError:
        return False


def extract_domain(url: str) -> str:
    """Display domain for a URL, without ``www.``."""
    try:
        host = urlparse(url).hostname or url
    except ValueError:
        return url
    return host[4:] if host.startswith("www.") else host
