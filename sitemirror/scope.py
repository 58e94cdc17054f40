"""
Origin Scope
============
Same-site scoping rule shared by page traversal and asset download.

A URL is in scope if and only if its hostname equals the seed URL's
hostname. Scheme, port, and path are not compared, and subdomains
(including ``www.``) count as different hosts.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional
from urllib.parse import urldefrag, urljoin, urlparse

logger = logging.getLogger(__name__)

_SKIP_PREFIXES = ("javascript:", "mailto:", "tel:", "data:", "blob:", "about:")


def hostname_of(url: str) -> str:
    """Lower-cased hostname of *url*, or ``""`` if it has none / cannot be parsed."""
    try:
        return (urlparse(url).hostname or "").lower()
    except (ValueError, TypeError, AttributeError):
        return ""


def canonicalize_link(href: str, base_url: str) -> Optional[str]:
    """Resolve *href* against *base_url* into an absolute http(s) URL.

    Fragments are dropped so ``/page#a`` and ``/page#b`` are one page.

    Returns:
        The absolute URL, or None for non-navigable references
        (``javascript:``, ``mailto:``, bare fragments, unparsable input).
    """
    if not href or not isinstance(href, str):
        return None
    href = href.strip()
    if not href or href.startswith("#") or href.lower().startswith(_SKIP_PREFIXES):
        return None
    try:
        absolute = urljoin(base_url, href)
        absolute, _ = urldefrag(absolute)
        parsed = urlparse(absolute)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return None
    if not parsed.path:
        # https://example.com and https://example.com/ are the same document
        absolute = parsed._replace(path="/").geturl()
    return absolute


def is_same_host(url: str, seed_url: str) -> bool:
    """True if *url* and *seed_url* have the same (non-empty) hostname."""
    host = hostname_of(url)
    return bool(host) and host == hostname_of(seed_url)


class OriginScope:
    """Hostname scope anchored on a seed URL."""

    def __init__(self, seed_url: str):
        self.seed_url = seed_url
        self.host = hostname_of(seed_url)

    def accept(self, url: str) -> bool:
        host = hostname_of(url)
        return bool(host) and host == self.host

    def filter_links(self, hrefs: Iterable[str], base_url: str) -> List[str]:
        """Resolve *hrefs* against *base_url* and keep in-scope ones, in order, without duplicates."""
        seen = set()
        accepted = []
        for href in hrefs:
            absolute = canonicalize_link(href, base_url)
            if absolute is None or absolute in seen:
                continue
            seen.add(absolute)
            if self.accept(absolute):
                accepted.append(absolute)
        return accepted

    @property
    def description(self) -> str:
        return f"Host only: {self.host} (subdomains excluded)"
