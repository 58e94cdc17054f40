"""
Filename / Path Resolver
URL -> safe relative filesystem path inside a job's output directory.
"""

import hashlib
import logging
import posixpath
import re
from pathlib import Path
from urllib.parse import unquote, urlparse

logger = logging.getLogger(__name__)

DEFAULT_DOCUMENT = "index.html"
DEFAULT_EXTENSION = ".html"

# Characters that are unsafe in file names on at least one common filesystem
_UNSAFE_CHARS_RE = re.compile(r'[<>:"\\|?*\x00-\x1f]')

_MAX_SEGMENT_LENGTH = 200


def url_hash(url) -> str:
    """md5 of the URL string, used for content-addressed fallback names."""
    return hashlib.md5(str(url).encode("utf-8", "replace")).hexdigest()


def _fallback_name(url) -> str:
    return f"page-{url_hash(url)}{DEFAULT_EXTENSION}"


def _clean_segment(segment: str) -> str:
    segment = _UNSAFE_CHARS_RE.sub("_", segment).strip()
    if len(segment) > _MAX_SEGMENT_LENGTH:
        _, ext = posixpath.splitext(segment)
        segment = f"{url_hash(segment)}{ext[:16]}"
    return segment


def resolve_path(url) -> str:
    """
    Map a URL to a relative POSIX path.

    ``/`` -> ``index.html``, ``/about`` -> ``about.html``,
    ``/docs/`` -> ``docs/index.html``, ``/css/site.css`` -> ``css/site.css``.

    The function is total: anything that is not an absolute http(s) URL
    gets a hash-derived ``page-<md5>.html`` name. The result is never empty
    and never contains ``..`` or an absolute prefix.
    """
    try:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"not an absolute http(s) URL: {url!r}")
        path = unquote(parsed.path)
    except (ValueError, TypeError, AttributeError) as exc:
        logger.debug(f"Falling back to hashed filename: {exc}")
        return _fallback_name(url)

    segments = []
    for raw in path.replace("\\", "/").split("/"):
        if raw in ("", ".", ".."):
            continue
        cleaned = _clean_segment(raw)
        if cleaned and cleaned not in (".", ".."):
            segments.append(cleaned)

    if not segments:
        return DEFAULT_DOCUMENT

    if path.endswith("/"):
        segments.append(DEFAULT_DOCUMENT)
    elif not posixpath.splitext(segments[-1])[1]:
        segments[-1] += DEFAULT_EXTENSION

    return "/".join(segments)


def output_path(output_dir, url) -> Path:
    """Absolute target path for *url* under *output_dir*.

    Raises:
        ValueError: if the resolved path escapes *output_dir* (should not
            happen given ``resolve_path``'s guarantees).
    """
    root = Path(output_dir).resolve()
    target = (root / resolve_path(url)).resolve()
    if root != target and root not in target.parents:
        raise ValueError(f"Resolved path escapes output directory: {target}")
    return target
