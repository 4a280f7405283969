"""Utility helpers for URL normalization, file naming and timestamps."""

from __future__ import annotations

import datetime as dt
import hashlib
import re
from typing import List, Optional
from urllib.parse import unquote, urldefrag, urljoin, urlparse, urlunparse

SAFE_NAME_PATTERN = re.compile(r"[^A-Za-z0-9._-]+")
TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S"
TIMESTAMP_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}(-\d+)?$")
NON_FETCHABLE_PREFIXES = ("#", "mailto:", "tel:", "javascript:", "data:", "blob:")
DEFAULT_PORTS = {"http": "80", "https": "443"}


def short_hash(value: str, length: int = 8) -> str:
    """Return a short, deterministic hex digest of ``value``."""
    return hashlib.sha1(value.encode("utf-8")).hexdigest()[:length]


def sanitize_filename(value: str) -> str:
    """Reduce a name to a filesystem-safe character set."""
    name = SAFE_NAME_PATTERN.sub("_", value).strip("_")
    if name.startswith("."):
        name = "_" + name[1:]
    return name[:150]


def is_fetchable(value: Optional[str]) -> bool:
    """Return True when an attribute value can point at a remote resource."""
    if not value:
        return False
    return not value.strip().lower().startswith(NON_FETCHABLE_PREFIXES)


def normalize_url(url: str) -> str:
    """Drop the fragment and default port, lower-case scheme and host.

    An empty path becomes ``/``.
    """
    url, _ = urldefrag(url.strip())
    parsed = urlparse(url)
    scheme = parsed.scheme.lower()
    netloc = parsed.netloc.lower()
    default_port = DEFAULT_PORTS.get(scheme)
    if default_port and netloc.endswith(f":{default_port}"):
        netloc = netloc[: -len(default_port) - 1]
    path = parsed.path or "/"
    return urlunparse((scheme, netloc, path, parsed.params, parsed.query, ""))


def resolve_url(base: str, href: str) -> Optional[str]:
    """Resolve ``href`` against ``base``; None for malformed or non-http URLs."""
    try:
        absolute = urljoin(base, href.strip())
        parsed = urlparse(absolute)
        parsed.port  # raises ValueError on a malformed port
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return None
    return absolute


def hostname_of(url: str) -> str:
    """Return the lower-cased hostname of ``url`` or an empty string."""
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def path_segments(url: str) -> List[str]:
    """Split a URL path into sanitized, non-empty segments."""
    segments = []
    for raw in urlparse(url).path.split("/"):
        segment = sanitize_filename(unquote(raw))
        if segment:
            segments.append(segment)
    return segments


def page_filename(url: str) -> str:
    """Map a page URL to the HTML filename used inside a snapshot."""
    parsed = urlparse(url)
    slug = unquote(parsed.path).strip("/").replace("/", "_")
    slug = sanitize_filename(slug)
    if not slug:
        slug = "index"
    if parsed.query:
        slug = f"{slug}-{short_hash(parsed.query)}"
    if slug.lower().endswith((".html", ".htm")) and not parsed.query:
        return slug
    return f"{slug}.html"


def format_timestamp(moment: Optional[dt.datetime] = None) -> str:
    """Return a sortable snapshot identifier for ``moment`` (UTC by default)."""
    moment = moment or dt.datetime.now(dt.timezone.utc)
    return moment.strftime(TIMESTAMP_FORMAT)


def timestamp_label(snapshot_id: str) -> str:
    """Turn a snapshot identifier into a human-readable label."""
    base = snapshot_id[:19]
    try:
        moment = dt.datetime.strptime(base, TIMESTAMP_FORMAT)
    except ValueError:
        return snapshot_id
    label = moment.strftime("%Y-%m-%d %H:%M:%S UTC")
    if len(snapshot_id) > 19:
        label = f"{label} ({snapshot_id[20:]})"
    return label
