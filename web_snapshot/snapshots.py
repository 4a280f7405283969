"""Sequencing of crawl, localization and persistence, plus snapshot lookup."""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import replace
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse

import requests

from .assets import localize
from .config import ArchiveConfig
from .crawler import BoundedCrawler, build_session
from .differ import DiffOptions, generate_diff
from .errors import (
    CrawlFailedError,
    InvalidRequestError,
    InvalidURLError,
    SnapshotNotFoundError,
)
from .models import ArchiveResult, DiffResult, SnapshotInfo
from .utils import (
    TIMESTAMP_PATTERN,
    format_timestamp,
    hostname_of,
    normalize_url,
    page_filename,
    path_segments,
    sanitize_filename,
    timestamp_label,
)

logger = logging.getLogger("web_snapshot")


def validate_url(url: str) -> str:
    """Return the normalized form of an absolute http(s) URL."""
    if not url or not isinstance(url, str):
        raise InvalidURLError("URL is required")
    try:
        parsed = urlparse(url.strip())
        parsed.port
    except ValueError as exc:
        raise InvalidURLError(f"Malformed URL {url!r}: {exc}") from exc
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise InvalidURLError(f"Expected an absolute http(s) URL, got {url!r}")
    return normalize_url(url)


def page_directory(archive_root: Path, url: str) -> Path:
    """Directory holding every snapshot of the logical page ``url``."""
    domain = sanitize_filename(hostname_of(url)) or "site"
    return Path(archive_root, domain, *path_segments(url))


def _create_snapshot_dir(base: Path, moment: Optional[dt.datetime]) -> Path:
    base.mkdir(parents=True, exist_ok=True)
    snapshot_id = format_timestamp(moment)
    candidate = base / snapshot_id
    suffix = 1
    while True:
        try:
            candidate.mkdir()
            return candidate
        except FileExistsError:
            candidate = base / f"{snapshot_id}-{suffix}"
            suffix += 1


def archive(
    url: str,
    config: Optional[ArchiveConfig] = None,
    depth: Optional[int] = None,
    session: Optional[requests.Session] = None,
    moment: Optional[dt.datetime] = None,
) -> ArchiveResult:
    """Crawl ``url``, localize its resources and write a timestamped snapshot."""
    config = config or ArchiveConfig()
    seed = validate_url(url)
    crawl_config = config.crawl
    if depth is not None:
        if depth < 0:
            raise InvalidRequestError("depth must be a non-negative integer")
        crawl_config = replace(crawl_config, max_depth=depth)
    session = session or build_session(crawl_config.user_agent)

    crawl_session = BoundedCrawler(crawl_config, session=session).crawl(seed)
    if not crawl_session.pages:
        errors = "; ".join(f"{f.url}: {f.error}" for f in crawl_session.failures)
        raise CrawlFailedError(
            f"No pages could be archived for {seed} ({errors or 'nothing fetched'})"
        )

    snapshot_dir = _create_snapshot_dir(page_directory(config.archive_root, seed), moment)
    result = localize(crawl_session.page_map(), snapshot_dir, config.localize, session)

    for page in result.pages.values():
        destination = snapshot_dir / page.filename
        destination.write_text(page.rewritten_markup, encoding="utf-8")
        logger.debug("Saved rewritten page %s", destination)

    entry_file = page_filename(seed)
    entry_path = (snapshot_dir / entry_file).relative_to(config.archive_root).as_posix()
    logger.info("Snapshot of %s saved to %s", seed, snapshot_dir)
    return ArchiveResult(
        url=seed,
        snapshot_id=snapshot_dir.name,
        snapshot_dir=snapshot_dir,
        entry_path=entry_path,
        pages=list(result.pages),
        assets=result.assets,
        failures=list(crawl_session.failures),
        skipped=list(crawl_session.skipped),
        stop_reason=crawl_session.stop_reason,
        total_byte_size=crawl_session.total_byte_size,
    )


def list_snapshots(url: str, archive_root: Path) -> List[SnapshotInfo]:
    """Return the stored snapshots of ``url``, newest first."""
    seed = validate_url(url)
    base = page_directory(archive_root, seed)
    if not base.is_dir():
        return []
    entry_file = page_filename(seed)
    snapshots = []
    for child in base.iterdir():
        if not child.is_dir() or not TIMESTAMP_PATTERN.match(child.name):
            continue
        snapshots.append(
            SnapshotInfo(
                snapshot_id=child.name,
                label=timestamp_label(child.name),
                path=child,
                entry_file=entry_file if (child / entry_file).is_file() else None,
            )
        )
    return sorted(snapshots, key=lambda info: info.snapshot_id, reverse=True)


def entry_page(url: str, snapshot_id: str, archive_root: Path) -> Path:
    """Locate the stored entry page of one snapshot."""
    seed = validate_url(url)
    if not TIMESTAMP_PATTERN.match(snapshot_id or ""):
        raise SnapshotNotFoundError(f"Invalid snapshot identifier {snapshot_id!r}")
    snapshot_dir = page_directory(archive_root, seed) / snapshot_id
    if not snapshot_dir.is_dir():
        raise SnapshotNotFoundError(f"Snapshot {snapshot_id} of {seed} does not exist")
    entry = snapshot_dir / page_filename(seed)
    if not entry.is_file():
        raise SnapshotNotFoundError(f"Snapshot {snapshot_id} has no HTML entry page")
    return entry


def compare(
    url: str,
    old_id: str,
    new_id: str,
    archive_root: Path,
    options: Optional[DiffOptions] = None,
) -> DiffResult:
    """Diff the entry pages of two snapshots of the same URL."""
    old_entry = entry_page(url, old_id, archive_root)
    new_entry = entry_page(url, new_id, archive_root)
    return generate_diff(old_entry, new_entry, options)
