"""Resource discovery, deduplicated downloading and reference rewriting."""

from __future__ import annotations

import logging
import os
import re
import uuid
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Set
from urllib.parse import unquote, urldefrag, urlparse

import requests
from bs4 import BeautifulSoup, Tag

from .config import LocalizeConfig
from .crawler import build_session
from .models import (
    AssetReference,
    DownloadedAsset,
    LocalizationResult,
    RewrittenPageRecord,
)
from .utils import (
    hostname_of,
    is_fetchable,
    normalize_url,
    page_filename,
    resolve_url,
    sanitize_filename,
    short_hash,
)

logger = logging.getLogger("web_snapshot")

ASSET_DIRNAME = "assets"
STYLESHEET_RELS = {"stylesheet", "icon", "shortcut", "apple-touch-icon", "mask-icon"}
PRELOAD_TYPES = {"style", "script", "image", "font"}
SRCSET_SPLIT = re.compile(r"\s*,\s*")
WHITESPACE = re.compile(r"\s+")
STRIPPED_ATTRIBUTES = ("integrity", "crossorigin")


def derive_asset_name(remote_url: str) -> str:
    """Build a filesystem-safe local name from a resolved asset URL."""
    parsed = urlparse(remote_url)
    segment = unquote(parsed.path.rsplit("/", 1)[-1])
    name = sanitize_filename(segment)
    if not name:
        name = f"asset-{uuid.uuid4().hex[:8]}"
    if parsed.query:
        stem, suffix = os.path.splitext(name)
        name = f"{stem}_{short_hash(parsed.query)}{suffix}"
    return name


class AssetMap:
    """Remote URL -> local name registry for one localization pass.

    Each distinct remote URL is claimed once and keeps its name for the whole
    pass; two distinct URLs never share a local name.
    """

    def __init__(self) -> None:
        self._by_url: Dict[str, AssetReference] = {}
        self._names: Set[str] = set()

    def __contains__(self, remote_url: str) -> bool:
        return remote_url in self._by_url

    def __len__(self) -> int:
        return len(self._by_url)

    def get(self, remote_url: str) -> Optional[AssetReference]:
        return self._by_url.get(remote_url)

    def references(self) -> List[AssetReference]:
        return list(self._by_url.values())

    def as_dict(self) -> Dict[str, AssetReference]:
        return dict(self._by_url)

    def claim(self, remote_url: str) -> AssetReference:
        """Return the reference for ``remote_url``, registering it if new."""
        existing = self._by_url.get(remote_url)
        if existing is not None:
            return existing
        name = derive_asset_name(remote_url)
        if name in self._names:
            stem, suffix = os.path.splitext(name)
            name = f"{stem}_{short_hash(remote_url)}{suffix}"
            counter = 1
            while name in self._names:
                name = f"{stem}_{short_hash(remote_url)}-{counter}{suffix}"
                counter += 1
        reference = AssetReference(remote_url=remote_url, local_name=name)
        self._by_url[remote_url] = reference
        self._names.add(name)
        return reference


def _asset_url(base: str, value: Optional[str]) -> Optional[str]:
    if not is_fetchable(value):
        return None
    absolute = resolve_url(base, value)
    if absolute is None:
        return None
    return normalize_url(absolute)


def _effective_base(soup: BeautifulSoup, page_url: str) -> str:
    base_tag = soup.find("base", href=True)
    if base_tag:
        return resolve_url(page_url, base_tag["href"]) or page_url
    return page_url


def _is_asset_link(tag: Tag) -> bool:
    rels = {rel.lower() for rel in (tag.get("rel") or [])}
    if rels & STYLESHEET_RELS:
        return True
    if rels & {"preload", "modulepreload"}:
        return (tag.get("as") or "script").lower() in PRELOAD_TYPES
    return False


def _rewrite_attribute(tag: Tag, attr: str, base: str, assets: AssetMap) -> bool:
    remote = _asset_url(base, tag.get(attr))
    if remote is None:
        return False
    tag[attr] = assets.claim(remote).relative_path
    return True


def _rewrite_srcset(tag: Tag, base: str, assets: AssetMap) -> bool:
    candidates = []
    changed = False
    for candidate in SRCSET_SPLIT.split((tag.get("srcset") or "").strip()):
        if not candidate:
            continue
        parts = WHITESPACE.split(candidate.strip())
        remote = _asset_url(base, parts[0])
        if remote is not None:
            parts[0] = assets.claim(remote).relative_path
            changed = True
        candidates.append(" ".join(parts))
    if changed:
        tag["srcset"] = ", ".join(candidates)
    return changed


def localize_assets(soup: BeautifulSoup, page_url: str, assets: AssetMap) -> int:
    """Point stylesheet, script and image references at local asset files."""
    base = _effective_base(soup, page_url)
    rewritten = 0
    elements = [
        (tag, "href") for tag in soup.find_all("link", href=True) if _is_asset_link(tag)
    ]
    elements += [(tag, "src") for tag in soup.find_all("script", src=True)]
    elements += [(tag, "src") for tag in soup.find_all("img", src=True)]

    for tag, attr in elements:
        if _rewrite_attribute(tag, attr, base, assets):
            rewritten += 1
            for stripped in STRIPPED_ATTRIBUTES:
                if stripped in tag.attrs:
                    del tag.attrs[stripped]
    for tag in soup.find_all(["img", "source"], srcset=True):
        if _rewrite_srcset(tag, base, assets):
            rewritten += 1
    return rewritten


def localize_anchors(
    soup: BeautifulSoup,
    page_url: str,
    local_pages: Mapping[str, str],
) -> int:
    """Rewrite same-site anchors to local files or flag them as uncrawled."""
    base = _effective_base(soup, page_url)
    domain = hostname_of(page_url)
    rewritten = 0
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"]
        if not is_fetchable(href):
            continue
        absolute = resolve_url(base, href)
        if absolute is None or hostname_of(absolute) != domain:
            continue
        target, fragment = urldefrag(absolute)
        filename = local_pages.get(normalize_url(target))
        if filename is not None:
            anchor["href"] = f"{filename}#{fragment}" if fragment else filename
            rewritten += 1
        else:
            anchor["href"] = absolute
            anchor["data-uncrawled"] = "true"
    return rewritten


def page_filenames(urls: Iterable[str]) -> Dict[str, str]:
    """Assign each page URL a distinct snapshot filename, in crawl order.

    The first URL claiming a slug keeps it; later URLs mapping to the same
    slug (``/about`` and ``/about/``) get a hash of their URL appended.
    """
    assigned: Dict[str, str] = {}
    taken: Set[str] = set()
    for url in urls:
        key = normalize_url(url)
        if key in assigned:
            continue
        name = page_filename(url)
        if name in taken:
            stem, suffix = os.path.splitext(name)
            renamed = f"{stem}-{short_hash(key)}{suffix}"
            logger.warning(
                "Page %s maps to %s already used by another page; saving as %s",
                url,
                name,
                renamed,
            )
            name = renamed
        assigned[key] = name
        taken.add(name)
    return assigned


def download_asset(
    session: requests.Session,
    reference: AssetReference,
    asset_dir: Path,
    config: LocalizeConfig,
) -> DownloadedAsset:
    """Fetch one asset and persist it under ``asset_dir``."""
    relative_path = reference.relative_path
    try:
        resp = session.get(
            reference.remote_url, timeout=config.request_timeout, stream=True
        )
    except requests.RequestException as exc:
        logger.warning("Failed to fetch asset %s: %s", reference.remote_url, exc)
        return DownloadedAsset(reference.remote_url, relative_path, "failed", str(exc))

    try:
        if not 200 <= resp.status_code < 300:
            error = f"HTTP {resp.status_code}"
            logger.warning("Failed to fetch asset %s: %s", reference.remote_url, error)
            return DownloadedAsset(reference.remote_url, relative_path, "failed", error)

        data = bytearray()
        for chunk in resp.iter_content(chunk_size=64 * 1024):
            data.extend(chunk)
            if len(data) > config.max_asset_bytes:
                error = f"asset larger than {config.max_asset_bytes} bytes"
                logger.warning("Skipping %s: %s", reference.remote_url, error)
                return DownloadedAsset(
                    reference.remote_url, relative_path, "failed", error
                )
    except requests.RequestException as exc:
        logger.warning("Failed to read asset %s: %s", reference.remote_url, exc)
        return DownloadedAsset(reference.remote_url, relative_path, "failed", str(exc))
    finally:
        resp.close()

    destination = asset_dir / reference.local_name
    try:
        destination.write_bytes(bytes(data))
    except OSError as exc:
        logger.warning("Failed to write asset %s: %s", destination, exc)
        return DownloadedAsset(reference.remote_url, relative_path, "failed", str(exc))

    logger.debug("Downloaded asset %s -> %s", reference.remote_url, destination)
    return DownloadedAsset(
        reference.remote_url, relative_path, "downloaded", byte_size=len(data)
    )


def download_assets(
    references: List[AssetReference],
    asset_dir: Path,
    config: LocalizeConfig,
    session: requests.Session,
) -> List[DownloadedAsset]:
    """Download every reference once; failures are recorded, never raised."""
    if not references:
        return []
    asset_dir.mkdir(parents=True, exist_ok=True)

    def _download(reference: AssetReference) -> DownloadedAsset:
        return download_asset(session, reference, asset_dir, config)

    if config.asset_workers <= 1:
        return [_download(reference) for reference in references]
    with ThreadPoolExecutor(max_workers=config.asset_workers) as pool:
        return list(pool.map(_download, references))


def localize(
    pages: Mapping[str, str],
    output_dir: Path,
    config: Optional[LocalizeConfig] = None,
    session: Optional[requests.Session] = None,
) -> LocalizationResult:
    """Rewrite crawled pages to reference local copies of their resources.

    ``pages`` is left untouched; the rewritten markup is returned keyed by the
    same URLs together with one download outcome per distinct asset URL.
    """
    config = config or LocalizeConfig()
    session = session or build_session(config.user_agent)
    local_pages = page_filenames(pages)
    assets = AssetMap()

    rewritten: Dict[str, RewrittenPageRecord] = {}
    for url, markup in pages.items():
        soup = BeautifulSoup(markup, "html.parser")
        asset_count = localize_assets(soup, url, assets)
        anchor_count = localize_anchors(soup, url, local_pages)
        logger.debug(
            "Rewrote %d asset and %d anchor reference(s) in %s",
            asset_count,
            anchor_count,
            url,
        )
        rewritten[url] = RewrittenPageRecord(
            url=url,
            rewritten_markup=soup.decode(),
            filename=local_pages[normalize_url(url)],
        )

    asset_dir = Path(output_dir) / ASSET_DIRNAME
    downloaded = download_assets(assets.references(), asset_dir, config, session)
    failures = sum(1 for asset in downloaded if not asset.ok)
    logger.info(
        "Localized %d page(s): %d asset(s) downloaded, %d failed",
        len(rewritten),
        len(downloaded) - failures,
        failures,
    )
    return LocalizationResult(pages=rewritten, assets=downloaded, asset_map=assets.as_dict())
