"""Data models used throughout the snapshot pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple


class SerializableMixin:
    """Adds a JSON-friendly ``to_dict`` to dataclasses."""

    def to_dict(self) -> Dict[str, Any]:
        return _jsonable(asdict(self))


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, Enum):
        return value.value
    return value


# Crawling ------------------------------------------------------------------


@dataclass(frozen=True)
class PageRecord:
    """Raw markup fetched for one visited URL."""

    url: str
    raw_markup: str

    @property
    def byte_size(self) -> int:
        return len(self.raw_markup.encode("utf-8"))


@dataclass(frozen=True)
class FetchFailure(SerializableMixin):
    """A page or asset request that did not produce usable content."""

    url: str
    error: str


@dataclass
class CrawlSession:
    """Mutable traversal state owned by one crawl."""

    seed_url: str
    domain: str
    visited: Set[str] = field(default_factory=set)
    pages: Dict[str, PageRecord] = field(default_factory=dict)
    total_byte_size: int = 0
    skipped: List[str] = field(default_factory=list)
    failures: List[FetchFailure] = field(default_factory=list)
    stop_reason: Optional[str] = None
    elapsed_seconds: float = 0.0

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def record_page(self, page: PageRecord) -> None:
        """Store a fetched page and account for its size."""
        self.pages[page.url] = page
        self.total_byte_size += page.byte_size

    def record_failure(self, url: str, error: str) -> None:
        self.failures.append(FetchFailure(url=url, error=error))

    def page_map(self) -> Dict[str, str]:
        """Hand the crawl output off as a plain URL -> markup mapping."""
        return {url: page.raw_markup for url, page in self.pages.items()}


# Localization --------------------------------------------------------------


@dataclass(frozen=True)
class AssetReference:
    """Remote resource and the local file name it is stored under."""

    remote_url: str
    local_name: str

    @property
    def relative_path(self) -> str:
        return f"assets/{self.local_name}"


@dataclass(frozen=True)
class DownloadedAsset(SerializableMixin):
    """Outcome of one asset download attempt."""

    remote_url: str
    local_path: str
    outcome: str
    error: Optional[str] = None
    byte_size: int = 0

    @property
    def ok(self) -> bool:
        return self.outcome == "downloaded"


@dataclass(frozen=True)
class RewrittenPageRecord(SerializableMixin):
    """Page markup after its references were localized."""

    url: str
    rewritten_markup: str
    filename: str


@dataclass
class LocalizationResult:
    """Rewritten pages plus the per-asset download outcomes."""

    pages: Dict[str, RewrittenPageRecord]
    assets: List[DownloadedAsset]
    asset_map: Dict[str, AssetReference] = field(default_factory=dict)

    def __iter__(self) -> Iterator[Any]:
        yield self.pages
        yield self.assets


# Content model -------------------------------------------------------------


@dataclass(frozen=True)
class Heading:
    level: str
    text: str
    id: Optional[str] = None
    classes: Optional[str] = None


@dataclass(frozen=True)
class Paragraph:
    text: str
    classes: Optional[str] = None


@dataclass(frozen=True)
class Link:
    href: str
    text: str
    title: Optional[str] = None


@dataclass(frozen=True)
class Image:
    src: str
    alt: str = ""
    title: Optional[str] = None


@dataclass(frozen=True)
class ListBlock:
    type: str
    items: Tuple[str, ...]
    classes: Optional[str] = None


@dataclass(frozen=True)
class Table:
    headers: Tuple[str, ...]
    rows: Tuple[Tuple[str, ...], ...]


@dataclass(frozen=True)
class FormInput:
    type: str
    name: Optional[str] = None
    placeholder: Optional[str] = None
    value: Optional[str] = None


@dataclass(frozen=True)
class Form:
    action: Optional[str]
    method: str
    inputs: Tuple[FormInput, ...]


@dataclass(frozen=True)
class ContentModel(SerializableMixin):
    """Normalized, comparable representation of a page's visible content."""

    title: str = ""
    headings: Tuple[Heading, ...] = ()
    paragraphs: Tuple[Paragraph, ...] = ()
    links: Tuple[Link, ...] = ()
    images: Tuple[Image, ...] = ()
    lists: Tuple[ListBlock, ...] = ()
    tables: Tuple[Table, ...] = ()
    forms: Tuple[Form, ...] = ()
    meta: Dict[str, str] = field(default_factory=dict)

    def content_summary(self) -> Dict[str, int]:
        return {
            "headings": len(self.headings),
            "paragraphs": len(self.paragraphs),
            "links": len(self.links),
            "images": len(self.images),
        }


# Diffing -------------------------------------------------------------------


@dataclass(frozen=True)
class TitleChange:
    old: str
    new: str
    diff: Tuple[Tuple[str, str], ...]


@dataclass(frozen=True)
class ModifiedItem:
    old: Any
    new: Any
    key: str


@dataclass
class CategoryChanges:
    added: List[Any] = field(default_factory=list)
    removed: List[Any] = field(default_factory=list)
    modified: List[ModifiedItem] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.modified)


@dataclass
class DiffSummary:
    total_changes: int = 0
    added_elements: int = 0
    removed_elements: int = 0
    modified_elements: int = 0


@dataclass
class ChangeSet(SerializableMixin):
    """Categorized differences between two content models."""

    title: Optional[TitleChange] = None
    headings: CategoryChanges = field(default_factory=CategoryChanges)
    paragraphs: CategoryChanges = field(default_factory=CategoryChanges)
    links: CategoryChanges = field(default_factory=CategoryChanges)
    images: CategoryChanges = field(default_factory=CategoryChanges)
    lists: CategoryChanges = field(default_factory=CategoryChanges)
    tables: CategoryChanges = field(default_factory=CategoryChanges)
    forms: CategoryChanges = field(default_factory=CategoryChanges)
    meta: CategoryChanges = field(default_factory=CategoryChanges)
    summary: DiffSummary = field(default_factory=DiffSummary)


@dataclass
class DiffResult(SerializableMixin):
    """Outcome of comparing two stored pages."""

    success: bool
    changes: Optional[ChangeSet] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


# Snapshots -----------------------------------------------------------------


@dataclass
class ArchiveResult(SerializableMixin):
    """What an archive request produced on disk."""

    url: str
    snapshot_id: str
    snapshot_dir: Path
    entry_path: str
    pages: List[str]
    assets: List[DownloadedAsset]
    failures: List[FetchFailure]
    skipped: List[str]
    stop_reason: Optional[str] = None
    total_byte_size: int = 0


@dataclass(frozen=True)
class SnapshotInfo(SerializableMixin):
    """A stored snapshot of a logical URL."""

    snapshot_id: str
    label: str
    path: Path
    entry_file: Optional[str] = None
