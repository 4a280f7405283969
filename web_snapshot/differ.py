"""Key-based structural comparison of two content models."""

from __future__ import annotations

import difflib
import logging
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union
from urllib.parse import parse_qsl, unquote, urlencode, urlsplit

from .content import extract
from .models import (
    CategoryChanges,
    ChangeSet,
    ContentModel,
    DiffResult,
    DiffSummary,
    Form,
    Heading,
    Image,
    Link,
    ListBlock,
    ModifiedItem,
    Paragraph,
    Table,
    TitleChange,
)

logger = logging.getLogger("web_snapshot")

PRESENTATION_PARAMS = {"w", "width", "h", "height", "q", "quality", "f", "format"}
PROXY_PATHS = ("/_next/image", "/_vercel/image")
CLOUDFLARE_PREFIX = "/cdn-cgi/image/"
LIST_KEY_ITEMS = 5


class Category(str, Enum):
    HEADINGS = "headings"
    PARAGRAPHS = "paragraphs"
    LINKS = "links"
    IMAGES = "images"
    LISTS = "lists"
    TABLES = "tables"
    FORMS = "forms"
    META = "meta"


class HeadingMatch(str, Enum):
    """How headings from two models are paired up."""

    TEXT = "text"
    POSITION = "position"


@dataclass
class DiffOptions:
    heading_match: HeadingMatch = HeadingMatch.TEXT


def normalize_image_src(src: str) -> str:
    """Reduce an image URL to the part that identifies the image content."""
    decoded = unquote(src)
    try:
        parts = urlsplit(decoded)
    except ValueError:
        return decoded.replace("%2F", "/").replace("%3F", "?").replace("%26", "&")

    path = parts.path
    params = parse_qsl(parts.query, keep_blank_values=True)
    if path.endswith(PROXY_PATHS):
        target = next((value for key, value in params if key == "url"), None)
        if target:
            path = urlsplit(unquote(target)).path or target
            params = [(key, value) for key, value in params if key != "url"]
    elif CLOUDFLARE_PREFIX in path:
        remainder = path.split(CLOUDFLARE_PREFIX, 1)[1]
        _, _, source = remainder.partition("/")
        path = "/" + source.lstrip("/") if source else path

    relevant = [(key, value) for key, value in params if key.lower() not in PRESENTATION_PARAMS]
    query = urlencode(relevant)
    return path + ("?" + query if query else "")


def _heading_key(item: Heading) -> str:
    return item.text.strip()


def _paragraph_key(item: Paragraph) -> str:
    return item.text.strip()


def _link_key(item: Link) -> str:
    return f"{item.href}|{item.text.strip()}"


def _image_key(item: Image) -> str:
    return f"{normalize_image_src(item.src)}|{item.alt or ''}"


def _list_key(item: ListBlock) -> str:
    return f"{item.type or 'list'}:" + "|".join(item.items[:LIST_KEY_ITEMS])


def _table_key(item: Table) -> str:
    return "|".join(item.headers)


def _form_key(item: Form) -> str:
    return f"{item.action or ''}:{len(item.inputs)}"


def _meta_key(item: Tuple[str, str]) -> str:
    return f"{item[0]}:{item[1]}"


KEY_FUNCTIONS: Dict[Category, Callable[[Any], str]] = {
    Category.HEADINGS: _heading_key,
    Category.PARAGRAPHS: _paragraph_key,
    Category.LINKS: _link_key,
    Category.IMAGES: _image_key,
    Category.LISTS: _list_key,
    Category.TABLES: _table_key,
    Category.FORMS: _form_key,
    Category.META: _meta_key,
}


def _positional_heading_keys(items: Sequence[Heading]) -> List[str]:
    seen: Counter = Counter()
    keys = []
    for item in items:
        keys.append(f"{item.level}#{seen[item.level]}")
        seen[item.level] += 1
    return keys


def _items(model: ContentModel, category: Category) -> Sequence[Any]:
    if category is Category.META:
        return sorted(model.meta.items())
    return getattr(model, category.value)


def _keyed(
    items: Sequence[Any], category: Category, options: DiffOptions
) -> Dict[str, Any]:
    if category is Category.HEADINGS and options.heading_match is HeadingMatch.POSITION:
        keys: Iterable[str] = _positional_heading_keys(items)
    else:
        keys = (KEY_FUNCTIONS[category](item) for item in items)
    # A later item with the same key replaces the earlier one.
    return dict(zip(keys, items))


def compare_items(
    old_items: Sequence[Any],
    new_items: Sequence[Any],
    category: Category,
    summary: DiffSummary,
    options: Optional[DiffOptions] = None,
) -> CategoryChanges:
    """Match two item sequences by key and classify the differences."""
    options = options or DiffOptions()
    old_map = _keyed(old_items, category, options)
    new_map = _keyed(new_items, category, options)
    changes = CategoryChanges()

    for key, item in old_map.items():
        if key not in new_map:
            changes.removed.append(item)
            summary.removed_elements += 1

    for key, item in new_map.items():
        if key not in old_map:
            changes.added.append(item)
            summary.added_elements += 1
        elif old_map[key] != item:
            changes.modified.append(ModifiedItem(old=old_map[key], new=item, key=key))
            summary.modified_elements += 1
    return changes


def text_diff(old: str, new: str) -> Tuple[Tuple[str, str], ...]:
    """Character-level diff as ``(op, text)`` pairs."""
    ops: List[Tuple[str, str]] = []
    matcher = difflib.SequenceMatcher(None, old, new, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            ops.append(("equal", old[i1:i2]))
            continue
        if tag in ("delete", "replace"):
            ops.append(("delete", old[i1:i2]))
        if tag in ("insert", "replace"):
            ops.append(("insert", new[j1:j2]))
    return tuple(ops)


def diff(
    old: ContentModel,
    new: ContentModel,
    options: Optional[DiffOptions] = None,
) -> ChangeSet:
    """Compute the categorized change set between two content models."""
    options = options or DiffOptions()
    summary = DiffSummary()
    changes = ChangeSet(summary=summary)

    if old.title != new.title:
        changes.title = TitleChange(
            old=old.title, new=new.title, diff=text_diff(old.title, new.title)
        )
        summary.modified_elements += 1

    for category in Category:
        result = compare_items(
            _items(old, category), _items(new, category), category, summary, options
        )
        setattr(changes, category.value, result)

    summary.total_changes = (
        summary.added_elements + summary.removed_elements + summary.modified_elements
    )
    return changes


def generate_diff(
    old_path: Union[str, Path],
    new_path: Union[str, Path],
    options: Optional[DiffOptions] = None,
) -> DiffResult:
    """Compare two stored pages, reporting failures instead of raising them."""
    try:
        old_markup = Path(old_path).read_text(encoding="utf-8")
        new_markup = Path(new_path).read_text(encoding="utf-8")
        old_model = extract(old_markup)
        new_model = extract(new_markup)
        changes = diff(old_model, new_model, options)
    except (OSError, UnicodeDecodeError, ValueError) as exc:
        logger.warning("Comparison of %s and %s failed: %s", old_path, new_path, exc)
        return DiffResult(success=False, error=str(exc))

    return DiffResult(
        success=True,
        changes=changes,
        metadata={
            "snapshot1": {
                "path": str(old_path),
                "size": len(old_markup),
                "content_summary": old_model.content_summary(),
            },
            "snapshot2": {
                "path": str(new_path),
                "size": len(new_markup),
                "content_summary": new_model.content_summary(),
            },
        },
    )
