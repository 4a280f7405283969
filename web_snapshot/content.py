"""Extraction of a comparable content model from raw HTML."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from bs4 import BeautifulSoup, Tag

from .models import (
    ContentModel,
    Form,
    FormInput,
    Heading,
    Image,
    Link,
    ListBlock,
    Paragraph,
    Table,
)

HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]
INPUT_TAGS = ["input", "textarea", "select"]


def _clean_content(soup: BeautifulSoup) -> BeautifulSoup:
    """Drop markup that is never user-visible."""
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    return soup


def _text(tag: Tag) -> str:
    return tag.get_text().strip()


def _attr(tag: Tag, name: str) -> Optional[str]:
    """Return an attribute as a string, or None when absent or empty."""
    value = tag.get(name)
    if isinstance(value, list):
        value = " ".join(value)
    return value or None


def _headings(soup: BeautifulSoup) -> Tuple[Heading, ...]:
    return tuple(
        Heading(
            level=tag.name.lower(),
            text=_text(tag),
            id=_attr(tag, "id"),
            classes=_attr(tag, "class"),
        )
        for tag in soup.find_all(HEADING_TAGS)
    )


def _paragraphs(soup: BeautifulSoup) -> Tuple[Paragraph, ...]:
    paragraphs: List[Paragraph] = []
    for tag in soup.find_all("p"):
        text = _text(tag)
        if text:
            paragraphs.append(Paragraph(text=text, classes=_attr(tag, "class")))
    return tuple(paragraphs)


def _links(soup: BeautifulSoup) -> Tuple[Link, ...]:
    links: List[Link] = []
    for tag in soup.find_all("a", href=True):
        href = _attr(tag, "href")
        text = _text(tag)
        if href and text:
            links.append(Link(href=href, text=text, title=_attr(tag, "title")))
    return tuple(links)


def _images(soup: BeautifulSoup) -> Tuple[Image, ...]:
    return tuple(
        Image(
            src=tag["src"],
            alt=_attr(tag, "alt") or "",
            title=_attr(tag, "title"),
        )
        for tag in soup.find_all("img", src=True)
    )


def _lists(soup: BeautifulSoup) -> Tuple[ListBlock, ...]:
    blocks: List[ListBlock] = []
    for tag in soup.find_all(["ul", "ol"]):
        items = tuple(text for text in (_text(li) for li in tag.find_all("li")) if text)
        if items:
            blocks.append(
                ListBlock(type=tag.name.lower(), items=items, classes=_attr(tag, "class"))
            )
    return tuple(blocks)


def _tables(soup: BeautifulSoup) -> Tuple[Table, ...]:
    tables: List[Table] = []
    for tag in soup.find_all("table"):
        headers = tuple(_text(th) for th in tag.find_all("th"))
        rows = []
        for tr in tag.find_all("tr"):
            cells = tuple(_text(td) for td in tr.find_all("td"))
            if cells:
                rows.append(cells)
        if headers or rows:
            tables.append(Table(headers=headers, rows=tuple(rows)))
    return tuple(tables)


def _control_value(control: Tag) -> Optional[str]:
    if control.name == "textarea":
        return control.get_text() or None
    if control.name == "select":
        option = control.find("option", selected=True) or control.find("option")
        if option is None:
            return None
        value = option.get("value")
        return (value if value is not None else option.get_text().strip()) or None
    return _attr(control, "value")


def _forms(soup: BeautifulSoup) -> Tuple[Form, ...]:
    forms: List[Form] = []
    for tag in soup.find_all("form"):
        inputs = tuple(
            FormInput(
                type=_attr(control, "type") or control.name.lower(),
                name=_attr(control, "name"),
                placeholder=_attr(control, "placeholder"),
                value=_control_value(control),
            )
            for control in tag.find_all(INPUT_TAGS)
        )
        if inputs:
            forms.append(
                Form(
                    action=_attr(tag, "action"),
                    method=(_attr(tag, "method") or "get").lower(),
                    inputs=inputs,
                )
            )
    return tuple(forms)


def _meta(soup: BeautifulSoup) -> Dict[str, str]:
    meta: Dict[str, str] = {}
    for tag in soup.find_all("meta"):
        name = _attr(tag, "name") or _attr(tag, "property")
        content = _attr(tag, "content")
        if name and content:
            meta[name] = content
    return meta


def extract(markup: str) -> ContentModel:
    """Parse ``markup`` into a normalized content model.

    Every category is extracted independently from the same cleaned tree, so
    a missing attribute in one element never prevents the rest of the model
    from being built.
    """
    soup = _clean_content(BeautifulSoup(markup, "html.parser"))
    title = soup.title.get_text().strip() if soup.title else ""
    return ContentModel(
        title=title,
        headings=_headings(soup),
        paragraphs=_paragraphs(soup),
        links=_links(soup),
        images=_images(soup),
        lists=_lists(soup),
        tables=_tables(soup),
        forms=_forms(soup),
        meta=_meta(soup),
    )


def extract_file(path: Union[str, Path]) -> ContentModel:
    """Read a stored page and extract its content model."""
    return extract(Path(path).read_text(encoding="utf-8"))
