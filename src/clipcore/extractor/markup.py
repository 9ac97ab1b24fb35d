"""
Markup normalization for extracted article bodies.
"""

from __future__ import annotations

from typing import Iterable

from bs4 import NavigableString, Tag

from ..utils.text import collapse_whitespace, normalize_for_match
from .dom import BLOCK_TAGS, clone
from .layout import parse_inline_style

_WRAPPERS = frozenset({"div", "section", "article", "main", "span", "center", "font"})
_BOLD_WEIGHTS = frozenset({"bold", "bolder", "600", "700", "800", "900"})


def promote_bold_spans(root: Tag) -> int:
    """Turn ``<span style="font-weight: bold">`` into ``<strong>``."""
    promoted = 0
    for span in root.find_all("span"):
        weight = parse_inline_style(span.get("style")).get("font-weight", "").strip().lower()  # type: ignore[arg-type]
        if weight in _BOLD_WEIGHTS:
            span.name = "strong"
            del span["style"]
            promoted += 1
    return promoted


def _has_block_child(tag: Tag) -> bool:
    return any(isinstance(child, Tag) and child.name in BLOCK_TAGS for child in tag.children)


def _has_content(tag: Tag) -> bool:
    return bool(tag.get_text().strip()) or tag.find("img") is not None


def unwrap_text_wrappers(root: Tag) -> None:
    """Wrapper containers holding only inline content become paragraphs."""
    for tag in root.find_all(["div", "section", "article"]):
        if tag.decomposed or _has_block_child(tag):
            continue
        if _has_content(tag):
            tag.name = "p"


def unwrap_list_paragraphs(root: Tag) -> None:
    """``<li><p>text</p></li>`` -> ``<li>text</li>``."""
    for li in root.find_all("li"):
        paragraphs = [child for child in li.children if isinstance(child, Tag) and child.name == "p"]
        for index, paragraph in enumerate(paragraphs):
            if index:
                paragraph.insert_before(_br())
            paragraph.unwrap()


def _br() -> Tag:
    return Tag(name="br", can_be_empty_element=True)


def flatten_wrappers(root: Tag) -> None:
    """Lift the children of layout wrappers to the top level until the top level holds content blocks."""
    changed = True
    while changed:
        changed = False
        for child in list(root.children):
            if isinstance(child, Tag) and child.name in _WRAPPERS and _has_block_child(child):
                child.unwrap()
                changed = True
        for child in list(root.children):
            if isinstance(child, NavigableString) and not child.strip():
                child.extract()


def prune_attributes(root: Tag, allowed: Iterable[str]) -> None:
    keep = frozenset(allowed)
    for tag in root.find_all(True):
        tag.attrs = {name: value for name, value in tag.attrs.items() if name in keep}


def normalize_markup(root: Tag, allowed_attributes: Iterable[str]) -> None:
    promote_bold_spans(root)
    unwrap_text_wrappers(root)
    unwrap_list_paragraphs(root)
    flatten_wrappers(root)
    prune_attributes(root, allowed_attributes)


_LEADING_BLOCKS = frozenset({"p", "div", "section", "header"})


def heading_text(heading: Tag) -> str:
    """Heading text without anchor-link decoration such as ``<a href="#id">#</a>``."""
    copy_ = clone(heading)
    for anchor in copy_.find_all("a", href=True):
        if str(anchor["href"]).startswith("#"):
            anchor.decompose()
    return collapse_whitespace(copy_.get_text(" ")).strip(" #¶§")


def strip_duplicate_title(root: Tag, title: str, max_ratio: float = 1.5) -> bool:
    """
    Remove the first heading whose text matches ``title``, or else a short
    leading block that repeats it. Comparison ignores case and punctuation.
    """
    target = normalize_for_match(title)
    if not target:
        return False

    for heading in root.find_all(["h1", "h2", "h3"], limit=3):
        if normalize_for_match(heading_text(heading)) == target:
            heading.decompose()
            return True

    first = next((child for child in root.children if isinstance(child, Tag)), None)
    if first is None or first.name not in _LEADING_BLOCKS:
        return False
    text = first.get_text().strip()
    if len(text) <= len(title) * max_ratio and normalize_for_match(text).startswith(target):
        first.decompose()
        return True
    return False
