"""
Tree helpers over BeautifulSoup shared by the extractors.
"""

from __future__ import annotations

import copy
import re
from typing import Iterable, Iterator, Sequence

import soupsieve
import structlog
from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import Comment, Doctype, ProcessingInstruction

from .exceptions import ConfigurationError, ExtractionError
from .layout import is_hidden
from .protocols import LayoutProbe

logger = structlog.get_logger(__name__)

FRAGMENT_ROOT_ATTR = "data-clip-root"

BLOCK_TAGS = frozenset(
    {
        "address", "article", "aside", "blockquote", "dd", "details", "div", "dl", "dt",
        "figcaption", "figure", "footer", "form", "h1", "h2", "h3", "h4", "h5", "h6",
        "header", "hr", "li", "main", "nav", "ol", "p", "pre", "section", "summary",
        "table", "tr", "ul",
    }
)
SKIP_TEXT_TAGS = frozenset({"script", "style", "noscript", "template", "head", "title"})

_HSPACE = re.compile(r"[ \t\r\f\v ]+")
_BREAK = object()


def parse_document(html: str, parser: str = "html.parser") -> BeautifulSoup:
    return BeautifulSoup(html or "", parser)


def parse_fragment(html: str, parser: str = "html.parser") -> Tag:
    """Parse markup into a detached container whose children are the fragment."""
    soup = BeautifulSoup(f'<div {FRAGMENT_ROOT_ATTR}="">{html or ""}</div>', parser)
    root = soup.find("div", attrs={FRAGMENT_ROOT_ATTR: True})
    if not isinstance(root, Tag):
        raise ExtractionError(f"Parser {parser!r} dropped the fragment container")
    return root


def clone(tag: Tag) -> Tag:
    """Deep, detached copy of a subtree."""
    return copy.copy(tag)


def inner_html(tag: Tag) -> str:
    return tag.decode_contents()


def inner_text(tag: Tag, layout: LayoutProbe | None = None) -> str:
    """
    Approximate the rendered text of a subtree: scripts and (when a layout is
    given) hidden elements contribute nothing, block elements and ``<br>``
    break lines, horizontal whitespace collapses.
    """
    parts: list[str] = []
    stack: list[object] = [tag]
    while stack:
        node = stack.pop()
        if node is _BREAK:
            parts.append("\n")
            continue
        if isinstance(node, (Comment, Doctype, ProcessingInstruction)):
            continue
        if isinstance(node, NavigableString):
            parts.append(str(node))
            continue
        if not isinstance(node, Tag):
            continue
        if node.name in SKIP_TEXT_TAGS:
            continue
        if layout is not None and node is not tag and is_hidden(layout, node):
            continue
        if node.name == "br":
            parts.append("\n")
            continue
        block = node.name in BLOCK_TAGS
        if block:
            parts.append("\n")
            stack.append(_BREAK)
        stack.extend(reversed(node.contents))

    lines = [_HSPACE.sub(" ", line).strip() for line in "".join(parts).split("\n")]
    return "\n".join(line for line in lines if line)


def text_length(tag: Tag) -> int:
    return len(inner_text(tag))


def select(tag: Tag, selector: str) -> list[Tag]:
    try:
        return list(tag.select(selector))
    except soupsieve.SelectorSyntaxError as e:
        logger.debug("Unsupported selector", selector=selector, error=str(e))
        return []


def select_one(tag: Tag, selector: str) -> Tag | None:
    try:
        return tag.select_one(selector)
    except soupsieve.SelectorSyntaxError as e:
        logger.debug("Unsupported selector", selector=selector, error=str(e))
        return None


def matches(tag: Tag, selector: str) -> bool:
    if not isinstance(tag, Tag) or isinstance(tag, BeautifulSoup):
        return False
    try:
        return bool(tag.css.match(selector))
    except soupsieve.SelectorSyntaxError as e:
        logger.debug("Unsupported selector", selector=selector, error=str(e))
        return False


def matches_any(tag: Tag, selectors: Iterable[str]) -> bool:
    return any(matches(tag, selector) for selector in selectors)


def closest(tag: Tag, selector: str) -> Tag | None:
    """Nearest inclusive ancestor matching ``selector``."""
    try:
        found = tag.css.closest(selector)
    except soupsieve.SelectorSyntaxError as e:
        logger.debug("Unsupported selector", selector=selector, error=str(e))
        return None
    return found if isinstance(found, Tag) and not isinstance(found, BeautifulSoup) else None


def ancestors(tag: Tag, limit: int | None = None, include_self: bool = False) -> Iterator[Tag]:
    """Element ancestors, nearest first, never yielding the document object."""
    count = 0
    node = tag if include_self else tag.parent
    while isinstance(node, Tag) and not isinstance(node, BeautifulSoup):
        if limit is not None and count >= limit:
            return
        yield node
        count += 1
        node = node.parent


def is_within(tag: Tag, container: Tag) -> bool:
    """Whether ``tag`` is ``container`` or one of its descendants."""
    return tag is container or any(parent is container for parent in tag.parents)


def is_inside_any(tag: Tag, containers: Sequence[Tag]) -> bool:
    return any(is_within(tag, container) for container in containers)


def class_string(tag: Tag) -> str:
    classes = tag.get("class") or []
    if isinstance(classes, str):
        return classes
    return " ".join(classes)


def attr(tag: Tag, name: str) -> str:
    """String value of an attribute, empty when absent or multi-valued."""
    value = tag.get(name)
    if isinstance(value, list):
        return " ".join(value)
    return value or ""


def remove(tag: Tag) -> None:
    if not tag.decomposed:
        tag.decompose()


def document_root(tag: Tag) -> Tag:
    """Top-most ancestor of a (possibly detached) subtree."""
    node = tag
    while node.parent is not None:
        node = node.parent
    return node


def compile_patterns(patterns: Iterable[str]) -> list[re.Pattern[str]]:
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as e:
            raise ConfigurationError(f"Invalid rule pattern {pattern!r}: {e}") from e
    return compiled
