"""
Block parser: top-level children of a cleaned fragment become typed blocks.
"""

from __future__ import annotations

import html

from bs4 import NavigableString, Tag
from bs4.element import Comment

from ..utils.text import generate_id
from .dom import inner_text
from .models import BlockType, ContentBlock

_HEADINGS = {f"h{level}": level for level in range(1, 7)}
_SIMPLE_TYPES = {
    "p": BlockType.PARAGRAPH,
    "ul": BlockType.LIST,
    "ol": BlockType.LIST,
    "blockquote": BlockType.QUOTE,
    "pre": BlockType.CODE,
    "code": BlockType.CODE,
}
_VOID_CONTENT = frozenset({"img", "hr", "video", "iframe", "picture"})


def block_type(node: Tag) -> tuple[BlockType, int | None]:
    if node.name in _HEADINGS:
        return BlockType.HEADING, _HEADINGS[node.name]
    if node.name in _SIMPLE_TYPES:
        return _SIMPLE_TYPES[node.name], None
    if node.name == "img" or node.find("img") is not None:
        return BlockType.IMAGE, None
    return BlockType.OTHER, None


def is_empty(node: Tag) -> bool:
    if node.name in _VOID_CONTENT:
        return False
    if node.find(list(_VOID_CONTENT)) is not None:
        return False
    return not node.get_text().strip()


def parse_blocks(root: Tag) -> list[ContentBlock]:
    """One block per non-empty top-level element child of ``root``; stray text becomes a paragraph."""
    blocks: list[ContentBlock] = []
    for child in root.children:
        if isinstance(child, Comment):
            continue
        if isinstance(child, NavigableString):
            text = str(child).strip()
            if text:
                markup = html.escape(text, quote=False)
                blocks.append(ContentBlock(id=generate_id(), type=BlockType.PARAGRAPH, html=markup, text=text))
            continue
        if not isinstance(child, Tag) or is_empty(child):
            continue
        kind, level = block_type(child)
        blocks.append(ContentBlock(id=generate_id(), type=kind, html=str(child), text=inner_text(child), level=level))
    return blocks
