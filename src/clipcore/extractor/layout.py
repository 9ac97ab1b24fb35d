"""
Layout information derived from snapshot markup.

A rendered page serialized to HTML loses its computed styles and geometry.
MarkupLayoutProbe recovers what it can from the markup itself: inline style
declarations, the ``hidden`` attribute, declared ``width``/``height`` and the
optional ``data-rendered-*`` / ``data-natural-*`` / ``data-current-src``
stamps a snapshotting host may write before serializing. Because everything
lives in attributes, cloned subtrees carry their layout with them.
"""

from __future__ import annotations

import re
from typing import Mapping

from bs4 import Tag

from .protocols import LayoutProbe

_DECLARATION = re.compile(r"([-\w]+)\s*:\s*([^;]+)")
_NUMBER = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(px)?\s*$", re.IGNORECASE)


def parse_inline_style(style: str | None) -> dict[str, str]:
    """Parse a ``style`` attribute into a property -> value mapping."""
    if not style:
        return {}
    declarations: dict[str, str] = {}
    for prop, value in _DECLARATION.findall(style):
        value = re.sub(r"\s*!important\s*$", "", value.strip(), flags=re.IGNORECASE)
        declarations[prop.lower()] = value
    return declarations


def parse_length(value: object) -> float | None:
    """Parse ``"16"``, ``"16px"`` or ``"16.5"``; anything else is unknown."""
    if value is None:
        return None
    match = _NUMBER.match(str(value))
    if not match:
        return None
    return float(match.group(1))


class MarkupLayoutProbe:
    """LayoutProbe backed purely by attributes of the parsed tree."""

    def computed_style(self, tag: Tag) -> Mapping[str, str]:
        style = parse_inline_style(tag.get("style"))  # type: ignore[arg-type]
        if tag.has_attr("hidden"):
            style.setdefault("display", "none")
        return style

    def rendered_size(self, tag: Tag) -> tuple[float, float] | None:
        width = parse_length(tag.get("data-rendered-width"))
        height = parse_length(tag.get("data-rendered-height"))
        if width is not None and height is not None:
            return width, height

        style = parse_inline_style(tag.get("style"))  # type: ignore[arg-type]
        width = parse_length(style.get("width"))
        height = parse_length(style.get("height"))
        if width is not None and height is not None:
            return width, height
        return None

    def natural_size(self, tag: Tag) -> tuple[float, float] | None:
        width = parse_length(tag.get("data-natural-width"))
        height = parse_length(tag.get("data-natural-height"))
        if width is not None and height is not None:
            return width, height
        return None

    def current_source(self, tag: Tag) -> str | None:
        value = tag.get("data-current-src")
        return value if isinstance(value, str) and value.strip() else None


def declared_size(tag: Tag) -> tuple[float, float] | None:
    """Size from the ``width``/``height`` attributes."""
    width = parse_length(tag.get("width"))
    height = parse_length(tag.get("height"))
    if width is None and height is None:
        return None
    return width or 0.0, height or 0.0


def effective_size(layout: LayoutProbe, img: Tag) -> tuple[float, float]:
    """Natural size, else rendered box size, else declared attributes; 0 when unknown."""
    for size in (layout.natural_size(img), layout.rendered_size(img), declared_size(img)):
        if size and size[0] > 0 and size[1] > 0:
            return size
    size = declared_size(img)
    return size if size else (0.0, 0.0)


def is_hidden(layout: LayoutProbe, tag: Tag) -> bool:
    """Whether the element itself is styled out of the rendering."""
    style = layout.computed_style(tag)
    return style.get("display", "").strip().lower() == "none" or style.get(
        "visibility", ""
    ).strip().lower() in ("hidden", "collapse")


def is_rendered(layout: LayoutProbe, tag: Tag) -> bool:
    """
    Whether a human could see the element: no hidden ancestor, not fully
    transparent, and not collapsed to a zero-size box when geometry is known.
    """
    node: Tag | None = tag
    while isinstance(node, Tag) and node.name != "[document]":
        if is_hidden(layout, node):
            return False
        node = node.parent
    opacity = parse_length(layout.computed_style(tag).get("opacity"))
    if opacity is not None and opacity == 0:
        return False
    size = layout.rendered_size(tag)
    if size is not None and (size[0] < 1 or size[1] < 1):
        return False
    return True


DEFAULT_LAYOUT = MarkupLayoutProbe()
