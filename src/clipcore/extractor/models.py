"""
Data models for extraction results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class BlockType(str, Enum):
    """Kinds of top-level article body nodes."""

    HEADING = "heading"
    PARAGRAPH = "paragraph"
    LIST = "list"
    QUOTE = "quote"
    CODE = "code"
    IMAGE = "image"
    OTHER = "other"


class ImageKind(str, Enum):
    """Where a harvested image reference came from."""

    DIRECT = "direct"
    LAZY = "lazy"
    RESPONSIVE = "responsive-source"
    BACKGROUND = "background"
    META_HINT = "meta-hint"
    PRELOAD_HINT = "preload-hint"


# Kinds that correspond to an <img>-equivalent reference inside the body.
MATCHABLE_KINDS = frozenset({ImageKind.DIRECT, ImageKind.LAZY, ImageKind.RESPONSIVE})


@dataclass(slots=True, frozen=True)
class ContentBlock:
    """One top-level node of the article body."""

    id: str
    type: BlockType
    html: str
    text: str
    level: int | None = None

    def __post_init__(self) -> None:
        if self.type is BlockType.HEADING and not (self.level and 1 <= self.level <= 6):
            raise ValueError("Heading blocks need a level between 1 and 6")

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "type": self.type.value, "html": self.html, "text": self.text}
        if self.level is not None:
            data["level"] = self.level
        return data


@dataclass(slots=True, frozen=True)
class ImageCandidate:
    """One harvested image signal."""

    id: str
    url: str
    normalized_url: str
    kind: ImageKind
    order: int
    in_main_content: bool
    width: int | None = None
    height: int | None = None
    alt: str | None = None

    @property
    def matchable(self) -> bool:
        return self.kind in MATCHABLE_KINDS

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "normalizedUrl": self.normalized_url,
            "kind": self.kind.value,
            "order": self.order,
            "inMainContent": self.in_main_content,
            "width": self.width,
            "height": self.height,
            "alt": self.alt,
        }


@dataclass(slots=True, frozen=True)
class QuotedPost:
    """A quoted or embedded post found inside a primary social post."""

    url: str
    text: str
    html: str
    images: list[ImageCandidate] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class ExtractResult:
    """Result of article extraction."""

    title: str
    source_url: str
    domain: str
    content_html: str = ""
    blocks: list[ContentBlock] = field(default_factory=list)
    images: list[ImageCandidate] = field(default_factory=list)
    word_count: int = 0
    author: str | None = None
    publish_time: str | None = None

    def __post_init__(self) -> None:
        """Validate the result."""
        if self.word_count < 0:
            raise ValueError("word_count must not be negative")

    @classmethod
    def empty(cls, title: str, source_url: str, domain: str) -> ExtractResult:
        """An empty but well-formed result."""
        return cls(title=title, source_url=source_url, domain=domain)

    @property
    def is_empty(self) -> bool:
        return not self.blocks and not self.content_html.strip()

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "sourceUrl": self.source_url,
            "domain": self.domain,
            "author": self.author,
            "publishTime": self.publish_time,
            "contentHtml": self.content_html,
            "blocks": [block.to_dict() for block in self.blocks],
            "images": [image.to_dict() for image in self.images],
            "wordCount": self.word_count,
        }
