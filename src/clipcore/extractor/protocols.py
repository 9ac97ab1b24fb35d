"""
Protocols for the pluggable pieces of the extraction pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Mapping, Protocol, runtime_checkable

from bs4 import Tag

from .models import ExtractResult

if TYPE_CHECKING:
    from .page import PageSnapshot


@runtime_checkable
class Extractor(Protocol):
    """Pluggable page-to-ExtractResult strategy."""

    name: str

    def matches(self, page: PageSnapshot) -> bool:
        """Whether this extractor handles the given page."""
        ...

    async def extract(self, page: PageSnapshot) -> ExtractResult:
        """Extract content from a parsed page.

        Args:
            page: Parsed snapshot of the rendered document

        Returns:
            ExtractResult, empty but well-formed when nothing was found
        """
        ...


@runtime_checkable
class LayoutProbe(Protocol):
    """Rendering-engine capabilities: computed style and geometry of elements."""

    def computed_style(self, tag: Tag) -> Mapping[str, str]:
        """Style declarations in effect on the element (lower-cased property names)."""
        ...

    def rendered_size(self, tag: Tag) -> tuple[float, float] | None:
        """Box size as laid out, or None when unknown."""
        ...

    def natural_size(self, tag: Tag) -> tuple[float, float] | None:
        """Intrinsic size of an image resource, or None when unknown."""
        ...

    def current_source(self, tag: Tag) -> str | None:
        """The source the engine actually picked for an image, if known."""
        ...


@dataclass(slots=True, frozen=True)
class ReadabilityArticle:
    """What the readability collaborator hands back."""

    title: str | None
    content_html: str
    author: str | None = None


@runtime_checkable
class ReadabilityCollaborator(Protocol):
    """Best-effort boilerplate removal over a whole document."""

    def parse(self, html: str, url: str | None = None) -> ReadabilityArticle | None:
        ...


@runtime_checkable
class PermalinkBridge(Protocol):
    """Asynchronous lookup of a quoted post's permalink in the page's own context.

    The element to inspect is identified by a correlation token stamped on it
    before the call.
    """

    async def resolve_permalink(self, token: str) -> str | None:
        ...
