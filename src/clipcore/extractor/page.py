"""
Parsed snapshot of a rendered document.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlparse

from bs4 import BeautifulSoup, Tag

from .dom import clone, parse_document
from .layout import DEFAULT_LAYOUT
from .protocols import LayoutProbe


@dataclass(slots=True)
class PageSnapshot:
    """The document tree an extraction runs against, plus its URL and layout."""

    soup: BeautifulSoup
    url: str
    layout: LayoutProbe = DEFAULT_LAYOUT

    @classmethod
    def parse(
        cls, html: str, url: str, *, parser: str = "html.parser", layout: LayoutProbe | None = None
    ) -> PageSnapshot:
        return cls(soup=parse_document(html, parser), url=url, layout=layout or DEFAULT_LAYOUT)

    @property
    def domain(self) -> str:
        try:
            return urlparse(self.url).hostname or ""
        except ValueError:
            return ""

    @property
    def title(self) -> str:
        """The document-level <title>."""
        title = self.soup.find("title")
        return title.get_text(" ", strip=True) if isinstance(title, Tag) else ""

    @property
    def body(self) -> Tag:
        body = self.soup.find("body")
        return body if isinstance(body, Tag) else self.soup

    def host_matches(self, hosts: tuple[str, ...]) -> bool:
        """Whether the page host is one of ``hosts`` or a subdomain of one."""
        domain = self.domain.lower()
        return any(domain == host or domain.endswith("." + host) for host in hosts)

    def clone_document(self) -> BeautifulSoup:
        """An independently mutable copy of the whole document."""
        return clone(self.soup)
