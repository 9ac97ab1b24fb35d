"""
Readability collaborator backed by readability-lxml.
"""

from __future__ import annotations

import structlog
from lxml.etree import ParserError
from lxml.html import document_fromstring
from readability import Document
from readability.readability import Unparseable

from ..config.config import ExtractionSettings
from .protocols import ReadabilityArticle

logger = structlog.get_logger(__name__)

# readability-lxml's placeholder when a document has no <title>
_NO_TITLE = "[no-title]"
_AUTHOR_XPATHS = (
    "//meta[@name='author']/@content",
    "//meta[@property='article:author']/@content",
)


class ReadabilityParser:
    """Best-effort main-content isolation using readability-lxml."""

    name = "readability"

    def __init__(self, settings: ExtractionSettings | None = None) -> None:
        settings = settings or ExtractionSettings()
        self.config = {
            "min_text_length": settings.readability_min_text_length,
            "retry_length": settings.readability_retry_length,
            "positive_keywords": [
                "article",
                "body",
                "content",
                "entry",
                "hentry",
                "main",
                "page",
                "post",
                "text",
                "blog",
                "story",
            ],
            "negative_keywords": [
                "combx",
                "comment",
                "com-",
                "contact",
                "foot",
                "footer",
                "footnote",
                "masthead",
                "outbrain",
                "promo",
                "related",
                "scroll",
                "shoutbox",
                "sidebar",
                "sponsor",
                "shopping",
                "tags",
                "tool",
                "widget",
            ],
        }

    def parse(self, html: str, url: str | None = None) -> ReadabilityArticle | None:
        """Isolate the main content of a full document, or None when nothing usable is found."""
        if not html.strip():
            return None

        try:
            doc = Document(
                html,
                url=url,
                min_text_length=self.config["min_text_length"],
                retry_length=self.config["retry_length"],
                positive_keywords=self.config["positive_keywords"],
                negative_keywords=self.config["negative_keywords"],
            )
            content_html = doc.summary(html_partial=True)
            title = doc.short_title() or doc.title()
        except (Unparseable, ParserError, ValueError, TypeError) as e:
            logger.warning("Readability parse failed", url=url, error=str(e), error_type=type(e).__name__)
            return None

        if not content_html or not content_html.strip():
            return None

        if not title or title.strip() == _NO_TITLE:
            title = None

        return ReadabilityArticle(title=title, content_html=content_html, author=self._author(html))

    @staticmethod
    def _author(html: str) -> str | None:
        """Byline declared in the document head, if any."""
        try:
            tree = document_fromstring(html)
        except (ParserError, ValueError) as e:
            logger.debug("Author lookup failed", error=str(e))
            return None
        for xpath in _AUTHOR_XPATHS:
            for value in tree.xpath(xpath):
                value = " ".join(str(value).split())
                if value and not value.startswith(("http://", "https://")):
                    return value
        return None
