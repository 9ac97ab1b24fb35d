"""
WeChat official-account article extractor.

WeChat pages have a fixed skeleton (``#activity-name``, ``#js_content``,
``#js_name``, ``#publish_time``), so no readability pass is needed.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import structlog
from bs4 import Tag

from ..config.config import ExtractionSettings
from ..config.rules import DEFAULT_RULES, HeuristicRules
from ..utils.text import collapse_whitespace
from .blocks import parse_blocks
from .cleaner import BoilerplateCleaner
from .dom import attr, clone, inner_text, select_one
from .image_harvester import ImageHarvester
from .layout import DEFAULT_LAYOUT
from .markup import normalize_markup
from .models import ExtractResult
from .page import PageSnapshot
from .protocols import LayoutProbe

logger = structlog.get_logger(__name__)


class WeixinExtractor:
    name = "weixin"

    def __init__(
        self,
        settings: ExtractionSettings | None = None,
        rules: HeuristicRules | None = None,
        layout: LayoutProbe | None = None,
    ) -> None:
        self.settings = settings or ExtractionSettings()
        self.rules = rules or DEFAULT_RULES
        self.layout = layout or DEFAULT_LAYOUT
        self.cleaner = BoilerplateCleaner(self.settings, self.rules, self.layout)

    def matches(self, page: PageSnapshot) -> bool:
        return page.host_matches(self.rules.weixin_hosts)

    async def extract(self, page: PageSnapshot) -> ExtractResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.extract_sync, page)

    def extract_sync(self, page: PageSnapshot) -> ExtractResult:
        soup = page.soup
        title = _text(select_one(soup, "#activity-name")) or page.title
        author = _text(select_one(soup, "#js_name"))
        publish_time = _text(select_one(soup, "#publish_time"))

        body = select_one(soup, "#js_content")
        if body is None:
            logger.warning("WeChat article body not found", url=page.url)
            return ExtractResult.empty(title or page.domain or page.url, page.url, page.domain)

        content = clone(body)
        self.cleaner.clean(content, aggressive=True)
        for img in content.find_all("img"):
            lazy = attr(img, "data-src")
            if lazy and not attr(img, "src").startswith("http"):
                img["src"] = lazy

        harvester = ImageHarvester(self.settings, self.rules, self.layout, base_url=page.url)
        images = harvester.harvest_content(content, document=soup)
        normalize_markup(content, self.rules.allowed_attributes)

        logger.debug("Extracted WeChat article", url=page.url, images=len(images))
        return ExtractResult(
            title=title or page.domain or page.url,
            source_url=page.url,
            domain=page.domain,
            content_html=content.decode_contents().strip(),
            blocks=parse_blocks(content),
            images=images,
            word_count=len(inner_text(content)),
            author=author,
            publish_time=publish_time,
        )


def _text(tag: Optional[Tag]) -> Optional[str]:
    if tag is None:
        return None
    return collapse_whitespace(tag.get_text(" ")) or None
