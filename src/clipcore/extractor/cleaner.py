"""
Boilerplate removal on a private clone of a subtree.

Two strictness modes: aggressive for the text body, conservative for the
image-bearing copy where structural landmarks may carry the lead image.
"""

from __future__ import annotations

from typing import Callable

import structlog
from bs4 import Tag

from ..config.config import ExtractionSettings
from ..config.rules import DEFAULT_RULES, HeuristicRules
from .dom import closest, compile_patterns, inner_text, is_within, remove, select
from .layout import DEFAULT_LAYOUT, is_hidden
from .protocols import LayoutProbe

logger = structlog.get_logger(__name__)

_METADATA_LEAVES = "div, span, p, a, time"
_FAQ_HEADINGS = "h1, h2, h3, h4, h5, h6, p, div, span, strong"


class BoilerplateCleaner:
    """Removes ads, social bars, comment widgets, hidden elements and metadata blocks in place."""

    def __init__(
        self,
        settings: ExtractionSettings | None = None,
        rules: HeuristicRules | None = None,
        layout: LayoutProbe | None = None,
    ) -> None:
        self.settings = settings or ExtractionSettings()
        self.rules = rules or DEFAULT_RULES
        self.layout = layout or DEFAULT_LAYOUT
        self._metadata_patterns = compile_patterns(self.rules.metadata_text_patterns)

    def clean(self, root: Tag, aggressive: bool = True) -> None:
        removed = 0
        for selector in self.rules.junk_selectors:
            for element in select(root, selector):
                if element is not root and not element.decomposed:
                    remove(element)
                    removed += 1

        landmarks = self.rules.structural_selectors if aggressive else ("script", "style")
        for selector in landmarks:
            for element in select(root, selector):
                if element is not root and not element.decomposed:
                    remove(element)
                    removed += 1

        for element in root.find_all(True):
            if not element.decomposed and is_hidden(self.layout, element):
                remove(element)
                removed += 1

        if aggressive:
            removed += self._remove_all(self._metadata_blocks(root))
            removed += self._remove_all(self._boilerplate_shapes(root))

        logger.debug("Cleaned subtree", aggressive=aggressive, removed=removed)

    @staticmethod
    def _remove_all(elements: list[Tag]) -> int:
        count = 0
        for element in elements:
            if not element.decomposed:
                remove(element)
                count += 1
        return count

    def _container_for(self, root: Tag, element: Tag, limit: int) -> Tag | None:
        """The closest ``.flex`` wrapper or the parent, if it is inside ``root`` and small."""
        for candidate in (closest(element, ".flex"), element.parent):
            if (
                isinstance(candidate, Tag)
                and candidate is not root
                and is_within(candidate, root)
                and len(inner_text(candidate)) < limit
            ):
                return candidate
        return None

    def _metadata_blocks(self, root: Tag) -> list[Tag]:
        settings = self.settings
        found: list[Tag] = []
        for element in select(root, _METADATA_LEAVES):
            text = element.get_text().strip()
            if not (0 < len(text) < settings.metadata_leaf_max):
                continue
            if not any(pattern.search(text) for pattern in self._metadata_patterns):
                continue
            container = self._container_for(root, element, settings.metadata_container_max)
            # a leaf sitting directly under the root is removed on its own
            found.append(container if container is not None else element)
        return found

    def _boilerplate_shapes(self, root: Tag) -> list[Tag]:
        found: list[Tag] = []
        rules: tuple[Callable[[Tag, Tag, str], Tag | None], ...] = (
            self._author_card,
            self._byline_strip,
            self._promo_card,
            self._breadcrumb,
        )
        for element in root.find_all(True):
            text = element.get_text().strip()
            if not text:
                continue
            for rule in rules:
                target = rule(root, element, text)
                if target is not None:
                    found.append(target)
                    break
        found.extend(self._faq_sections(root))
        return found

    def _author_card(self, root: Tag, element: Tag, text: str) -> Tag | None:
        if "Written by" in text and "Reviewed by" in text and len(text) < self.settings.author_card_max:
            return element
        return None

    def _byline_strip(self, root: Tag, element: Tag, text: str) -> Tag | None:
        if ("Article by" in text or "Share this post" in text) and len(text) < self.settings.metadata_container_max:
            return self._container_for(root, element, self.settings.author_card_max) or element
        return None

    def _promo_card(self, root: Tag, element: Tag, text: str) -> Tag | None:
        lowered = text.lower()
        if "try it for free" in lowered and "learn more" in lowered and len(text) < self.settings.metadata_container_max:
            card = closest(element, "div")
            if card is not None and card is not root and is_within(card, root):
                return card
            return element
        return None

    def _breadcrumb(self, root: Tag, element: Tag, text: str) -> Tag | None:
        lowered = text.lower()
        if lowered == "blogs / guides" or ("blogs / guides" in lowered and len(text) < 50):
            return self._container_for(root, element, self.settings.metadata_container_max)
        return None

    def _faq_sections(self, root: Tag) -> list[Tag]:
        limit = self.settings.faq_section_max
        found: list[Tag] = []
        for heading in select(root, _FAQ_HEADINGS):
            if heading.get_text().strip().lower() != "frequently asked questions":
                continue
            section = closest(heading, "section")
            if section is not None and section is not root and is_within(section, root):
                if len(inner_text(section)) < limit:
                    found.append(section)
                continue
            parent = heading.parent
            if isinstance(parent, Tag) and parent is not root and len(inner_text(parent)) < limit:
                found.append(parent)
        return found
