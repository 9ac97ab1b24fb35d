"""
Caption heuristic: the human-visible caption of an image, if any.
"""

from __future__ import annotations

import structlog
from bs4 import Tag

from ..config.config import ExtractionSettings
from ..config.rules import DEFAULT_RULES, HeuristicRules
from ..utils.text import collapse_whitespace
from .dom import attr, closest, compile_patterns, document_root, inner_text, matches_any, select_one
from .layout import DEFAULT_LAYOUT, is_rendered
from .protocols import LayoutProbe

logger = structlog.get_logger(__name__)

_THIN_WRAPPERS = frozenset({"p", "div", "a", "span"})
_UNTYPED_CAPTION_TAGS = frozenset({"div", "span", "p", "small", "center"})


class CaptionFinder:
    """Finds the caption a reader would associate with an image."""

    def __init__(
        self,
        settings: ExtractionSettings | None = None,
        rules: HeuristicRules | None = None,
        layout: LayoutProbe | None = None,
    ) -> None:
        self.settings = settings or ExtractionSettings()
        self.rules = rules or DEFAULT_RULES
        self.layout = layout or DEFAULT_LAYOUT
        self._placeholders = {word.lower() for word in self.rules.caption_placeholder_words}
        self._credit, self._action = compile_patterns(
            (self.rules.caption_credit_pattern, self.rules.caption_action_pattern)
        )
        self._selector_list = ", ".join(self.rules.caption_selectors)

    def find_caption(self, img: Tag) -> str | None:
        caption = self._from_figure(img) or self._from_described_by(img)
        if caption:
            return caption
        return self._from_sibling(img) or self._from_parent(img)

    # strong structure

    def _from_figure(self, img: Tag) -> str | None:
        figure = closest(img, "figure")
        if figure is None:
            return None
        for figcaption in figure.find_all("figcaption"):
            # a nested figure owns its own figcaption
            if closest(figcaption, "figure") is not figure:
                continue
            text = self._visible_text(figcaption)
            if text and self.is_valid_caption(text):
                return text
        return None

    def _from_described_by(self, img: Tag) -> str | None:
        ref = attr(img, "aria-describedby").strip()
        if not ref:
            return None
        root = document_root(img)
        for ident in ref.split():
            target = root.find(id=ident)
            if isinstance(target, Tag):
                text = self._visible_text(target)
                if text and self.is_valid_caption(text):
                    return text
        return None

    # weak structure

    def _from_sibling(self, img: Tag) -> str | None:
        sibling = img.find_next_sibling()
        parent = img.parent
        if sibling is None and isinstance(parent, Tag) and parent.name in _THIN_WRAPPERS:
            if len(inner_text(parent)) < self.settings.caption_wrapper_max_text:
                sibling = parent.find_next_sibling()
        if not isinstance(sibling, Tag):
            return None

        if matches_any(sibling, self.rules.caption_selectors) or sibling.name in _UNTYPED_CAPTION_TAGS:
            text = self._visible_text(sibling)
            if text and self.is_valid_caption(text):
                return text
        return None

    def _from_parent(self, img: Tag) -> str | None:
        parent = img.parent
        if not isinstance(parent, Tag) or parent.name == "[document]":
            return None
        candidate = select_one(parent, self._selector_list)
        if candidate is None or candidate is img or candidate.name == "img":
            return None
        text = self._visible_text(candidate)
        if text and self.is_valid_caption(text):
            return text
        return None

    # filters

    def _visible_text(self, tag: Tag) -> str:
        if not is_rendered(self.layout, tag):
            return ""
        return collapse_whitespace(inner_text(tag, self.layout))

    def is_valid_caption(self, text: str) -> bool:
        text = collapse_whitespace(text)
        if not (self.settings.caption_min_len <= len(text) <= self.settings.caption_max_len):
            return False
        lowered = text.lower()
        if lowered in self._placeholders:
            return False
        if any(word in lowered for word in self.rules.caption_stopwords):
            if self._credit.search(text):
                return True
            if self._action.search(text):
                return False
        return True
