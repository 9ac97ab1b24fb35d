"""
Avatar / decorative image classifier.

Decides whether an <img> is article content or noise (author photos, icons,
decorative backgrounds). Checks run in a fixed order and the first hit wins;
size and shape checks come before the broad region selectors so that small
legitimate images inside a wrongly matched container are judged on their own
merits first.
"""

from __future__ import annotations

import re

import structlog
from bs4 import Tag

from ..config.config import ExtractionSettings
from ..config.rules import DEFAULT_RULES, HeuristicRules
from .dom import ancestors, attr, class_string, compile_patterns, inner_text, matches_any
from .layout import DEFAULT_LAYOUT, declared_size, effective_size
from .protocols import LayoutProbe

logger = structlog.get_logger(__name__)

_MEDIUM_SIZED = re.compile(r"resize:[^/]+:(\d+)")
_ROUND_CLASSES = frozenset({"rounded-full", "rounded-circle", "circle"})
_ROUNDED_CORNER_CLASSES = frozenset({"rounded-md", "rounded-lg", "rounded-xl"})
_SMALL_WIDTH = re.compile(r"\bw-(8|9|10|11|12|14|16)\b")
_SMALL_HEIGHT = re.compile(r"\bh-(8|9|10|11|12|14|16)\b")
_CIRCLE_RADII = ("50%", "9999px", "100%")
_NAME_LIKE_ALT = (
    re.compile(r"^[a-z]+\s*$", re.IGNORECASE),
    re.compile(r"^[a-z]+\s+[a-z]+\s*$", re.IGNORECASE),
)


def image_source(img: Tag, lazy_attributes: tuple[str, ...] = DEFAULT_RULES.lazy_image_attributes) -> str:
    """The declared or lazy-loaded source of an image element."""
    src = attr(img, "src")
    if src and not src.startswith("data:"):
        return src
    for name in lazy_attributes:
        value = attr(img, name)
        if value and not value.startswith("data:"):
            return value
    return src


class ImageClassifier:
    """Heuristic filter separating content images from avatars, icons and decoration."""

    def __init__(
        self,
        settings: ExtractionSettings | None = None,
        rules: HeuristicRules | None = None,
        layout: LayoutProbe | None = None,
    ) -> None:
        self.settings = settings or ExtractionSettings()
        self.rules = rules or DEFAULT_RULES
        self.layout = layout or DEFAULT_LAYOUT
        self._avatar_alt = compile_patterns(self.rules.avatar_alt_patterns)
        self._decorative_alt = compile_patterns(self.rules.decorative_alt_patterns)

    def is_excluded(self, img: Tag) -> bool:
        reason = self.exclusion_reason(img)
        if reason:
            logger.debug("Excluding image", reason=reason, src=image_source(img)[:120])
        return reason is not None

    def exclusion_reason(self, img: Tag) -> str | None:
        """Name of the first check that rejects ``img``, or None for content images."""
        src = image_source(img, self.rules.lazy_image_attributes).lower()
        alt = attr(img, "alt")

        # 1. platform authorship markers
        if attr(img, "data-testid") == "authorPhoto":
            return "author-photo-marker"

        # 2. CDN thumbnail renditions
        if "miro.medium.com" in src:
            if "resize:fill" in src:
                return "cdn-thumbnail"
            match = _MEDIUM_SIZED.search(src)
            if match and int(match.group(1)) <= self.settings.thumbnail_max_px:
                return "cdn-thumbnail"

        # 3. class keywords
        classes = class_string(img).lower()
        if any(keyword in classes for keyword in self.rules.avatar_class_keywords):
            return "avatar-class"
        if any(keyword in classes for keyword in self.rules.avatar_class_only_keywords):
            return "avatar-class"

        # 4. alt text
        if alt:
            if any(pattern.search(alt) for pattern in self._avatar_alt):
                return "avatar-alt"
            if any(pattern.search(alt) for pattern in self._decorative_alt):
                return "decorative-alt"

        # 5. icon size
        width, height = effective_size(self.layout, img)
        if width > 0 and height > 0 and width <= self.settings.icon_max_px and height <= self.settings.icon_max_px:
            return "icon-size"

        # 6. avatar-shaped containers
        shape = self._shape_reason(img, alt)
        if shape:
            return shape

        # 7. non-content regions and bylines
        region = self._region_reason(img)
        if region:
            return region

        # 8. avatar URL markers
        if any(marker in src for marker in self.rules.avatar_url_markers):
            return "avatar-url"

        return None

    def _shape_reason(self, img: Tag, alt: str) -> str | None:
        settings = self.settings
        for depth, node in enumerate(ancestors(img, limit=settings.ancestor_scan_depth, include_self=True)):
            classes = class_string(node)
            class_set = set(classes.split())

            if class_set & _ROUND_CLASSES:
                return "circular-container"

            if "overflow-hidden" in class_set and _SMALL_WIDTH.search(classes) and _SMALL_HEIGHT.search(classes):
                return "clipped-small-box"

            radius = self.layout.computed_style(node).get("border-radius", "").strip().lower()
            if radius in _CIRCLE_RADII:
                return "circular-container"

            if depth <= 3 and class_set & _ROUNDED_CORNER_CLASSES:
                size = declared_size(img) or (0.0, 0.0)
                natural = self.layout.natural_size(img)
                width, height = natural if natural else size
                is_square = abs(width - height) < settings.author_photo_square_tolerance
                in_band = settings.author_photo_min_px <= width <= settings.author_photo_max_px
                if is_square and in_band and self._name_like(alt):
                    return "author-photo-card"
        return None

    @staticmethod
    def _name_like(alt: str) -> bool:
        text = alt.strip()
        if "undefined" in text:
            return True
        return any(pattern.match(text) for pattern in _NAME_LIKE_ALT)

    def _region_reason(self, img: Tag) -> str | None:
        settings = self.settings
        for parent in ancestors(img, limit=settings.ancestor_scan_depth):
            if matches_any(parent, self.rules.image_exclude_parent_selectors):
                return "non-content-region"

            text = inner_text(parent).lower()
            if settings.byline_text_min < len(text) < settings.byline_text_max and any(
                phrase in text for phrase in self.rules.byline_phrases
            ):
                return "byline-region"
        return None
