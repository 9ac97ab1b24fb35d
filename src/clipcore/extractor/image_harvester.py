"""
Image candidate harvesting.

Collects every plausible image reference in a subtree, runs each <img>
through the classifier, canonicalizes URLs and deduplicates on the canonical
form. Harvesting only reads the tree.
"""

from __future__ import annotations

import re
from typing import Iterator
from urllib.parse import urlsplit

import structlog
from bs4 import BeautifulSoup, Tag

from ..config.config import ExtractionSettings
from ..config.rules import DEFAULT_RULES, HeuristicRules
from ..utils.text import generate_id
from .captions import CaptionFinder
from .dom import attr, closest, document_root, select
from .image_classifier import ImageClassifier
from .layout import DEFAULT_LAYOUT, declared_size, effective_size
from .models import ImageCandidate, ImageKind
from .protocols import LayoutProbe
from .url_normalizer import normalize_image_url

logger = structlog.get_logger(__name__)

# Transient attributes written by preprocessing so caption, size and the
# classifier verdict survive readability's attribute cleanup.
CAPTION_ATTR = "data-clip-caption"
WIDTH_ATTR = "data-clip-width"
HEIGHT_ATTR = "data-clip-height"
EXCLUDED_ATTR = "data-clip-excluded"
TRANSIENT_ATTRS = (CAPTION_ATTR, WIDTH_ATTR, HEIGHT_ATTR, EXCLUDED_ATTR)

_SRCSET_SPLIT = re.compile(r"(?<=\d[wxWX]),\s*")
_DESCRIPTOR = re.compile(r"^(\d+(?:\.\d+)?)[wxWX]$")
_CSS_URL = re.compile(r"""url\(\s*["']?([^"')]+)["']?\s*\)""")


def parse_srcset(srcset: str) -> str | None:
    """
    Highest-descriptor URL of a srcset. URLs may contain commas, so entries are
    split only on a comma that follows a ``<digits>w``/``<digits>x`` descriptor.
    Ties and missing descriptors favor the first entry.
    """
    best_url: str | None = None
    best_value = -1.0
    for entry in _SRCSET_SPLIT.split(srcset.strip()):
        tokens = entry.strip().split()
        if not tokens:
            continue
        value = 0.0
        url_tokens = tokens
        match = _DESCRIPTOR.match(tokens[-1]) if len(tokens) > 1 else None
        if match:
            value = float(match.group(1))
            url_tokens = tokens[:-1]
        url = " ".join(url_tokens).strip()
        if url and value > best_value:
            best_url, best_value = url, value
    return best_url


def is_valid_image_url(url: str) -> bool:
    url = url.strip()
    if not url or url.startswith(("javascript:", "about:")):
        return False
    if url.startswith(("data:image", "blob:", "//")):
        return True
    try:
        scheme = urlsplit(url).scheme
    except ValueError:
        return False
    return scheme in ("http", "https", "")


def content_images(candidates: list[ImageCandidate]) -> list[ImageCandidate]:
    """Candidates that may appear in ExtractResult.images."""
    return [c for c in candidates if c.matchable and c.in_main_content]


class ImageHarvester:
    """Gathers, classifies and deduplicates image candidates from a subtree."""

    def __init__(
        self,
        settings: ExtractionSettings | None = None,
        rules: HeuristicRules | None = None,
        layout: LayoutProbe | None = None,
        classifier: ImageClassifier | None = None,
        captions: CaptionFinder | None = None,
        base_url: str | None = None,
    ) -> None:
        self.settings = settings or ExtractionSettings()
        self.rules = rules or DEFAULT_RULES
        self.layout = layout or DEFAULT_LAYOUT
        self.classifier = classifier or ImageClassifier(self.settings, self.rules, self.layout)
        self.captions = captions or CaptionFinder(self.settings, self.rules, self.layout)
        self.base_url = base_url

    def harvest(self, root: Tag, document: Tag | None = None) -> list[ImageCandidate]:
        """
        All image signals under ``root`` plus page-level hints from ``document``
        (the top of ``root``'s tree when not given), in harvesting order.
        """
        document = document if document is not None else document_root(root)
        collector = _Collector(self.base_url)
        excluded: set[int] = set()

        for img in self._images(root):
            if img.has_attr(EXCLUDED_ATTR) or self.classifier.is_excluded(img):
                excluded.add(id(img))
                continue
            source = self._pick_source(img)
            if source is None:
                continue
            url, kind = source
            width, height = self._size(img)
            collector.add(url, kind, True, width, height, self._caption(img))

        for source_tag in select(root, "picture source[srcset]"):
            picture = closest(source_tag, "picture")
            picture_img = picture.find("img") if picture is not None else None
            if isinstance(picture_img, Tag) and id(picture_img) in excluded:
                continue
            url = parse_srcset(attr(source_tag, "srcset"))
            if url:
                collector.add(url, ImageKind.RESPONSIVE, True)

        for element in self._elements(root):
            if id(element) in excluded:
                continue
            background = self.layout.computed_style(element).get("background-image", "")
            match = _CSS_URL.search(background)
            if match:
                collector.add(match.group(1), ImageKind.BACKGROUND, False)

        for meta in select(document, 'meta[property="og:image"]'):
            collector.add(attr(meta, "content"), ImageKind.META_HINT, False)

        for link in select(document, 'link[rel~="preload"][as="image"]'):
            collector.add(attr(link, "href"), ImageKind.PRELOAD_HINT, False)

        logger.debug("Harvested images", total=len(collector.candidates), excluded=len(excluded))
        return collector.candidates

    def harvest_content(self, root: Tag, document: Tag | None = None) -> list[ImageCandidate]:
        return content_images(self.harvest(root, document))

    @staticmethod
    def _images(root: Tag) -> Iterator[Tag]:
        if root.name == "img":
            yield root
        yield from root.find_all("img")

    @staticmethod
    def _elements(root: Tag) -> Iterator[Tag]:
        if not isinstance(root, BeautifulSoup):
            yield root
        yield from root.find_all(True)

    def _pick_source(self, img: Tag) -> tuple[str, ImageKind] | None:
        """First usable source of one element: lazy, current, src, srcset, data-srcset."""
        for name in self.rules.lazy_image_attributes:
            value = attr(img, name).strip()
            if value and not value.startswith("data:") and is_valid_image_url(value):
                return value, ImageKind.LAZY

        current = self.layout.current_source(img)
        if current and not current.startswith("data:") and is_valid_image_url(current):
            return current, ImageKind.DIRECT

        src = attr(img, "src").strip()
        if src and not src.startswith("data:") and is_valid_image_url(src):
            return src, ImageKind.DIRECT

        for name in ("srcset", "data-srcset"):
            value = attr(img, name)
            if value:
                url = parse_srcset(value)
                if url and not url.startswith("data:") and is_valid_image_url(url):
                    return url, ImageKind.RESPONSIVE
        return None

    def _size(self, img: Tag) -> tuple[int | None, int | None]:
        stamped = (attr(img, WIDTH_ATTR), attr(img, HEIGHT_ATTR))
        if all(value.isdigit() for value in stamped):
            return int(stamped[0]), int(stamped[1])
        width, height = effective_size(self.layout, img)
        if width <= 0 and height <= 0 and declared_size(img) is None:
            return None, None
        return int(width) or None, int(height) or None

    def _caption(self, img: Tag) -> str | None:
        if img.has_attr(CAPTION_ATTR):
            return attr(img, CAPTION_ATTR) or None
        return self.captions.find_caption(img)


class _Collector:
    """Ordered, first-writer-wins candidate list keyed by canonical URL."""

    def __init__(self, base_url: str | None) -> None:
        self.base_url = base_url
        self.candidates: list[ImageCandidate] = []
        self._seen: set[str] = set()

    def add(
        self,
        url: str,
        kind: ImageKind,
        in_main_content: bool,
        width: int | None = None,
        height: int | None = None,
        alt: str | None = None,
    ) -> None:
        url = (url or "").strip()
        if not url or url.startswith("data:") or not is_valid_image_url(url):
            return
        normalized = normalize_image_url(url, self.base_url)
        if normalized in self._seen:
            return
        self._seen.add(normalized)
        self.candidates.append(
            ImageCandidate(
                id=generate_id(),
                url=url,
                normalized_url=normalized,
                kind=kind,
                order=len(self.candidates),
                in_main_content=in_main_content,
                width=width,
                height=height,
                alt=alt,
            )
        )
