"""
Quoted and embedded post handling for social posts.
"""

from __future__ import annotations

import html
import re
from typing import List, Optional

import structlog
from bs4 import NavigableString, Tag

from ..config.config import ExtractionSettings
from ..config.rules import DEFAULT_RULES, HeuristicRules
from ..utils.text import generate_id
from .dom import attr, clone, closest, inner_text, parse_fragment, remove, select, select_one
from .layout import DEFAULT_LAYOUT, effective_size
from .models import ImageCandidate, ImageKind, QuotedPost
from .permalink import UNKNOWN_PERMALINK, PermalinkResolver
from .protocols import LayoutProbe
from .url_normalizer import normalize_image_url

logger = structlog.get_logger(__name__)

POST_SELECTOR = '[data-testid="tweet"]'
POST_TEXT_SELECTOR = '[data-testid="tweetText"]'
QUOTE_MARKER_SELECTOR = '[data-testid="quoteTweet"]'
CARD_SELECTOR = 'div[role="link"], [data-testid="card.wrapper"]'
MEDIA_SELECTOR = '[data-testid="tweetPhoto"] img, [data-testid="card.layoutLarge.media"] img'

QUOTE_LINK_PREFIX = "🔗 引用文章："
TEXT_ELSEWHERE = "（引用推文内容请查看原文）"
IMAGE_ONLY = "（引用内容为图片）"

_ACTION_CONTROLS = (
    '[data-testid="User-Name"], time, [role="button"], svg, '
    '[data-testid="reply"], [data-testid="retweet"], [data-testid="like"]'
)
_CARD_LINKS = 'a[href*="/status/"], a[href*="/article/"], a[href*="/events/"], a[href*="/i/"]'
_COVER_HINTS = '[data-testid*="cover"], [class*="cover"], img[alt*="Cover"]'
_LABEL_LINE = re.compile(r"^(?:文章|Article)\n?", re.MULTILINE)
_DROPPED_ATTRIBUTES = ("class", "style", "dir", "lang")


def find_quote_containers(container: Tag) -> List[Tag]:
    """
    Quoted-post roots inside ``container``: explicit quote markers, posts
    nested in the primary post, then clickable cards that look like a post
    preview. Anything holding the primary post's own text is never a quote,
    and a candidate nested inside an accepted one is dropped.
    """
    found: List[Tag] = list(select(container, QUOTE_MARKER_SELECTOR))

    primary = select_one(container, POST_SELECTOR)
    if primary is None:
        logger.debug("No primary post found for quote detection")
        return found

    primary_text = select_one(primary, POST_TEXT_SELECTOR)

    for nested in select(primary, f"article{POST_SELECTOR}"):
        if nested is not primary and not _contains(found, nested):
            found.append(nested)

    for card in select(primary, CARD_SELECTOR):
        if _contains(found, card):
            continue
        if primary_text is not None and _holds(card, primary_text):
            continue
        if card.name == "div" and attr(card, "role") == "link" and len(card.decode_contents()) < 50:
            continue
        if _looks_like_quote(card):
            found.append(card)

    accepted = [quote for quote in found if not any(other is not quote and _holds(other, quote) for other in found)]
    logger.debug("Quote containers detected", count=len(accepted))
    return accepted


def _contains(items: List[Tag], tag: Tag) -> bool:
    return any(item is tag for item in items)


def _holds(outer: Tag, inner: Tag) -> bool:
    return any(parent is outer for parent in inner.parents)


def _looks_like_quote(card: Tag) -> bool:
    has_text = select_one(card, POST_TEXT_SELECTOR) is not None
    has_time = card.find("time") is not None
    has_user = select_one(card, '[data-testid="User-Name"]') is not None
    has_image = card.find("img") is not None
    is_card_wrapper = attr(card, "data-testid") == "card.wrapper" or select_one(card, '[data-testid="card.wrapper"]') is not None
    has_link = select_one(card, _CARD_LINKS) is not None
    is_link = attr(card, "role") == "link"
    text_length = len(inner_text(card))

    if has_text and (has_time or has_user):
        return True
    if is_card_wrapper or (has_image and has_link):
        return True
    if has_image and text_length > 5 and (is_link or closest(card, '[data-testid="card.wrapper"]') is not None):
        return True
    if is_link and has_image and text_length > 20:
        has_cover = select_one(card, _COVER_HINTS) is not None or "文章" in inner_text(card)
        return has_cover or text_length > 50
    return False


def simplify_post_html(markup: str, parser: str = "html.parser") -> str:
    """Drop presentational attributes, unwrap bare spans and keep line breaks."""
    root = parse_fragment(markup, parser)
    for tag in root.find_all(True):
        tag.attrs = {
            name: value
            for name, value in tag.attrs.items()
            if name not in _DROPPED_ATTRIBUTES and not name.startswith("data-")
        }
    for span in root.find_all("span"):
        if not span.attrs and not span.find(True):
            span.unwrap()
    for string in list(root.find_all(string=True)):
        if "\n" in string and isinstance(string, NavigableString):
            pieces = str(string).split("\n")
            replacement: list[Tag | NavigableString] = []
            for index, piece in enumerate(pieces):
                if index:
                    replacement.append(Tag(name="br", can_be_empty_element=True))
                if piece:
                    replacement.append(NavigableString(piece))
            if replacement:
                string.replace_with(*replacement)
            else:
                string.extract()
    return root.decode_contents().strip()


class QuotedPostExtractor:
    """Builds a QuotedPost from one detected container."""

    def __init__(
        self,
        resolver: PermalinkResolver,
        settings: ExtractionSettings | None = None,
        rules: HeuristicRules | None = None,
        layout: LayoutProbe | None = None,
    ) -> None:
        self.resolver = resolver
        self.settings = settings or ExtractionSettings()
        self.rules = rules or DEFAULT_RULES
        self.layout = layout or DEFAULT_LAYOUT

    async def extract(self, container: Tag) -> Optional[QuotedPost]:
        url = await self.resolver.resolve(container)
        if not url:
            logger.info("Quoted post permalink not found")

        text, markup = self._text(container)
        if not text:
            if url:
                text = markup = TEXT_ELSEWHERE
            elif container.find("img") is not None:
                text = markup = IMAGE_ONLY
            else:
                return None

        images = self.images(container)
        logger.debug("Quoted post extracted", url=url, text_length=len(text), images=len(images))
        return QuotedPost(url=url or UNKNOWN_PERMALINK, text=text.strip(), html=markup, images=images)

    def _text(self, container: Tag) -> tuple[str, str]:
        text_element = select_one(container, POST_TEXT_SELECTOR)
        if text_element is not None:
            text = inner_text(text_element, self.layout)
            if text.strip():
                return text, simplify_post_html(text_element.decode_contents(), self.settings.parser)

        stripped = clone(container)
        for element in select(stripped, _ACTION_CONTROLS):
            remove(element)
        text = _LABEL_LINE.sub("", inner_text(stripped, self.layout)).strip()
        if not text:
            return "", ""
        markup = "".join(f"<p>{html.escape(line, quote=False)}</p>" for line in text.split("\n"))
        return text, markup

    def images(self, container: Tag) -> List[ImageCandidate]:
        """Media-container images first; otherwise any large or media-hosted image."""
        collected: List[ImageCandidate] = []
        seen: set[str] = set()

        for img in select(container, MEDIA_SELECTOR):
            src = attr(img, "src")
            if src and "profile_images" not in src and "emoji" not in src and src not in seen:
                seen.add(src)
                collected.append(self._candidate(img, src, len(collected)))
        if collected:
            return collected

        for img in container.find_all("img"):
            src = attr(img, "src")
            if not src or src in seen or src.startswith("data:") or self.is_noise(src):
                continue
            width, height = effective_size(self.layout, img)
            large = width > self.settings.social_image_min_px and height > self.settings.social_image_min_px
            if large or is_media_url(src):
                seen.add(src)
                collected.append(self._candidate(img, src, len(collected)))
        return collected

    def is_noise(self, src: str) -> bool:
        return any(marker in src for marker in self.rules.social_image_skip_markers)

    def _candidate(self, img: Tag, src: str, order: int) -> ImageCandidate:
        width, height = effective_size(self.layout, img)
        return ImageCandidate(
            id=generate_id(),
            url=src,
            normalized_url=normalize_image_url(src),
            kind=ImageKind.DIRECT,
            order=order,
            in_main_content=True,
            width=int(width) or None,
            height=int(height) or None,
            alt=attr(img, "alt") or None,
        )


def is_media_url(src: str) -> bool:
    return "pbs.twimg.com/media/" in src

