"""
Social-post extractor for X/Twitter.

Short posts are assembled from the primary post's text containers, followed
by its quoted posts, with the post's own media spliced in ahead of the
first quote. Long-form posts (draft-rendered articles) are read with one
order-preserving walk so text, inline images and quoted posts come out in
reading order.
"""

from __future__ import annotations

import html
import re
from dataclasses import replace
from typing import List, Optional, Tuple

import structlog
from bs4 import BeautifulSoup, Tag

from ..config.config import ExtractionSettings
from ..config.rules import DEFAULT_RULES, HeuristicRules
from ..utils.text import collapse_whitespace, generate_id, normalize_for_match
from .dom import (
    attr,
    class_string,
    closest,
    inner_text,
    is_inside_any,
    is_within,
    parse_fragment,
    select,
    select_one,
)
from .layout import DEFAULT_LAYOUT, effective_size
from .models import BlockType, ContentBlock, ExtractResult, ImageCandidate, ImageKind, QuotedPost
from .page import PageSnapshot
from .permalink import PermalinkCache, PermalinkResolver, SnapshotBridge
from .protocols import LayoutProbe, PermalinkBridge
from .quoted_posts import (
    POST_SELECTOR,
    POST_TEXT_SELECTOR,
    QUOTE_LINK_PREFIX,
    QuotedPostExtractor,
    find_quote_containers,
    is_media_url,
    simplify_post_html,
)
from .url_normalizer import normalize_image_url

logger = structlog.get_logger(__name__)

LONG_FORM_BLOCK = "public-DraftStyleDefault-block"
DEFAULT_TITLE = "推文"

_AUTHOR_FROM_TITLE = re.compile(r"^\(?(?:\d+\)\s*)?(.+?)\s+on X:")
_GENERIC_ALT = re.compile(r"^(图片|图像|引用图|Image|Img|Picture|Photo)(\s*\d+)?$", re.IGNORECASE)
_TRACKING_PIXEL = "1x1"
_TRAILING_PUNCT = " \t\n,.:;!?，。：；！？、"


def clean_page_title(title: str) -> str:
    """Page title without the site suffix, notification counter or wrapping quotes."""
    title = re.sub(r"\s*/\s*(X|Twitter)$", "", title, flags=re.IGNORECASE)
    title = re.sub(r"\s+on\s+(X|Twitter)$", "", title, flags=re.IGNORECASE)
    title = re.sub(r"^\(\d+\+?\)\s*", "", title)
    return title.strip().strip('"“”').strip()


def fallback_page_title(title: str) -> str:
    title = re.sub(r"^\(\d+\)\s*", "", title)
    title = re.sub(r"\s+on X:\s*", ": ", title)
    title = re.sub(r"\s*/\s*X$", "", title)
    return title.strip().strip('"“”').strip()


def display_alt(alt: Optional[str]) -> str:
    """Alt text worth keeping in an image block; generic placeholders become empty."""
    alt = (alt or "").strip()
    if not alt or alt in ("null", "undefined") or _GENERIC_ALT.match(alt):
        return ""
    return alt


def strip_leading_title(text: str, title_start: str) -> Optional[str]:
    """
    ``text`` with a leading copy of ``title_start`` removed, or None when it does
    not start with it. Punctuation and case differences are tolerated.
    """
    target = normalize_for_match(title_start)
    if not target:
        return None
    if text.startswith(title_start):
        return text[len(title_start):].strip()
    if not normalize_for_match(text).startswith(target):
        return None
    consumed = 0
    for index, char in enumerate(text):
        consumed += len(normalize_for_match(char))
        if consumed >= len(target):
            return text[index + 1:].lstrip(_TRAILING_PUNCT).strip()
    return ""


class _Assembly:
    """Blocks and images of one post, in emission order."""

    def __init__(self) -> None:
        self.blocks: List[ContentBlock] = []
        self.images: List[ImageCandidate] = []
        self.seen_texts: set[str] = set()
        self.seen_urls: set[str] = set()

    def paragraph(self, markup: str, text: str) -> bool:
        if not text or text in self.seen_texts:
            return False
        self.seen_texts.add(text)
        self.blocks.append(ContentBlock(id=generate_id(), type=BlockType.PARAGRAPH, html=f"<p>{markup}</p>", text=text))
        return True

    def quote(self, post: QuotedPost) -> None:
        url = html.escape(post.url)
        link_text = f"{QUOTE_LINK_PREFIX}{post.url}"
        self.blocks.append(
            ContentBlock(
                id=generate_id(),
                type=BlockType.PARAGRAPH,
                html=f'<p>{QUOTE_LINK_PREFIX}<a href="{url}">{url}</a></p>',
                text=link_text,
            )
        )
        self.blocks.append(
            ContentBlock(id=generate_id(), type=BlockType.QUOTE, html=f"<blockquote>{post.html}</blockquote>", text=post.text)
        )
        for image in post.images:
            self.image(image)

    def image(self, image: ImageCandidate) -> bool:
        if image.normalized_url in self.seen_urls:
            return False
        self.seen_urls.add(image.normalized_url)
        self.images.append(image)
        self.blocks.append(image_block(image))
        return True


def image_block(image: ImageCandidate) -> ContentBlock:
    alt = display_alt(image.alt)
    markup = '<img src="{}" alt="{}" data-clip-id="{}">'.format(
        html.escape(image.url), html.escape(alt), image.id
    )
    return ContentBlock(id=generate_id(), type=BlockType.IMAGE, html=markup, text=alt)


class SocialExtractor:
    """Extractor for single X/Twitter posts and long-form X articles."""

    name = "social"

    def __init__(
        self,
        settings: ExtractionSettings | None = None,
        rules: HeuristicRules | None = None,
        layout: LayoutProbe | None = None,
        cache: PermalinkCache | None = None,
        bridge: PermalinkBridge | None = None,
    ) -> None:
        self.settings = settings or ExtractionSettings()
        self.rules = rules or DEFAULT_RULES
        self.layout = layout or DEFAULT_LAYOUT
        self.cache = cache if cache is not None else PermalinkCache()
        self.bridge = bridge

    def matches(self, page: PageSnapshot) -> bool:
        return page.host_matches(self.rules.social_hosts)

    def _quoted_posts(self, page: PageSnapshot) -> QuotedPostExtractor:
        bridge = self.bridge or SnapshotBridge(page.soup, origin=self.settings.permalink_origin)
        resolver = PermalinkResolver(self.cache, bridge, self.settings)
        return QuotedPostExtractor(resolver, self.settings, self.rules, self.layout)

    async def extract(self, page: PageSnapshot) -> ExtractResult:
        container = self.find_container(page.soup)
        if container is None:
            logger.info("No post container found", url=page.url)
            return ExtractResult.empty(page.title or DEFAULT_TITLE, page.url, page.domain)

        long_form = self.is_long_form(container)
        title, title_start = self._title(page, container, long_form)
        quotes = find_quote_containers(container)
        quoted_posts = self._quoted_posts(page)

        if long_form:
            assembly = await self._walk(container, quotes, quoted_posts)
        else:
            assembly = await self._short_post(container, quotes, quoted_posts)

        blocks = self._strip_title(assembly.blocks, title_start)
        content_html = "".join(block.html for block in blocks)
        logger.info(
            "Extracted social post",
            url=page.url,
            long_form=long_form,
            blocks=len(blocks),
            images=len(assembly.images),
            quotes=len(quotes),
        )
        return ExtractResult(
            title=title,
            source_url=page.url,
            domain=page.domain,
            content_html=content_html,
            blocks=blocks,
            images=[replace(image, order=index) for index, image in enumerate(assembly.images)],
            word_count=len(inner_text(parse_fragment(content_html, self.settings.parser))),
            author=self._author(page),
            publish_time=self._publish_time(page.soup),
        )

    def find_container(self, soup: BeautifulSoup) -> Tag | None:
        """The primary post container, or None when the page holds no post."""
        for selector in self.rules.social_container_selectors:
            element = select_one(soup, selector)
            if element is not None and len(inner_text(element, self.layout)) > self.settings.social_container_min_text:
                logger.debug("Post container selected", selector=selector)
                return element
        return None

    @staticmethod
    def is_long_form(container: Tag) -> bool:
        """Published draft blocks: non-empty and not part of an editor."""
        for block in select(container, f".{LONG_FORM_BLOCK}"):
            if not block.get_text().strip():
                continue
            if attr(block, "contenteditable") == "true" or closest(block, '[contenteditable="true"]') is not None:
                continue
            return True
        return False

    # title

    def _title(self, page: PageSnapshot, container: Tag, long_form: bool) -> Tuple[str, Optional[str]]:
        """Display title and, when the title came from the body, the untruncated text it came from."""
        preview, start = (self._long_form_title(page, container) if long_form else self._short_title(container))
        if preview:
            return preview, start

        author = self._display_name(page.soup, container)
        if author:
            return f"{author} 的推文", None
        return fallback_page_title(page.title) or DEFAULT_TITLE, None

    def _long_form_title(self, page: PageSnapshot, container: Tag) -> Tuple[Optional[str], Optional[str]]:
        title = clean_page_title(page.title)
        if title and title not in self.rules.social_generic_titles and len(title) > 2:
            return title, title

        heading = select_one(container, "h1") or select_one(container, '[role="heading"]')
        if heading is not None:
            text = collapse_whitespace(heading.get_text(" "))
            if len(text) > 2 and "Timeline" not in text:
                return text, text

        for block in select(container, f".{LONG_FORM_BLOCK}")[:3]:
            text = inner_text(block, self.layout).strip()
            if len(text) > 2:
                return text, text
        return None, None

    def _short_title(self, container: Tag) -> Tuple[Optional[str], Optional[str]]:
        text_element = select_one(container, f"{POST_SELECTOR} {POST_TEXT_SELECTOR}")
        if text_element is None:
            return None, None
        first_line = inner_text(text_element, self.layout).split("\n", 1)[0].strip()
        if not first_line:
            return None, None
        limit = self.settings.social_title_preview
        preview = first_line[:limit] + "..." if len(first_line) > limit else first_line
        return preview, first_line

    @staticmethod
    def _display_name(soup: BeautifulSoup, container: Tag) -> str:
        element = select_one(container, '[data-testid="User-Name"]') or select_one(
            soup, '[data-testid="primaryColumn"] [data-testid="tweet"] [data-testid="User-Name"]'
        )
        if element is None:
            return ""
        span = element.find("span")
        return span.get_text().strip() if isinstance(span, Tag) else ""

    def _strip_title(self, blocks: List[ContentBlock], title_start: Optional[str]) -> List[ContentBlock]:
        """Remove the title text from the first paragraph once; drop the block if nothing is left."""
        if not title_start or not blocks or blocks[0].type is not BlockType.PARAGRAPH:
            return blocks
        first = blocks[0]
        remainder = strip_leading_title(first.text, title_start)
        if remainder is None:
            return blocks
        logger.debug("Removed title text from body", title=title_start[:20])
        if not remainder:
            return blocks[1:]
        replacement = ContentBlock(
            id=first.id, type=BlockType.PARAGRAPH, html=f"<p>{html.escape(remainder, quote=False)}</p>", text=remainder
        )
        return [replacement, *blocks[1:]]

    # long-form

    async def _walk(self, container: Tag, quotes: List[Tag], quoted_posts: QuotedPostExtractor) -> _Assembly:
        """
        Depth-first walk in document order with an explicit stack. Quote roots
        and text blocks are consumed whole; only other elements are descended.
        """
        assembly = _Assembly()
        root = select_one(container, POST_SELECTOR) or container
        stack: List[Tag] = [root]

        while stack:
            node = stack.pop()

            if any(node is quote for quote in quotes):
                post = await quoted_posts.extract(node)
                if post is not None:
                    assembly.quote(post)
                continue

            if is_inside_any(node, quotes):
                continue

            if LONG_FORM_BLOCK in class_string(node).split():
                text = inner_text(node, self.layout).strip()
                if text:
                    assembly.paragraph(simplify_post_html(node.decode_contents(), self.settings.parser), text)
                continue

            if node.name == "img":
                self._walk_image(node, assembly)
                continue

            if attr(node, "data-testid") == "tweetPhoto":
                img = node.find("img")
                if isinstance(img, Tag):
                    self._walk_image(img, assembly, check_size=False)
                continue

            stack.extend(reversed([child for child in node.children if isinstance(child, Tag)]))

        return assembly

    def _walk_image(self, img: Tag, assembly: _Assembly, check_size: bool = True) -> None:
        src = attr(img, "src") or attr(img, "data-src")
        if not src or src.startswith("data:") or self._is_noise(src) or _TRACKING_PIXEL in src:
            return
        if check_size and not self._is_large_enough(img, src):
            logger.debug("Skipping small image", src=src[:60])
            return
        assembly.image(self._candidate(img, src, len(assembly.images)))

    def _is_large_enough(self, img: Tag, src: str) -> bool:
        width, height = effective_size(self.layout, img)
        if width <= 0 and height <= 0:
            # size unknown: only trust media-host URLs
            return is_media_url(src)
        minimum = self.settings.social_image_min_px
        return width >= minimum and height >= minimum

    # short post

    async def _short_post(self, container: Tag, quotes: List[Tag], quoted_posts: QuotedPostExtractor) -> _Assembly:
        assembly = _Assembly()
        primary = select_one(container, POST_SELECTOR)
        if primary is None:
            return assembly
        quotes = [quote for quote in quotes if is_within(quote, primary)]

        for element in select(primary, POST_TEXT_SELECTOR):
            if is_inside_any(element, quotes):
                continue
            text = inner_text(element, self.layout).strip()
            assembly.paragraph(simplify_post_html(element.decode_contents(), self.settings.parser), text)

        # the post's own media sits between its text and the first quote
        for image in self._primary_images(primary, quotes):
            assembly.image(image)

        for quote in quotes:
            post = await quoted_posts.extract(quote)
            if post is not None:
                assembly.quote(post)
        return assembly

    def _primary_images(self, primary: Tag, quotes: List[Tag]) -> List[ImageCandidate]:
        images: List[ImageCandidate] = []
        for img in select(primary, '[data-testid="tweetPhoto"] img'):
            src = attr(img, "src")
            if is_inside_any(img, quotes) or not src or "profile_images" in src or "emoji" in src:
                continue
            images.append(self._candidate(img, src, len(images)))
        if images:
            return images

        minimum = self.settings.social_image_min_px
        for img in primary.find_all("img"):
            src = attr(img, "src")
            if is_inside_any(img, quotes) or not src or self._is_noise(src):
                continue
            width, height = effective_size(self.layout, img)
            if width > minimum and height > minimum:
                images.append(self._candidate(img, src, len(images)))
        return images

    # shared

    def _is_noise(self, src: str) -> bool:
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

    @staticmethod
    def _author(page: PageSnapshot) -> Optional[str]:
        match = _AUTHOR_FROM_TITLE.match(page.title)
        return match.group(1).strip() if match else None

    @staticmethod
    def _publish_time(soup: BeautifulSoup) -> Optional[str]:
        element = select_one(soup, '[data-testid="primaryColumn"] time')
        if element is None:
            return None
        return attr(element, "datetime") or collapse_whitespace(element.get_text(" ")) or None
