"""
Generic article extractor.

Preprocesses a clone of the page, hands it to the readability collaborator,
validates what comes back and falls back to a selector cascade when the
result is too thin. Either path ends in normalized markup, typed blocks and
the content images that survive in that markup.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import structlog
from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import Comment, Doctype, ProcessingInstruction

from ..config.config import ExtractionSettings
from ..config.rules import DEFAULT_RULES, HeuristicRules
from ..utils.text import collapse_whitespace, first_sentence, normalize_for_match
from .blocks import parse_blocks
from .captions import CaptionFinder
from .cleaner import BoilerplateCleaner
from .dom import (
    SKIP_TEXT_TAGS,
    attr,
    clone,
    closest,
    inner_text,
    is_within,
    parse_fragment,
    remove,
    select,
    select_one,
)
from .image_classifier import ImageClassifier, image_source
from .image_harvester import (
    CAPTION_ATTR,
    EXCLUDED_ATTR,
    HEIGHT_ATTR,
    WIDTH_ATTR,
    ImageHarvester,
    parse_srcset,
)
from .layout import DEFAULT_LAYOUT, effective_size
from .markup import heading_text, normalize_markup, promote_bold_spans, strip_duplicate_title
from .models import ExtractResult, ImageCandidate
from .page import PageSnapshot
from .protocols import LayoutProbe, ReadabilityArticle, ReadabilityCollaborator
from .readability_extractor import ReadabilityParser
from .url_normalizer import normalize_image_url, resolve_url

logger = structlog.get_logger(__name__)

_VALIDATION_BLOCKS = ["p", "h1", "h2", "h3", "h4", "h5", "h6", "ul", "ol", "blockquote", "pre", "figure", "table"]
_GENERIC_TITLES = frozenset({"untitled", "home", "index", "document", "[no-title]", "无标题", "首页"})
_UNRESOLVED_LINKS = ("#", "javascript:", "mailto:", "tel:", "data:")
_LEAD_SCOPE = 'article, main, [role="main"]'


class ArticleExtractor:
    """Readability-first extractor with a selector-cascade fallback for any page."""

    name = "article"

    def __init__(
        self,
        settings: ExtractionSettings | None = None,
        rules: HeuristicRules | None = None,
        layout: LayoutProbe | None = None,
        readability: ReadabilityCollaborator | None = None,
    ) -> None:
        self.settings = settings or ExtractionSettings()
        self.rules = rules or DEFAULT_RULES
        self.layout = layout or DEFAULT_LAYOUT
        self.readability = readability or ReadabilityParser(self.settings)
        self.cleaner = BoilerplateCleaner(self.settings, self.rules, self.layout)
        self.classifier = ImageClassifier(self.settings, self.rules, self.layout)
        self.captions = CaptionFinder(self.settings, self.rules, self.layout)

    def matches(self, page: PageSnapshot) -> bool:
        return True

    async def extract(self, page: PageSnapshot) -> ExtractResult:
        # Tree work is CPU bound; keep it off the event loop.
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.extract_sync, page)

    def extract_sync(self, page: PageSnapshot) -> ExtractResult:
        doc = page.clone_document()
        self._preprocess(doc, page.url)

        article = self.readability.parse(str(doc), page.url)
        if article is not None and self._is_acceptable(article):
            logger.debug("Using readability result", url=page.url, extractor=self.name)
            return self._from_readability(page, doc, article)

        logger.info("Readability result rejected, using selector cascade", url=page.url)
        return self._from_selectors(page, doc)

    # preprocessing

    def _preprocess(self, doc: BeautifulSoup, base_url: str) -> None:
        """Noise removal, absolute URLs, bold promotion and per-image stamps."""
        for name in self.rules.noise_tags:
            for tag in doc.find_all(name):
                remove(tag)

        for anchor in doc.find_all("a", href=True):
            href = attr(anchor, "href").strip()
            if href and not href.startswith(_UNRESOLVED_LINKS):
                anchor["href"] = resolve_url(href, base_url)

        promote_bold_spans(doc)

        for img in doc.find_all("img"):
            self._resolve_image(img, base_url)
            reason = self.classifier.exclusion_reason(img)
            if reason:
                img[EXCLUDED_ATTR] = reason
                continue
            caption = self.captions.find_caption(img)
            if caption:
                img[CAPTION_ATTR] = caption
            width, height = effective_size(self.layout, img)
            if width > 0 and height > 0:
                img[WIDTH_ATTR] = str(int(width))
                img[HEIGHT_ATTR] = str(int(height))

    def _resolve_image(self, img: Tag, base_url: str) -> None:
        for name in ("src", *self.rules.lazy_image_attributes):
            value = attr(img, name).strip()
            if value and not value.startswith("data:"):
                img[name] = resolve_url(value, base_url)

        # the lazy source is the real one; it moves into src so it survives attribute pruning
        lazy = next(
            (attr(img, name) for name in self.rules.lazy_image_attributes if attr(img, name).startswith("http")),
            "",
        )
        if lazy:
            img["src"] = lazy

    def _is_acceptable(self, article: ReadabilityArticle) -> bool:
        root = parse_fragment(article.content_html, self.settings.parser)
        length = len(inner_text(root))
        block_count = len(root.find_all(_VALIDATION_BLOCKS))
        acceptable = length >= self.settings.min_readability_chars and block_count >= self.settings.min_readability_blocks
        if not acceptable:
            logger.debug("Readability result too thin", text_length=length, blocks=block_count)
        return acceptable

    # readability path

    def _from_readability(self, page: PageSnapshot, doc: BeautifulSoup, article: ReadabilityArticle) -> ExtractResult:
        root = parse_fragment(article.content_html, self.settings.parser)

        title = self._derive_title(article.title, doc, root)
        self._recover_lead_image(doc, root, title)
        self._recover_special_images(doc, root)
        strip_duplicate_title(root, title)

        harvester = self._harvester(page.url)
        images = harvester.harvest_content(root, document=doc)

        return self._finish(
            page,
            root,
            title=title,
            images=images,
            author=article.author or self._author(doc),
            publish_time=self._publish_time(doc),
        )

    def looks_like_title(self, title: Optional[str]) -> bool:
        if not title:
            return False
        title = collapse_whitespace(title)
        if not title or title.lower() in _GENERIC_TITLES:
            return False
        return len(title) <= self.settings.title_max_length

    def _derive_title(self, candidate: Optional[str], doc: BeautifulSoup, root: Tag) -> str:
        """
        Readability title, then the first document heading. When neither reads
        like a real title the first sentence of the body stands in and is
        removed from the body.
        """
        heading = doc.find("h1")
        for title in (candidate, heading_text(heading) if isinstance(heading, Tag) else None):
            if self.looks_like_title(title):
                return collapse_whitespace(title or "")

        sentence = first_sentence(inner_text(root))
        if sentence and len(sentence) <= self.settings.title_max_length:
            _remove_leading_text(root, sentence)
            return sentence
        if sentence:
            return sentence[: self.settings.title_max_length].rstrip() + "…"

        fallback = collapse_whitespace(candidate or "") or collapse_whitespace(_document_title(doc))
        return fallback

    def _recover_lead_image(self, doc: BeautifulSoup, root: Tag, title: str) -> None:
        lead = self._find_lead_image(doc, title)
        if lead is None:
            return
        present = _present_urls(root, self.rules)
        url = image_source(lead, self.rules.lazy_image_attributes)
        if not url or normalize_image_url(url) in present:
            return
        root.insert(0, _paragraph(clone(lead)))
        logger.debug("Recovered lead image", url=url)

    def _find_lead_image(self, doc: BeautifulSoup, title: str) -> Tag | None:
        for selector in self.rules.cover_image_selectors:
            for img in select(doc, selector):
                if self._usable(img):
                    return img

        heading = self._title_heading(doc, title)
        if heading is None:
            return None
        scope = closest(heading, _LEAD_SCOPE) or doc.find("body") or doc
        for img in heading.find_all_next("img"):
            if not is_within(img, scope):
                break
            if self._usable(img) and self._is_large(img):
                return img
        return None

    @staticmethod
    def _title_heading(doc: BeautifulSoup, title: str) -> Tag | None:
        target = normalize_for_match(title)
        headings = doc.find_all("h1")
        for heading in headings:
            if normalize_for_match(heading_text(heading)) == target:
                return heading
        return headings[0] if headings else None

    def _usable(self, img: Tag) -> bool:
        if img.has_attr(EXCLUDED_ATTR):
            return False
        source = image_source(img, self.rules.lazy_image_attributes)
        return bool(source) and not source.startswith("data:")

    def _is_large(self, img: Tag) -> bool:
        stamped = (attr(img, WIDTH_ATTR), attr(img, HEIGHT_ATTR))
        if all(value.isdigit() for value in stamped):
            width, height = float(stamped[0]), float(stamped[1])
        else:
            width, height = effective_size(self.layout, img)
        return max(width, height) >= self.settings.lead_image_min_px

    def _recover_special_images(self, doc: BeautifulSoup, root: Tag) -> None:
        present = _present_urls(root, self.rules)
        for selector in self.rules.special_body_selectors:
            container = select_one(doc, selector)
            if container is None:
                continue
            for img in container.find_all("img"):
                if not self._usable(img):
                    continue
                normalized = normalize_image_url(image_source(img, self.rules.lazy_image_attributes))
                if normalized in present:
                    continue
                present.add(normalized)
                root.append(_paragraph(clone(img)))
                logger.debug("Recovered image from body container", selector=selector, url=normalized)

    # selector cascade

    def _from_selectors(self, page: PageSnapshot, doc: BeautifulSoup) -> ExtractResult:
        container = self._content_container(doc)

        heading = doc.find("h1")
        title = heading_text(heading) if isinstance(heading, Tag) else ""
        title = title or collapse_whitespace(_document_title(doc))

        text_root = clone(container)
        self.cleaner.clean(text_root, aggressive=True)
        for empty_heading in text_root.find_all("h1"):
            if not empty_heading.get_text().strip() and empty_heading.find("img") is None:
                remove(empty_heading)
        strip_duplicate_title(text_root, title)

        image_source_root = select_one(doc, ".available-content") or container
        image_root = clone(image_source_root)
        self.cleaner.clean(image_root, aggressive=False)

        harvester = self._harvester(page.url)
        images = self._reconcile(harvester.harvest_content(image_root, document=doc), text_root)

        return self._finish(
            page,
            text_root,
            title=title,
            images=images,
            author=self._author(doc),
            publish_time=self._publish_time(doc),
        )

    def _content_container(self, doc: BeautifulSoup) -> Tag:
        for selector in self.rules.article_selectors:
            element = select_one(doc, selector)
            if element is not None and len(inner_text(element, self.layout)) > self.settings.min_container_text:
                logger.debug("Content container selected", selector=selector)
                return element
        body = doc.find("body")
        return body if isinstance(body, Tag) else doc

    def _reconcile(self, images: list[ImageCandidate], text_root: Tag) -> list[ImageCandidate]:
        """
        Keep only images that the cleaned text still references. One image
        cleaned away ahead of all surviving ones (a lead image in a removed
        header) is put back at the top of the body.
        """
        present = _present_urls(text_root, self.rules)
        kept = [image for image in images if image.normalized_url in present]
        first_kept = min((image.order for image in kept), default=None)
        for image in images:
            if image.normalized_url in present:
                continue
            if (first_kept is None or image.order < first_kept) and self._candidate_is_large(image):
                img = Tag(name="img", attrs={"src": image.url, "alt": image.alt or ""}, can_be_empty_element=True)
                text_root.insert(0, _paragraph(img))
                kept.insert(0, image)
                logger.debug("Restored lead image", url=image.url)
            break
        return kept

    def _candidate_is_large(self, image: ImageCandidate) -> bool:
        return max(image.width or 0, image.height or 0) >= self.settings.lead_image_min_px

    # shared

    def _harvester(self, base_url: str) -> ImageHarvester:
        return ImageHarvester(self.settings, self.rules, self.layout, self.classifier, self.captions, base_url)

    def _finish(
        self,
        page: PageSnapshot,
        root: Tag,
        *,
        title: str,
        images: list[ImageCandidate],
        author: Optional[str],
        publish_time: Optional[str],
    ) -> ExtractResult:
        normalize_markup(root, self.rules.allowed_attributes)
        text = inner_text(root)
        return ExtractResult(
            title=title or page.title or page.domain or page.url,
            source_url=page.url,
            domain=page.domain,
            content_html=root.decode_contents().strip(),
            blocks=parse_blocks(root),
            images=images,
            word_count=len(text),
            author=author,
            publish_time=publish_time,
        )

    def _author(self, doc: BeautifulSoup) -> Optional[str]:
        for selector in self.rules.author_selectors:
            element = select_one(doc, selector)
            if element is not None:
                text = collapse_whitespace(element.get_text(" "))
                if text:
                    return text
        meta = doc.find("meta", attrs={"name": "author"})
        if isinstance(meta, Tag):
            return collapse_whitespace(attr(meta, "content")) or None
        return None

    def _publish_time(self, doc: BeautifulSoup) -> Optional[str]:
        for selector in self.rules.time_selectors:
            element = select_one(doc, selector)
            if element is not None:
                value = attr(element, "datetime").strip() or collapse_whitespace(element.get_text(" "))
                if value:
                    return value
        return None


def _document_title(doc: BeautifulSoup) -> str:
    title = doc.find("title")
    return title.get_text(" ") if isinstance(title, Tag) else ""


def _paragraph(child: Tag) -> Tag:
    paragraph = Tag(name="p")
    paragraph.append(child)
    return paragraph


def _present_urls(root: Tag, rules: HeuristicRules) -> set[str]:
    """Canonical forms of every image URL referenced by ``<img>`` markup under ``root``."""
    found: set[str] = set()
    for img in root.find_all("img"):
        for name in ("src", *rules.lazy_image_attributes):
            value = attr(img, name).strip()
            if value and not value.startswith("data:"):
                found.add(normalize_image_url(value))
        for name in ("srcset", "data-srcset"):
            best = parse_srcset(attr(img, name)) if img.has_attr(name) else None
            if best:
                found.add(normalize_image_url(best))
    for source in root.find_all("source", srcset=True):
        best = parse_srcset(attr(source, "srcset"))
        if best:
            found.add(normalize_image_url(best))
    return found


def _remove_leading_text(root: Tag, sentence: str) -> bool:
    """
    Drop ``sentence`` from the start of the body. The sentence may span
    several text nodes split by inline markup; whitespace is not compared.
    """
    target = "".join(sentence.split())
    consumed = 0
    cuts: list[tuple[NavigableString, str]] = []
    for string in root.find_all(string=True):
        if isinstance(string, (Comment, Doctype, ProcessingInstruction)) or string.parent.name in SKIP_TEXT_TAGS:
            continue
        text = str(string)
        start, index = consumed, 0
        while index < len(text) and consumed < len(target):
            char = text[index]
            if not char.isspace():
                if char != target[consumed]:
                    return False
                consumed += 1
            index += 1
        if consumed > start:
            cuts.append((string, text[index:]))
        if consumed == len(target):
            break
    if consumed < len(target):
        return False

    for string, remainder in cuts:
        parent = string.parent
        if remainder.strip():
            string.replace_with(NavigableString(remainder.lstrip()))
        else:
            string.extract()
        _prune_empty(parent, root)
    return True


def _prune_empty(tag: Tag | None, root: Tag) -> None:
    """Remove ``tag`` and its ancestors below ``root`` while they hold no text and no image."""
    while isinstance(tag, Tag) and tag is not root and not tag.get_text().strip() and tag.find("img") is None:
        parent = tag.parent
        tag.decompose()
        tag = parent
