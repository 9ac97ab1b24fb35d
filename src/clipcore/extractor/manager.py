"""
ExtractorManager for ClipCore.

Dispatches a page to the first extractor whose signature matches and turns
every failure into an empty but well-formed result.
"""

from __future__ import annotations

import time
import uuid
from typing import Dict, List, Optional

import structlog

from ..config.config import Config, ExtractionSettings
from ..config.config import settings as default_config
from ..config.rules import HeuristicRules
from .article_extractor import ArticleExtractor
from .exceptions import ExtractionInProgressError
from .layout import DEFAULT_LAYOUT
from .models import ExtractResult
from .page import PageSnapshot
from .permalink import PermalinkCache
from .protocols import Extractor, LayoutProbe, PermalinkBridge, ReadabilityCollaborator
from .social_extractor import SocialExtractor
from .weixin_extractor import WeixinExtractor

logger = structlog.get_logger(__name__)


class ExtractorManager:
    """
    Selects one extractor per page.

    Features:
    - URL-signature dispatch (platform, social post, generic article)
    - Generic fallback when the social extractor finds no post
    - Exceptions logged and converted into empty results
    - Per-extractor performance metrics
    """

    def __init__(
        self,
        settings: Optional[ExtractionSettings] = None,
        rules: Optional[HeuristicRules] = None,
        layout: Optional[LayoutProbe] = None,
        permalink_cache: Optional[PermalinkCache] = None,
        bridge: Optional[PermalinkBridge] = None,
        readability: Optional[ReadabilityCollaborator] = None,
    ) -> None:
        self.settings = settings or ExtractionSettings()
        self.rules = rules or HeuristicRules()
        self.layout = layout or DEFAULT_LAYOUT
        self.permalink_cache = permalink_cache if permalink_cache is not None else PermalinkCache()
        self.logger = logger.bind(component="ExtractorManager")

        self.generic = ArticleExtractor(self.settings, self.rules, self.layout, readability)
        # Dispatch order: most specific signature first, the generic extractor matches everything.
        self._extractors: List[Extractor] = [
            WeixinExtractor(self.settings, self.rules, self.layout),
            SocialExtractor(self.settings, self.rules, self.layout, self.permalink_cache, bridge),
            self.generic,
        ]

        self._extraction_metrics: Dict[str, Dict[str, float]] = {
            extractor.name: {"attempts": 0, "successes": 0, "total_time": 0.0} for extractor in self._extractors
        }

    @property
    def extractors(self) -> List[Extractor]:
        return list(self._extractors)

    def select(self, page: PageSnapshot) -> Extractor:
        for extractor in self._extractors:
            if extractor.matches(page):
                return extractor
        return self.generic

    async def extract(self, page: PageSnapshot) -> ExtractResult:
        """
        Extract one page.

        Args:
            page: Parsed snapshot of the rendered document

        Returns:
            ExtractResult, empty but well-formed when nothing could be extracted
        """
        extractor = self.select(page)
        self.logger.info("Starting extraction", url=page.url, extractor=extractor.name)

        result = await self._run(extractor, page)
        # a post whose only line became the title is still a post
        if result.is_empty and isinstance(extractor, SocialExtractor) and extractor.find_container(page.soup) is None:
            self.logger.info("Social extractor found no post, falling back", url=page.url)
            result = await self._run(self.generic, page)

        if result.is_empty:
            self.logger.warning("Extraction produced no content", url=page.url, extractor=extractor.name)
        return result

    async def _run(self, extractor: Extractor, page: PageSnapshot) -> ExtractResult:
        metrics = self._extraction_metrics[extractor.name]
        metrics["attempts"] += 1
        start_time = time.time()

        try:
            result = await extractor.extract(page)
        except Exception as e:
            self.logger.error(
                "Extractor failed",
                event_type="extractor_failed",
                extractor=extractor.name,
                url=page.url,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ExtractResult.empty(page.title or page.domain or page.url, page.url, page.domain)
        finally:
            metrics["total_time"] += time.time() - start_time

        if not result.is_empty:
            metrics["successes"] += 1
        self.logger.debug(
            "Extractor finished",
            extractor=extractor.name,
            url=page.url,
            blocks=len(result.blocks),
            images=len(result.images),
            word_count=result.word_count,
        )
        return result

    def get_metrics(self) -> Dict[str, Dict[str, float]]:
        """
        Get extraction performance metrics.

        Returns:
            Dictionary of metrics per extractor
        """
        metrics = {}

        for extractor_name, raw_metrics in self._extraction_metrics.items():
            attempts = raw_metrics["attempts"]
            successes = raw_metrics["successes"]
            total_time = raw_metrics["total_time"]

            metrics[extractor_name] = {
                "attempts": attempts,
                "successes": successes,
                "success_rate": successes / attempts if attempts > 0 else 0.0,
                "total_time": total_time,
                "avg_time": total_time / attempts if attempts > 0 else 0.0,
            }

        return metrics


class ExtractionSession:
    """
    State the orchestrating layer keeps between extractions: the permalink
    cache, the latest result and an in-flight flag. Callers serialize
    extractions; a second call while one is running is refused.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        *,
        layout: Optional[LayoutProbe] = None,
        bridge: Optional[PermalinkBridge] = None,
        readability: Optional[ReadabilityCollaborator] = None,
    ) -> None:
        self.config: Config = config or default_config
        self.cache = PermalinkCache()
        self.layout = layout
        self.manager = ExtractorManager(
            settings=self.config.extraction,
            rules=self.config.rules,
            layout=layout,
            permalink_cache=self.cache,
            bridge=bridge,
            readability=readability,
        )
        self.latest_result: Optional[ExtractResult] = None
        self.extracting = False
        self.current_url: Optional[str] = None

    def invalidate(self) -> None:
        """Forget cached permalinks and the latest result; called when the document may have changed."""
        cleared = self.cache.invalidate()
        self.latest_result = None
        logger.info("Session invalidated", url=self.current_url, cleared_permalinks=cleared)

    def observe_url(self, url: str) -> bool:
        """Record the current document URL; a change of document invalidates the session."""
        if self.current_url is not None and url != self.current_url:
            self.current_url = url
            self.invalidate()
            return True
        self.current_url = url
        return False

    async def extract(self, html: str, url: str) -> ExtractResult:
        if self.extracting:
            raise ExtractionInProgressError(url)

        self.observe_url(url)
        self.extracting = True
        structlog.contextvars.bind_contextvars(extraction_id=uuid.uuid4().hex[:12])
        try:
            page = PageSnapshot.parse(html, url, parser=self.config.extraction.parser, layout=self.layout)
            result = await self.manager.extract(page)
        finally:
            structlog.contextvars.unbind_contextvars("extraction_id")
            self.extracting = False

        if not result.is_empty:
            self.latest_result = result
        return result


async def extract(
    html: str,
    url: str,
    *,
    session: Optional[ExtractionSession] = None,
    config: Optional[Config] = None,
) -> ExtractResult:
    """Parse ``html`` as the document at ``url`` and extract its article."""
    session = session or ExtractionSession(config)
    return await session.extract(html, url)
