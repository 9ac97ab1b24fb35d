"""
Unit tests for ExtractorManager and ExtractionSession.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from clipcore.config import Config
from clipcore.extractor.article_extractor import ArticleExtractor
from clipcore.extractor.exceptions import ExtractionInProgressError
from clipcore.extractor.manager import ExtractionSession, ExtractorManager, extract
from clipcore.extractor.models import ExtractResult
from clipcore.extractor.social_extractor import SocialExtractor
from clipcore.extractor.weixin_extractor import WeixinExtractor


def filled_result(url: str = "https://example.com/post") -> ExtractResult:
    return ExtractResult(title="Done", source_url=url, domain="example.com", content_html="<p>Body</p>")


class TestExtractorManager:
    """Test cases for ExtractorManager."""

    @pytest.mark.parametrize(
        "url, expected",
        [
            ("https://mp.weixin.qq.com/s/abc", WeixinExtractor),
            ("https://x.com/alice/status/1", SocialExtractor),
            ("https://mobile.twitter.com/alice/status/1", SocialExtractor),
            ("https://example.com/post", ArticleExtractor),
        ],
    )
    def test_select_by_host(self, make_page, url, expected):
        """Test URL-signature dispatch."""
        manager = ExtractorManager()
        assert isinstance(manager.select(make_page("<html></html>", url)), expected)

    def test_generic_extractor_last(self):
        """The generic extractor closes the dispatch order."""
        manager = ExtractorManager()
        assert manager.extractors[-1] is manager.generic
        assert [extractor.name for extractor in manager.extractors] == ["weixin", "social", "article"]

    @pytest.mark.asyncio
    async def test_social_without_post_falls_back(self, make_page, simple_article_html, fake_readability):
        """A social page with no post is handed to the generic extractor."""
        manager = ExtractorManager(readability=fake_readability(None))
        result = await manager.extract(make_page(simple_article_html, "https://x.com/explore"))

        assert result.title == "T"
        assert not result.is_empty
        metrics = manager.get_metrics()
        assert metrics["social"]["attempts"] == 1
        assert metrics["social"]["successes"] == 0
        assert metrics["article"]["successes"] == 1

    @pytest.mark.asyncio
    async def test_fallback_uses_generic_result(self, make_page):
        """Test the fallback with the generic extractor replaced."""
        manager = ExtractorManager()
        page = make_page("<html><head><title>X</title></head><body></body></html>", "https://x.com/home")

        with patch.object(manager.generic, "extract", AsyncMock(return_value=filled_result(page.url))) as generic:
            result = await manager.extract(page)

        generic.assert_awaited_once_with(page)
        assert result.title == "Done"

    @pytest.mark.asyncio
    async def test_one_line_post_kept(self, make_page):
        """A post whose only line became the title is not replaced by page chrome."""
        html = """
        <html><head><title>Alice on X: "Just shipped version two of our parser today" / X</title></head><body>
        <div data-testid="primaryColumn"><article data-testid="tweet">
          <div data-testid="User-Name"><span>Alice</span></div>
          <time datetime="2026-03-01T10:00:00.000Z">Mar 1</time>
          <div data-testid="tweetText"><span>Just shipped version two of our parser today</span></div>
        </article></div>
        <aside><h1>Trending</h1><p>Something else entirely that is trending right now.</p></aside>
        </body></html>
        """
        manager = ExtractorManager()
        page = make_page(html, "https://x.com/alice/status/1")

        with patch.object(manager.generic, "extract", AsyncMock(return_value=filled_result(page.url))) as generic:
            result = await manager.extract(page)

        generic.assert_not_awaited()
        assert result.title == "Just shipped version two of our parser today"
        assert result.blocks == []
        assert result.author == "Alice"

    @pytest.mark.asyncio
    async def test_failure_becomes_empty_result(self, make_page):
        """An extractor exception is logged and converted into an empty result."""
        manager = ExtractorManager()
        page = make_page("<html><head><title>Broken page</title></head><body></body></html>")

        with patch.object(manager.generic, "extract", AsyncMock(side_effect=RuntimeError("boom"))):
            result = await manager.extract(page)

        assert result.is_empty
        assert result.title == "Broken page"
        assert result.source_url == page.url
        assert manager.get_metrics()["article"]["attempts"] == 1

    def test_metrics_start_at_zero(self):
        """Test the metrics shape before any extraction."""
        metrics = ExtractorManager().get_metrics()
        assert set(metrics) == {"weixin", "social", "article"}
        assert metrics["article"] == {
            "attempts": 0,
            "successes": 0,
            "success_rate": 0.0,
            "total_time": 0.0,
            "avg_time": 0.0,
        }


class TestExtractionSession:
    """Test cases for ExtractionSession."""

    @pytest.mark.asyncio
    async def test_latest_result_kept(self, test_config, simple_article_html, fake_readability):
        """Non-empty results are kept, empty ones do not replace them."""
        session = ExtractionSession(test_config, readability=fake_readability(None))

        first = await session.extract(simple_article_html, "https://example.com/post")
        assert session.latest_result is first

        empty = await session.extract("<html><body></body></html>", "https://example.com/post")
        assert empty.is_empty
        assert session.latest_result is first
        assert session.extracting is False

    @pytest.mark.asyncio
    async def test_concurrent_extraction_refused(self, test_config):
        """A second extraction while one is running raises."""
        session = ExtractionSession(test_config)
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_extract(page):
            started.set()
            await release.wait()
            return filled_result(page.url)

        with patch.object(session.manager, "extract", new=slow_extract):
            first = asyncio.create_task(session.extract("<p>a</p>", "https://example.com/post"))
            await started.wait()

            with pytest.raises(ExtractionInProgressError, match="already in progress"):
                await session.extract("<p>b</p>", "https://example.com/post")

            release.set()
            result = await first

        assert result.title == "Done"
        assert session.extracting is False

    @pytest.mark.asyncio
    async def test_flag_cleared_after_failure(self, test_config):
        """The in-progress flag is released even when extraction raises."""
        session = ExtractionSession(test_config)

        with patch.object(session.manager, "extract", AsyncMock(side_effect=ValueError("bad"))):
            with pytest.raises(ValueError):
                await session.extract("<p>a</p>", "https://example.com/post")

        assert session.extracting is False

    def test_invalidate(self, test_config):
        """Invalidation clears cached permalinks and the latest result."""
        session = ExtractionSession(test_config)
        session.cache.set("quote_1", "https://x.com/a/status/1")
        session.latest_result = filled_result()

        session.invalidate()

        assert len(session.cache) == 0
        assert session.latest_result is None

    def test_url_change_invalidates(self, test_config):
        """Navigating to another document invalidates the session."""
        session = ExtractionSession(test_config)
        session.cache.set("quote_1", "https://x.com/a/status/1")

        assert session.observe_url("https://x.com/a/status/1") is False
        assert session.observe_url("https://x.com/a/status/1") is False
        assert len(session.cache) == 1

        assert session.observe_url("https://x.com/b/status/2") is True
        assert len(session.cache) == 0
        assert session.current_url == "https://x.com/b/status/2"

    def test_session_shares_cache_with_social_extractor(self, test_config):
        """The session owns the permalink cache the social extractor writes to."""
        session = ExtractionSession(test_config)
        social = next(e for e in session.manager.extractors if isinstance(e, SocialExtractor))
        assert social.cache is session.cache


class TestExtractFunction:
    """Test the module-level entry point."""

    @pytest.mark.asyncio
    async def test_extract_with_config(self, simple_article_html):
        """End to end with the real readability collaborator."""
        result = await extract(simple_article_html, "https://example.com/post", config=Config())

        assert not result.is_empty
        assert result.title == "T"
        assert result.domain == "example.com"

    @pytest.mark.asyncio
    async def test_extract_reuses_session(self, test_config, fake_readability, simple_article_html):
        """A supplied session is used instead of a fresh one."""
        session = ExtractionSession(test_config, readability=fake_readability(None))
        result = await extract(simple_article_html, "https://example.com/post", session=session)
        assert session.latest_result is result
