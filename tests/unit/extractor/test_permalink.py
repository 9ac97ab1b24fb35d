"""
Unit tests for quoted-post permalink resolution.
"""

import asyncio
import json
from html import escape
from unittest.mock import AsyncMock

import pytest
from bs4 import BeautifulSoup
from clipcore.config import ExtractionSettings
from clipcore.extractor.permalink import (
    SAVED_URL_ATTR,
    TOKEN_ATTR,
    CorrelatedBridge,
    PermalinkCache,
    PermalinkResolver,
    SnapshotBridge,
    absolutize,
    cache_key,
    find_post_data,
    search_permalinks,
)
from clipcore.utils.text import content_hash


def quote(html: str, props=None):
    """Parse a document and return the element with id="q"."""
    attrs = f" data-props='{escape(json.dumps(props), quote=True)}'" if props is not None else ""
    soup = BeautifulSoup(f"<div id='outer'{attrs}><div id='q'>{html}</div></div>", "html.parser")
    return soup, soup.find(id="q")


class TestPermalinkCache:
    """Test cases for PermalinkCache."""

    def test_first_write_wins(self):
        """Test write-once semantics per key."""
        cache = PermalinkCache()
        assert cache.set("quote_1", "https://x.com/a/status/1") is True
        assert cache.set("quote_1", "https://x.com/b/status/2") is False
        assert cache.get("quote_1") == "https://x.com/a/status/1"
        assert "quote_1" in cache
        assert len(cache) == 1

    def test_invalidate(self):
        """Test that invalidation clears every entry."""
        cache = PermalinkCache()
        cache.set("a", "https://x.com/a/status/1")
        cache.set("b", "https://x.com/b/status/2")
        assert cache.invalidate() == 2
        assert cache.get("a") is None
        assert len(cache) == 0


class TestHelpers:
    """Test the structured-data helpers."""

    def test_content_hash_key(self):
        """Test the rolling hash and key format."""
        assert content_hash("abc") == "22ci"
        _, container = quote("abc")
        assert cache_key(container) == "quote_22ci"

    def test_absolutize(self):
        """Test relative, protocol-relative and absolute hrefs."""
        assert absolutize("/u/status/1", "https://x.com") == "https://x.com/u/status/1"
        assert absolutize("//x.com/u/status/1", "https://x.com") == "https://x.com/u/status/1"
        assert absolutize("https://t.co/abc", "https://x.com") == "https://t.co/abc"

    def test_find_post_data(self):
        """Test wrapper shapes and nested component props."""
        assert find_post_data({"tweet": {"id": "1"}}) == {"id": "1"}
        assert find_post_data({"content": {"tweet": {"id": "2"}}}) == {"id": "2"}
        nested = {"children": [{"props": {"memoizedProps": {"id": "3", "__typename": "Article"}}}]}
        assert find_post_data(nested) == {"id": "3", "__typename": "Article"}
        assert find_post_data({"id": "4"}) is None

    def test_search_prefers_status(self):
        """Test priority keys, excluded media links and status preference."""
        tree = {
            "card": {"url": "https://x.com/i/article/77"},
            "media": {"expanded_url": "https://x.com/u/status/5/photo/1"},
            "items": [{"permalink": "/u/status/5"}],
            "children": {"permalink": "/ignored/status/9"},
        }
        urls = search_permalinks(tree, "https://x.com")
        assert "https://x.com/ignored/status/9" not in urls
        assert not any("/photo/" in url for url in urls)
        assert set(urls) == {"https://x.com/i/article/77", "https://x.com/u/status/5"}

    def test_search_depth_bound(self):
        """Test that deep trees are cut off."""
        tree: dict = {"url": "/deep/status/1"}
        for _ in range(20):
            tree = {"next": tree}
        assert search_permalinks(tree, "https://x.com") == []


class TestPermalinkResolver:
    """Test the resolution chain."""

    @pytest.mark.asyncio
    async def test_link_in_container(self):
        """Test the plain-link strategy and memoization."""
        cache = PermalinkCache()
        _, container = quote('<a href="/bob/status/123/photo/1">photo</a><a href="/bob/status/123">Jan 10</a>')

        url = await PermalinkResolver(cache).resolve(container)

        assert url == "https://x.com/bob/status/123"
        assert container[SAVED_URL_ATTR] == url
        assert cache.get(cache_key(container)) == url

    @pytest.mark.asyncio
    async def test_saved_stamp_checked_first(self):
        """A stamped permalink wins over every other strategy and the bridge."""
        bridge = AsyncMock()
        _, container = quote('<a href="/other/status/9">x</a>')
        container[SAVED_URL_ATTR] = "https://x.com/saved/status/1"

        url = await PermalinkResolver(bridge=bridge).resolve(container)

        assert url == "https://x.com/saved/status/1"
        bridge.resolve_permalink.assert_not_called()

    @pytest.mark.asyncio
    async def test_cache_hit(self):
        """The cache answers for a re-rendered container with the same text."""
        cache = PermalinkCache()
        _, container = quote("<span>Quoted words</span>")
        cache.set(cache_key(container), "https://x.com/cached/status/2")

        assert await PermalinkResolver(cache).resolve(container) == "https://x.com/cached/status/2"

    @pytest.mark.asyncio
    async def test_wrapper_link(self):
        """Test an enclosing link wrapper."""
        soup = BeautifulSoup('<a href="/w/status/77"><div id="q">Quoted</div></a>', "html.parser")
        url = await PermalinkResolver().resolve(soup.find(id="q"))
        assert url == "https://x.com/w/status/77"

    @pytest.mark.asyncio
    async def test_attribute_scan(self):
        """Test permalink-shaped attribute values."""
        _, container = quote('<div data-permalink-path="/attr/status/55">Quoted</div>')
        assert await PermalinkResolver().resolve(container) == "https://x.com/attr/status/55"

    @pytest.mark.asyncio
    async def test_structured_data_on_ancestor(self):
        """Test tagged records in structured data stamped on an ancestor."""
        _, container = quote("<span>Quoted</span>", props={"tweet": {"id": "42", "__typename": "Tweet"}})
        assert await PermalinkResolver().resolve(container) == "https://x.com/i/status/42"

        _, article = quote("<span>Quoted</span>", props={"tweet": {"id": "43", "__typename": "Article"}})
        assert await PermalinkResolver().resolve(article) == "https://x.com/i/article/43"

        _, canonical = quote("<span>Quoted</span>", props={"tweet": {"id": "44", "canonical_url": "https://x.com/c/status/44"}})
        assert await PermalinkResolver().resolve(canonical) == "https://x.com/c/status/44"

    @pytest.mark.asyncio
    async def test_malformed_structured_data_ignored(self):
        """Invalid JSON degrades to no result."""
        soup = BeautifulSoup("<div data-props='{not json'><div id='q'>Quoted</div></div>", "html.parser")
        assert await PermalinkResolver().resolve(soup.find(id="q")) is None

    @pytest.mark.asyncio
    async def test_bridge_used_last(self):
        """Test the page-context bridge and token cleanup."""
        bridge = AsyncMock()
        bridge.resolve_permalink.return_value = "https://x.com/bridge/status/9"
        cache = PermalinkCache()
        _, container = quote("<span>No links here</span>")

        url = await PermalinkResolver(cache, bridge).resolve(container)

        assert url == "https://x.com/bridge/status/9"
        token = bridge.resolve_permalink.call_args.args[0]
        assert token.startswith("clip-")
        assert not container.has_attr(TOKEN_ATTR)
        assert cache.get(cache_key(container)) == url

    @pytest.mark.asyncio
    async def test_bridge_timeout(self):
        """A bridge that never answers yields no permalink within the budget."""

        class SilentBridge:
            async def resolve_permalink(self, token):
                await asyncio.sleep(10)
                return "https://x.com/late/status/1"

        settings = ExtractionSettings(permalink_timeout_ms=20)
        _, container = quote("<span>No links here</span>")

        url = await PermalinkResolver(bridge=SilentBridge(), settings=settings).resolve(container)

        assert url is None
        assert not container.has_attr(TOKEN_ATTR)
        assert not container.has_attr(SAVED_URL_ATTR)

    @pytest.mark.asyncio
    async def test_bridge_failure_and_non_http_answers(self):
        """Test that bridge errors and non-URL answers are treated as no result."""
        failing = AsyncMock()
        failing.resolve_permalink.side_effect = RuntimeError("context destroyed")
        _, container = quote("<span>No links here</span>")
        assert await PermalinkResolver(bridge=failing).resolve(container) is None

        odd = AsyncMock()
        odd.resolve_permalink.return_value = "javascript:void(0)"
        assert await PermalinkResolver(bridge=odd).resolve(container) is None


class TestBridges:
    """Test the two bridge implementations."""

    @pytest.mark.asyncio
    async def test_snapshot_bridge(self):
        """The snapshot bridge searches structured data around the tokened element."""
        props = {"link": {"permalink": "/snap/status/5"}, "other": "https://x.com/i/article/6"}
        soup, container = quote("<span>No links here</span>", props=props)
        bridge = SnapshotBridge(soup)

        url = await PermalinkResolver(bridge=bridge).resolve(container)

        assert url == "https://x.com/snap/status/5"

    @pytest.mark.asyncio
    async def test_snapshot_bridge_unknown_token(self):
        """Test a token that is not in the tree."""
        soup, _ = quote("<span>x</span>")
        assert await SnapshotBridge(soup).resolve_permalink("clip-missing") is None

    @pytest.mark.asyncio
    async def test_correlated_bridge(self):
        """Answers are matched to requests by token."""
        loop = asyncio.get_running_loop()
        sent = []

        def send(token):
            sent.append(token)
            loop.call_soon(bridge.deliver, token, "https://x.com/corr/status/8")

        bridge = CorrelatedBridge(send)
        url = await bridge.resolve_permalink("clip-abc")

        assert url == "https://x.com/corr/status/8"
        assert sent == ["clip-abc"]
        assert bridge.pending == 0
        assert bridge.deliver("clip-abc", "https://x.com/late/status/1") is False

    @pytest.mark.asyncio
    async def test_correlated_bridge_timeout_cleans_up(self):
        """A timed-out request leaves no pending entry behind."""
        bridge = CorrelatedBridge(AsyncMock())
        settings = ExtractionSettings(permalink_timeout_ms=20)
        _, container = quote("<span>No links here</span>")

        assert await PermalinkResolver(bridge=bridge, settings=settings).resolve(container) is None
        assert bridge.pending == 0
