"""
Permalink resolution for quoted posts.

A quoted post rarely carries a plain link to itself. Resolution walks an
ordered chain of cheaper to costlier strategies and ends, when everything
local fails, in an asynchronous round-trip into the page's own script context
bounded by a timeout. Results are memoized on the element and in a
session-owned cache so repeated passes over the same document stay cheap.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import structlog
from bs4 import Tag

from ..config.config import ExtractionSettings
from ..utils.text import content_hash
from .dom import ancestors, attr, closest, inner_text, select_one
from .protocols import PermalinkBridge

logger = structlog.get_logger(__name__)

UNKNOWN_PERMALINK = "(未知链接)"
SAVED_URL_ATTR = "data-clip-saved-url"
TOKEN_ATTR = "data-clip-temp-id"
PROPS_ATTR = "data-props"

_LINK_MARKERS = ("/status/", "/article/", "/events/", "/i/")
_LINK_EXCLUDES = ("/photo/", "/video/", "/people/")
_PERMALINK_MARKERS = ("/status/", "/article/")
_PERMALINK_EXCLUDES = ("/photo/", "/video/", "/analytics")
_SCANNED_ATTRIBUTES = ("data-url", "data-permalink-path", "href")
_PRIORITY_KEYS = ("permalink", "url", "href", "expanded_url", "canonical_url", "link_url")
_SKIPPED_KEYS = frozenset({"children", "_owner", "stateNode", "return", "sibling", "child"})
_WRAPPERS = 'div[role="link"], a, [data-testid="card.wrapper"]'


def absolutize(href: str, origin: str) -> str:
    href = href.strip()
    if href.startswith("http"):
        return href
    if href.startswith("//"):
        return "https:" + href
    return origin.rstrip("/") + ("" if href.startswith("/") else "/") + href


def is_permalink(value: str) -> bool:
    """Whether a string looks like a post or article permalink rather than a media link."""
    return any(marker in value for marker in _PERMALINK_MARKERS) and not any(
        marker in value for marker in _PERMALINK_EXCLUDES
    )


def prefer_status(urls: List[str]) -> Optional[str]:
    for url in urls:
        if "/status/" in url:
            return url
    return urls[0] if urls else None


def cache_key(container: Tag) -> str:
    """Short content-derived key for a quoted-post container."""
    return f"quote_{content_hash(inner_text(container).strip(), limit=100)}"


def read_props(tag: Tag) -> Any:
    """Structured data a snapshotting host stamped on the element, if any."""
    raw = attr(tag, PROPS_ATTR)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        logger.debug("Ignoring malformed structured data", error=str(e))
        return None


def find_post_data(props: Any, depth: int = 0, max_depth: int = 8) -> Optional[Dict[str, Any]]:
    """
    Depth-bounded search for a post record in a component-props tree.

    Recognizes ``tweet`` and ``content.tweet`` wrappers and tagged records
    (``id`` plus ``canonical_url`` or a ``__typename`` of Tweet/Article), and
    descends through ``children``, ``memoizedProps`` and ``pendingProps``.
    """
    if not isinstance(props, dict) or depth > max_depth:
        return None

    tweet = props.get("tweet")
    if isinstance(tweet, dict):
        return tweet
    content = props.get("content")
    if isinstance(content, dict) and isinstance(content.get("tweet"), dict):
        return content["tweet"]

    if props.get("id") and (props.get("canonical_url") or props.get("__typename") in ("Tweet", "Article")):
        return props

    children = props.get("children")
    for child in children if isinstance(children, list) else [children]:
        if isinstance(child, dict) and isinstance(child.get("props"), dict):
            found = find_post_data(child["props"], depth + 1, max_depth)
            if found:
                return found

    for key in ("memoizedProps", "pendingProps"):
        found = find_post_data(props.get(key), depth + 1, max_depth)
        if found:
            return found
    return None


def search_permalinks(obj: Any, origin: str, max_depth: int = 12, array_limit: int = 10) -> List[str]:
    """Every permalink-shaped string in a generic key-value tree, priority keys first."""
    urls: List[str] = []
    seen: set[int] = set()

    def add(value: str) -> None:
        url = absolutize(value, origin)
        if url not in urls:
            urls.append(url)

    def visit(node: Any, depth: int) -> None:
        if isinstance(node, str):
            if is_permalink(node):
                add(node)
            return
        if depth > max_depth or not isinstance(node, (dict, list)) or id(node) in seen:
            return
        seen.add(id(node))
        if isinstance(node, list):
            for item in node[:array_limit]:
                visit(item, depth + 1)
            return
        for key in _PRIORITY_KEYS:
            value = node.get(key)
            if isinstance(value, str) and is_permalink(value):
                add(value)
        for key, value in node.items():
            if key not in _SKIPPED_KEYS:
                visit(value, depth + 1)

    visit(obj, 0)
    return urls


class PermalinkCache:
    """Write-once-per-key memo of resolved permalinks, owned by the extraction session."""

    def __init__(self) -> None:
        self._entries: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._entries.get(key)

    def set(self, key: str, url: str) -> bool:
        """Store ``url`` unless the key already has a value."""
        if key in self._entries:
            return False
        self._entries[key] = url
        return True

    def invalidate(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        if count:
            logger.debug("Permalink cache cleared", entries=count)
        return count

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class PermalinkResolver:
    """Runs the resolution chain for one quoted-post container at a time."""

    def __init__(
        self,
        cache: Optional[PermalinkCache] = None,
        bridge: Optional[PermalinkBridge] = None,
        settings: Optional[ExtractionSettings] = None,
    ) -> None:
        self.cache = cache if cache is not None else PermalinkCache()
        self.bridge = bridge
        self.settings = settings or ExtractionSettings()
        self.origin = self.settings.permalink_origin

    async def resolve(self, container: Tag) -> Optional[str]:
        """The container's permalink, or None when every strategy fails."""
        saved = attr(container, SAVED_URL_ATTR) or None
        key = cache_key(container)
        cached = self.cache.get(key)

        url = saved or cached or self.resolve_locally(container)
        if not url:
            url = await self._ask_bridge(container)
            if url:
                logger.debug("Permalink resolved in page context", url=url)

        if url:
            if not saved:
                container[SAVED_URL_ATTR] = url
            if not cached:
                self.cache.set(key, url)
        return url

    def resolve_locally(self, container: Tag) -> Optional[str]:
        strategies: tuple[Callable[[Tag], Optional[str]], ...] = (
            self._from_links,
            self._from_wrapper,
            self._from_attributes,
            self._from_props,
        )
        for strategy in strategies:
            url = strategy(container)
            if url:
                return url
        return None

    def _from_links(self, container: Tag) -> Optional[str]:
        for link in container.find_all("a", href=True):
            href = attr(link, "href")
            if any(marker in href for marker in _LINK_MARKERS) and not any(m in href for m in _LINK_EXCLUDES):
                return absolutize(href, self.origin)
        return None

    def _from_wrapper(self, container: Tag) -> Optional[str]:
        wrapper = closest(container, _WRAPPERS)
        if wrapper is None:
            return None
        if wrapper.has_attr("href"):
            href = attr(wrapper, "href")
            return absolutize(href, self.origin) if len(href) > 5 else None
        inner = select_one(wrapper, 'a[href*="/status/"], a[href*="/article/"]')
        if inner is not None and attr(inner, "href"):
            return absolutize(attr(inner, "href"), self.origin)
        return None

    def _from_attributes(self, container: Tag) -> Optional[str]:
        for element in container.find_all(True):
            for name in _SCANNED_ATTRIBUTES:
                value = attr(element, name)
                if value and any(marker in value for marker in _PERMALINK_MARKERS):
                    return absolutize(value, self.origin)
        return None

    def _from_props(self, container: Tag) -> Optional[str]:
        for element in ancestors(container, limit=self.settings.permalink_ancestor_depth, include_self=True):
            data = find_post_data(read_props(element))
            if not data:
                continue
            if isinstance(data.get("canonical_url"), str) and data["canonical_url"]:
                return data["canonical_url"]
            if data.get("id"):
                is_article = data.get("__typename") == "Article" or "Article" in inner_text(container)
                kind = "article" if is_article else "status"
                return f"{self.origin}/i/{kind}/{data['id']}"
        return None

    async def _ask_bridge(self, container: Tag) -> Optional[str]:
        if self.bridge is None:
            return None
        token = f"clip-{uuid.uuid4().hex[:12]}"
        container[TOKEN_ATTR] = token
        try:
            url = await asyncio.wait_for(
                self.bridge.resolve_permalink(token), timeout=self.settings.permalink_timeout
            )
        except asyncio.TimeoutError:
            logger.debug("Permalink lookup timed out", token=token, timeout=self.settings.permalink_timeout)
            return None
        except Exception as e:
            logger.warning("Permalink lookup failed", token=token, error=str(e), error_type=type(e).__name__)
            return None
        finally:
            if container.has_attr(TOKEN_ATTR):
                del container[TOKEN_ATTR]
        return url if isinstance(url, str) and url.startswith("http") else None


class SnapshotBridge:
    """
    Page-context lookup over a parsed snapshot: finds the element carrying the
    token and searches the structured data stamped on it and its ancestors.
    """

    def __init__(self, root: Tag, origin: str = "https://x.com", max_levels: int = 25) -> None:
        self.root = root
        self.origin = origin
        self.max_levels = max_levels

    async def resolve_permalink(self, token: str) -> Optional[str]:
        element = self.root.find(attrs={TOKEN_ATTR: token})
        if not isinstance(element, Tag):
            logger.debug("Token element not found", token=token)
            return None
        for node in ancestors(element, limit=self.max_levels, include_self=True):
            urls = search_permalinks(read_props(node), self.origin)
            if urls:
                return prefer_status(urls)
        return None


Sender = Callable[[str], Union[Awaitable[None], None]]


class CorrelatedBridge:
    """
    Request/response over a host-supplied transport. ``send`` dispatches a
    token into the page; the host calls :meth:`deliver` with the same token
    when the page answers.
    """

    def __init__(self, send: Sender) -> None:
        self._send = send
        self._pending: Dict[str, asyncio.Future[Optional[str]]] = {}

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def resolve_permalink(self, token: str) -> Optional[str]:
        future: asyncio.Future[Optional[str]] = asyncio.get_running_loop().create_future()
        self._pending[token] = future
        try:
            sent = self._send(token)
            if inspect.isawaitable(sent):
                await sent
            return await future
        finally:
            self._pending.pop(token, None)

    def deliver(self, token: str, url: Optional[str]) -> bool:
        """Complete the request for ``token``; late or unknown answers are dropped."""
        future = self._pending.get(token)
        if future is None or future.done():
            logger.debug("Dropping uncorrelated permalink answer", token=token)
            return False
        future.set_result(url if url and url.startswith("http") else None)
        return True
