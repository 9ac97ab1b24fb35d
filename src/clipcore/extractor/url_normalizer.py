"""
CDN image URL canonicalization.

Image CDNs wrap, resize and re-encode the same asset under many URLs. The
rules below unwrap proxy/fetch URLs and strip size or transformation markers
so that one asset maps to one comparable, best-quality URL. Each rule only
fires on its provider's signature and returns its input unchanged otherwise;
a rule that hits a malformed URL gives back what it was handed.
"""

from __future__ import annotations

import re
from typing import Callable, Sequence
from urllib.parse import parse_qsl, unquote, urlencode, urljoin, urlsplit, urlunsplit

import structlog

logger = structlog.get_logger(__name__)

Rule = Callable[[str], str]

_SUBSTACK_ENCODED = re.compile(r"/image/fetch/[^/]+/(https?%3A%2F%2F[^?#]+)", re.IGNORECASE)
_SUBSTACK_PLAIN = re.compile(r"/image/fetch/[^/]+/(https?://[^?#]+)", re.IGNORECASE)
_CLOUDFLARE = re.compile(r"/cdn-cgi/image/[^/]+/(.+)")
_CLOUDINARY = re.compile(r"^(https?://res\.cloudinary\.com/[^/]+/image/upload/)(.+)$")
_CLOUDINARY_VERSION = re.compile(r"^v\d+$")
_CLOUDINARY_TRANSFORM = re.compile(
    r"^(?:a|ac|af|ar|b|bo|br|c|co|cs|d|dl|dn|dpr|e|f|fl|fn|g|h|if|l|o|pg|q|r|so|sp|t|u|vc|w|x|y|z)_[^/]+$"
)
_WORDPRESS_SIZE = re.compile(r"(?:-\d+x\d+)+(\.[a-zA-Z]+)$")
_MEDIUM_RESIZE = re.compile(r"/resize:[^/]+")
_MEDIUM_FORMAT = re.compile(r"/format:[^/]+")
_MEDIUM_V2 = re.compile(r"/v2/+")
_SHOPIFY_SIZE = re.compile(r"(?:_\d+x\d*)+(\.[a-zA-Z]+)$")

IMGIX_PARAMS = ("w", "h", "fit", "crop", "auto", "q", "dpr", "blur")
SHOPIFY_PARAMS = ("width", "height", "crop")
MAX_PASSES = 4


def _drop_query_params(url: str, names: Sequence[str]) -> str:
    parts = urlsplit(url)
    pairs = parse_qsl(parts.query, keep_blank_values=True)
    kept = [(key, value) for key, value in pairs if key not in names]
    if len(kept) == len(pairs):
        return url
    return urlunsplit(parts._replace(query=urlencode(kept)))


def _origin(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def unwrap_substack(url: str) -> str:
    """substackcdn.com/image/fetch/<opts>/<encoded original>"""
    if "substackcdn.com/image/fetch" not in url:
        return url
    match = _SUBSTACK_ENCODED.search(url)
    if match:
        return unquote(match.group(1))
    match = _SUBSTACK_PLAIN.search(url)
    if match:
        return match.group(1)
    return url


def upgrade_twitter(url: str) -> str:
    """pbs.twimg.com media: ask for the large rendition."""
    parts = urlsplit(url)
    if "pbs.twimg.com" not in parts.netloc:
        return url
    pairs = parse_qsl(parts.query, keep_blank_values=True)
    names = dict(pairs)
    if "name" not in names or names["name"] in ("orig", "large"):
        return url
    pairs = [(key, "large" if key == "name" else value) for key, value in pairs]
    return urlunsplit(parts._replace(query=urlencode(pairs)))


def unwrap_nextjs(url: str) -> str:
    """/_next/image?url=<original>&w=..&q=.."""
    parts = urlsplit(url)
    if "/_next/image" not in parts.path:
        return url
    inner = dict(parse_qsl(parts.query)).get("url")
    if not inner:
        return url
    if inner.startswith(("http://", "https://")):
        return inner
    return urljoin(_origin(url), inner)


def unwrap_cloudflare(url: str) -> str:
    """/cdn-cgi/image/<options>/<path or absolute url>"""
    parts = urlsplit(url)
    if "/cdn-cgi/image/" not in parts.path:
        return url
    match = _CLOUDFLARE.search(parts.path)
    if not match:
        return url
    target = match.group(1)
    if target.startswith("http"):
        return unquote(target)
    return f"{_origin(url)}/{target}"


def strip_imgix(url: str) -> str:
    """imgix: drop resizing query parameters."""
    netloc = urlsplit(url).netloc
    if ".imgix.net" not in netloc and "imgix.com" not in netloc:
        return url
    return _drop_query_params(url, IMGIX_PARAMS)


def strip_cloudinary(url: str) -> str:
    """res.cloudinary.com/<cloud>/image/upload/<transforms>/<v123>/<public id>"""
    match = _CLOUDINARY.match(url)
    if not match:
        return url
    base, rest = match.groups()
    segments = rest.split("/")
    for index, segment in enumerate(segments):
        if _CLOUDINARY_VERSION.match(segment):
            return base + "/".join(segments[index:])
    kept = list(segments)
    while len(kept) > 1 and all(_CLOUDINARY_TRANSFORM.match(part) for part in kept[0].split(",")):
        kept.pop(0)
    return base + "/".join(kept)


def strip_wordpress(url: str) -> str:
    """wp-content/uploads/name-300x200.jpg -> name.jpg"""
    if "wp-content/uploads" not in url and "/uploads/" not in url:
        return url
    return _WORDPRESS_SIZE.sub(r"\1", url)


def strip_medium(url: str) -> str:
    """miro.medium.com/v2/resize:fit:700/format:webp/<id>"""
    if "miro.medium.com" not in url:
        return url
    url = _MEDIUM_RESIZE.sub("", url)
    url = _MEDIUM_FORMAT.sub("", url)
    return _MEDIUM_V2.sub("/v2/", url)


def strip_shopify(url: str) -> str:
    """cdn.shopify.com: drop width/height/crop and path size suffixes."""
    if "cdn.shopify.com" not in url and "shopify.com/s/files" not in url:
        return url
    url = _drop_query_params(url, SHOPIFY_PARAMS)
    parts = urlsplit(url)
    path = _SHOPIFY_SIZE.sub(r"\1", parts.path)
    if path == parts.path:
        return url
    return urlunsplit(parts._replace(path=path))


PROVIDER_RULES: tuple[Rule, ...] = (
    unwrap_substack,
    upgrade_twitter,
    unwrap_nextjs,
    unwrap_cloudflare,
    strip_imgix,
    strip_cloudinary,
    strip_wordpress,
    strip_medium,
    strip_shopify,
)


def resolve_url(url: str, base_url: str | None = None) -> str:
    """Resolve against the page URL and give protocol-relative URLs a scheme."""
    url = url.strip()
    if url.startswith("//"):
        return "https:" + url
    if base_url and not url.startswith(("data:", "blob:")):
        try:
            url = urljoin(base_url, url)
        except ValueError:
            return url
    if url.startswith("//"):
        url = "https:" + url
    return url


def normalize_image_url(url: str, base_url: str | None = None, rules: Sequence[Rule] = PROVIDER_RULES) -> str:
    """
    Canonical form of an image URL. Never raises: each rule that fails on a
    malformed URL leaves the URL as it was.
    """
    if not url or url.startswith("data:"):
        return url
    current = resolve_url(url, base_url)
    # an unwrapped inner URL may belong to a provider earlier in the chain
    for _ in range(MAX_PASSES):
        previous = current
        for rule in rules:
            try:
                current = rule(current)
            except ValueError as e:
                logger.debug("URL rule failed", rule=rule.__name__, url=current, error=str(e))
        if current == previous:
            break
    return current
