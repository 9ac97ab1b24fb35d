"""
Heuristic rule set shared by the extraction components.

Rules are immutable data handed to every component at construction time.
Regular expressions are stored as pattern strings (inline flags allowed) and
compiled by the component that uses them.
"""

from __future__ import annotations

from typing import Tuple

from pydantic import BaseModel, ConfigDict, Field

# Main article containers, tried in order.
ARTICLE_SELECTORS = (
    ".available-content",
    ".newsletter-post",
    "article",
    '[role="main"]',
    ".post-content",
    ".article-content",
    ".entry-content",
    ".content",
    "main",
    "#content",
    ".post",
    ".article",
)

AUTHOR_SELECTORS = (
    '[rel="author"]',
    ".author",
    ".byline",
    '[itemprop="author"]',
    ".post-author",
)

TIME_SELECTORS = (
    "time[datetime]",
    '[itemprop="datePublished"]',
    ".published",
    ".post-date",
    ".date",
)

# Ads, social bars, comment systems, video widgets and interaction bars.
JUNK_SELECTORS = (
    ".advertisement",
    ".ads",
    ".social-share",
    ".comments",
    ".related-posts",
    '[aria-hidden="true"]',
    'iframe[src*="ads"]',
    # Substack
    ".post-ufi",
    ".like-button-container",
    ".share-dialog",
    ".subscription-widget-wrap",
    ".substack-post-footer",
    ".post-header",
    ".post-ufi-button",
    ".pencraft.style-button",
    ".portable-archive-header",
    ".banner",
    ".post-footer",
    ".profile-hover-card",
    ".user-hover-card",
    ".pencraft",
    # Comment systems
    ".vssue",
    ".vssue-container",
    ".gitalk-container",
    ".gitalk",
    ".giscus",
    ".giscus-frame",
    ".utterances",
    ".disqus_thread",
    "#disqus_thread",
    ".comment-section",
    "#comments",
    '[class*="comment"]',
    # VuePress / VitePress
    ".page-edit",
    ".page-nav",
    ".page-meta",
    ".last-updated",
    # Heading anchors
    "a.header-anchor",
    "a.heading-anchor",
    "a.anchor",
    ".header-anchor",
    # X / Twitter
    '[data-testid="User-Name"]',
    '[data-testid="UserName"]',
    '[data-testid="User-Names"]',
    '[data-testid="subscribe"]',
    '[data-testid="reply"]',
    '[data-testid="retweet"]',
    '[data-testid="like"]',
    '[data-testid="bookmark"]',
    '[data-testid="share"]',
    '[data-testid="analyticsButton"]',
    '[data-testid="app-text-transition-container"]',
    '[class*="engagement-bar"]',
    '[class*="reactions-bar"]',
    '[class*="like-count"]',
    '[class*="retweet-count"]',
    '[class*="reply-count"]',
    '[class*="share-count"]',
    '[class*="view-count"]',
    '[class*="subscribe-button"]',
    '[class*="follow-button"]',
    # Medium
    '[data-testid="authorPhoto"]',
    '[data-testid="storyPublishDate"]',
    'button[aria-label="responses"]',
    'button[data-testid="headerClapButton"]',
    'svg[aria-label="clap"]',
    '[data-testid="headerSocialShareButton"]',
    '[data-testid="audioPlayButton"]',
    ".speechify-ignore",
    'a[href*="/@"][rel="noopener follow"]',
    # Video players
    "video",
    ".video-player",
    ".video-container",
    ".video_iframe",
    ".video_card",
    '[class*="video-player"]',
    '[class*="video-controls"]',
    '[class*="video-bar"]',
    # WeChat video
    ".js_tx_video_container",
    ".js_video_channel_video",
    ".video_channel_card_container",
    ".video_card_container",
    ".mpvideosnap_container",
    ".video_info_wrap",
    ".video_desc",
    ".video_channel",
    ".video_player_container",
    ".js_video_container",
    ".wx-video",
    '[class*="video_channel"]',
    '[class*="mpvideo"]',
    '[class*="wxvideo"]',
    ".video_play_btn",
    ".video_progress",
    ".video_time",
    ".video_fullscreen",
    ".video_speed",
    ".video_share",
    ".video_replay",
    ".video_attention",
    # WeChat follow cards
    ".profile_info_area",
    ".profile_meta",
    ".wx_follow_btn",
    ".js_share_content",
    '[class*="follow"]',
    '[class*="subscribe"]',
    # Embedded frames other than WeChat's own
    'iframe:not([src*="mp.weixin"])',
)

STRUCTURAL_SELECTORS = ("script", "style", "nav", "header", "footer", "aside")

# Byline, date and edited-by boilerplate.
METADATA_TEXT_PATTERNS = (
    r"(?i)^(written by|reviewed by|edited by|posted by)\s*$",
    r"(?i)^(last edited|last updated|published on)\s*\w+\s+\d+,?\s*\d*$",
    r"(?i)^expert verified$",
    r"(?i)^(blogs?|guides?|articles?)\s*[/|]\s*(blogs?|guides?|articles?)?$",
    r"(?i)^published\s+(on\s+)?\d{4}[-/.]\d{1,2}[-/.]\d{1,2}$",
    r"^作者[：:]",
    r"^作者/公众号[：:]",
)

# Non-content regions an image must not sit inside.
IMAGE_EXCLUDE_PARENT_SELECTORS = (
    '[class*="author"]',
    '[class*="avatar"]',
    '[class*="profile"]',
    '[class*="bio"]',
    '[class*="byline"]',
    '[class*="writer"]',
    '[class*="contributor"]',
    '[class*="reviewer"]',
    '[class*="social"]',
    '[class*="share"]',
    '[class*="sharing"]',
    '[class*="post-ufi"]',
    '[class*="like-button"]',
    '[class*="subscription-widget"]',
    '[class*="meta"]',
    '[class*="info-bar"]',
    '[class*="post-header"]',
    '[class*="article-header"]',
    '[class*="related"]',
    '[class*="recommended"]',
    '[class*="footer"]',
    '[class*="sidebar"]',
    '[class*="navigation"]',
    '[class*="nav"]',
    '[class*="advertisement"]',
    '[class*="sponsor"]',
    '[class*="sidecta"]',
    '[class*="cta"]',
)

DECORATIVE_ALT_PATTERNS = (
    r"(?i)\bbackground\b",
    r"(?i)\bsidecta\b",
    r"(?i)\bdecorative\b",
    r"(?i)\bbg[-_]?image\b",
    r"(?i)\bcta[-_]?(bg|background)\b",
)

AVATAR_ALT_PATTERNS = (
    r"(?i)\bavatar\b",
    r"(?i)\bheadshot\b",
    r"(?i)\bportrait\b",
    r"(?i)\bprofile\s*(pic|photo|image|picture)\b",
    r"(?i)\bauthor\s*(photo|image|picture)\b",
)

AVATAR_CLASS_KEYWORDS = ("avatar", "profile-pic", "author-img", "headshot", "portrait")
AVATAR_CLASS_ONLY_KEYWORDS = ("author", "bio", "user-icon", "profile")

AVATAR_URL_MARKERS = (
    "/avatar",
    "/profile",
    "/user/",
    "/authors/",
    "/team/",
    "gravatar.com",
    "githubusercontent.com/u/",
)

BYLINE_PHRASES = (
    "written by",
    "reviewed by",
    "article by",
    "posted by",
    "author:",
    "by author",
    "about the author",
)

CAPTION_SELECTORS = (
    ".caption",
    ".img-caption",
    ".image-caption",
    ".wp-caption-text",
    ".desc",
    ".description",
    '[class*="caption"]',
    '[class*="desc"]',
    "small",
    ".photo-credit",
)

CAPTION_PLACEHOLDER_WORDS = (
    "图片",
    "image",
    "picture",
    "photo",
    "img",
    "视频",
    "video",
    "动图",
    "gif",
    "点击查看大图",
    "点击放大",
)

CAPTION_STOPWORDS = (
    "点击",
    "click",
    "查看",
    "view",
    "更多",
    "more",
    "广告",
    "adv",
    "sponsor",
    "分享",
    "share",
    "赞",
    "like",
    "comment",
    "来源",
    "source",
)

CAPTION_CREDIT_PATTERN = r"(?i)^(图|来源|source|credit|by|©)"
CAPTION_ACTION_PATTERN = r"(?i)click|view|read|share|like|icon|点击|查看|分享"

LAZY_IMAGE_ATTRIBUTES = (
    "data-src",
    "data-original",
    "data-url",
    "data-lazy",
    "data-actualsrc",
    "data-hires",
    "data-lazy-src",
)

# Known cover-image slots checked before the positional lead-image search.
COVER_IMAGE_SELECTORS = (
    ".post-cover img",
    ".article-cover img",
    ".cover-image img",
    "img.cover-image",
    ".featured-image img",
    "img.wp-post-image",
    ".post-thumbnail img",
    '[class*="hero"] img',
    'figure[class*="lead"] img',
)

# Body containers whose images readability tends to drop.
SPECIAL_BODY_SELECTORS = (
    ".available-content",
    "#js_content",
    ".markdown-body",
    ".post-body",
    ".article-body",
)

NOISE_TAGS = ("script", "style", "noscript", "template")

ALLOWED_ATTRIBUTES = (
    "href",
    "src",
    "srcset",
    "data-src",
    "alt",
    "title",
    "width",
    "height",
    "colspan",
    "rowspan",
    "start",
    "datetime",
    "lang",
)

SOCIAL_CONTAINER_SELECTORS = (
    '[data-testid="primaryColumn"]',
    '[data-testid="tweet"]',
    'main[role="main"]',
    '[role="main"]',
    "article",
)

SOCIAL_GENERIC_TITLES = ("X", "Twitter", "Home", "Notification", "Search", "Profile")

SOCIAL_IMAGE_SKIP_MARKERS = ("profile_images", "emoji", "twemoji", "hashflags", "abs.twimg.com")


class HeuristicRules(BaseModel):
    """Immutable rule lists consumed by the extraction components."""

    model_config = ConfigDict(frozen=True)

    article_selectors: Tuple[str, ...] = ARTICLE_SELECTORS
    author_selectors: Tuple[str, ...] = AUTHOR_SELECTORS
    time_selectors: Tuple[str, ...] = TIME_SELECTORS
    junk_selectors: Tuple[str, ...] = JUNK_SELECTORS
    structural_selectors: Tuple[str, ...] = STRUCTURAL_SELECTORS
    metadata_text_patterns: Tuple[str, ...] = METADATA_TEXT_PATTERNS
    image_exclude_parent_selectors: Tuple[str, ...] = IMAGE_EXCLUDE_PARENT_SELECTORS
    decorative_alt_patterns: Tuple[str, ...] = DECORATIVE_ALT_PATTERNS
    avatar_alt_patterns: Tuple[str, ...] = AVATAR_ALT_PATTERNS
    avatar_class_keywords: Tuple[str, ...] = AVATAR_CLASS_KEYWORDS
    avatar_class_only_keywords: Tuple[str, ...] = AVATAR_CLASS_ONLY_KEYWORDS
    avatar_url_markers: Tuple[str, ...] = AVATAR_URL_MARKERS
    byline_phrases: Tuple[str, ...] = BYLINE_PHRASES
    caption_selectors: Tuple[str, ...] = CAPTION_SELECTORS
    caption_placeholder_words: Tuple[str, ...] = CAPTION_PLACEHOLDER_WORDS
    caption_stopwords: Tuple[str, ...] = CAPTION_STOPWORDS
    caption_credit_pattern: str = CAPTION_CREDIT_PATTERN
    caption_action_pattern: str = CAPTION_ACTION_PATTERN
    lazy_image_attributes: Tuple[str, ...] = LAZY_IMAGE_ATTRIBUTES
    cover_image_selectors: Tuple[str, ...] = COVER_IMAGE_SELECTORS
    special_body_selectors: Tuple[str, ...] = SPECIAL_BODY_SELECTORS
    noise_tags: Tuple[str, ...] = NOISE_TAGS
    allowed_attributes: Tuple[str, ...] = ALLOWED_ATTRIBUTES
    social_container_selectors: Tuple[str, ...] = SOCIAL_CONTAINER_SELECTORS
    social_generic_titles: Tuple[str, ...] = SOCIAL_GENERIC_TITLES
    social_image_skip_markers: Tuple[str, ...] = SOCIAL_IMAGE_SKIP_MARKERS
    weixin_hosts: Tuple[str, ...] = Field(default=("mp.weixin.qq.com",))
    social_hosts: Tuple[str, ...] = Field(default=("twitter.com", "x.com"))


DEFAULT_RULES = HeuristicRules()
