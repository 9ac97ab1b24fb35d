"""
ClipCore Extraction Module

Turns a rendered page into a clean article:
1. Site dispatch: WeChat articles, social posts, everything else
2. Generic path: readability first, article selectors as fallback
3. Social path: ordered walk of a post thread with quoted posts and permalinks
4. Shared stages: boilerplate cleaning, image harvesting, block parsing

Features:
- Image classification (avatars, icons, badges, decorative images)
- CDN URL canonicalization for deduplicating resized variants
- Caption discovery next to images
- Session-scoped permalink cache with a page-context bridge
"""

from .article_extractor import ArticleExtractor
from .blocks import parse_blocks
from .captions import CaptionFinder
from .cleaner import BoilerplateCleaner
from .exceptions import ConfigurationError, ExtractionError, ExtractionInProgressError
from .image_classifier import ImageClassifier
from .image_harvester import ImageHarvester, parse_srcset
from .layout import MarkupLayoutProbe
from .manager import ExtractionSession, ExtractorManager, extract
from .models import BlockType, ContentBlock, ExtractResult, ImageCandidate, ImageKind, QuotedPost
from .page import PageSnapshot
from .permalink import CorrelatedBridge, PermalinkCache, PermalinkResolver, SnapshotBridge
from .protocols import Extractor, LayoutProbe, PermalinkBridge, ReadabilityCollaborator
from .quoted_posts import QuotedPostExtractor, find_quote_containers
from .readability_extractor import ReadabilityParser
from .social_extractor import SocialExtractor
from .url_normalizer import normalize_image_url
from .weixin_extractor import WeixinExtractor

__all__ = [
    "ArticleExtractor",
    "BlockType",
    "BoilerplateCleaner",
    "CaptionFinder",
    "ConfigurationError",
    "ContentBlock",
    "CorrelatedBridge",
    "ExtractResult",
    "ExtractionError",
    "ExtractionInProgressError",
    "ExtractionSession",
    "Extractor",
    "ExtractorManager",
    "ImageCandidate",
    "ImageClassifier",
    "ImageHarvester",
    "ImageKind",
    "LayoutProbe",
    "MarkupLayoutProbe",
    "PageSnapshot",
    "PermalinkBridge",
    "PermalinkCache",
    "PermalinkResolver",
    "QuotedPost",
    "QuotedPostExtractor",
    "ReadabilityCollaborator",
    "ReadabilityParser",
    "SnapshotBridge",
    "SocialExtractor",
    "WeixinExtractor",
    "extract",
    "find_quote_containers",
    "normalize_image_url",
    "parse_blocks",
]
