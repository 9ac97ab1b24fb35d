"""
Test configuration for ClipCore.

Fixtures provide settings, parsed pages and representative snapshots of
the page shapes the extractors handle.
"""

# Standard library imports
import asyncio
import os
from typing import AsyncGenerator, Callable, Optional

# Third-party imports
import pytest
import pytest_asyncio

# Local imports
from clipcore.config import Config, ExtractionSettings, HeuristicRules, LazyConfig
from clipcore.extractor.page import PageSnapshot
from clipcore.extractor.protocols import ReadabilityArticle

# Keep developer config files and environment out of the tests
for _name in list(os.environ):
    if _name.startswith("CLIPCORE_"):
        del os.environ[_name]


# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests across modules")


# ============================================================================
# Core Test Fixtures
# ============================================================================


@pytest_asyncio.fixture(autouse=True)
async def cleanup_tasks() -> AsyncGenerator[None, None]:
    """Cancel any task a test leaves behind so pending bridge lookups cannot leak."""
    tasks_before = asyncio.all_tasks()
    yield
    new_tasks = asyncio.all_tasks() - tasks_before

    for task in new_tasks:
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass


@pytest.fixture(autouse=True)
def reset_lazy_config():
    """The module-level settings proxy must not carry state between tests."""
    LazyConfig.reset()
    yield
    LazyConfig.reset()


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def settings() -> ExtractionSettings:
    return ExtractionSettings()


@pytest.fixture
def rules() -> HeuristicRules:
    return HeuristicRules()


@pytest.fixture
def test_config() -> Config:
    """Default configuration without any file or environment overrides."""
    return Config()


# ============================================================================
# Page Fixtures
# ============================================================================


@pytest.fixture
def make_page() -> Callable[..., PageSnapshot]:
    """Factory for parsed pages."""

    def _make(html: str, url: str = "https://example.com/post") -> PageSnapshot:
        return PageSnapshot.parse(html, url)

    return _make


class FakeReadability:
    """Readability collaborator returning a fixed article and recording its input."""

    def __init__(self, article: Optional[ReadabilityArticle] = None) -> None:
        self.article = article
        self.calls: list[tuple[str, Optional[str]]] = []

    def parse(self, html: str, url: Optional[str] = None) -> Optional[ReadabilityArticle]:
        self.calls.append((html, url))
        return self.article


@pytest.fixture
def fake_readability() -> Callable[[Optional[ReadabilityArticle]], FakeReadability]:
    return FakeReadability


@pytest.fixture
def simple_article_html() -> str:
    """One article: heading, two paragraphs and a content image inside the second."""
    return """
    <!DOCTYPE html>
    <html>
    <head><title>T - Example Blog</title></head>
    <body>
        <nav><a href="/">Home</a><a href="/about">About</a></nav>
        <article>
            <h1>T</h1>
            <p>The first paragraph explains what the article is about.</p>
            <p>The second paragraph holds the figure.
               <img src="/images/chart.png" width="800" height="500"></p>
        </article>
        <footer>Copyright Example</footer>
    </body>
    </html>
    """


@pytest.fixture
def long_article_html() -> str:
    """A realistic article long enough for readability-lxml to accept."""
    paragraphs = "\n".join(
        f"<p>Paragraph {index} discusses the migration of the storage layer, the reasons "
        f"behind it, the measurements taken before and after, and the lessons the team "
        f"learned while rolling the change out across every region.</p>"
        for index in range(1, 7)
    )
    return f"""
    <html>
    <head>
        <title>Migrating the storage layer</title>
        <meta property="og:image" content="https://cdn.example.com/og.jpg">
    </head>
    <body>
        <header class="site-header"><a href="/">Example Engineering</a></header>
        <div class="sidebar"><p>Related links</p></div>
        <article class="post-content">
            <h1>Migrating the storage layer</h1>
            {paragraphs}
            <figure>
                <img src="https://cdn.example.com/diagram.png" width="1200" height="700">
                <figcaption>图1：存储架构</figcaption>
            </figure>
        </article>
    </body>
    </html>
    """


@pytest.fixture
def weixin_html() -> str:
    return """
    <html>
    <head><title>公众号文章</title></head>
    <body>
        <div id="page-content">
            <h1 id="activity-name">  深度学习入门  </h1>
            <a id="js_name">技术周刊</a>
            <em id="publish_time">2026-01-11</em>
            <div id="js_content">
                <p>第一段正文内容，介绍文章背景。</p>
                <p><img data-src="https://mmbiz.qpic.cn/mmbiz_png/abc/640?wx_fmt=png" width="900" height="600"></p>
                <p>作者：某某</p>
                <div class="js_share_content">分享</div>
            </div>
        </div>
    </body>
    </html>
    """
