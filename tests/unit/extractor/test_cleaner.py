"""
Unit tests for boilerplate removal and markup normalization.
"""

import pytest
from bs4 import BeautifulSoup
from clipcore.extractor.cleaner import BoilerplateCleaner
from clipcore.extractor.dom import inner_text
from clipcore.extractor.markup import heading_text, normalize_markup, strip_duplicate_title


def root_of(html: str):
    return BeautifulSoup(f"<div id='root'>{html}</div>", "html.parser").find(id="root")


@pytest.fixture
def cleaner():
    return BoilerplateCleaner()


BODY = "<p>The body paragraph carries the actual story and must always survive cleaning.</p>"


class TestBoilerplateCleaner:
    """Test cases for BoilerplateCleaner."""

    def test_publish_date_removed_when_aggressive(self, cleaner):
        """Test metadata lines under the aggressive mode."""
        root = root_of(f'<div class="meta-row"><span>Published on 2026-01-11</span></div>{BODY}')
        cleaner.clean(root, aggressive=True)
        assert "Published on" not in root.get_text()
        assert "actual story" in root.get_text()

    def test_publish_date_kept_when_conservative(self, cleaner):
        """Test that conservative cleaning leaves metadata alone."""
        root = root_of(f'<div class="meta-row"><span>Published on 2026-01-11</span></div>{BODY}')
        cleaner.clean(root, aggressive=False)
        assert "Published on 2026-01-11" in root.get_text()

    def test_conservative_keeps_image_landmarks(self, cleaner):
        """Structural landmarks that may hold the lead image survive conservative cleaning."""
        html = f'<header><img src="https://example.com/lead.jpg"></header>{BODY}<footer>Footer links</footer>'
        conservative = root_of(html)
        cleaner.clean(conservative, aggressive=False)
        assert conservative.find("img") is not None

        aggressive = root_of(html)
        cleaner.clean(aggressive, aggressive=True)
        assert aggressive.find("img") is None
        assert aggressive.find("footer") is None

    def test_junk_selectors(self, cleaner):
        """Test ads, share bars and comment widgets."""
        root = root_of(
            '<div class="advertisement">Buy now</div><div class="social-share">Share</div>'
            f'<div id="comments">Comment thread</div>{BODY}'
        )
        cleaner.clean(root, aggressive=False)
        text = root.get_text()
        assert "Buy now" not in text
        assert "Share" not in text
        assert "Comment thread" not in text
        assert "actual story" in text

    def test_hidden_elements_removed_in_both_modes(self, cleaner):
        """Test hidden element removal."""
        for aggressive in (True, False):
            root = root_of(f'<p style="display:none">Hidden note</p>{BODY}')
            cleaner.clean(root, aggressive=aggressive)
            assert "Hidden note" not in root.get_text()

    def test_byline_leaf_directly_under_root(self, cleaner):
        """A metadata leaf with no removable container is removed by itself."""
        root = root_of(f"<p>作者：张三</p>{BODY}")
        cleaner.clean(root, aggressive=True)
        assert "作者" not in root.get_text()
        assert "actual story" in root.get_text()

    def test_author_card(self, cleaner):
        """Test written-by / reviewed-by cards."""
        root = root_of(f"<section><p>Written by Jane</p><p>Reviewed by Dr. Lee</p></section>{BODY}")
        cleaner.clean(root, aggressive=True)
        assert "Reviewed by" not in root.get_text()

    def test_promo_card(self, cleaner):
        """Test product promotion cards."""
        root = root_of(f"<div><p>Our product. Try it for free or learn more.</p></div>{BODY}")
        cleaner.clean(root, aggressive=True)
        assert "Try it for free" not in root.get_text()

    def test_faq_section(self, cleaner):
        """Test frequently-asked-questions sections."""
        root = root_of(f"{BODY}<section><h2>Frequently Asked Questions</h2><p>Q: Why?</p><p>A: Because.</p></section>")
        cleaner.clean(root, aggressive=True)
        assert "Frequently Asked" not in root.get_text()
        assert "actual story" in root.get_text()


class TestMarkupNormalization:
    """Test markup normalization and duplicate-title stripping."""

    def test_wrappers_become_paragraphs_and_attributes_pruned(self):
        """Test text-only wrappers, list paragraphs, bold spans and the allow-list."""
        root = root_of(
            '<div class="wrap"><div class="x" onclick="evil()">Inline text</div>'
            '<ul><li><p>one</p><p>two</p></li></ul>'
            '<p><span style="font-weight: 700">bold</span> <a href="https://e.com" class="l">link</a></p></div>'
        )
        normalize_markup(root, ("href", "src"))
        html = root.decode_contents()
        assert "<p>Inline text</p>" in html
        assert "<li>one<br/>two</li>" in html
        assert "<strong>bold</strong>" in html
        assert 'class="' not in html
        assert "onclick" not in html
        assert 'href="https://e.com"' in html

    def test_heading_text_drops_anchor_links(self):
        """Test anchor-link decoration removal."""
        heading = root_of('<h2>Getting started <a href="#getting-started">#</a></h2>').find("h2")
        assert heading_text(heading) == "Getting started"

    def test_strip_duplicate_heading(self):
        """Test that a heading repeating the title is removed."""
        root = root_of("<h1>Hello, World!</h1><p>Body</p>")
        assert strip_duplicate_title(root, "hello world") is True
        assert root.find("h1") is None

    def test_strip_short_leading_block(self):
        """Test a short leading block that repeats the title."""
        root = root_of("<p>Hello World</p><p>Body</p>")
        assert strip_duplicate_title(root, "Hello World") is True
        assert inner_text(root) == "Body"

    def test_long_leading_block_kept(self):
        """A leading block much longer than the title is body text."""
        root = root_of("<p>Hello World is how every tutorial starts, and this one does too.</p>")
        assert strip_duplicate_title(root, "Hello World") is False
        assert root.find("p") is not None
