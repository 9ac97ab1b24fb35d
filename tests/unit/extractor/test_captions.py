"""
Unit tests for the caption heuristic.
"""

import pytest
from bs4 import BeautifulSoup
from clipcore.extractor.captions import CaptionFinder


@pytest.fixture
def finder():
    return CaptionFinder()


def caption_of(finder: CaptionFinder, html: str):
    soup = BeautifulSoup(html, "html.parser")
    return finder.find_caption(soup.find("img"))


class TestCaptionFinder:
    """Test cases for CaptionFinder."""

    def test_figcaption(self, finder):
        """Test the enclosing figure's caption."""
        html = '<figure><img src="a.jpg"><figcaption>图1：测试</figcaption></figure>'
        assert caption_of(finder, html) == "图1：测试"

    def test_placeholder_caption_rejected(self, finder):
        """Test that a generic placeholder is not a caption."""
        html = '<figure><img src="a.jpg"><figcaption>点击查看大图</figcaption></figure>'
        assert caption_of(finder, html) is None

    def test_nested_figure_caption_ignored(self, finder):
        """A caption belonging to a nested figure is not the outer image's caption."""
        html = (
            '<figure><img id="outer" src="a.jpg">'
            "<figure><img src='b.jpg'><figcaption>Inner chart</figcaption></figure></figure>"
        )
        soup = BeautifulSoup(html, "html.parser")
        assert finder._from_figure(soup.find(id="outer")) is None

    def test_described_by(self, finder):
        """Test an explicit accessible-description reference."""
        html = '<div><img src="a.jpg" aria-describedby="cap-1"></div><p id="cap-1">Sunset over the bay</p>'
        assert caption_of(finder, html) == "Sunset over the bay"

    def test_typed_sibling(self, finder):
        """Test a following sibling with a caption class."""
        html = '<div><img src="a.jpg"><p class="image-caption">Quarterly revenue by region</p></div>'
        assert caption_of(finder, html) == "Quarterly revenue by region"

    def test_sibling_of_thin_wrapper(self, finder):
        """Test the sibling of a thin wrapping element."""
        html = '<div><p><img src="a.jpg"></p><small>Photo: Jane Doe</small></div>'
        assert caption_of(finder, html) == "Photo: Jane Doe"

    def test_hidden_caption_ignored(self, finder):
        """Test that hidden text never becomes a caption."""
        html = '<figure><img src="a.jpg"><figcaption style="display: none">Hidden words</figcaption></figure>'
        assert caption_of(finder, html) is None

    def test_no_caption(self, finder):
        """Test an image without any caption signal."""
        assert caption_of(finder, '<article><p>Text <img src="a.jpg"> more text</p></article>') is None

    @pytest.mark.parametrize(
        "text, valid",
        [
            ("图1：测试", True),
            ("来源：路透社", True),
            ("Source: Reuters, click to view", True),
            ("Click to view", False),
            ("分享到朋友圈", False),
            ("image", False),
            ("x", False),
            ("a" * 81, False),
        ],
    )
    def test_validity_filter(self, finder, text, valid):
        """Test length, placeholder, stopword and credit-line rules."""
        assert finder.is_valid_caption(text) is valid
