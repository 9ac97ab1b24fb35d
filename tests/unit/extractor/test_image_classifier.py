"""
Unit tests for the avatar / decorative image classifier and layout probe.
"""

import pytest
from bs4 import BeautifulSoup
from clipcore.config import ExtractionSettings
from clipcore.extractor.image_classifier import ImageClassifier, image_source
from clipcore.extractor.layout import MarkupLayoutProbe, effective_size, is_rendered, parse_inline_style


def first_img(html: str):
    return BeautifulSoup(html, "html.parser").find("img")


@pytest.fixture
def classifier():
    return ImageClassifier()


class TestImageClassifier:
    """Test cases for ImageClassifier."""

    def test_small_icon_excluded(self, classifier):
        """Test that a 16x16 image is classified as an icon."""
        img = first_img('<div><p><img src="https://example.com/icon.png" width="16" height="16"></p></div>')
        assert classifier.exclusion_reason(img) == "icon-size"
        assert classifier.is_excluded(img) is True

    def test_large_content_image_included(self, classifier):
        """Test that an 800x500 image in article prose is content."""
        img = first_img('<article><p><img src="https://example.com/chart.png" width="800" height="500"></p></article>')
        assert classifier.exclusion_reason(img) is None

    def test_author_photo_marker(self, classifier):
        """Test the platform authorship marker."""
        img = first_img('<img data-testid="authorPhoto" src="https://example.com/a.png" width="400" height="400">')
        assert classifier.exclusion_reason(img) == "author-photo-marker"

    def test_medium_thumbnail(self, classifier):
        """Test CDN thumbnail renditions."""
        img = first_img('<img src="https://miro.medium.com/v2/resize:fill:88:88/1*abc.png">')
        assert classifier.exclusion_reason(img) == "cdn-thumbnail"

        small = first_img('<img src="https://miro.medium.com/v2/resize:fit:64/1*abc.png">')
        assert classifier.exclusion_reason(small) == "cdn-thumbnail"

        large = first_img('<img src="https://miro.medium.com/v2/resize:fit:1400/1*abc.png">')
        assert classifier.exclusion_reason(large) is None

    def test_avatar_class(self, classifier):
        """Test class keyword detection."""
        img = first_img('<img class="user-avatar" src="https://example.com/a.png">')
        assert classifier.exclusion_reason(img) == "avatar-class"

    @pytest.mark.parametrize(
        "alt, reason",
        [
            ("Author avatar", "avatar-alt"),
            ("profile photo of Jane", "avatar-alt"),
            ("decorative background", "decorative-alt"),
        ],
    )
    def test_alt_patterns(self, classifier, alt, reason):
        """Test avatar and decorative alt text."""
        img = first_img(f'<img alt="{alt}" src="https://example.com/a.png" width="600" height="400">')
        assert classifier.exclusion_reason(img) == reason

    def test_circular_container(self, classifier):
        """Test that an image inside a rounded-full wrapper is an avatar."""
        img = first_img('<div class="rounded-full"><img src="https://example.com/p.png" width="300" height="300"></div>')
        assert classifier.exclusion_reason(img) == "circular-container"

    def test_circular_border_radius(self, classifier):
        """Test circular shape from inline styles."""
        img = first_img('<span style="border-radius: 50%"><img src="https://example.com/p.png" width="300" height="300"></span>')
        assert classifier.exclusion_reason(img) == "circular-container"

    def test_clipped_small_box(self, classifier):
        """Test small fixed-size utility classes combined with clipping."""
        img = first_img('<div class="overflow-hidden w-10 h-10"><img src="https://example.com/p.png"></div>')
        assert classifier.exclusion_reason(img) == "clipped-small-box"

    def test_author_photo_card(self, classifier):
        """Test square rounded-corner images in the author band with a name-like alt."""
        img = first_img(
            '<div class="rounded-lg"><img alt="Jane Doe" src="https://example.com/j.png" width="150" height="150"></div>'
        )
        assert classifier.exclusion_reason(img) == "author-photo-card"

    def test_non_content_region(self, classifier):
        """Test images inside author or sidebar regions."""
        img = first_img('<aside class="sidebar-widget"><img src="https://example.com/x.png" width="600" height="400"></aside>')
        assert classifier.exclusion_reason(img) == "non-content-region"

    def test_byline_region(self, classifier):
        """Test byline phrases in an ancestor's text."""
        html = (
            "<div><img src='https://example.com/x.png' width='600' height='400'>"
            "<span>Written by Jane Doe, senior editor covering infrastructure and developer tools.</span></div>"
        )
        assert classifier.exclusion_reason(first_img(html)) == "byline-region"

    def test_avatar_url(self, classifier):
        """Test avatar URL markers."""
        img = first_img('<img src="https://www.gravatar.com/avatar/abc?s=400" width="400" height="300">')
        assert classifier.exclusion_reason(img) == "avatar-url"

    def test_thresholds_are_configurable(self):
        """Test that the icon threshold follows the settings."""
        img = first_img('<img src="https://example.com/icon.png" width="60" height="60">')
        assert ImageClassifier().exclusion_reason(img) is None
        assert ImageClassifier(ExtractionSettings(icon_max_px=64)).exclusion_reason(img) == "icon-size"

    def test_image_source_prefers_lazy_over_placeholder(self):
        """Test that a data: placeholder src defers to the lazy attribute."""
        img = first_img('<img src="data:image/gif;base64,R0lGOD" data-src="https://example.com/real.jpg">')
        assert image_source(img) == "https://example.com/real.jpg"


class TestMarkupLayoutProbe:
    """Test layout information recovered from markup."""

    def test_inline_style_parsing(self):
        """Test declaration parsing including !important."""
        assert parse_inline_style("display: none !important; Width: 20px") == {"display": "none", "width": "20px"}

    def test_effective_size_order(self):
        """Natural size wins over rendered and declared sizes."""
        layout = MarkupLayoutProbe()
        img = first_img(
            '<img width="100" height="50" style="width: 300px; height: 150px" '
            'data-natural-width="1200" data-natural-height="600">'
        )
        assert effective_size(layout, img) == (1200.0, 600.0)

    def test_unknown_size(self):
        """Test that an image without size signals reports zero."""
        assert effective_size(MarkupLayoutProbe(), first_img('<img src="a.png">')) == (0.0, 0.0)

    def test_hidden_ancestor_not_rendered(self):
        """Test visibility through hidden ancestors and zero opacity."""
        soup = BeautifulSoup(
            '<div hidden><span id="a">x</span></div><span id="b" style="opacity: 0">y</span><span id="c">z</span>',
            "html.parser",
        )
        layout = MarkupLayoutProbe()
        assert not is_rendered(layout, soup.find(id="a"))
        assert not is_rendered(layout, soup.find(id="b"))
        assert is_rendered(layout, soup.find(id="c"))
