"""
Unit tests for the shared tree helpers.
"""

from unittest.mock import patch

import pytest
from bs4 import BeautifulSoup
from clipcore.extractor.dom import FRAGMENT_ROOT_ATTR, inner_text, parse_fragment
from clipcore.extractor.exceptions import ExtractionError


class TestParseFragment:
    """Test cases for parse_fragment."""

    def test_children_are_the_fragment(self):
        root = parse_fragment("<p>One</p><p>Two</p>")

        assert root.has_attr(FRAGMENT_ROOT_ATTR)
        assert [child.name for child in root.find_all(recursive=False)] == ["p", "p"]

    def test_lxml_parser(self):
        """Test that lxml's html/body wrapping does not hide the container."""
        root = parse_fragment("<p>One</p>", "lxml")
        assert root.decode_contents() == "<p>One</p>"

    def test_missing_container_raises(self):
        """A parser that loses the container is an extraction error, not an assertion."""
        with patch.object(BeautifulSoup, "find", return_value=None):
            with pytest.raises(ExtractionError, match="fragment container"):
                parse_fragment("<p>One</p>")


class TestInnerText:
    """Test cases for the rendered-text approximation."""

    def test_blocks_break_lines(self):
        root = parse_fragment("<p>First  line</p><div>Second<br>third</div><script>var x = 1;</script>")
        assert inner_text(root) == "First line\nSecond\nthird"

    def test_inline_markup_joins(self):
        root = parse_fragment("<p><strong>Update:</strong> we moved.</p>")
        assert inner_text(root) == "Update: we moved."
