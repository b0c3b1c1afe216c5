"""
Tests for the text normalizer.

Run with: pytest tests/test_normalizer.py -v
"""

import pytest

from chatbot_knowledge.normalizer import compress_whitespace, strip_html, truncate


class TestStripHtml:
    """Tests for strip_html."""

    def test_inline_markup_is_removed(self):
        assert strip_html("<p>Hello <b>world</b></p>") == "Hello world"

    def test_plain_text_passes_through(self):
        assert strip_html("Just text") == "Just text"

    @pytest.mark.parametrize("markup", [None, "", "   ", "\n\t"])
    def test_empty_input(self, markup):
        assert strip_html(markup) == ""

    def test_images_are_dropped(self):
        assert strip_html('<p>Hi<img src="logo.png" alt="logo"></p>') == "Hi"

    def test_scripts_and_styles_are_dropped(self):
        markup = "<style>p {color: red}</style><script>alert(1)</script><p>ok</p>"
        assert strip_html(markup) == "ok"

    def test_link_targets_are_ignored(self):
        text = strip_html('<p>See <a href="https://evpitch.com/pricing">our pricing</a>.</p>')
        assert text == "See our pricing."
        assert "https://" not in text

    def test_block_elements_get_their_own_lines(self):
        text = strip_html("<h1>Title</h1><p>First</p><ul><li>One</li><li>Two</li></ul>")
        lines = [line for line in text.splitlines() if line]
        assert lines == ["Title", "First", "One", "Two"]

    def test_blank_lines_collapse(self):
        text = strip_html("a<br><br><br><br><br>b")
        assert text == "a\n\nb"

    def test_non_breaking_spaces_collapse(self):
        assert strip_html("<p>30&nbsp;&nbsp; days</p>") == "30 days"

    def test_only_markup_is_empty(self):
        assert strip_html('<p><img src="x.png"></p><br>') == ""


class TestCompressWhitespace:
    """Tests for compress_whitespace."""

    def test_collapses_all_whitespace(self):
        assert compress_whitespace("  a \n\t b  ") == "a b"

    def test_none(self):
        assert compress_whitespace(None) == ""


class TestTruncate:
    """Tests for truncate."""

    def test_short_text_unchanged(self):
        assert truncate("short  text", 220) == "short text"

    def test_long_text_is_cut_with_marker(self):
        result = truncate("x" * 300, 220)
        assert len(result) == 220
        assert result == "x" * 217 + "..."

    def test_exact_length_is_not_cut(self):
        assert truncate("y" * 220, 220) == "y" * 220
