"""
Text Normalizer Module

Turns rich-text source fields (FAQ answers, page bodies, blog posts written in
the admin dashboard's editor) into plain text that can be chunked.

- Images, scripts and styles are dropped
- Link targets are ignored, anchor text is kept
- Block elements end up on their own lines
- Runs of blank lines collapse to a single blank line
"""

import re
from typing import Optional

from bs4 import BeautifulSoup

_SKIPPED_TAGS = ["img", "script", "style", "noscript", "iframe"]
_BLOCK_TAGS = [
    "p", "div", "section", "article", "header", "footer", "blockquote", "pre",
    "h1", "h2", "h3", "h4", "h5", "h6", "li", "ul", "ol", "tr", "table",
]
_INLINE_SPACE = re.compile(r"[ \t\r\f\v\u00a0]+")
_BLANK_LINES = re.compile(r"\n{3,}")
_WHITESPACE = re.compile(r"\s+")


def strip_html(markup: Optional[str]) -> str:
    """
    Strip markup from a rich-text field.

    Args:
        markup: HTML (or plain) text, may be None

    Returns:
        Plain text; empty string when nothing readable remains
    """
    if not markup or not markup.strip():
        return ""

    soup = BeautifulSoup(markup, "html.parser")
    for tag in soup(_SKIPPED_TAGS):
        tag.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for block in soup.find_all(_BLOCK_TAGS):
        block.insert_before("\n")
        block.insert_after("\n")

    text = soup.get_text()

    lines = [_INLINE_SPACE.sub(" ", line).strip() for line in text.split("\n")]
    text = "\n".join(lines)
    text = _BLANK_LINES.sub("\n\n", text)
    return text.strip()


def compress_whitespace(text: Optional[str]) -> str:
    """Collapse every whitespace run to a single space."""
    return _WHITESPACE.sub(" ", text or "").strip()


def truncate(text: str, max_length: int, marker: str = "...") -> str:
    """
    Whitespace-collapse text and cut it to max_length characters.

    The marker counts towards the limit.
    """
    normalized = compress_whitespace(text)
    if len(normalized) <= max_length:
        return normalized
    return normalized[: max_length - len(marker)] + marker
