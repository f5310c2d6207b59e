"""
Text helpers for panel fields: HTML-to-text cleanup and truncation.
"""

import re

from bs4 import BeautifulSoup

DEFAULT_MAX_LENGTH = 40

# Typographic characters the Pipedrive panel renders poorly
_TYPOGRAPHIC = str.maketrans({
    " ": " ",
    "‘": "'",
    "’": "'",
    "“": '"',
    "”": '"',
    "–": "-",
    "—": "-",
    "…": "...",
})

_WHITESPACE = re.compile(r"\s+")


def truncate_text(text: str | None, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """Cut ``text`` to ``max_length`` characters, ending with an ellipsis when cut."""
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def html_to_text(html: str | None) -> str:
    """
    Flatten message HTML to a single line of plain text.

    Images, scripts and styles are dropped; link text is kept.
    """
    if not html:
        return ""

    soup = BeautifulSoup(html, "html.parser")

    for tag in soup.find_all(["img", "script", "style", "head"]):
        tag.decompose()

    text = soup.get_text(separator=" ").translate(_TYPOGRAPHIC)
    return _WHITESPACE.sub(" ", text).strip()


def clean_html_content(html: str | None, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """Plain-text preview of message HTML, truncated for the panel."""
    return truncate_text(html_to_text(html), max_length)
