"""Text normalization applied before embedding and matching."""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

# Applied in order; each entry is (pattern, replacement).
_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    # fenced code, then inline code
    (re.compile(r"```[\s\S]*?```"), ""),
    (re.compile(r"`.*?`"), ""),
    # markdown headers, images and links keep their text
    (re.compile(r"#{1,6}\s*(.*)"), r"\1"),
    (re.compile(r"!\[(.*?)\]\(.*?\)"), r"\1"),
    (re.compile(r"\[(.*?)\]\(.*?\)"), r"\1"),
    # URLs reduced to domain+path
    (re.compile(r"(https?://)?(www\.)?([^\s]+\.[^\s]+)"), r"\3"),
    # chat mentions, then HTML tags
    (re.compile(r"<@[!&]?\d+>"), ""),
    (re.compile(r"<[^>]*>"), ""),
    # horizontal rules
    (re.compile(r"^\s*[-*_]{3,}\s*$", re.MULTILINE), ""),
    # block and line comments
    (re.compile(r"/\*[\s\S]*?\*/"), ""),
    (re.compile(r"//.*"), ""),
    (re.compile(r"\s+"), " "),
    (re.compile(r"\n{3,}"), "\n\n"),
    # anything outside letters, digits, whitespace and URL punctuation
    (re.compile(r"[^a-zA-Z0-9\s\-_./:?=&]"), ""),
)


def preprocess(content: object) -> str:
    """Normalize *content* for embedding.

    Pure and total: non-string or empty input yields ``""``.
    """
    if not content or not isinstance(content, str):
        logger.debug("preprocess received empty or non-text input")
        return ""

    text = content
    for pattern, replacement in _RULES:
        text = pattern.sub(replacement, text)
    return text.strip().lower()
