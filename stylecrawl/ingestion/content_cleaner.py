"""
Content Cleaner
===============

Normalizes extracted post text before it is kept for shaping.

This module provides:
- Residual HTML tag removal and entity decoding
- Whitespace normalization
- URL token removal
"""

import html
import re

from ..utils.logging import get_logger_for_component


class ContentCleaner:
    """
    Cleaner for extracted article text.

    The output is a single line of text: tags stripped, entities decoded,
    whitespace runs collapsed to one space and ``http...`` tokens dropped.
    """

    HTML_TAG_PATTERN = re.compile(r"<[^>]*>")
    WHITESPACE_PATTERN = re.compile(r"\s+", re.MULTILINE)
    URL_PATTERN = re.compile(r"http\S+")

    def __init__(self):
        self.logger = get_logger_for_component("content_cleaner")

    def strip_html_tags(self, text: str) -> str:
        """Remove anything that looks like a markup tag."""
        return self.HTML_TAG_PATTERN.sub("", text)

    def normalize_text(self, text: str) -> str:
        """Collapse whitespace and drop URL tokens."""
        text = self.WHITESPACE_PATTERN.sub(" ", text)
        text = self.URL_PATTERN.sub("", text)
        return text.strip()

    def clean_post_text(self, text: str) -> str:
        """
        Clean the winning extraction of one post.

        Args:
            text: Raw extracted text, possibly with leftover markup

        Returns:
            Cleaned single-line text, empty if nothing is left
        """
        if not text:
            return ""

        cleaned = self.normalize_text(html.unescape(self.strip_html_tags(text)))
        self.logger.debug(f"Cleaned post text: {len(text)} -> {len(cleaned)} chars")
        return cleaned


def clean_post_text(text: str) -> str:
    """Convenience function for one-off cleaning."""
    return ContentCleaner().clean_post_text(text)
