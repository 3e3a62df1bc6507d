"""
Extraction Engine
=================

Selector-priority extraction of a post body from a fetched page. Each
catalog selector is scored by the length of its matched text; the longest
one above the content threshold wins, otherwise the whole document text
is used.
"""

import re
from typing import Dict, List, Optional, Sequence

from bs4 import BeautifulSoup

from ..models import FALLBACK_SELECTOR, ExtractionResult, PageVariant
from ..utils.logging import get_logger_for_component


DESKTOP_POST_SELECTORS = [
    ".se-main-container",
    ".se_component_wrap.sect_dsc",
    "#postViewArea",
    ".post-view",
    "#post-area",
    "article",
    ".post_ct",
]

MOBILE_POST_SELECTORS = [
    ".se-main-container",
    ".post_ct",
    "#contents-area",
    ".se-module.se-module-text",
    "article",
]

# Removed before any text is measured
NOISE_SELECTORS = [
    "style",
    "script",
    "noscript",
    "iframe",
    ".naver-splugin",      # Share plugin
    ".u_cbox",             # Comment box
    "#comment",
    ".reply",
    '[data-role="ad"]',
    ".ad_area",
    ".ad_wrap",
]

DEFAULT_MIN_CONTENT_LENGTH = 200


def selectors_for(variant: PageVariant) -> List[str]:
    """Selector catalog for a page variant."""
    if variant == PageVariant.MOBILE:
        return list(MOBILE_POST_SELECTORS)
    return list(DESKTOP_POST_SELECTORS)


class ExtractionEngine:
    """Picks the best content container of a page."""

    EXCESS_NEWLINES_PATTERN = re.compile(r"\n{3,}")

    def __init__(self, min_content_length: int = DEFAULT_MIN_CONTENT_LENGTH):
        self.min_content_length = min_content_length
        self.logger = get_logger_for_component("extractor")
        self.parser = "html.parser"

    def extract(self, html: str, selectors: Sequence[str], debug: bool = False) -> ExtractionResult:
        """Extract the article text from ``html``.

        Args:
            html: Page body
            selectors: Content selectors in priority order
            debug: Include per-selector text lengths in the result

        Returns:
            ExtractionResult; ``selector_used`` is ``FALLBACK_SELECTOR`` when
            no selector exceeded the content threshold
        """
        soup = BeautifulSoup(html or "", self.parser)
        self._remove_noise(soup)

        lengths: Dict[str, int] = {}
        best_selector: Optional[str] = None
        best_text = ""

        for selector in selectors:
            text = self._selector_text(soup, selector)
            lengths[selector] = len(text)

            if len(text) <= self.min_content_length:
                continue
            # Strictly longer, so ties keep the earlier selector
            if best_selector is None or len(text) > len(best_text):
                best_selector = selector
                best_text = text

        if best_selector is None:
            root = soup.body or soup
            fallback_text = self._normalize(root.get_text())
            lengths["body"] = len(fallback_text)
            self.logger.debug(
                f"No selector exceeded {self.min_content_length} chars, "
                f"using whole document ({len(fallback_text)} chars)"
            )
            return ExtractionResult(
                text=fallback_text,
                selector_used=FALLBACK_SELECTOR,
                diagnostics=lengths if debug else None,
            )

        return ExtractionResult(
            text=best_text,
            selector_used=best_selector,
            diagnostics=lengths if debug else None,
        )

    def _remove_noise(self, soup: BeautifulSoup) -> None:
        """Drop scripts, frames, share plugins, comments and ads."""
        for selector in NOISE_SELECTORS:
            # extract() is safe for matches nested inside an earlier match
            for element in soup.select(selector):
                element.extract()

    def _selector_text(self, soup: BeautifulSoup, selector: str) -> str:
        """Text of every element matched by ``selector``, joined in document order."""
        try:
            elements = soup.select(selector)
        except ValueError as e:
            # soupsieve raises SelectorSyntaxError, a ValueError subclass
            self.logger.warning(f"Invalid selector {selector!r}: {e}")
            return ""

        if not elements:
            return ""
        return self._normalize("".join(element.get_text() for element in elements))

    def _normalize(self, text: str) -> str:
        return self.EXCESS_NEWLINES_PATTERN.sub("\n\n", text).strip()
