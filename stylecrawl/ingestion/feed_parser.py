"""
Feed Parser
===========

Turns a syndication feed document into the ordered list of post links
the crawl will visit.
"""

import io
from typing import List, Optional, Union

import feedparser

from ..utils.logging import get_logger_for_component


# Feed bodies are decoded text by the time they reach the parser
_UTF8_HEADERS = {"content-type": "text/xml; charset=utf-8"}


def _entry_link(entry) -> Optional[str]:
    """Canonical link of an entry: ``link``, else the first alternate link."""
    link = (entry.get("link") or "").strip()
    if link:
        return link

    for candidate in entry.get("links", []) or []:
        if candidate.get("rel", "alternate") == "alternate":
            href = (candidate.get("href") or "").strip()
            if href:
                return href

    return None


def parse_feed_links(feed_body: Union[str, bytes], max_posts: int) -> List[str]:
    """Extract post links from a feed, in document order.

    Entries without a usable link are skipped. Empty, garbled or non-feed
    input yields an empty list; deciding whether that is fatal is up to
    the caller.

    Args:
        feed_body: Raw RSS/Atom document
        max_posts: Maximum number of links to return

    Returns:
        Up to ``max_posts`` trimmed links
    """
    logger = get_logger_for_component("feed_parser")

    if max_posts < 1 or not feed_body:
        return []

    data = feed_body.encode("utf-8") if isinstance(feed_body, str) else feed_body

    try:
        # A stream keeps feedparser from treating the body as a URL or path
        parsed = feedparser.parse(io.BytesIO(data), response_headers=_UTF8_HEADERS)
    except Exception as e:
        logger.warning(f"Feed document could not be parsed: {e}")
        return []

    if parsed.bozo and not parsed.entries:
        logger.warning(f"Feed parsing error: {parsed.get('bozo_exception')}")
        return []

    links: List[str] = []
    for entry in parsed.entries:
        link = _entry_link(entry)
        if not link:
            logger.debug("Skipping feed entry without a link")
            continue

        links.append(link)
        if len(links) >= max_posts:
            break

    logger.debug(f"Discovered {len(links)} post links (requested {max_posts})")
    return links
