"""
Candidate URL Expander
======================

Derives equivalent addresses for one blog post so the pipeline can fall
back from one representation to another. Pure and network-free.
"""

import re
from typing import List, Optional, Tuple
from urllib.parse import parse_qs, urlparse

from ..models import CandidateUrl, PageVariant


BLOG_HOSTS = {"blog.naver.com", "m.blog.naver.com"}
MOBILE_HOSTS = {"m.blog.naver.com"}

VIEWER_URL_TEMPLATE = "https://blog.naver.com/PostView.naver?blogId={blog_id}&logNo={log_no}"
MOBILE_URL_TEMPLATE = "https://m.blog.naver.com/{blog_id}/{log_no}"

_BLOG_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
_LOG_NO_PATTERN = re.compile(r"^\d+$")


def parse_post_identifiers(url: str) -> Optional[Tuple[str, str]]:
    """Return ``(blog_id, log_no)`` for a recognized post URL, else None.

    Recognized forms::

        https://blog.naver.com/{blogId}/{logNo}
        https://m.blog.naver.com/{blogId}/{logNo}
        https://blog.naver.com/PostView.naver?blogId={blogId}&logNo={logNo}
    """
    try:
        parsed = urlparse(url.strip())
        hostname = (parsed.hostname or "").lower()
    except ValueError:
        return None

    if hostname not in BLOG_HOSTS:
        return None

    query = parse_qs(parsed.query)
    segments = [segment for segment in parsed.path.split("/") if segment]

    blog_id = (query.get("blogId") or [None])[0]
    log_no = (query.get("logNo") or [None])[0]

    if segments and not segments[0].lower().endswith((".naver", ".nhn")):
        blog_id = blog_id or segments[0]
        if len(segments) > 1:
            log_no = log_no or segments[1]

    if not blog_id or not log_no:
        return None
    if not _BLOG_ID_PATTERN.match(blog_id) or not _LOG_NO_PATTERN.match(log_no):
        return None

    return blog_id, log_no


def page_variant_for(url: str) -> PageVariant:
    """Mobile pages use a different selector catalog."""
    try:
        hostname = (urlparse(url).hostname or "").lower()
    except ValueError:
        return PageVariant.DESKTOP
    return PageVariant.MOBILE if hostname in MOBILE_HOSTS else PageVariant.DESKTOP


def expand_candidate_urls(post_url: str) -> List[CandidateUrl]:
    """Candidate URLs for one post, best first.

    Recognized posts yield the viewer URL, the mobile URL and then the
    original; anything else yields the original alone. Duplicates keep
    their first position.
    """
    original = post_url.strip()
    urls: List[str] = []

    identifiers = parse_post_identifiers(original)
    if identifiers:
        blog_id, log_no = identifiers
        urls.append(VIEWER_URL_TEMPLATE.format(blog_id=blog_id, log_no=log_no))
        urls.append(MOBILE_URL_TEMPLATE.format(blog_id=blog_id, log_no=log_no))

    urls.append(original)

    candidates: List[CandidateUrl] = []
    seen = set()
    for url in urls:
        if url in seen:
            continue
        seen.add(url)
        candidates.append(CandidateUrl(url=url, priority=len(candidates), variant=page_variant_for(url)))

    return candidates


def enforce_https(url: str) -> str:
    """Rewrite an ``http://`` URL to ``https://``."""
    if url[:7].lower() == "http://":
        return "https://" + url[7:]
    return url


def downgrade_to_http(url: str) -> str:
    """Rewrite an ``https://`` URL to ``http://``."""
    if url[:8].lower() == "https://":
        return "http://" + url[8:]
    return url
