"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for StyleCrawl tests.

Network access is never needed: the pipeline runs against an in-memory
transport and the URL guard against fake DNS resolvers.
"""

import os
import socket
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import pytest
from aiohttp.abc import AbstractResolver

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before any imports
os.environ["STYLECRAWL_ENVIRONMENT"] = "test"
os.environ["STYLECRAWL_LOGGING__CONSOLE_LOGGING"] = "false"


PUBLIC_ADDRESS = "93.184.216.34"
FEED_URL = "https://rss.blog.naver.com/testblog.xml"


# ============================================================================
# Settings
# ============================================================================


@pytest.fixture
def settings():
    """Settings with pacing and backoff delays removed for fast tests."""
    from stylecrawl.config.settings import (
        CrawlSettings,
        Environment,
        RetrySettings,
        StyleCrawlSettings,
        TransportSettings,
    )

    return StyleCrawlSettings(
        environment=Environment.TEST,
        crawl=CrawlSettings(request_delay_min=0.0, request_delay_max=0.0),
        transport=TransportSettings(
            feed_retry=RetrySettings(max_attempts=2, initial_delay=0.0, max_delay=0.0, timeout=5.0),
            page_retry=RetrySettings(max_attempts=3, initial_delay=0.0, max_delay=0.0, timeout=5.0),
        ),
    )


# ============================================================================
# DNS
# ============================================================================


def make_resolver(*answers: List[str]) -> Callable:
    """Async resolver returning successive answers, the last one repeating."""
    calls = []

    async def resolver(hostname: str) -> List[str]:
        calls.append(hostname)
        index = min(len(calls) - 1, len(answers) - 1)
        return list(answers[index])

    resolver.calls = calls
    return resolver


@pytest.fixture
def public_resolver():
    """Resolver that maps every host to a public address."""
    return make_resolver([PUBLIC_ADDRESS])


class StaticDNSResolver(AbstractResolver):
    """aiohttp resolver answering every lookup with fixed addresses.

    Stands in for a DNS server that has been rebound, so the connector
    sees whatever the test decides regardless of earlier lookups.
    """

    def __init__(self, *addresses: str):
        self.addresses = addresses
        self.lookups: List[str] = []
        self.closed = False

    async def resolve(self, host, port=0, family=socket.AF_INET):
        self.lookups.append(host)
        return [
            {
                "hostname": host,
                "host": address,
                "port": port,
                "family": socket.AF_INET6 if ":" in address else socket.AF_INET,
                "proto": 0,
                "flags": socket.AI_NUMERICHOST,
            }
            for address in self.addresses
        ]

    async def close(self):
        self.closed = True


# ============================================================================
# Fake transport
# ============================================================================


Response = Union[str, BaseException, Callable]


class FakeTransport:
    """In-memory transport keyed by URL.

    A value may be a body string, an exception instance to raise, an async
    callable producing the body, or a list consumed one item per call.
    Unknown URLs fail with HTTP 404.
    """

    def __init__(self, responses: Optional[Dict[str, Union[Response, List[Response]]]] = None):
        self.responses = dict(responses or {})
        self.calls: List[Dict[str, Optional[str]]] = []

    async def fetch(self, url, referer=None, *, kind="page", policy=None):
        from stylecrawl.utils.exceptions import ErrorCode, TransportError

        self.calls.append({"url": url, "referer": referer, "kind": kind})

        if url not in self.responses:
            raise TransportError(
                "HTTP 404: Not Found", url=url, status_code=404,
                error_code=ErrorCode.HTTP_STATUS, recoverable=False,
            )

        response = self.responses[url]
        if isinstance(response, list):
            response = response.pop(0) if len(response) > 1 else response[0]

        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return await response()
        return response

    def urls(self) -> List[str]:
        return [call["url"] for call in self.calls]


@pytest.fixture
def fake_transport_factory():
    """Build a ``FakeTransport`` from a URL -> response mapping."""
    return FakeTransport


# ============================================================================
# Documents
# ============================================================================


def make_rss(links: List[Optional[str]]) -> str:
    """RSS 2.0 document with one item per link; None gives an item without a link."""
    items = []
    for index, link in enumerate(links, 1):
        link_element = f"<link>{link}</link>" if link is not None else ""
        items.append(
            f"<item><title>Post {index}</title>{link_element}"
            f"<description>Summary {index}</description></item>"
        )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel><title>Test Blog</title>'
        "<link>https://blog.naver.com/testblog</link>"
        "<description>Test feed</description>"
        f"{''.join(items)}</channel></rss>"
    )


def make_post_html(text: str, container: str = 'class="se-main-container"') -> str:
    """Blog post page with ``text`` inside a content container plus page chrome."""
    return (
        "<html><head><title>Post</title><style>.x { color: red; }</style>"
        "<script>var tracking = 'abc';</script></head><body>"
        '<div class="header">Blog header</div>'
        f"<div {container}>{text}</div>"
        '<div class="u_cbox">Comment widget text</div>'
        "</body></html>"
    )


def words(length: int, word: str = "style") -> str:
    """Whitespace-separated text of exactly ``length`` characters."""
    unit = word + " "
    text = (unit * (length // len(unit) + 1))[:length]
    # Avoid a trailing space that cleaning would strip
    return text[:-1] + "x" if text.endswith(" ") else text
