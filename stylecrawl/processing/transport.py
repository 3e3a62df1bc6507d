"""
Resilient Transport
===================

The single outbound fetch primitive used for the feed document and every
post candidate: URL guard on every hop, HTTPS-first with one HTTP
downgrade on TLS failures, per-attempt timeouts and retry with backoff.
"""

import random
import ssl
from enum import Enum
from typing import Dict, Optional, Protocol, runtime_checkable
from urllib.parse import urljoin

import aiohttp
import certifi
from aiohttp.abc import AbstractResolver

from ..config.settings import StyleCrawlSettings, get_settings
from ..ingestion.url_expander import downgrade_to_http, enforce_https
from ..recovery.error_handler import ErrorClassifier
from ..recovery.retry_logic import RetryManager, RetryPolicy, log_retry_observer
from ..utils.exceptions import ErrorCode, ProtocolFallbackError, TransportError
from ..utils.logging import get_logger_for_component
from ..utils.validators import GuardedResolver, Resolver, URLValidator


ACCEPT_HTML = (
    "text/html,application/xhtml+xml,application/xml;q=0.9,"
    "image/avif,image/webp,image/apng,*/*;q=0.8"
)
ACCEPT_FEED = "application/rss+xml, application/xml, text/xml;q=0.9, */*;q=0.8"

REDIRECT_STATUSES = {301, 302, 303, 307, 308}


class FetchKind(str, Enum):
    """What is being fetched; selects the retry budget and Accept header."""
    FEED = "feed"
    PAGE = "page"


ACCEPT_BY_KIND = {
    FetchKind.FEED: ACCEPT_FEED,
    FetchKind.PAGE: ACCEPT_HTML,
}


@runtime_checkable
class Transport(Protocol):
    """What the pipeline needs from a transport; tests inject fakes."""

    async def fetch(
        self,
        url: str,
        referer: Optional[str] = None,
        *,
        kind: FetchKind = FetchKind.PAGE,
        policy: Optional[RetryPolicy] = None,
    ) -> str:
        ...


class ResilientTransport:
    """aiohttp-backed transport owned by the caller.

    Use as an async context manager, or call ``open()``/``close()``.
    Composition per fetch is ``retry(timeout(protocol_fallback(guard + GET)))``.
    The session this transport creates resolves names through
    ``GuardedResolver``, so the address connected to is the address checked.
    """

    def __init__(
        self,
        settings: Optional[StyleCrawlSettings] = None,
        session: Optional[aiohttp.ClientSession] = None,
        resolver: Optional[Resolver] = None,
        rng: Optional[random.Random] = None,
        retry_manager: Optional[RetryManager] = None,
        dns_resolver: Optional[AbstractResolver] = None,
    ):
        """Initialize the transport.

        Args:
            settings: Application settings (default: cached settings)
            session: Pre-built session, not closed by this transport and
                responsible for its own connect-time address checks
            resolver: Async DNS lookup for the pre-request URL guard
            rng: Random source for User-Agent choice and jitter
            retry_manager: Retry runner (default built from ``rng``)
            dns_resolver: aiohttp resolver wrapped by the connector's
                ``GuardedResolver`` (default: aiohttp's default resolver)
        """
        self.settings = settings or get_settings()
        self.logger = get_logger_for_component("transport")
        self.resolver = resolver
        self.dns_resolver = dns_resolver
        self.rng = rng or random.Random()
        self.retry_manager = retry_manager or RetryManager(rng=self.rng)

        transport_settings = self.settings.transport
        self.max_redirects = transport_settings.max_redirects
        self.policies: Dict[FetchKind, RetryPolicy] = {
            FetchKind.FEED: RetryPolicy.from_settings(
                transport_settings.feed_retry, on_retry=log_retry_observer("transport", kind="feed")
            ),
            FetchKind.PAGE: RetryPolicy.from_settings(
                transport_settings.page_retry, on_retry=log_retry_observer("transport", kind="page")
            ),
        }

        # SSL context for secure requests
        self.ssl_context = ssl.create_default_context(cafile=certifi.where())

        self._session = session
        self._owns_session = session is None
        self._guarded_resolver: Optional[GuardedResolver] = None

    async def __aenter__(self) -> "ResilientTransport":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def open(self) -> None:
        """Create the HTTP session if none was supplied."""
        if self._session is not None:
            return

        self._guarded_resolver = GuardedResolver(self.dns_resolver)
        connector = aiohttp.TCPConnector(
            ssl=self.ssl_context,
            limit_per_host=self.settings.transport.connections_per_host,
            resolver=self._guarded_resolver,
        )
        self._session = aiohttp.ClientSession(
            connector=connector,
            headers={"Accept-Encoding": "gzip, deflate"},
        )
        self._owns_session = True

    async def close(self) -> None:
        """Close the session if this transport created it."""
        if self._session is not None and self._owns_session:
            await self._session.close()
        if self._guarded_resolver is not None:
            await self._guarded_resolver.close()
            self._guarded_resolver = None
        if self._owns_session:
            self._session = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("ResilientTransport is not open")
        return self._session

    async def fetch(
        self,
        url: str,
        referer: Optional[str] = None,
        *,
        kind: FetchKind = FetchKind.PAGE,
        policy: Optional[RetryPolicy] = None,
    ) -> str:
        """Fetch ``url`` and return the decoded body.

        Args:
            url: Target URL, tried as HTTPS first
            referer: Referer header (default from settings)
            kind: Feed or page; picks the configured retry budget and Accept header
            policy: Explicit retry policy, overriding the one for ``kind``

        Raises:
            UnsafeTargetError: Target resolves to a private address
            ProtocolFallbackError: HTTPS and HTTP both failed
            TransportError: Last failure once retries are exhausted
        """
        headers = self.build_headers(referer, ACCEPT_BY_KIND[kind])
        return await self.retry_manager.retry_async(
            self._fetch_with_fallback, url, headers, policy=policy or self.policies[kind]
        )

    def build_headers(self, referer: Optional[str] = None, accept: Optional[str] = None) -> Dict[str, str]:
        """Browser-like request headers with a random User-Agent."""
        return {
            "User-Agent": self.rng.choice(self.settings.transport.user_agents),
            "Referer": referer or self.settings.transport.default_referer,
            "Accept": accept or ACCEPT_HTML,
            "Accept-Language": "ko-KR,ko;q=0.9,en-US;q=0.8,en;q=0.7",
            "Upgrade-Insecure-Requests": "1",
        }

    async def _fetch_with_fallback(self, url: str, headers: Dict[str, str]) -> str:
        """HTTPS first; on a TLS-class failure, one attempt over HTTP."""
        https_url = enforce_https(url)

        try:
            return await self._get(https_url, headers)
        except Exception as https_error:
            if not ErrorClassifier.is_protocol_error(https_error):
                raise

            http_url = downgrade_to_http(https_url)
            if http_url == https_url:
                raise

            self.logger.warning(f"HTTPS failed with a TLS error, retrying over HTTP: {http_url}")
            try:
                return await self._get(http_url, headers)
            except Exception as http_error:
                raise ProtocolFallbackError(https_error, http_error, url=url) from http_error

    async def _get(self, url: str, headers: Dict[str, str]) -> str:
        """Single GET with manually followed, guarded redirects."""
        current = url

        for _ in range(self.max_redirects + 1):
            await URLValidator.assert_fetchable(current, resolver=self.resolver)

            try:
                async with self.session.get(current, headers=headers, allow_redirects=False) as response:
                    if response.status in REDIRECT_STATUSES:
                        location = response.headers.get("Location")
                        if not location:
                            raise TransportError(
                                f"HTTP {response.status} redirect without Location",
                                url=current,
                                status_code=response.status,
                                error_code=ErrorCode.HTTP_STATUS,
                                recoverable=False,
                            )
                        self.logger.debug(f"Following redirect {current} -> {location}")
                        current = urljoin(current, location)
                        continue

                    if response.status >= 400:
                        raise TransportError(
                            f"HTTP {response.status}: {response.reason}",
                            url=current,
                            status_code=response.status,
                            error_code=ErrorCode.HTTP_STATUS,
                            recoverable=response.status == 429 or response.status >= 500,
                        )

                    return await response.text(errors="replace")

            except (aiohttp.ClientError, OSError) as e:
                raise ErrorClassifier.to_transport_error(e, url=current) from e

        raise TransportError(
            f"Too many redirects (>{self.max_redirects}) starting from {url}",
            url=url,
            error_code=ErrorCode.TOO_MANY_REDIRECTS,
            recoverable=False,
        )
