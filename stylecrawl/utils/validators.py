"""
StyleCrawl URL Guard
====================

Entry-point policy gate for feed URLs and the network-layer SSRF check
applied before every outbound request, plus the resolver that repeats
that check on the addresses the HTTP connector actually dials.
"""

import asyncio
import ipaddress
import socket
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union
from urllib.parse import urlparse

from aiohttp.abc import AbstractResolver
from aiohttp.resolver import DefaultResolver

from .exceptions import ErrorCode, TransportError, UnsafeTargetError, ValidationError
from .logging import get_logger_for_component


IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
Resolver = Callable[[str], Awaitable[List[str]]]

# Ranges blocked even where ``ipaddress`` flags disagree across Python versions
BLOCKED_NETWORKS = [
    ipaddress.ip_network('0.0.0.0/8'),
    ipaddress.ip_network('10.0.0.0/8'),
    ipaddress.ip_network('100.64.0.0/10'),      # Carrier-grade NAT
    ipaddress.ip_network('127.0.0.0/8'),
    ipaddress.ip_network('169.254.0.0/16'),
    ipaddress.ip_network('172.16.0.0/12'),
    ipaddress.ip_network('192.168.0.0/16'),
    ipaddress.ip_network('::1/128'),
    ipaddress.ip_network('::/128'),
    ipaddress.ip_network('fc00::/7'),           # Unique local
    ipaddress.ip_network('fe80::/10'),          # Link local
]


logger = get_logger_for_component('url_guard')


def _parse_ip(value: str) -> Optional[IPAddress]:
    """Parse a literal IP address, tolerating brackets and IPv6 zone ids."""
    candidate = value.strip().strip('[]').split('%', 1)[0]
    try:
        return ipaddress.ip_address(candidate)
    except ValueError:
        return None


def is_private_address(address: Union[str, IPAddress]) -> bool:
    """True when ``address`` is private, loopback, link-local or otherwise non-public.

    IPv4-mapped IPv6 addresses (``::ffff:10.0.0.1``) are judged by their IPv4 part.
    Unparseable input is treated as unsafe.
    """
    ip = address if isinstance(address, (ipaddress.IPv4Address, ipaddress.IPv6Address)) else _parse_ip(address)
    if ip is None:
        return True

    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped

    if any(ip.version == network.version and ip in network for network in BLOCKED_NETWORKS):
        return True

    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_unspecified
        or ip.is_reserved
        or ip.is_multicast
    )


def is_localhost_name(hostname: str) -> bool:
    """True for ``localhost`` and any ``*.localhost`` name."""
    name = hostname.lower().rstrip('.')
    return name == 'localhost' or name.endswith('.localhost')


async def resolve_host(hostname: str) -> List[str]:
    """Resolve ``hostname`` through the running loop without blocking it."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, None, type=socket.SOCK_STREAM)
    return list(dict.fromkeys(info[4][0] for info in infos))


class GuardedResolver(AbstractResolver):
    """aiohttp resolver that only hands public addresses to the connector.

    The connector connects to exactly the addresses returned here, so the
    check and the connection use the same DNS answer. Any private answer
    rejects the whole lookup.
    """

    def __init__(self, resolver: Optional[AbstractResolver] = None):
        self._resolver = resolver or DefaultResolver()

    async def resolve(
        self, host: str, port: int = 0, family: socket.AddressFamily = socket.AF_INET
    ) -> List[Dict[str, Any]]:
        if is_localhost_name(host):
            raise UnsafeTargetError(f"Blocked local host name: {host}")

        answers = await self._resolver.resolve(host, port, family)
        for answer in answers:
            address = answer["host"]
            if is_private_address(address):
                logger.warning(f"SSRF blocked at connect time: {host} -> {address}")
                raise UnsafeTargetError(
                    f"Host {host} resolves to private address {address}",
                    resolved_address=address,
                )

        return answers

    async def close(self) -> None:
        await self._resolver.close()


class URLValidator:
    """URL validation for the crawl entry point and every outbound request."""

    ALLOWED_SCHEMES = {'http', 'https'}

    @classmethod
    def validate_feed_url(
        cls,
        url: str,
        allowed_hosts: Iterable[str],
        path_suffix: str = '.xml',
    ) -> str:
        """Apply the feed entry policy.

        Args:
            url: Feed URL supplied by the caller
            allowed_hosts: Hosts a feed may be served from
            path_suffix: Suffix the feed path must end with

        Returns:
            The trimmed URL

        Raises:
            ValidationError: If the URL is empty or malformed
            UnsafeTargetError: If the URL is outside the feed policy
        """
        if not url or not isinstance(url, str) or not url.strip():
            raise ValidationError(
                "Feed URL is required and must be a string",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name="feed_url"
            )

        url = url.strip()

        try:
            parsed = urlparse(url)
            hostname = parsed.hostname
        except ValueError as e:
            raise ValidationError(
                f"Invalid URL format: {e}",
                field_name="feed_url"
            ) from e

        if parsed.scheme.lower() not in cls.ALLOWED_SCHEMES or not hostname:
            raise ValidationError(
                "Feed URL must be an absolute http(s) URL",
                field_name="feed_url"
            )

        allowed = {host.lower() for host in allowed_hosts}
        if hostname.lower() not in allowed or not parsed.path.endswith(path_suffix):
            raise UnsafeTargetError(
                f"Feed URL not allowed by policy: {url}",
                url=url,
                error_code=ErrorCode.FEED_HOST_NOT_ALLOWED,
                user_message=(
                    "This feed URL is not supported. Only supported blog "
                    "platform feeds can be used."
                ),
            )

        return url

    @classmethod
    async def assert_fetchable(cls, url: str, resolver: Optional[Resolver] = None) -> None:
        """Reject requests that would reach a private network target.

        Literal hosts are checked directly, names are resolved and every
        resolved address is checked. This is a fail-fast pre-check; the
        connection itself is pinned to checked addresses by
        ``GuardedResolver``, so a name that rebinds after this call still
        cannot reach a private target.

        Raises:
            UnsafeTargetError: If the target is not a public address
            TransportError: If DNS resolution fails (retryable)
        """
        try:
            parsed = urlparse(url)
            hostname = parsed.hostname
        except ValueError as e:
            raise UnsafeTargetError(f"Malformed URL: {url}", url=url) from e

        if parsed.scheme.lower() not in cls.ALLOWED_SCHEMES:
            raise UnsafeTargetError(f"Scheme not allowed: {parsed.scheme!r}", url=url)

        if not hostname:
            raise UnsafeTargetError(f"URL has no host: {url}", url=url)

        if is_localhost_name(hostname):
            raise UnsafeTargetError(f"Blocked local host name: {hostname}", url=url)

        literal = _parse_ip(hostname)
        if literal is not None:
            if is_private_address(literal):
                raise UnsafeTargetError(
                    f"Blocked private address: {hostname}", url=url, resolved_address=str(literal)
                )
            return

        resolve = resolver or resolve_host
        try:
            addresses = await resolve(hostname)
        except (socket.gaierror, OSError) as e:
            raise TransportError(
                f"DNS lookup failed for {hostname}: {e}",
                url=url,
                error_code=ErrorCode.DNS_NOT_FOUND,
            ) from e

        if not addresses:
            raise TransportError(
                f"DNS lookup returned no addresses for {hostname}",
                url=url,
                error_code=ErrorCode.DNS_NOT_FOUND,
            )

        for address in addresses:
            if is_private_address(address):
                logger.warning(f"SSRF blocked (DNS rebinding): {hostname} -> {address}")
                raise UnsafeTargetError(
                    f"Host {hostname} resolves to private address {address}",
                    url=url,
                    resolved_address=address,
                )
