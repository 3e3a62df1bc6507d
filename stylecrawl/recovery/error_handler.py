"""
StyleCrawl Error Classification
===============================

Maps low-level transport exceptions onto the crawl error taxonomy and
decides which failures are worth retrying and which ones justify a
protocol downgrade.
"""

import asyncio
import socket
import ssl
from typing import Optional

import aiohttp

from ..utils.exceptions import (
    ErrorCode,
    FetchTimeoutError,
    ProtocolFallbackError,
    TransportError,
    UnsafeTargetError,
    ValidationError,
)


RETRYABLE_CODES = frozenset(
    {
        ErrorCode.TIMEOUT,
        ErrorCode.CONNECTION_REFUSED,
        ErrorCode.DNS_NOT_FOUND,
        ErrorCode.CONNECTION_RESET,
    }
)

# Policy and input failures, and already-exhausted fallbacks
TERMINAL_ERRORS = (UnsafeTargetError, ValidationError, ProtocolFallbackError)


class ErrorClassifier:
    """Classifies transport failures for the retry and fallback layers."""

    # Exception types that always indicate a TLS-level failure
    TLS_EXCEPTION_TYPES = (
        ssl.SSLError,
        ssl.CertificateError,
        aiohttp.ClientSSLError,
        aiohttp.ServerFingerprintMismatch,
    )

    # Lower-cased code/message fragments that identify TLS failures.
    # Bare "ssl" is excluded: aiohttp connector messages contain "ssl:default".
    TLS_MESSAGE_PATTERNS = [
        "certificate",
        "cert_has_expired",
        "unable_to_verify",
        "self signed",
        "self-signed",
        "sslerror",
        "ssl error",
        "err_ssl",
        "tlsv1",
        "handshake",
        "eproto",
        "wrong version number",
    ]

    @classmethod
    def is_protocol_error(cls, exception: BaseException) -> bool:
        """True for certificate, handshake and verification failures.

        HTTP status errors are never protocol errors, whatever their text.
        """
        if isinstance(exception, TransportError):
            if exception.status_code is not None:
                return False
            if exception.error_code == ErrorCode.TLS_ERROR:
                return True
            if isinstance(exception, (FetchTimeoutError, ProtocolFallbackError)):
                return False
            cause = exception.__cause__
            if cause is not None and cause is not exception:
                return cls.is_protocol_error(cause)
            return False

        if isinstance(exception, cls.TLS_EXCEPTION_TYPES):
            return True

        if isinstance(exception, TERMINAL_ERRORS):
            return False

        code = str(getattr(exception, "code", "") or "").lower()
        message = str(exception).lower()
        return any(pattern in code or pattern in message for pattern in cls.TLS_MESSAGE_PATTERNS)

    @classmethod
    def is_retryable(cls, exception: BaseException) -> bool:
        """Retry on HTTP 429, any 5xx, timeouts, refused connections and DNS misses."""
        if isinstance(exception, TERMINAL_ERRORS):
            return False

        if isinstance(exception, TransportError):
            if exception.status_code is not None:
                return exception.status_code == 429 or exception.status_code >= 500
            return exception.error_code in RETRYABLE_CODES

        if isinstance(exception, (asyncio.TimeoutError, TimeoutError)):
            return True
        if isinstance(exception, (ConnectionRefusedError, ConnectionResetError, socket.gaierror)):
            return True

        return False

    @classmethod
    def to_transport_error(
        cls, exception: BaseException, url: Optional[str] = None
    ) -> TransportError:
        """Wrap an aiohttp/OS exception into a ``TransportError``.

        The original exception is kept as ``__cause__`` by the caller
        (``raise ... from exc``).
        """
        if isinstance(exception, TransportError):
            return exception

        message = f"{type(exception).__name__}: {exception}"

        if isinstance(exception, aiohttp.ClientResponseError):
            return TransportError(
                f"HTTP {exception.status}: {exception.message}",
                url=url,
                status_code=exception.status,
                error_code=ErrorCode.HTTP_STATUS,
            )

        # Checked before ClientConnectorError, certificate errors subclass it
        if isinstance(exception, cls.TLS_EXCEPTION_TYPES):
            return TransportError(message, url=url, error_code=ErrorCode.TLS_ERROR, recoverable=False)

        if isinstance(exception, (asyncio.TimeoutError, TimeoutError, aiohttp.ServerTimeoutError)):
            return FetchTimeoutError(message, url=url)

        if isinstance(exception, aiohttp.TooManyRedirects):
            return TransportError(message, url=url, error_code=ErrorCode.TOO_MANY_REDIRECTS, recoverable=False)

        os_error = getattr(exception, "os_error", exception)
        if isinstance(os_error, socket.gaierror):
            return TransportError(message, url=url, error_code=ErrorCode.DNS_NOT_FOUND)
        if isinstance(os_error, ConnectionRefusedError):
            return TransportError(message, url=url, error_code=ErrorCode.CONNECTION_REFUSED)
        if isinstance(os_error, ssl.SSLError):
            return TransportError(message, url=url, error_code=ErrorCode.TLS_ERROR, recoverable=False)

        if isinstance(exception, (aiohttp.ServerDisconnectedError, ConnectionResetError)):
            return TransportError(message, url=url, error_code=ErrorCode.CONNECTION_RESET)

        if cls.is_protocol_error(exception):
            return TransportError(message, url=url, error_code=ErrorCode.TLS_ERROR, recoverable=False)

        return TransportError(message, url=url, error_code=ErrorCode.NETWORK_ERROR, recoverable=False)

