"""
StyleCrawl Custom Exceptions
============================

Exception hierarchy for the crawl pipeline with error codes, context
information, and user-friendly error messages.
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration errors (C001-C099)
    CONFIG_INVALID = "C001"
    CONFIG_MISSING = "C002"

    # Validation errors (V001-V099)
    VALIDATION_REQUIRED_FIELD = "V001"
    VALIDATION_INVALID_FORMAT = "V002"
    VALIDATION_OUT_OF_RANGE = "V003"

    # Security errors (S001-S099)
    UNSAFE_TARGET = "S001"
    FEED_HOST_NOT_ALLOWED = "S002"

    # Transport errors (T001-T099)
    TIMEOUT = "T001"
    CONNECTION_REFUSED = "T002"
    DNS_NOT_FOUND = "T003"
    CONNECTION_RESET = "T004"
    TLS_ERROR = "T005"
    HTTP_STATUS = "T006"
    TOO_MANY_REDIRECTS = "T007"
    PROTOCOL_FALLBACK_EXHAUSTED = "T008"
    NETWORK_ERROR = "T009"

    # Crawl errors (F001-F099)
    CRAWLING_FAILED = "F001"
    EMPTY_FEED = "F002"
    NO_EXTRACTABLE_POSTS = "F003"


class StyleCrawlError(Exception):
    """Base exception for all StyleCrawl errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        recoverable: bool = False,
    ):
        """Initialize StyleCrawl error.

        Args:
            message: Technical error message for logging
            error_code: Categorized error code
            context: Additional context information
            user_message: User-friendly error message
            recoverable: Whether retrying the same operation may succeed
        """
        super().__init__(message)
        self.error_code = error_code
        self.context = context or {}
        self.user_message = user_message or message
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": str(self),
            "user_message": self.user_message,
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        """String representation with error code."""
        if self.error_code:
            return f"[{self.error_code.value}] {super().__str__()}"
        return super().__str__()


class ConfigurationError(StyleCrawlError):
    """Configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.CONFIG_INVALID),
            context=context,
            user_message=kwargs.pop("user_message", f"Configuration error: {message}"),
            **kwargs,
        )


class ValidationError(StyleCrawlError):
    """Malformed caller input."""

    def __init__(self, message: str, field_name: Optional[str] = None, **kwargs):
        """Initialize validation error.

        Args:
            message: Error message
            field_name: Field name that failed validation
            **kwargs: Additional arguments for StyleCrawlError
        """
        context = kwargs.pop("context", {})
        if field_name:
            context["field_name"] = field_name

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.VALIDATION_INVALID_FORMAT),
            context=context,
            user_message=kwargs.pop(
                "user_message", f"Invalid {field_name or 'input'}: {message}"
            ),
            recoverable=False,
            **kwargs,
        )


class UnsafeTargetError(StyleCrawlError):
    """Request target rejected by the URL guard (SSRF or feed policy).

    Never retried.
    """

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        resolved_address: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if url:
            context["url"] = url
        if resolved_address:
            context["resolved_address"] = resolved_address

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.UNSAFE_TARGET),
            context=context,
            user_message=kwargs.pop(
                "user_message", "This address cannot be requested."
            ),
            recoverable=False,
            **kwargs,
        )


class TransportError(StyleCrawlError):
    """A single outbound fetch failed.

    ``status_code`` is set for HTTP-level failures, ``error_code`` carries the
    transport-level classification (timeout, refused, DNS, TLS, ...).
    """

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if url:
            context["url"] = url
        if status_code is not None:
            context["status_code"] = status_code

        self.url = url
        self.status_code = status_code

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.NETWORK_ERROR),
            context=context,
            user_message=kwargs.pop("user_message", "Network request failed"),
            recoverable=kwargs.pop("recoverable", True),
            **kwargs,
        )


class FetchTimeoutError(TransportError):
    """An attempt did not finish within its timeout."""

    def __init__(self, message: str, timeout: Optional[float] = None, **kwargs):
        self.timeout = timeout
        context = kwargs.pop("context", {})
        if timeout is not None:
            context["timeout_seconds"] = timeout

        super().__init__(
            message=message,
            error_code=ErrorCode.TIMEOUT,
            context=context,
            user_message=kwargs.pop(
                "user_message", "The request timed out. Check the network connection."
            ),
            **kwargs,
        )


class ProtocolFallbackError(TransportError):
    """Both the secure and the downgraded attempt failed."""

    def __init__(self, https_error: Exception, http_error: Exception, url: Optional[str] = None):
        self.https_error = https_error
        self.http_error = http_error

        super().__init__(
            message=(
                "All protocol attempts failed:\n"
                f"  - HTTPS: {https_error}\n"
                f"  - HTTP: {http_error}"
            ),
            url=url,
            error_code=ErrorCode.PROTOCOL_FALLBACK_EXHAUSTED,
            user_message="The site could not be reached over HTTPS or HTTP.",
            recoverable=False,
        )


class CrawlingFailedError(StyleCrawlError):
    """Terminal crawl failure reported to the caller."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if feed_url:
            context["feed_url"] = feed_url

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.CRAWLING_FAILED),
            context=context,
            user_message=kwargs.pop(
                "user_message", "An unexpected error occurred while crawling the feed."
            ),
            recoverable=kwargs.pop("recoverable", False),
            **kwargs,
        )


class EmptyFeedError(CrawlingFailedError):
    """Feed parsed but yielded no post links."""

    def __init__(self, feed_url: Optional[str] = None, **kwargs):
        super().__init__(
            message=f"No post links found in feed {feed_url}",
            feed_url=feed_url,
            error_code=ErrorCode.EMPTY_FEED,
            user_message=(
                "No posts were found in the feed. Check the URL and that the "
                "blog is public."
            ),
            **kwargs,
        )


class NoExtractablePostsError(CrawlingFailedError):
    """Every discovered post failed extraction or was too short."""

    def __init__(
        self, feed_url: Optional[str] = None, attempted: int = 0, **kwargs
    ):
        context = kwargs.pop("context", {})
        context["attempted_posts"] = attempted

        super().__init__(
            message=f"No post content could be extracted from {attempted} posts",
            feed_url=feed_url,
            error_code=ErrorCode.NO_EXTRACTABLE_POSTS,
            context=context,
            user_message=(
                "Post content could not be extracted. The blog may be private "
                "or access may be restricted."
            ),
            **kwargs,
        )


def get_user_friendly_message(exception: Exception) -> str:
    """Get user-friendly error message for any exception.

    Args:
        exception: Exception to get message for

    Returns:
        User-friendly error message
    """
    if isinstance(exception, StyleCrawlError):
        return exception.user_message

    return "An unexpected error occurred. Please try again later."
