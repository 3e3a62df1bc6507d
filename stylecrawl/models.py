"""
StyleCrawl Data Models
======================

Values that live for the duration of a single crawl: the validated request,
candidate URLs, per-page extraction results and the final result.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .config.settings import StyleCrawlSettings
from .utils.validators import URLValidator


# Sentinel selector name for whole-document fallback extraction
FALLBACK_SELECTOR = "body (fallback)"


class PageVariant(str, Enum):
    """Rendering variant of a post page, selects the selector catalog."""
    DESKTOP = "desktop"
    MOBILE = "mobile"


class PostState(str, Enum):
    """Processing state of one discovered post."""
    PENDING = "pending"
    TRYING = "trying"
    EXTRACTED = "extracted"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class CandidateUrl:
    """One equivalent address for a post, 0 is the highest priority."""
    url: str
    priority: int
    variant: PageVariant = PageVariant.DESKTOP


@dataclass
class ExtractionResult:
    """Outcome of extracting one fetched page."""
    text: str
    selector_used: str
    diagnostics: Optional[Dict[str, int]] = None

    @property
    def is_fallback(self) -> bool:
        return self.selector_used == FALLBACK_SELECTOR


class CrawlRequest(BaseModel):
    """Validated, immutable crawl input."""

    model_config = ConfigDict(frozen=True)

    feed_url: str
    max_posts: int = Field(ge=1)
    debug: bool = False

    @classmethod
    def build(
        cls,
        feed_url: str,
        max_posts: Optional[int] = None,
        debug: bool = False,
        settings: Optional[StyleCrawlSettings] = None,
    ) -> "CrawlRequest":
        """Apply the feed policy gate, clamp the post count and gate debug mode.

        Raises:
            ValidationError: If the feed URL is malformed
            UnsafeTargetError: If the feed URL is outside the policy
        """
        if settings is None:
            from .config.settings import get_settings
            settings = get_settings()

        url = URLValidator.validate_feed_url(
            feed_url,
            allowed_hosts=settings.security.allowed_feed_hosts,
            path_suffix=settings.security.feed_path_suffix,
        )

        requested = settings.crawl.default_max_posts if max_posts is None else int(max_posts)
        clamped = min(max(requested, 1), settings.crawl.max_posts_limit)

        return cls(
            feed_url=url,
            max_posts=clamped,
            debug=bool(debug) and settings.debug_allowed(),
        )


class CrawlResult(BaseModel):
    """The crawl output handed to the caller for persistence."""

    merged_text: str
    samples: List[str] = Field(default_factory=list)
    post_count: int = Field(default=0, ge=0, description="Cleaned posts obtained")
    requested_posts: int = Field(default=0, ge=0, description="Post links discovered in the feed")

    @property
    def approximate_tokens(self) -> int:
        """Rough token estimate of the merged corpus."""
        return int(len(self.merged_text) / 2.5)
