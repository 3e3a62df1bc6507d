"""
Crawl Pipeline Orchestrator
===========================

Drives a crawl from the feed document to the shaped result: link
discovery, per-post candidate fallback, extraction, cleaning and shaping.
Per-candidate and per-post failures are absorbed; only an unreachable or
empty feed, or a crawl with no usable post, fails the whole call.
"""

import asyncio
import random
from typing import Awaitable, Callable, List, Optional

from ..config.settings import StyleCrawlSettings, get_settings
from ..ingestion.content_cleaner import ContentCleaner
from ..ingestion.feed_parser import parse_feed_links
from ..ingestion.url_expander import expand_candidate_urls
from ..models import CrawlRequest, CrawlResult, PostState
from ..utils.exceptions import (
    CrawlingFailedError,
    EmptyFeedError,
    ErrorCode,
    NoExtractablePostsError,
    ProtocolFallbackError,
    StyleCrawlError,
    TransportError,
    UnsafeTargetError,
    ValidationError,
)
from ..utils.logging import LoggerAdapter, PerformanceLogger, get_logger_for_component
from .debug_capture import DebugCapture
from .extractor import ExtractionEngine, selectors_for
from .output_shaper import OutputShaper
from .transport import FetchKind, ResilientTransport, Transport


class CrawlPipeline:
    """Sequential crawl of one feed through an injected transport."""

    def __init__(
        self,
        transport: Transport,
        settings: Optional[StyleCrawlSettings] = None,
        extractor: Optional[ExtractionEngine] = None,
        cleaner: Optional[ContentCleaner] = None,
        shaper: Optional[OutputShaper] = None,
        rng: Optional[random.Random] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """Initialize the pipeline.

        Args:
            transport: Outbound fetch primitive, owned by the caller
            settings: Application settings (default: cached settings)
            extractor: Extraction engine (default from settings)
            cleaner: Post text cleaner
            shaper: Output shaper (default from settings)
            rng: Random source for request pacing and sample order
            sleep: Awaitable sleep used for request pacing
        """
        self.transport = transport
        self.settings = settings or get_settings()
        self.rng = rng or random.Random()
        self._sleep = sleep or asyncio.sleep

        crawl_settings = self.settings.crawl
        self.min_text_length = crawl_settings.min_text_length
        self.min_post_length = crawl_settings.min_post_length
        self.delay_range = (crawl_settings.request_delay_min, crawl_settings.request_delay_max)

        self.extractor = extractor or ExtractionEngine(crawl_settings.min_content_length)
        self.cleaner = cleaner or ContentCleaner()
        self.shaper = shaper or OutputShaper(
            sample_cap=crawl_settings.max_sample_length,
            corpus_cap=crawl_settings.max_merged_length,
            separator=crawl_settings.merge_separator,
            rng=self.rng,
        )

    async def run(self, request: CrawlRequest) -> CrawlResult:
        """Crawl the feed described by ``request``.

        Raises:
            UnsafeTargetError: The feed URL targets a private address
            CrawlingFailedError: The feed could not be fetched
            EmptyFeedError: The feed has no post links
            NoExtractablePostsError: No post produced usable text
        """
        logger = get_logger_for_component("pipeline", feed_url=request.feed_url)
        # Re-checked here for requests constructed without CrawlRequest.build
        debug = request.debug and self.settings.debug_allowed()
        capture = DebugCapture(
            self.settings.crawl.debug_dir,
            max_posts=self.settings.crawl.debug_capture_posts,
            enabled=debug,
        )

        with PerformanceLogger(logger, "crawl", feed_url=request.feed_url):
            try:
                links = await self._discover_links(request, logger)

                posts: List[str] = []
                for index, link in enumerate(links):
                    text = await self._process_post(index, len(links), link, request, capture, debug)
                    if text is None:
                        continue

                    cleaned = self.cleaner.clean_post_text(text)
                    if len(cleaned) > self.min_post_length:
                        posts.append(cleaned)
                        logger.info(f"[{index + 1}/{len(links)}] Kept post ({len(cleaned)} chars)")
                    else:
                        logger.info(
                            f"[{index + 1}/{len(links)}] Discarded short post "
                            f"({len(cleaned)} <= {self.min_post_length} chars)"
                        )
            finally:
                await capture.drain()

            if not posts:
                raise NoExtractablePostsError(feed_url=request.feed_url, attempted=len(links))

            samples, merged_text = self.shaper.shape(posts)
            result = CrawlResult(
                merged_text=merged_text,
                samples=samples,
                post_count=len(posts),
                requested_posts=len(links),
            )

            logger.info(
                f"Crawl complete: {result.post_count}/{len(links)} posts, "
                f"merged text {len(merged_text):,} chars (~{result.approximate_tokens:,} tokens)"
            )
            return result

    async def _discover_links(self, request: CrawlRequest, logger: LoggerAdapter) -> List[str]:
        """Fetch the feed and return its post links."""
        try:
            body = await self.transport.fetch(request.feed_url, kind=FetchKind.FEED)
        except (UnsafeTargetError, ValidationError):
            raise
        except Exception as e:
            logger.error(f"Feed fetch failed: {e}")
            raise self._feed_failure(request.feed_url, e) from e

        links = parse_feed_links(body, request.max_posts)
        if not links:
            raise EmptyFeedError(feed_url=request.feed_url)

        logger.info(f"Discovered {len(links)} posts (requested {request.max_posts})")
        return links

    async def _process_post(
        self,
        index: int,
        total: int,
        link: str,
        request: CrawlRequest,
        capture: DebugCapture,
        debug: bool = False,
    ) -> Optional[str]:
        """Try each candidate URL of one post; return the first usable text."""
        logger = get_logger_for_component(
            "pipeline", feed_url=request.feed_url, post_url=link, post=f"{index + 1}/{total}"
        )
        prefix = f"[{index + 1}/{total}]"

        state = PostState.PENDING
        candidates = expand_candidate_urls(link)
        logger.info(f"{prefix} Processing post ({state.value}, {len(candidates)} candidates): {link}")

        for candidate in candidates:
            state = PostState.TRYING
            candidate_logger = logger.bind(candidate=candidate.priority + 1, candidate_url=candidate.url)
            candidate_logger.debug(f"{prefix} {state.value} candidate #{candidate.priority + 1}: {candidate.url}")

            try:
                html = await self.transport.fetch(candidate.url, referer=link, kind=FetchKind.PAGE)
                capture.capture(index, candidate.priority, html)

                result = self.extractor.extract(html, selectors_for(candidate.variant), debug=debug)
                if result.diagnostics is not None:
                    candidate_logger.debug(
                        f"{prefix} selector={result.selector_used} lengths={result.diagnostics}"
                    )

                if len(result.text) > self.min_text_length:
                    state = PostState.EXTRACTED
                    candidate_logger.info(
                        f"{prefix} {state.value} {len(result.text)} chars "
                        f"from candidate #{candidate.priority + 1}"
                    )
                    return result.text

                candidate_logger.warning(
                    f"{prefix} Text too short ({len(result.text)} chars), trying next candidate"
                )

            except StyleCrawlError as e:
                candidate_logger.warning(f"{prefix} Candidate failed: {candidate.url}: {e}")
            except Exception as e:
                candidate_logger.warning(
                    f"{prefix} Candidate failed unexpectedly: {candidate.url}: {e}", exc_info=True
                )
            finally:
                await self._pause()

        state = PostState.EXHAUSTED
        logger.warning(f"{prefix} {state.value}: no candidate produced usable text, skipping")
        return None

    async def _pause(self) -> None:
        """Randomized spacing between requests to the same host."""
        low, high = self.delay_range
        if high <= 0:
            return
        await self._sleep(self.rng.uniform(low, high))

    @staticmethod
    def _feed_failure(feed_url: str, error: BaseException) -> CrawlingFailedError:
        """Map a feed fetch failure onto a caller-facing error."""
        cause = error.http_error if isinstance(error, ProtocolFallbackError) else error
        status = getattr(cause, "status_code", None)

        if status == 404:
            user_message = "The feed could not be found. Check the URL."
        elif status == 429:
            user_message = "Too many requests, access is temporarily blocked. Try again later."
        elif isinstance(cause, TransportError) and cause.error_code == ErrorCode.TIMEOUT:
            user_message = "The request timed out. Check the network connection."
        else:
            user_message = "An unexpected error occurred while crawling the feed."

        return CrawlingFailedError(
            f"Feed fetch failed: {error}",
            feed_url=feed_url,
            user_message=user_message,
            context={"cause": type(error).__name__, "status_code": status},
        )


async def crawl(
    feed_url: str,
    max_posts: Optional[int] = None,
    debug: bool = False,
    transport: Optional[Transport] = None,
    settings: Optional[StyleCrawlSettings] = None,
) -> CrawlResult:
    """Crawl a blog feed and return shaped text for style analysis.

    The feed URL is validated before any network call. When no transport
    is given, one is created for this call and closed afterwards.
    """
    settings = settings or get_settings()
    request = CrawlRequest.build(feed_url, max_posts=max_posts, debug=debug, settings=settings)

    if transport is not None:
        return await CrawlPipeline(transport, settings=settings).run(request)

    async with ResilientTransport(settings=settings) as owned_transport:
        return await CrawlPipeline(owned_transport, settings=settings).run(request)
