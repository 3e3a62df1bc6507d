#!/usr/bin/env python3
"""
Crawl Pipeline Tests for StyleCrawl
===================================

Tests for the feed-to-result orchestration: link discovery, candidate
fallback, partial yield, failure mapping and request pacing. All network
traffic goes through an in-memory transport.
"""

import asyncio
import random
from unittest.mock import AsyncMock, Mock

import pytest

from conftest import FEED_URL, FakeTransport, make_post_html, make_rss, words

from stylecrawl.config.settings import CrawlSettings, Environment
from stylecrawl.models import CrawlRequest
from stylecrawl.processing.extractor import ExtractionEngine
from stylecrawl.processing.pipeline import CrawlPipeline, crawl
from stylecrawl.processing.transport import FetchKind
from stylecrawl.utils.exceptions import (
    CrawlingFailedError,
    EmptyFeedError,
    ErrorCode,
    FetchTimeoutError,
    NoExtractablePostsError,
    ProtocolFallbackError,
    TransportError,
    UnsafeTargetError,
    ValidationError,
)


SEPARATOR = "\n\n---\n\n"


def post(log_no):
    return f"https://blog.naver.com/testblog/{log_no}"


def viewer(log_no):
    return f"https://blog.naver.com/PostView.naver?blogId=testblog&logNo={log_no}"


def mobile(log_no):
    return f"https://m.blog.naver.com/testblog/{log_no}"


def candidates(log_no):
    return [viewer(log_no), mobile(log_no), post(log_no)]


def timeout(url):
    return FetchTimeoutError(f"Request timed out after 5s: {url}", url=url, timeout=5.0)


def build_request(settings, max_posts=None, debug=False):
    return CrawlRequest.build(FEED_URL, max_posts=max_posts, debug=debug, settings=settings)


async def run_pipeline(transport, settings, **kwargs):
    request = build_request(settings, **{k: kwargs.pop(k) for k in ("max_posts", "debug") if k in kwargs})
    pipeline = CrawlPipeline(transport, settings=settings, rng=random.Random(1), **kwargs)
    return await pipeline.run(request)


class TestEndToEnd:
    """Test a complete crawl."""

    @pytest.mark.asyncio
    async def test_two_good_posts_and_one_timeout(self, settings):
        """Posts that time out on every candidate are skipped without failing the crawl."""
        first, second = words(2000, "first"), words(1800, "second")
        responses = {
            FEED_URL: make_rss([post(1), post(2), post(3)]),
            viewer(1): make_post_html(first),
            viewer(2): make_post_html(second),
        }
        responses.update({url: timeout(url) for url in candidates(3)})
        transport = FakeTransport(responses)

        result = await run_pipeline(transport, settings, max_posts=3)

        assert result.merged_text.split(SEPARATOR) == [first, second]
        assert sorted(result.samples) == sorted([first[:1500] + "...", second[:1500] + "..."])
        assert result.post_count == 2
        assert result.requested_posts == 3
        assert transport.urls() == [FEED_URL, viewer(1), viewer(2)] + candidates(3)

    @pytest.mark.asyncio
    async def test_feed_requested_as_feed(self, settings):
        transport = FakeTransport({
            FEED_URL: make_rss([post(1)]),
            viewer(1): make_post_html(words(500)),
        })

        await run_pipeline(transport, settings)

        assert transport.calls[0]["kind"] == FetchKind.FEED
        assert transport.calls[1]["kind"] == FetchKind.PAGE

    @pytest.mark.asyncio
    async def test_max_posts_limits_fetches(self, settings):
        responses = {FEED_URL: make_rss([post(n) for n in range(1, 6)])}
        responses.update({viewer(n): make_post_html(words(400)) for n in range(1, 6)})
        transport = FakeTransport(responses)

        result = await run_pipeline(transport, settings, max_posts=2)

        assert result.post_count == 2
        assert transport.urls() == [FEED_URL, viewer(1), viewer(2)]

    @pytest.mark.asyncio
    async def test_merged_text_keeps_feed_order(self, settings):
        """A post recovered from a later candidate keeps its feed position."""
        first, second = words(600, "alpha"), words(600, "beta")
        transport = FakeTransport({
            FEED_URL: make_rss([post(1), post(2)]),
            mobile(1): make_post_html(first),
            viewer(2): make_post_html(second),
        })

        result = await run_pipeline(transport, settings)

        assert result.merged_text == first + SEPARATOR + second

    @pytest.mark.asyncio
    async def test_crawl_with_injected_transport(self, settings):
        text = words(900)
        transport = FakeTransport({
            FEED_URL: make_rss([post(1)]),
            viewer(1): make_post_html(text),
        })

        result = await crawl(FEED_URL, max_posts=5, transport=transport, settings=settings)

        assert result.merged_text == text
        assert result.samples == [text]
        assert result.approximate_tokens == int(900 / 2.5)


class TestCandidateFallback:
    """Test per-post candidate iteration."""

    @pytest.mark.asyncio
    async def test_falls_back_to_mobile_with_original_referer(self, settings):
        text = words(700)
        transport = FakeTransport({
            FEED_URL: make_rss([post(1)]),
            viewer(1): TransportError("HTTP 500", url=viewer(1), status_code=500, error_code=ErrorCode.HTTP_STATUS),
            mobile(1): make_post_html(text, container='class="post_ct"'),
        })

        result = await run_pipeline(transport, settings)

        assert result.merged_text == text
        assert transport.urls()[1:] == [viewer(1), mobile(1)]
        assert [call["referer"] for call in transport.calls[1:]] == [post(1), post(1)]

    @pytest.mark.asyncio
    async def test_short_extraction_tries_next_candidate(self, settings):
        """A page with too little text is treated like a failed candidate."""
        text = words(500)
        transport = FakeTransport({
            FEED_URL: make_rss([post(1)]),
            viewer(1): "<html><body><p>Private post</p></body></html>",
            mobile(1): make_post_html(text),
        })

        result = await run_pipeline(transport, settings)

        assert result.merged_text == text
        assert transport.urls()[1:] == [viewer(1), mobile(1)]

    @pytest.mark.asyncio
    async def test_original_url_is_last_resort(self, settings):
        text = words(500)
        transport = FakeTransport({
            FEED_URL: make_rss([post(1)]),
            viewer(1): timeout(viewer(1)),
            mobile(1): ProtocolFallbackError(
                TransportError("tls", error_code=ErrorCode.TLS_ERROR),
                TransportError("refused", error_code=ErrorCode.CONNECTION_REFUSED),
                url=mobile(1),
            ),
            post(1): make_post_html(text),
        })

        result = await run_pipeline(transport, settings)

        assert result.merged_text == text
        assert transport.urls()[1:] == candidates(1)

    @pytest.mark.asyncio
    async def test_unexpected_candidate_error_absorbed(self, settings):
        text = words(500)
        transport = FakeTransport({
            FEED_URL: make_rss([post(1)]),
            viewer(1): RuntimeError("boom"),
            mobile(1): make_post_html(text),
        })

        result = await run_pipeline(transport, settings)

        assert result.post_count == 1

    @pytest.mark.asyncio
    async def test_unrecognized_post_url_fetched_directly(self, settings):
        link = "https://example.com/posts/hello"
        text = words(500)
        transport = FakeTransport({
            FEED_URL: make_rss([link]),
            link: make_post_html(text, container='id="postViewArea"'),
        })

        result = await run_pipeline(transport, settings)

        assert result.merged_text == text
        assert transport.urls() == [FEED_URL, link]

    @pytest.mark.asyncio
    async def test_pause_after_every_candidate(self, settings):
        """Successful and failed candidate fetches are both followed by a pause."""
        paced = settings.model_copy(update={
            "crawl": CrawlSettings(request_delay_min=0.2, request_delay_max=0.7),
        })
        sleep = AsyncMock()
        transport = FakeTransport({
            FEED_URL: make_rss([post(1), post(2)]),
            mobile(1): make_post_html(words(500)),
            viewer(2): make_post_html(words(500)),
        })

        await run_pipeline(transport, paced, sleep=sleep)

        # viewer(1) fails, mobile(1) succeeds, viewer(2) succeeds
        assert sleep.await_count == 3
        for call in sleep.await_args_list:
            assert 0.2 <= call.args[0] <= 0.7


class TestPartialYield:
    """Test how per-post failures add up."""

    @pytest.mark.asyncio
    async def test_failed_posts_skipped(self, settings):
        responses = {FEED_URL: make_rss([post(n) for n in range(1, 6)])}
        responses.update({viewer(n): make_post_html(words(400)) for n in (1, 3, 5)})
        transport = FakeTransport(responses)

        result = await run_pipeline(transport, settings)

        assert result.post_count == 3
        assert result.requested_posts == 5
        assert len(result.merged_text.split(SEPARATOR)) == 3

    @pytest.mark.asyncio
    async def test_short_post_discarded_after_cleaning(self, settings):
        """Text accepted from a page can still be too short once cleaned."""
        transport = FakeTransport({
            FEED_URL: make_rss([post(1), post(2)]),
            viewer(1): make_post_html(words(150)),
            viewer(2): make_post_html(words(400)),
        })

        result = await run_pipeline(transport, settings)

        assert result.post_count == 1
        assert result.requested_posts == 2
        assert result.merged_text == words(400)

    @pytest.mark.asyncio
    async def test_all_posts_fail(self, settings):
        transport = FakeTransport({FEED_URL: make_rss([post(1), post(2)])})

        with pytest.raises(NoExtractablePostsError) as exc_info:
            await run_pipeline(transport, settings)

        assert exc_info.value.context["attempted_posts"] == 2
        assert isinstance(exc_info.value, CrawlingFailedError)
        assert len(transport.calls) == 1 + 2 * 3


class TestFeedFailures:
    """Test whole-crawl failures."""

    @pytest.mark.asyncio
    async def test_empty_feed(self, settings):
        transport = FakeTransport({FEED_URL: make_rss([])})

        with pytest.raises(EmptyFeedError):
            await run_pipeline(transport, settings)

    @pytest.mark.asyncio
    async def test_garbled_feed_is_empty(self, settings):
        transport = FakeTransport({FEED_URL: "<html><body>Blog not found</body></html>"})

        with pytest.raises(EmptyFeedError):
            await run_pipeline(transport, settings)

    @pytest.mark.asyncio
    async def test_feed_not_found(self, settings):
        transport = FakeTransport({})

        with pytest.raises(CrawlingFailedError) as exc_info:
            await run_pipeline(transport, settings)

        assert not isinstance(exc_info.value, EmptyFeedError)
        assert "could not be found" in exc_info.value.user_message
        assert exc_info.value.context["status_code"] == 404
        assert transport.urls() == [FEED_URL]

    @pytest.mark.asyncio
    async def test_feed_rate_limited(self, settings):
        transport = FakeTransport({
            FEED_URL: TransportError("HTTP 429", url=FEED_URL, status_code=429, error_code=ErrorCode.HTTP_STATUS),
        })

        with pytest.raises(CrawlingFailedError) as exc_info:
            await run_pipeline(transport, settings)

        assert "Too many requests" in exc_info.value.user_message

    @pytest.mark.asyncio
    async def test_feed_timeout(self, settings):
        transport = FakeTransport({FEED_URL: timeout(FEED_URL)})

        with pytest.raises(CrawlingFailedError) as exc_info:
            await run_pipeline(transport, settings)

        assert "timed out" in exc_info.value.user_message
        assert isinstance(exc_info.value.__cause__, FetchTimeoutError)

    @pytest.mark.asyncio
    async def test_feed_unexpected_error(self, settings):
        transport = FakeTransport({FEED_URL: RuntimeError("unexpected")})

        with pytest.raises(CrawlingFailedError) as exc_info:
            await run_pipeline(transport, settings)

        assert exc_info.value.error_code == ErrorCode.CRAWLING_FAILED

    @pytest.mark.asyncio
    async def test_unsafe_feed_target_propagates(self, settings):
        """Guard rejections are not rewritten as crawl failures."""
        transport = FakeTransport({
            FEED_URL: UnsafeTargetError("Resolved to private address", url=FEED_URL, resolved_address="10.0.0.1"),
        })

        with pytest.raises(UnsafeTargetError):
            await run_pipeline(transport, settings)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("feed_url,error", [
        ("https://evil.example.com/feed.xml", UnsafeTargetError),
        ("https://rss.blog.naver.com/testblog", UnsafeTargetError),
        ("not a url", ValidationError),
        ("", ValidationError),
    ])
    async def test_invalid_feed_url_never_fetched(self, settings, feed_url, error):
        transport = FakeTransport({})

        with pytest.raises(error):
            await crawl(feed_url, transport=transport, settings=settings)

        assert transport.calls == []


class TestDebugMode:
    """Test debug capture through the pipeline."""

    @pytest.mark.asyncio
    async def test_raw_pages_captured(self, settings, tmp_path):
        debug_settings = settings.model_copy(update={
            "crawl": CrawlSettings(
                request_delay_min=0.0, request_delay_max=0.0, debug_dir=str(tmp_path), debug_capture_posts=1,
            ),
        })
        page = make_post_html(words(500))
        transport = FakeTransport({
            FEED_URL: make_rss([post(1), post(2)]),
            viewer(1): page,
            viewer(2): page,
        })

        await run_pipeline(transport, debug_settings, debug=True)

        assert sorted(p.name for p in tmp_path.iterdir()) == ["post-1-1.html"]
        assert (tmp_path / "post-1-1.html").read_text(encoding="utf-8") == page

    @pytest.mark.asyncio
    async def test_no_capture_without_debug(self, settings, tmp_path):
        quiet_settings = settings.model_copy(update={
            "crawl": CrawlSettings(request_delay_min=0.0, request_delay_max=0.0, debug_dir=str(tmp_path)),
        })
        transport = FakeTransport({
            FEED_URL: make_rss([post(1)]),
            viewer(1): make_post_html(words(500)),
        })

        await run_pipeline(transport, quiet_settings)

        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_production_ignores_debug_on_hand_built_request(self, settings, tmp_path):
        """A request that skipped CrawlRequest.build still gets no debug output in production."""
        production_settings = settings.model_copy(update={
            "environment": Environment.PRODUCTION,
            "crawl": CrawlSettings(request_delay_min=0.0, request_delay_max=0.0, debug_dir=str(tmp_path)),
        })
        transport = FakeTransport({
            FEED_URL: make_rss([post(1)]),
            viewer(1): make_post_html(words(500)),
        })
        extractor = Mock(wraps=ExtractionEngine())
        request = CrawlRequest(feed_url=FEED_URL, max_posts=1, debug=True)

        pipeline = CrawlPipeline(transport, settings=production_settings, extractor=extractor, rng=random.Random(1))
        result = await pipeline.run(request)

        assert result.post_count == 1
        assert extractor.extract.call_args.kwargs["debug"] is False
        assert list(tmp_path.iterdir()) == []


class TestCancellation:
    """Test caller-driven cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_stops_crawl(self, settings):
        started = asyncio.Event()

        async def hang():
            started.set()
            await asyncio.sleep(3600)

        transport = FakeTransport({
            FEED_URL: make_rss([post(1), post(2)]),
            viewer(1): hang,
        })

        task = asyncio.create_task(run_pipeline(transport, settings))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert transport.urls() == [FEED_URL, viewer(1)]
