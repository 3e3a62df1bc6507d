"""
StyleCrawl - Blog Feed Crawler for Style Analysis
=================================================

Crawls a blog's syndication feed and turns its posts into writing samples
and a merged corpus for downstream language-model style analysis.

Main Components:
- URL Guard: feed policy gate and SSRF checks on every outbound request
- Transport: HTTPS-first fetching with protocol fallback, timeouts and retry
- Ingestion: feed link discovery, candidate URL expansion, text cleaning
- Processing: selector-priority extraction, crawl orchestration, output shaping
"""

__version__ = "1.0.0"
__author__ = "StyleCrawl Development Team"
__description__ = "Blog feed crawler producing style-analysis corpora"

# Core imports for easy access
from .config.settings import get_settings
from .models import CrawlRequest, CrawlResult
from .processing.pipeline import CrawlPipeline, crawl
from .processing.transport import ResilientTransport
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import StyleCrawlError

__all__ = [
    "crawl",
    "CrawlPipeline",
    "CrawlRequest",
    "CrawlResult",
    "ResilientTransport",
    "get_settings",
    "configure_application_logging",
    "get_logger_for_component",
    "StyleCrawlError",
]
