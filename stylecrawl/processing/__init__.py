"""
StyleCrawl Processing Module
============================

Fetching, extraction and orchestration components of a crawl.
"""

from .transport import FetchKind, ResilientTransport, Transport
from .extractor import ExtractionEngine
from .output_shaper import OutputShaper
from .pipeline import CrawlPipeline, crawl

__all__ = [
    'FetchKind',
    'ResilientTransport',
    'Transport',
    'ExtractionEngine',
    'OutputShaper',
    'CrawlPipeline',
    'crawl',
]
