"""
StyleCrawl Ingestion Module
===========================

Feed and URL handling ahead of page fetching.

This module handles:
- Post link discovery from RSS/Atom feeds
- Candidate URL expansion for blog posts
- Cleaning of extracted post text
"""
