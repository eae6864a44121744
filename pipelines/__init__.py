"""Pipelines package for docforge.

Provides crawling, repository and filesystem ingestion, and aggregation.
"""

from .crawler import WebCrawler, CrawlStats
from .policy import PathPolicy, LinkPolicy, matches_pattern
from .html_ingest import ParsedPage, parse_page, html_to_markdown
from .repo_ingest import RepositoryExtractor
from .local_ingest import FilesystemWalker
from .aggregator import ContentAggregator

__all__ = [
    # Crawler
    'WebCrawler',
    'CrawlStats',

    # Policy
    'PathPolicy',
    'LinkPolicy',
    'matches_pattern',

    # HTML
    'ParsedPage',
    'parse_page',
    'html_to_markdown',

    # Producers
    'RepositoryExtractor',
    'FilesystemWalker',

    # Aggregation
    'ContentAggregator'
]
