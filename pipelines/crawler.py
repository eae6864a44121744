"""Web crawler pipeline for docforge.

Depth-bounded, visited-set-deduplicated crawl of a documentation website,
producing one ``webpage`` content item per page with extractable content.
"""

import asyncio
import logging
from typing import List, Optional
from urllib.parse import urlparse
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime

import aiohttp

from indexer.source_schema import ContentItem, ContentMetadata, derive_section, make_item_id
from sources.loader import WebsiteSource
from .html_ingest import parse_page
from .policy import LinkPolicy

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; docforge/0.1.0)"

@dataclass
class FetchedPage:
    """Body and headers of one fetched URL."""
    url: str
    html: str
    last_modified: Optional[datetime] = None

@dataclass
class CrawlStats:
    """Statistics for a crawl session."""
    fetched: int = 0
    failed: int = 0
    empty: int = 0
    skipped: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def __post_init__(self):
        if self.start_time is None:
            self.start_time = datetime.now(timezone.utc)

    @property
    def duration(self) -> Optional[timedelta]:
        if self.end_time and self.start_time:
            return self.end_time - self.start_time
        return None

    def finish(self):
        """Mark crawl as finished."""
        self.end_time = datetime.now(timezone.utc)

class WebCrawler:
    """Asynchronous crawler for one website source."""

    def __init__(self,
                 source: WebsiteSource,
                 max_concurrent: int = 5,
                 request_timeout: float = 10.0,
                 user_agent: str = None):
        """Initialize crawler.

        Args:
            source: Website source configuration
            max_concurrent: Maximum outstanding page fetches
            request_timeout: Total timeout per page fetch in seconds
            user_agent: User agent string
        """
        self.source = source
        self.max_depth = source.max_depth
        self.max_concurrent = max_concurrent
        self.request_timeout = request_timeout
        self.user_agent = user_agent or DEFAULT_USER_AGENT
        self.link_policy = LinkPolicy(source.url, list(source.exclude))
        self.session: Optional[aiohttp.ClientSession] = None
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self.stats = CrawlStats()

        # Frontier state; one set per crawl run, guarded by the lock
        self._visited = set()
        self._lock = asyncio.Lock()

    async def __aenter__(self):
        """Async context manager entry."""
        connector = aiohttp.TCPConnector(limit=self.max_concurrent * 2)
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)

        self.session = aiohttp.ClientSession(
            connector=connector,
            timeout=timeout,
            headers={'User-Agent': self.user_agent}
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def close(self):
        """Close the crawler session."""
        if self.session:
            await self.session.close()
            self.session = None

    async def _claim(self, url: str) -> bool:
        """Atomically check-and-mark a URL as visited."""
        async with self._lock:
            if url in self._visited:
                return False
            self._visited.add(url)
            return True

    async def _fetch_page(self, url: str) -> Optional[FetchedPage]:
        """Fetch one URL; None for non-HTML responses.

        Network errors, HTTP error statuses and timeouts propagate to the caller.
        """
        async with self.semaphore:
            logger.debug(f"Fetching {url}")
            async with self.session.get(url, allow_redirects=True) as response:
                response.raise_for_status()
                content_type = response.headers.get('content-type', '')
                if content_type and 'html' not in content_type and not content_type.startswith('text/'):
                    logger.debug(f"Skipping non-text content at {url}: {content_type}")
                    return None
                html = await response.text()
                last_modified = None
                header = response.headers.get('last-modified')
                if header:
                    try:
                        last_modified = parsedate_to_datetime(header)
                    except (TypeError, ValueError):
                        last_modified = None
                return FetchedPage(url=url, html=html, last_modified=last_modified)

    def _make_item(self, url: str, page, fetched: FetchedPage) -> ContentItem:
        path = urlparse(url).path or "/"
        return ContentItem(
            id=make_item_id(self.source.name, "web", url),
            title=page.title,
            content=page.markdown,
            url=url,
            path=path,
            type="webpage",
            source=self.source.name,
            metadata=ContentMetadata(
                description=page.description,
                last_modified=fetched.last_modified or datetime.now(timezone.utc),
                section=derive_section(path)
            )
        )

    async def _crawl_page(self, url: str, depth: int) -> List[ContentItem]:
        """Crawl one node and, depth permitting, its children.

        Results are returned in pre-order: this page, then each child's
        results in link order.
        """
        # The seed is always fetched; other nodes only below max_depth
        if depth > 0 and depth >= self.max_depth:
            return []
        if not await self._claim(url):
            return []

        logger.debug(f"Crawling: {url} (depth: {depth})")

        try:
            fetched = await self._fetch_page(url)
            if fetched is None:
                self.stats.skipped += 1
                return []
            page = parse_page(fetched.html, url,
                              self.source.content_selector,
                              self.source.title_selector)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.stats.failed += 1
            logger.warning(f"Failed to crawl {url}: {str(e) or type(e).__name__}")
            return []
        except Exception as e:
            self.stats.failed += 1
            logger.warning(f"Failed to process {url}: {e}")
            return []

        self.stats.fetched += 1

        if page is None:
            self.stats.empty += 1
            logger.debug(f"No content found for {url}")
            return []

        items = [self._make_item(url, page, fetched)]

        if depth < self.max_depth - 1:
            links = [link for link in page.links
                     if self.link_policy.should_follow(link) and link not in self._visited]
            if links:
                logger.debug(f"Found {len(links)} links at depth {depth} for {url}")
                children = await asyncio.gather(*(self._crawl_page(link, depth + 1) for link in links))
                for child_items in children:
                    items.extend(child_items)

        return items

    async def crawl(self) -> List[ContentItem]:
        """Crawl the configured website starting at its seed URL.

        Returns:
            Content items in pre-order traversal order
        """
        self._visited = set()
        self.stats = CrawlStats()
        owns_session = self.session is None
        if owns_session:
            await self.__aenter__()

        logger.info(f"Starting crawl of {self.source.url} for source '{self.source.name}' "
                    f"(max_depth={self.max_depth})")
        try:
            items = await self._crawl_page(self.source.url, 0)
        finally:
            if owns_session:
                await self.close()

        self.stats.finish()
        logger.info(f"Crawl completed: {len(items)} items, {self.stats.fetched} fetched, "
                    f"{self.stats.failed} failed, {self.stats.empty} without content, "
                    f"{self.stats.skipped} non-HTML out of {len(self._visited)} visited URLs "
                    f"in {self.stats.duration.total_seconds():.1f}s")
        return items
