"""Content aggregation for docforge.

Runs each configured source producer in order and assembles a single
``ProcessedContent`` snapshot with its keyword index.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional

from config.settings import Settings, get_settings
from indexer.build_index import build_search_index
from indexer.source_schema import ContentItem, ProcessedContent
from sources.loader import (
    GITHUB, LOCAL, WEBSITE, GeneratorConfig, ProcessingOptions, SourceConfig
)
from .crawler import WebCrawler
from .local_ingest import FilesystemWalker
from .repo_ingest import RepositoryExtractor

logger = logging.getLogger(__name__)


class ContentAggregator:
    """Runs source producers sequentially and builds one snapshot."""

    def __init__(self, config: GeneratorConfig, settings: Optional[Settings] = None):
        self.config = config
        self.settings = settings or get_settings()

    @property
    def sources(self) -> List[SourceConfig]:
        return self.config.sources

    @property
    def processing(self) -> ProcessingOptions:
        return self.config.processing

    async def _produce(self, source: SourceConfig) -> List[ContentItem]:
        if source.type == WEBSITE:
            async with WebCrawler(source,
                                  max_concurrent=self.processing.max_concurrency,
                                  request_timeout=self.processing.timeout,
                                  user_agent=self.settings.user_agent) as crawler:
                return await crawler.crawl()
        if source.type == GITHUB:
            extractor = RepositoryExtractor(source,
                                            clone_timeout=self.settings.clone_timeout,
                                            token=self.settings.github_token)
            return await asyncio.to_thread(extractor.extract)
        if source.type == LOCAL:
            return await asyncio.to_thread(FilesystemWalker(source).walk)
        raise ValueError(f"Unsupported source type: {source.type}")

    async def process(self) -> ProcessedContent:
        """Ingest every source in configured order.

        Any source failure aborts the whole run and propagates.

        Returns:
            ProcessedContent with items in source order and their index
        """
        items: List[ContentItem] = []
        seen_ids = set()

        for source in self.sources:
            logger.info(f"Processing source: {source.name} ({source.type})")
            try:
                produced = await self._produce(source)
            except Exception as e:
                logger.error(f"Source '{source.name}' failed, aborting run: {e}")
                raise

            added = 0
            for item in produced:
                if item.id in seen_ids:
                    logger.error(f"Dropping duplicate content id {item.id} ({item.path}) from '{source.name}'")
                    continue
                seen_ids.add(item.id)
                items.append(item)
                added += 1
            logger.info(f"Source '{source.name}' produced {added} items")

        content = ProcessedContent(
            items=items,
            index=build_search_index(items),
            sources=self.config.source_names,
            last_processed=datetime.now(timezone.utc)
        )
        logger.info(f"Processed {content.total_items} items from {len(self.sources)} sources")
        return content

    def process_sync(self) -> ProcessedContent:
        """Synchronous wrapper for process."""
        return asyncio.run(self.process())

    def describe(self) -> str:
        """Human-readable preview of the configured sources."""
        lines = [f"Sources ({len(self.sources)}):"]
        for source in self.sources:
            lines.append(f"  - {source.name} ({source.type}): {source.describe()}")
        lines.append(f"Processing: maxConcurrency={self.processing.max_concurrency}, "
                     f"timeout={self.processing.timeout}s")
        return "\n".join(lines)
