# Local filesystem ingestion: one content item per matching document file.

import os, pathlib, logging
from datetime import datetime, timezone
from typing import List, Optional

from indexer.build_index import file_type, first_line_title, front_matter_metadata, markdown_title
from indexer.source_schema import (
    ContentItem, ContentMetadata, ContentNotFoundError, derive_section, make_item_id
)
from sources.loader import LocalSource
from .policy import PathPolicy

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 1024 * 1024

DEFAULT_INCLUDES = ["**/*.md", "**/*.txt", "**/*.rst", "**/*.mdx"]

DEFAULT_EXCLUDES = [
    "**/node_modules/**",
    "**/.git/**",
    "**/dist/**",
    "**/build/**",
    "**/.DS_Store",
]

class FilesystemWalker:
    """Walks one local source and turns files into content items."""

    def __init__(self, source: LocalSource):
        self.source = source
        self.root = pathlib.Path(source.path).expanduser()

    def policy(self) -> PathPolicy:
        return PathPolicy(
            include=list(self.source.include or DEFAULT_INCLUDES),
            exclude=list(self.source.exclude if self.source.exclude is not None else DEFAULT_EXCLUDES),
            recursive=self.source.recursive
        )

    def title_for(self, text: str, filename: str) -> str:
        title = None
        if self.source.format in ("markdown", "auto"):
            title = markdown_title(text)
        return title or first_line_title(text) or filename

    def load_file(self, path: pathlib.Path, rel: str) -> Optional[ContentItem]:
        """Build an item for one file, or None when it has to be skipped."""
        if not path.is_file():
            return None
        try:
            stat = path.stat()
            if stat.st_size > MAX_FILE_SIZE:
                logger.warning(f"Skipping {rel}: {stat.st_size} bytes exceeds {MAX_FILE_SIZE}")
                return None
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            logger.warning(f"Skipping {rel}: not valid UTF-8")
            return None
        except OSError as e:
            logger.warning(f"Skipping {rel}: {e}")
            return None

        meta = front_matter_metadata(text)
        return ContentItem(
            id=make_item_id(self.source.name, "local", rel),
            title=self.title_for(text, path.name),
            content=text,
            path=rel,
            type=file_type(rel),
            source=self.source.name,
            metadata=ContentMetadata(
                description=meta.get("description"),
                tags=meta.get("tags"),
                author=meta.get("author"),
                last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                section=derive_section(rel)
            )
        )

    def walk(self) -> List[ContentItem]:
        """Return content items for the configured file or directory.

        Raises:
            ContentNotFoundError: if the root path does not exist
        """
        if not self.root.exists():
            raise ContentNotFoundError(f"Path not found: {self.source.path}")

        if self.root.is_file():
            rel = pathlib.Path(os.path.relpath(self.root)).as_posix()
            item = self.load_file(self.root, rel)
            return [item] if item else []

        items = []
        for path in self.policy().expand(self.root):
            rel = path.relative_to(self.root).as_posix()
            item = self.load_file(path, rel)
            if item is not None:
                items.append(item)

        logger.info(f"Loaded {len(items)} items from {self.root}")
        return items
