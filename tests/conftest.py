import sys
import logging
import os
from datetime import datetime, timezone

import pytest

# Add the project root to the path so tests import the top-level packages
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from indexer.build_index import build_search_index
from indexer.source_schema import ContentItem, ContentMetadata, ProcessedContent


def make_item(id, title, content="", path=None, type="markdown", source="docs",
              section=None, description=None, tags=None, url=None):
    return ContentItem(
        id=id,
        title=title,
        content=content,
        path=path or f"{id}.md",
        type=type,
        source=source,
        url=url,
        metadata=ContentMetadata(description=description, tags=tags, section=section)
    )


def make_content(items, sources=None):
    return ProcessedContent(
        items=list(items),
        index=build_search_index(items),
        sources=sources or sorted({item.source for item in items}),
        last_processed=datetime(2024, 1, 1, tzinfo=timezone.utc)
    )


@pytest.fixture(autouse=True)
def restore_root_logger():
    """setup_logging replaces root handlers; put pytest's back afterwards."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def sample_content():
    """A small snapshot spanning two sources and several sections."""
    items = [
        make_item("a1", "Installation Guide", "How to install the package with pip.",
                  path="guide/install.md", section="guide", description="Getting started"),
        make_item("a2", "Configuration", "Configure logging and output directories.",
                  path="guide/config.md", section="guide", tags=["setup", "yaml"]),
        make_item("a3", "API Reference", "The search endpoint accepts a query parameter.",
                  path="api/reference.md", section="api"),
        make_item("b1", "Overview", "Project overview for the wiki.",
                  path="wiki/Home.md", type="wiki", source="repo", section="wiki"),
        make_item("b2", "Changelog", "Release notes and version history.",
                  path="CHANGELOG.md", source="repo", section="root"),
    ]
    return make_content(items, sources=["docs", "repo"])
