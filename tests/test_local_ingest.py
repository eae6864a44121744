import sys
import os
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from indexer.source_schema import ContentNotFoundError, make_item_id
from pipelines.local_ingest import MAX_FILE_SIZE, FilesystemWalker
from sources.loader import LocalSource

def write(root, rel, text):
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(text, bytes):
        path.write_bytes(text)
    else:
        path.write_text(text, encoding="utf-8")
    return path

def walk(path, **options):
    return FilesystemWalker(LocalSource(name="notes", path=str(path), **options)).walk()

def test_missing_root_raises_not_found(tmp_path):
    """Test that a missing root fails before producing items."""
    with pytest.raises(ContentNotFoundError):
        walk(tmp_path / "does-not-exist")

def test_directory_walk_with_default_patterns(tmp_path):
    """Test default include and exclude patterns."""
    write(tmp_path, "intro.md", "# Introduction\n\nHello.")
    write(tmp_path, "guide/setup.mdx", "# Setup")
    write(tmp_path, "guide/notes.txt", "Release Notes\nsome text")
    write(tmp_path, "api/index.rst", "API\n===")
    write(tmp_path, "node_modules/dep/readme.md", "# Dep")
    write(tmp_path, ".git/HEAD.md", "# head")
    write(tmp_path, "script.py", "print(1)")

    items = walk(tmp_path)
    by_path = {item.path: item for item in items}

    assert set(by_path) == {"intro.md", "guide/setup.mdx", "guide/notes.txt", "api/index.rst"}
    assert by_path["intro.md"].title == "Introduction"
    assert by_path["intro.md"].metadata.section == "root"
    assert by_path["guide/setup.mdx"].type == "markdown"
    assert by_path["guide/notes.txt"].title == "Release Notes"
    assert by_path["guide/notes.txt"].type == "text"
    assert by_path["guide/notes.txt"].metadata.section == "guide"
    assert by_path["api/index.rst"].title == "API"
    assert by_path["intro.md"].id == make_item_id("notes", "local", "intro.md")
    assert all(item.metadata.last_modified is not None for item in items)

def test_title_falls_back_to_filename(tmp_path):
    """Test that a lowercase first line is not used as a title."""
    write(tmp_path, "misc.txt", "just some lowercase text.\nmore")
    items = walk(tmp_path)
    assert items[0].title == "misc.txt"

def test_text_format_ignores_markdown_headings(tmp_path):
    """Test that format=text skips markdown title extraction."""
    write(tmp_path, "doc.md", "intro line\n# Heading")
    assert walk(tmp_path, format="text")[0].title == "doc.md"
    assert walk(tmp_path, format="markdown")[0].title == "Heading"

def test_oversized_files_skipped(tmp_path):
    """Test that files over 1 MiB contribute nothing without aborting the walk."""
    write(tmp_path, "big.md", "# Big\n" + "x" * (MAX_FILE_SIZE + 1))
    write(tmp_path, "small.md", "# Small")
    items = walk(tmp_path)
    assert [item.path for item in items] == ["small.md"]

def test_undecodable_files_skipped(tmp_path):
    """Test that non UTF-8 files are skipped."""
    write(tmp_path, "bad.txt", b"\xff\xfe\xfa")
    write(tmp_path, "good.txt", "Good File\ncontent")
    items = walk(tmp_path)
    assert [item.path for item in items] == ["good.txt"]

def test_single_file_path_relative_to_cwd(tmp_path, monkeypatch):
    """Test that a single-file root ingests only that file."""
    target = write(tmp_path, "docs/only.md", "# Only")
    write(tmp_path, "docs/other.md", "# Other")
    monkeypatch.chdir(tmp_path)

    items = walk(target)
    assert len(items) == 1
    assert items[0].path == "docs/only.md"
    assert items[0].title == "Only"
    assert items[0].metadata.section == "docs"

def test_custom_include_exclude_and_non_recursive(tmp_path):
    """Test configured patterns and recursive=false."""
    write(tmp_path, "a.md", "# A")
    write(tmp_path, "b.txt", "B")
    write(tmp_path, "drafts/c.md", "# C")
    write(tmp_path, "sub/d.md", "# D")

    assert [i.path for i in walk(tmp_path, include=["**/*.md"], exclude=["drafts/**"])] == ["a.md", "sub/d.md"]
    assert [i.path for i in walk(tmp_path, recursive=False)] == ["a.md", "b.txt"]

def test_front_matter_metadata(tmp_path):
    """Test description, tags and author from front matter."""
    write(tmp_path, "page.md", "---\ntitle: Page\ndescription: About\ntags: one, two\nauthor: Sam\n---\nBody")
    item = walk(tmp_path)[0]
    assert item.title == "Page"
    assert item.metadata.description == "About"
    assert item.metadata.tags == ["one", "two"]
    assert item.metadata.author == "Sam"
