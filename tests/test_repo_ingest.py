#!/usr/bin/env python3
"""
Tests for repository extraction

git is never invoked: RepositoryExtractor._git_clone is patched to lay out a
fake checkout in the destination directory.
"""

import sys
import os
import subprocess
import pytest
from datetime import datetime, timezone
from unittest.mock import patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from indexer.source_schema import SourceUnavailableError, make_item_id
from pipelines.repo_ingest import RepositoryExtractor
from sources.loader import GitHubSource

REPO_FILES = {
    "README.md": "# Project\n\nIntro text.",
    "docs/guide.md": "---\ntitle: Guide\ndescription: How to use it\n---\nUse it well.",
    "docs/assets/diagram.html": "<p>diagram</p>",
    "notes.txt": "plain notes",
    "node_modules/pkg/README.md": "# Vendored",
    "build/out.md": "# Built",
    "src/app.py": "print('hi')",
}

WIKI_FILES = {
    "Home.md": "# Wiki Home\n\nWelcome.",
    "Setup.md": "No heading here.",
}

def write_tree(root, files):
    for rel, text in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(text, bytes):
            path.write_bytes(text)
        else:
            path.write_text(text, encoding="utf-8")

class FakeGit:
    """Records clone calls and writes a tree per successful clone."""

    def __init__(self, repo_files=None, wiki_files=None, fail_branches=(), wiki_fails=False, mtime=None):
        self.repo_files = repo_files if repo_files is not None else REPO_FILES
        self.wiki_files = wiki_files if wiki_files is not None else WIKI_FILES
        self.fail_branches = set(fail_branches)
        self.wiki_fails = wiki_fails
        self.mtime = mtime
        self.calls = []

    def __call__(self, url, dest, branch):
        self.calls.append((url, dest, branch))
        is_wiki = url.endswith(".wiki.git")
        if (is_wiki and self.wiki_fails) or (not is_wiki and branch in self.fail_branches):
            raise subprocess.CalledProcessError(128, ["git", "clone"], stderr="fatal: not found")
        dest.mkdir(parents=True)
        files = self.wiki_files if is_wiki else self.repo_files
        write_tree(dest, files)
        if self.mtime is not None:
            for rel in files:
                os.utime(dest / rel, (self.mtime, self.mtime))

    @property
    def branches(self):
        return [branch for url, _, branch in self.calls if not url.endswith(".wiki.git")]

    @property
    def workspaces(self):
        return {dest.parent for _, dest, _ in self.calls}

def extract(source, fake, **kwargs):
    extractor = RepositoryExtractor(source, **kwargs)
    with patch.object(extractor, "_git_clone", side_effect=fake):
        return extractor.extract()

class TestRepositoryExtractor:
    """Clone, file selection and workspace lifecycle"""

    def test_extracts_documentation_files(self):
        """Test glob selection with default excludes"""
        fake = FakeGit()
        items = extract(GitHubSource(name="repo", repo="owner/project"), fake)

        paths = [item.path for item in items]
        assert sorted(paths) == ["README.md", "docs/assets/diagram.html", "docs/guide.md", "notes.txt"]
        assert len(set(paths)) == len(paths)

        by_path = {item.path: item for item in items}
        assert by_path["README.md"].title == "Project"
        assert by_path["docs/guide.md"].title == "Guide"
        assert by_path["docs/guide.md"].metadata.description == "How to use it"
        assert by_path["docs/guide.md"].metadata.section == "docs"
        assert by_path["notes.txt"].title == "notes.txt"
        assert by_path["notes.txt"].type == "text"
        assert by_path["docs/assets/diagram.html"].type == "document"
        assert by_path["README.md"].id == make_item_id("repo", "repo", "README.md")
        assert all(item.source == "repo" for item in items)

    def test_readme_not_duplicated(self):
        """Test that the README lookup does not re-add an already ingested README"""
        fake = FakeGit()
        items = extract(GitHubSource(name="repo", repo="owner/project"), fake)
        assert [item.path for item in items].count("README.md") == 1

    def test_readme_added_when_excluded_by_globs(self):
        """Test that the README lookup adds the README when globs skipped it"""
        fake = FakeGit(repo_files={"README.rst": "Project\n=======", "src/x.py": "x"})
        source = GitHubSource(name="repo", repo="owner/project", exclude=["**/*.rst"])
        items = extract(source, fake)
        assert [item.path for item in items] == ["README.rst"]
        assert items[0].type == "restructuredtext"

    def test_readme_skipped_when_disabled(self):
        """Test includeReadme=false with README excluded from globs"""
        fake = FakeGit(repo_files={"README.md": "# R", "docs/a.md": "# A"})
        source = GitHubSource(name="repo", repo="owner/project", include_readme=False,
                              exclude=["README.md"])
        items = extract(source, fake)
        assert [item.path for item in items] == ["docs/a.md"]

    def test_undecodable_files_skipped(self):
        """Test that non UTF-8 files are a per-item skip"""
        fake = FakeGit(repo_files={"good.md": "# Good", "bad.txt": b"\xff\xfe\xfa binary"})
        items = extract(GitHubSource(name="repo", repo="owner/project"), fake)
        assert [item.path for item in items] == ["good.md"]

    def test_workspace_removed_after_success(self):
        """Test workspace cleanup on success"""
        fake = FakeGit()
        extract(GitHubSource(name="repo", repo="owner/project", include_wiki=True), fake)
        assert fake.workspaces
        assert all(not workspace.exists() for workspace in fake.workspaces)

    def test_workspace_removed_after_failure(self):
        """Test workspace cleanup when cloning fails"""
        fake = FakeGit(fail_branches={"main", "master"})
        with pytest.raises(SourceUnavailableError):
            extract(GitHubSource(name="repo", repo="owner/project"), fake)
        assert fake.workspaces
        assert all(not workspace.exists() for workspace in fake.workspaces)

    def test_main_falls_back_to_master(self):
        """Test default branch fallback"""
        fake = FakeGit(fail_branches={"main"})
        items = extract(GitHubSource(name="repo", repo="owner/project"), fake)
        assert fake.branches == ["main", "master"]
        assert items

    def test_explicit_branch_does_not_fall_back(self):
        """Test that a configured branch is tried exactly once"""
        fake = FakeGit(fail_branches={"dev"})
        with pytest.raises(SourceUnavailableError):
            extract(GitHubSource(name="repo", repo="owner/project", branch="dev"), fake)
        assert fake.branches == ["dev"]

    def test_missing_git_is_source_unavailable(self):
        """Test that a missing git executable fails the source"""
        def no_git(url, dest, branch):
            raise FileNotFoundError("git")
        with pytest.raises(SourceUnavailableError):
            extract(GitHubSource(name="repo", repo="owner/project"), no_git)

    def test_wiki_pages(self):
        """Test wiki ingestion"""
        fake = FakeGit()
        items = extract(GitHubSource(name="repo", repo="owner/project", include_wiki=True), fake)
        wiki = [item for item in items if item.type == "wiki"]
        assert sorted(item.path for item in wiki) == ["wiki/Home.md", "wiki/Setup.md"]
        assert all(item.metadata.section == "wiki" for item in wiki)
        titles = {item.path: item.title for item in wiki}
        assert titles["wiki/Home.md"] == "Wiki Home"
        assert titles["wiki/Setup.md"] == "Setup"

    def test_wiki_failure_is_not_fatal(self):
        """Test that a failing wiki clone only drops wiki items"""
        fake = FakeGit(wiki_fails=True)
        items = extract(GitHubSource(name="repo", repo="owner/project", include_wiki=True), fake)
        assert items
        assert not [item for item in items if item.type == "wiki"]

    def test_clone_url_with_token(self):
        """Test token insertion into the clone URL"""
        extractor = RepositoryExtractor(GitHubSource(name="repo", repo="owner/project"), token="abc")
        assert extractor.clone_url() == "https://abc@github.com/owner/project.git"
        assert extractor.clone_url(wiki=True) == "https://abc@github.com/owner/project.wiki.git"

    def test_clone_url_without_token(self):
        """Test the public clone URL"""
        with patch.dict(os.environ, {}, clear=True):
            extractor = RepositoryExtractor(GitHubSource(name="repo", repo="owner/project"))
        assert extractor.clone_url() == "https://github.com/owner/project.git"

    def test_last_modified_from_file_mtime(self):
        """Test that items carry the checked-out file's modification time"""
        fake = FakeGit(mtime=1_600_000_000)
        items = extract(GitHubSource(name="repo", repo="owner/project", include_wiki=True), fake)
        expected = datetime.fromtimestamp(1_600_000_000, tz=timezone.utc)
        assert items
        assert all(item.metadata.last_modified == expected for item in items)

class TestGitCommand:
    """The git command line built for a clone"""

    def test_shallow_single_branch_clone(self, tmp_path):
        """Test the argv for an explicit branch"""
        extractor = RepositoryExtractor(GitHubSource(name="repo", repo="owner/project"), clone_timeout=42)
        with patch("pipelines.repo_ingest.subprocess.run") as run:
            extractor._git_clone("https://github.com/owner/project.git", tmp_path / "repo", "dev")

        run.assert_called_once()
        assert run.call_args.args[0] == [
            "git", "clone", "--depth", "1", "--single-branch", "--branch", "dev",
            "https://github.com/owner/project.git", str(tmp_path / "repo")
        ]
        assert run.call_args.kwargs["check"] is True
        assert run.call_args.kwargs["timeout"] == 42

    def test_default_branch_clone(self, tmp_path):
        """Test the argv when no branch is given (wiki clones)"""
        extractor = RepositoryExtractor(GitHubSource(name="repo", repo="owner/project"))
        with patch("pipelines.repo_ingest.subprocess.run") as run:
            extractor._git_clone("https://github.com/owner/project.wiki.git", tmp_path / "wiki", None)

        assert run.call_args.args[0] == [
            "git", "clone", "--depth", "1",
            "https://github.com/owner/project.wiki.git", str(tmp_path / "wiki")
        ]

    def test_clone_timeout_is_source_unavailable(self, tmp_path):
        """Test that an expired clone timeout fails the source"""
        extractor = RepositoryExtractor(GitHubSource(name="repo", repo="owner/project", branch="dev"))
        expired = subprocess.TimeoutExpired(["git", "clone"], 300)
        with patch("pipelines.repo_ingest.subprocess.run", side_effect=expired):
            with pytest.raises(SourceUnavailableError):
                extractor.clone(tmp_path / "repo")
