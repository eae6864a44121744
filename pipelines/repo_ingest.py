# Repository ingestion: shallow-clone a GitHub repo (and optionally its wiki)
# into a throwaway workspace and pull documentation files out of it.

import os, pathlib, shutil, subprocess, tempfile, logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional, Set

from indexer.build_index import file_type, front_matter_metadata, markdown_title
from indexer.source_schema import (
    ContentItem, ContentMetadata, SourceUnavailableError, derive_section, make_item_id
)
from sources.loader import GitHubSource
from .policy import PathPolicy

logger = logging.getLogger(__name__)

DOC_PATTERNS = [
    "**/*.md",
    "**/*.txt",
    "**/*.rst",
    "**/docs/**/*",
    "**/documentation/**/*",
]

DEFAULT_EXCLUDES = [
    "**/node_modules/**",
    "**/.git/**",
    "**/dist/**",
    "**/build/**",
]

README_NAMES = ["README.md", "README.txt", "README.rst", "readme.md"]

FALLBACK_BRANCHES = ["main", "master"]

WIKI_SECTION = "wiki"

@contextmanager
def workspace(prefix: str = "docforge-repo-") -> Iterator[pathlib.Path]:
    """A fresh temporary directory, removed on every exit path."""
    path = pathlib.Path(tempfile.mkdtemp(prefix=prefix))
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
        logger.debug(f"Removed workspace {path}")

class RepositoryExtractor:
    """Extracts documentation content items from one GitHub source."""

    def __init__(self, source: GitHubSource, clone_timeout: float = 300.0,
                 token: Optional[str] = None):
        self.source = source
        self.clone_timeout = clone_timeout
        self.token = source.token or token or os.getenv("GITHUB_TOKEN") or None

    def clone_url(self, wiki: bool = False) -> str:
        host = self.source.host
        if self.token and "://" in host:
            scheme, rest = host.split("://", 1)
            host = f"{scheme}://{self.token}@{rest}"
        suffix = ".wiki.git" if wiki else ".git"
        return f"{host}/{self.source.repo}{suffix}"

    def _git_clone(self, url: str, dest: pathlib.Path, branch: Optional[str]):
        cmd = ["git", "clone", "--depth", "1"]
        if branch:
            cmd += ["--single-branch", "--branch", branch]
        cmd += [url, str(dest)]
        subprocess.run(cmd, check=True, capture_output=True, text=True,
                       timeout=self.clone_timeout)

    def _redact(self, text: str) -> str:
        return text.replace(self.token, "***") if self.token else text

    def clone(self, dest: pathlib.Path, wiki: bool = False) -> str:
        """Clone into dest; returns the branch that was checked out.

        Without an explicit branch, ``main`` is tried and then ``master``.

        Raises:
            SourceUnavailableError: if no clone attempt succeeds
        """
        url = self.clone_url(wiki)
        branches = [self.source.branch] if self.source.branch else list(FALLBACK_BRANCHES)
        if wiki:
            # Wikis only have their default branch
            branches = [None]

        last_error = None
        for branch in branches:
            if dest.exists():
                shutil.rmtree(dest, ignore_errors=True)
            try:
                logger.info(f"Cloning {self.source.repo}{' wiki' if wiki else ''}"
                            f"{f' (branch {branch})' if branch else ''}")
                self._git_clone(url, dest, branch)
                return branch or "default"
            except subprocess.CalledProcessError as e:
                last_error = self._redact((e.stderr or "").strip() or str(e))
                logger.warning(f"Clone of {self.source.repo} at {branch or 'default branch'} failed: {last_error}")
            except subprocess.TimeoutExpired:
                last_error = f"timed out after {self.clone_timeout}s"
                logger.warning(f"Clone of {self.source.repo} {last_error}")
            except FileNotFoundError as e:
                raise SourceUnavailableError(f"git executable not found: {e}") from e

        raise SourceUnavailableError(f"Failed to clone {self.source.repo}: {last_error}")

    def _make_item(self, path: pathlib.Path, rel: str, text: str, item_type: Optional[str] = None,
                   section: Optional[str] = None, title: Optional[str] = None) -> ContentItem:
        meta = front_matter_metadata(text)
        mtime = path.stat().st_mtime
        return ContentItem(
            id=make_item_id(self.source.name, "repo", rel),
            title=title or markdown_title(text) or rel,
            content=text,
            path=rel,
            type=item_type or file_type(rel),
            source=self.source.name,
            metadata=ContentMetadata(
                description=meta.get("description"),
                tags=meta.get("tags"),
                author=meta.get("author"),
                last_modified=datetime.fromtimestamp(mtime, tz=timezone.utc),
                section=section or derive_section(rel)
            )
        )

    def _read(self, path: pathlib.Path) -> Optional[str]:
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            logger.debug(f"Skipping undecodable file {path}")
        except OSError as e:
            logger.warning(f"Could not read {path}: {e}")
        return None

    def extract_files(self, repo_dir: pathlib.Path, seen: Set[str]) -> List[ContentItem]:
        """Documentation files under repo_dir, in glob order, each path at most once."""
        exclude = DEFAULT_EXCLUDES + list(self.source.exclude or [])
        policy = PathPolicy(include=DOC_PATTERNS, exclude=exclude)
        items = []
        for path in policy.expand(repo_dir):
            if not path.is_file():
                continue
            rel = path.relative_to(repo_dir).as_posix()
            if rel in seen:
                continue
            text = self._read(path)
            if text is None:
                continue
            seen.add(rel)
            items.append(self._make_item(path, rel, text))
        return items

    def extract_readme(self, repo_dir: pathlib.Path, seen: Set[str]) -> List[ContentItem]:
        for name in README_NAMES:
            path = repo_dir / name
            if not path.is_file():
                continue
            if name in seen:
                return []
            text = self._read(path)
            if text is None:
                return []
            seen.add(name)
            return [self._make_item(path, name, text)]
        return []

    def extract_wiki(self, wiki_dir: pathlib.Path) -> List[ContentItem]:
        """Wiki pages; any failure yields no wiki items."""
        try:
            self.clone(wiki_dir, wiki=True)
        except SourceUnavailableError as e:
            logger.warning(f"Skipping wiki for {self.source.repo}: {e}")
            return []

        items = []
        policy = PathPolicy(include=["**/*.md"], exclude=["**/.git/**"])
        for path in policy.expand(wiki_dir):
            if not path.is_file():
                continue
            text = self._read(path)
            if text is None:
                continue
            rel = f"{WIKI_SECTION}/{path.relative_to(wiki_dir).as_posix()}"
            items.append(self._make_item(path, rel, text, item_type="wiki", section=WIKI_SECTION,
                                         title=markdown_title(text) or path.stem))
        return items

    def extract(self) -> List[ContentItem]:
        """Clone the repository and return its documentation content items.

        Raises:
            SourceUnavailableError: if the repository cannot be cloned
        """
        with workspace() as ws:
            repo_dir = ws / "repo"
            self.clone(repo_dir)

            seen: Set[str] = set()
            items = self.extract_files(repo_dir, seen)
            if self.source.include_readme:
                items.extend(self.extract_readme(repo_dir, seen))
            if self.source.include_wiki:
                items.extend(self.extract_wiki(ws / "wiki"))

        logger.info(f"Extracted {len(items)} items from {self.source.repo}")
        return items
