"""Include/exclude policy for file discovery and crawl link filtering."""

import logging
import re
from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Iterator, List, Optional, Sequence
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

# Links to these extensions are never followed by the crawler
BINARY_EXTENSION_RE = re.compile(
    r"\.(pdf|zip|tar|gz|tgz|bz2|7z|rar|jpg|jpeg|png|gif|svg|webp|ico|bmp|"
    r"mp3|mp4|avi|mov|webm|woff2?|ttf|eot|exe|dmg|iso)$",
    re.IGNORECASE,
)

ALLOWED_SCHEMES = {'http', 'https'}


def matches_pattern(path: str, pattern: str) -> bool:
    """Glob-style match of a POSIX relative path.

    ``**`` spans directories. A leading ``**/`` also matches at the top level,
    so ``**/.git/**`` excludes both ``.git/config`` and ``sub/.git/config``.
    """
    candidates = [pattern.replace("**", "*")]
    if pattern.startswith("**/"):
        candidates.append(pattern[3:].replace("**", "*"))
    return any(fnmatchcase(path, candidate) for candidate in candidates)


def matches_any(path: str, patterns: Optional[Sequence[str]]) -> bool:
    if not patterns:
        return False
    return any(matches_pattern(path, pattern) for pattern in patterns)


@dataclass
class PathPolicy:
    """Expands include globs under a root, minus exclude globs."""
    include: List[str]
    exclude: List[str] = field(default_factory=list)
    recursive: bool = True

    def _effective_includes(self) -> List[str]:
        if self.recursive:
            return list(self.include)
        # Non-recursive walks only look at the top level
        return [pattern[3:] if pattern.startswith("**/") else pattern for pattern in self.include]

    def is_excluded(self, rel_path: str) -> bool:
        return matches_any(rel_path, self.exclude)

    def expand(self, root: Path) -> Iterator[Path]:
        """Yield matching paths under root in pattern order, each at most once.

        Directories matched by a glob are yielded too; callers skip them.
        """
        seen = set()
        for pattern in self._effective_includes():
            for path in sorted(root.glob(pattern)):
                rel = path.relative_to(root).as_posix()
                if rel in seen:
                    continue
                seen.add(rel)
                if self.is_excluded(rel):
                    logger.debug(f"Excluded by policy: {rel}")
                    continue
                yield path


def origin_of(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


@dataclass
class LinkPolicy:
    """Decides which discovered links the crawler may follow."""
    seed_url: str
    exclude: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.origin = origin_of(self.seed_url)

    def is_excluded(self, url: str) -> bool:
        path = urlparse(url).path or "/"
        return any(pattern in url or matches_pattern(path, pattern) for pattern in self.exclude)

    def should_follow(self, url: str) -> bool:
        parsed = urlparse(url)

        if parsed.scheme not in ALLOWED_SCHEMES:
            return False

        # Only follow links on the seed's origin
        if origin_of(url) != self.origin:
            return False

        # In-page fragments are dropped, not stripped
        if parsed.fragment or '#' in url:
            return False

        if BINARY_EXTENSION_RE.search(parsed.path):
            return False

        if self.exclude and self.is_excluded(url):
            return False

        return True
