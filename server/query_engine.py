"""In-memory query engine over a processed content snapshot.

Supports weighted fuzzy search, lookup by id or path with related items, and
section-grouped browsing. The snapshot is never mutated once attached.
"""

import re
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from typing import Any, Dict, List, Optional, Tuple

from indexer.source_schema import (
    ContentItem, EngineNotReadyError, InvalidArgumentError, ProcessedContent, ROOT_SECTION
)

logger = logging.getLogger(__name__)

FIELD_WEIGHTS = {
    'title': 0.4,
    'content': 0.3,
    'description': 0.2,
    'tags': 0.1,
}

# A field contributes to the score only at or above this similarity
MATCH_THRESHOLD = 0.6

# Floor for per-field distance so a perfect field does not zero the product
MIN_DISTANCE = 1e-3

DEFAULT_LIMIT = 10
SNIPPET_LENGTH = 200
MAX_RELATED = 5

TOKEN_RE = re.compile(r"\w+")


@dataclass
class SearchResult:
    id: str
    title: str
    snippet: str
    path: str
    source: str
    type: str
    score: float
    url: Optional[str] = None
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'snippet': self.snippet,
            'url': self.url,
            'path': self.path,
            'source': self.source,
            'type': self.type,
            'description': self.description,
            'score': round(self.score, 4),
        }


@dataclass
class GetResult:
    found: bool
    message: str = ""
    item: Optional[ContentItem] = None
    related: List[ContentItem] = field(default_factory=list)


@dataclass
class Listing:
    sections: "OrderedDict[str, List[ContentItem]]"
    total: int
    sources: List[str]
    path: Optional[str] = None

    @property
    def section_count(self) -> int:
        return len(self.sections)


@dataclass
class _Fields:
    """Lower-cased searchable text and token set for each weighted field."""
    text: Dict[str, str]
    tokens: Dict[str, List[str]]


def make_snippet(text: str, length: int = SNIPPET_LENGTH) -> str:
    if len(text) > length:
        return text[:length] + "..."
    return text


def _tokenize(text: str) -> List[str]:
    return list(OrderedDict.fromkeys(TOKEN_RE.findall(text)))


def _best_token_ratio(token: str, candidates: List[str]) -> float:
    """Best SequenceMatcher ratio of token against any candidate."""
    best = 0.0
    matcher = SequenceMatcher(None)
    # seq2 is cached by SequenceMatcher, so hold the query token there
    matcher.set_seq2(token)
    for candidate in candidates:
        if candidate == token:
            return 1.0
        matcher.set_seq1(candidate)
        if matcher.real_quick_ratio() <= best or matcher.quick_ratio() <= best:
            continue
        best = max(best, matcher.ratio())
    return best


def field_similarity(query: str, query_tokens: List[str], text: str, tokens: List[str]) -> float:
    """Similarity of a lower-cased query to a lower-cased field, in [0, 1].

    A literal substring scores 1.0; otherwise each query token takes its best
    ratio against the field's tokens and the mean is returned.
    """
    if not text:
        return 0.0
    if query in text:
        return 1.0
    if not query_tokens or not tokens:
        return 0.0
    return sum(_best_token_ratio(t, tokens) for t in query_tokens) / len(query_tokens)


def _validate_optional_str(value: Any, name: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidArgumentError(f"{name} must be a string")
    return value or None


class QueryEngine:
    """Read-only search, lookup and browse over one ProcessedContent."""

    def __init__(self, content: Optional[ProcessedContent] = None):
        self._content: Optional[ProcessedContent] = None
        self._fields: List[_Fields] = []
        self._by_id: Dict[str, ContentItem] = {}
        self._by_path: Dict[str, ContentItem] = {}
        if content is not None:
            self.load(content)

    @property
    def is_ready(self) -> bool:
        return self._content is not None

    @property
    def content(self) -> ProcessedContent:
        self._require_ready()
        return self._content

    def load(self, content: ProcessedContent):
        """Attach a snapshot; an engine can be loaded exactly once."""
        if self._content is not None:
            raise EngineNotReadyError("Query engine already has content loaded")
        self._content = content
        self._fields = [self._prepare(item) for item in content.items]
        for item in content.items:
            self._by_id.setdefault(item.id, item)
            self._by_path.setdefault(item.path, item)
        logger.info(f"Query engine ready with {content.total_items} items")

    def _require_ready(self):
        if self._content is None:
            raise EngineNotReadyError("Query engine has no content loaded")

    @staticmethod
    def _prepare(item: ContentItem) -> _Fields:
        text = {
            'title': (item.title or "").lower(),
            'content': (item.content or "").lower(),
            'description': (item.metadata.description or "").lower(),
            'tags': " ".join(item.metadata.tags or []).lower(),
        }
        return _Fields(text=text, tokens={name: _tokenize(value) for name, value in text.items()})

    def _score(self, query: str, query_tokens: List[str], fields: _Fields) -> Optional[float]:
        distance = 1.0
        matched = False
        for name, weight in FIELD_WEIGHTS.items():
            similarity = field_similarity(query, query_tokens, fields.text[name], fields.tokens[name])
            if similarity >= MATCH_THRESHOLD:
                matched = True
                distance *= max(1.0 - similarity, MIN_DISTANCE) ** weight
        if not matched:
            return None
        return 1.0 - distance

    def search(self, query: Any, limit: Any = DEFAULT_LIMIT, source: Optional[str] = None,
               type: Optional[str] = None) -> List[SearchResult]:
        """Fuzzy search over title, content, description and tags.

        Args:
            query: Non-blank search string
            limit: Maximum number of results (positive integer)
            source: Only items from this source
            type: Only items of this type

        Returns:
            Results ordered best-first; ties keep document order

        Raises:
            InvalidArgumentError: if the query is missing or blank, or limit is invalid
        """
        self._require_ready()
        if query is None or not isinstance(query, str):
            raise InvalidArgumentError("Query is required and must be a string")
        if not query.strip():
            raise InvalidArgumentError("Query cannot be empty")
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise InvalidArgumentError("Limit must be a positive integer")
        source = _validate_optional_str(source, "source")
        type = _validate_optional_str(type, "type")

        q = query.strip().lower()
        q_tokens = _tokenize(q)

        scored: List[Tuple[float, int, ContentItem]] = []
        for position, (item, fields) in enumerate(zip(self._content.items, self._fields)):
            if source and item.source != source:
                continue
            if type and item.type != type:
                continue
            score = self._score(q, q_tokens, fields)
            if score is not None:
                scored.append((score, position, item))

        scored.sort(key=lambda entry: (-entry[0], entry[1]))
        results = [
            SearchResult(
                id=item.id,
                title=item.title,
                snippet=make_snippet(item.content),
                url=item.url,
                path=item.path,
                source=item.source,
                type=item.type,
                description=item.metadata.description,
                score=score
            )
            for score, _, item in scored[:limit]
        ]
        logger.debug(f"Search '{query}' matched {len(scored)} items, returning {len(results)}")
        return results

    def related(self, item: ContentItem, limit: int = MAX_RELATED) -> List[ContentItem]:
        """Other items sharing the source or section, in document order."""
        self._require_ready()
        result = []
        for other in self._content.items:
            if other.id == item.id:
                continue
            if other.source == item.source or other.section == item.section:
                result.append(other)
                if len(result) >= limit:
                    break
        return result

    def get(self, id: Optional[str] = None, path: Optional[str] = None,
            include_related: bool = False) -> GetResult:
        """Look an item up by id, or by path when no id is given.

        A miss is reported in the result, not raised.

        Raises:
            InvalidArgumentError: if neither id nor path is given
        """
        self._require_ready()
        id = _validate_optional_str(id, "id")
        path = _validate_optional_str(path, "path")
        if not id and not path:
            raise InvalidArgumentError("Either id or path is required")

        if id:
            item = self._by_id.get(id)
            identifier = f"ID: {id}"
        else:
            item = self._by_path.get(path)
            identifier = f"path: {path}"

        if item is None:
            return GetResult(found=False, message=f"Content not found for {identifier}")

        related = self.related(item) if include_related else []
        return GetResult(found=True, item=item, related=related)

    def list(self, path: Optional[str] = None, type: Optional[str] = None,
             source: Optional[str] = None) -> Listing:
        """Items grouped by section, filtered by source, type and path prefix.

        The path filter keeps items strictly below the prefix: the item whose
        path equals the prefix is left out.
        """
        self._require_ready()
        path = _validate_optional_str(path, "path")
        type = _validate_optional_str(type, "type")
        source = _validate_optional_str(source, "source")

        groups: Dict[str, List[ContentItem]] = {}
        total = 0
        for item in self._content.items:
            if source and item.source != source:
                continue
            if type and item.type != type:
                continue
            if path and (not item.path.startswith(path) or item.path == path):
                continue
            groups.setdefault(item.metadata.section or ROOT_SECTION, []).append(item)
            total += 1

        sections = OrderedDict(
            (name, sorted(groups[name], key=lambda i: (i.title.lower(), i.title)))
            for name in sorted(groups)
        )
        return Listing(sections=sections, total=total, sources=list(self._content.sources), path=path)
