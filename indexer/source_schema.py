from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Any
from datetime import datetime
import hashlib
import json

# Length of the hex digest prefix used as a content item id
ID_LENGTH = 16

ROOT_SECTION = "root"

class DocforgeError(Exception):
    """Base class for ingestion and retrieval errors."""
    pass

class ContentNotFoundError(DocforgeError):
    """Raised when a root path or a lookup target does not exist."""
    pass

class InvalidArgumentError(DocforgeError, ValueError):
    """Raised when query arguments are missing or malformed."""
    pass

class SourceUnavailableError(DocforgeError):
    """Raised when a whole source cannot be fetched (network or clone failure)."""
    pass

class ConfigError(DocforgeError, ValueError):
    """Raised when a source configuration is invalid."""
    pass

class EngineNotReadyError(DocforgeError, RuntimeError):
    """Raised when the query engine is used before a snapshot is attached."""
    pass

class SnapshotError(DocforgeError):
    """Raised when a snapshot file cannot be decoded."""
    pass

def make_item_id(source_name: str, kind: str, location: str) -> str:
    """Derive a stable content item id from a namespaced path.

    The hash input is ``<source name>|<kind>:<path-or-url>`` so that two
    sources ingesting the same relative path never collide.
    """
    key = f"{source_name}|{kind}:{location}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:ID_LENGTH]

def derive_section(path: str) -> str:
    """Second-to-last segment of a slash separated path, or ``root``."""
    segments = [s for s in path.split("/") if s]
    if len(segments) > 1:
        return segments[-2]
    return ROOT_SECTION

def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()

def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None

@dataclass(frozen=True)
class ContentMetadata:
    """Descriptive metadata attached to a content item."""
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    last_modified: Optional[datetime] = None
    author: Optional[str] = None
    section: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        if self.description is not None:
            result['description'] = self.description
        if self.tags is not None:
            result['tags'] = list(self.tags)
        if self.last_modified is not None:
            result['lastModified'] = _format_datetime(self.last_modified)
        if self.author is not None:
            result['author'] = self.author
        if self.section is not None:
            result['section'] = self.section
        return result

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'ContentMetadata':
        data = data or {}
        tags = data.get('tags')
        return cls(
            description=data.get('description'),
            tags=list(tags) if tags is not None else None,
            last_modified=_parse_datetime(data.get('lastModified')),
            author=data.get('author'),
            section=data.get('section')
        )

@dataclass(frozen=True)
class ContentItem:
    """One normalized unit of documentation content."""
    id: str
    title: str
    content: str
    path: str
    type: str
    source: str
    metadata: ContentMetadata = field(default_factory=ContentMetadata)
    url: Optional[str] = None
    parent: Optional[str] = None
    children: Optional[List[str]] = None

    def __post_init__(self):
        if self.content is None:
            raise ValueError(f"Content item {self.id} has no content")
        if not self.id:
            raise ValueError("Content item id cannot be empty")

    @property
    def section(self) -> str:
        return self.metadata.section or ROOT_SECTION

    def with_metadata(self, **changes) -> 'ContentItem':
        """Return a copy with updated metadata fields."""
        return replace(self, metadata=replace(self.metadata, **changes))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the external JSON form."""
        result: Dict[str, Any] = {
            'id': self.id,
            'title': self.title,
            'content': self.content,
        }
        if self.url is not None:
            result['url'] = self.url
        result.update({
            'path': self.path,
            'type': self.type,
            'source': self.source,
            'metadata': self.metadata.to_dict(),
        })
        if self.parent is not None:
            result['parent'] = self.parent
        if self.children is not None:
            result['children'] = list(self.children)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ContentItem':
        """Create from the external JSON form."""
        children = data.get('children')
        return cls(
            id=data['id'],
            title=data.get('title', ''),
            content=data.get('content') or '',
            path=data.get('path', ''),
            type=data.get('type', 'document'),
            source=data['source'],
            metadata=ContentMetadata.from_dict(data.get('metadata')),
            url=data.get('url'),
            parent=data.get('parent'),
            children=list(children) if children is not None else None
        )

@dataclass(frozen=True)
class IndexEntry:
    """Denormalized keyword projection of a content item."""
    content: str
    title: str
    keywords: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'content': self.content, 'title': self.title, 'keywords': list(self.keywords)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'IndexEntry':
        return cls(
            content=data.get('content', ''),
            title=data.get('title', ''),
            keywords=list(data.get('keywords', []))
        )

@dataclass(frozen=True)
class ProcessedContent:
    """Aggregated, immutable result of one ingestion run."""
    items: List[ContentItem]
    index: Dict[str, IndexEntry]
    sources: List[str]
    last_processed: datetime

    @property
    def total_items(self) -> int:
        return len(self.items)

    def metadata_dict(self) -> Dict[str, Any]:
        return {
            'totalItems': self.total_items,
            'sources': list(self.sources),
            'lastProcessed': _format_datetime(self.last_processed),
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the external JSON form."""
        return {
            'items': [item.to_dict() for item in self.items],
            'index': {item_id: entry.to_dict() for item_id, entry in self.index.items()},
            'metadata': self.metadata_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProcessedContent':
        """Create from the external JSON form."""
        metadata = data.get('metadata') or {}
        last_processed = _parse_datetime(metadata.get('lastProcessed')) or datetime.fromtimestamp(0)
        return cls(
            items=[ContentItem.from_dict(item) for item in data.get('items', [])],
            index={item_id: IndexEntry.from_dict(entry)
                   for item_id, entry in (data.get('index') or {}).items()},
            sources=list(metadata.get('sources', [])),
            last_processed=last_processed
        )

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str) -> 'ProcessedContent':
        return cls.from_dict(json.loads(text))
