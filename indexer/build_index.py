# Builds the keyword index over ingested content and reads/writes JSON snapshots.

import re, json, pathlib, logging
from typing import Dict, Iterable, List, Optional, Tuple, Any

import yaml

from .source_schema import ContentItem, ContentNotFoundError, IndexEntry, ProcessedContent, SnapshotError

logger = logging.getLogger(__name__)

MAX_KEYWORDS = 20
MIN_KEYWORD_LENGTH = 4

CONTENT_FILE = "content.json"
INDEX_FILE = "index.json"

FILE_TYPES = {
    "md": "markdown",
    "mdx": "markdown",
    "txt": "text",
    "rst": "restructuredtext",
    "json": "json",
    "yaml": "yaml",
    "yml": "yaml",
}

def extract_keywords(text: str, limit: int = MAX_KEYWORDS) -> List[str]:
    """Lower-cased, de-punctuated tokens longer than 3 chars, in first-occurrence order."""
    cleaned = re.sub(r"[^\w\s]", " ", text.lower())
    keywords: List[str] = []
    seen = set()
    for word in cleaned.split():
        if len(word) < MIN_KEYWORD_LENGTH or word in seen:
            continue
        seen.add(word)
        keywords.append(word)
        if len(keywords) >= limit:
            break
    return keywords

def build_search_index(items: Iterable[ContentItem]) -> Dict[str, IndexEntry]:
    index: Dict[str, IndexEntry] = {}
    for item in items:
        index[item.id] = IndexEntry(
            content=item.content,
            title=item.title,
            keywords=extract_keywords(item.content + " " + item.title)
        )
    return index

def split_front_matter(text: str) -> Tuple[Dict[str, Any], str]:
    """Split a leading ``---`` YAML block from the body.

    Returns the parsed mapping (empty when absent or unparsable) and the body.
    """
    if not text.startswith('---'):
        return {}, text
    end = text.find('\n---', 3)
    if end == -1:
        return {}, text
    head = text[3:end].strip()
    body = text[end + 4:].lstrip('\n')
    try:
        fm = yaml.safe_load(head) if head else {}
    except yaml.YAMLError as e:
        logger.debug(f"Ignoring malformed front matter: {e}")
        return {}, text
    if not isinstance(fm, dict):
        return {}, text
    return fm, body

def markdown_title(text: str) -> Optional[str]:
    """First-level heading, else the front-matter ``title`` field."""
    m = re.search(r"^#\s+(.+)$", text, re.MULTILINE)
    if m:
        return m.group(1).strip()
    fm, _ = split_front_matter(text)
    title = fm.get('title')
    if title is not None and str(title).strip():
        return str(title).strip().strip("'\"")
    return None

def first_line_title(text: str) -> Optional[str]:
    """First line, if it reads like a short capitalized heading."""
    first_line = text.split('\n', 1)[0].strip()
    if len(first_line) < 100 and re.match(r"^[A-Z][^.!?]*$", first_line):
        return first_line
    return None

def front_matter_metadata(text: str) -> Dict[str, Any]:
    """Description, tags and author from front matter, when present."""
    fm, _ = split_front_matter(text)
    meta: Dict[str, Any] = {}
    if fm.get('description'):
        meta['description'] = str(fm['description'])
    tags = fm.get('tags')
    if isinstance(tags, str):
        tags = [t.strip() for t in tags.split(',') if t.strip()]
    if isinstance(tags, list) and tags:
        meta['tags'] = [str(t) for t in tags]
    if fm.get('author'):
        meta['author'] = str(fm['author'])
    return meta

def file_type(path: str) -> str:
    name = path.rsplit('/', 1)[-1]
    if '.' not in name:
        return "document"
    return FILE_TYPES.get(name.rsplit('.', 1)[-1].lower(), "document")

def write_snapshot(content: ProcessedContent, output_dir) -> pathlib.Path:
    """Write ``content.json`` (full snapshot) and ``index.json`` under output_dir."""
    out = pathlib.Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    content_path = out / CONTENT_FILE
    content_path.write_text(content.to_json(), encoding="utf-8")
    index = {item_id: entry.to_dict() for item_id, entry in content.index.items()}
    (out / INDEX_FILE).write_text(json.dumps(index, indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info(f"Wrote snapshot with {content.total_items} items to {content_path}")
    return content_path

def load_snapshot(path) -> ProcessedContent:
    """Load a snapshot from a ``content.json`` file or a directory holding one."""
    p = pathlib.Path(path)
    if p.is_dir():
        p = p / CONTENT_FILE
    if not p.exists():
        raise ContentNotFoundError(f"Snapshot not found: {p}")
    try:
        content = ProcessedContent.from_json(p.read_text(encoding="utf-8"))
    except KeyError as e:
        raise SnapshotError(f"Malformed snapshot {p}: item missing {e}") from e
    except (ValueError, TypeError, AttributeError) as e:
        raise SnapshotError(f"Malformed snapshot {p}: {e}") from e
    logger.info(f"Loaded snapshot with {content.total_items} items from {p}")
    return content
