"""Source configuration loader for docforge.

Loads and validates source configurations from YAML or JSON files. Each source
kind has its own dataclass carrying only the fields relevant to it; invalid
combinations fail at construction time with ``ConfigError``.
"""

import json
import re
from pathlib import Path
from typing import Dict, List, Any, Optional, Union
from dataclasses import dataclass, field
import logging

import yaml

from indexer.source_schema import ConfigError

logger = logging.getLogger(__name__)

WEBSITE = "website"
GITHUB = "github"
LOCAL = "local"

DEFAULT_MAX_DEPTH = 5

REPO_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")

LOCAL_FORMATS = ("markdown", "text", "auto")
TRANSPORTS = ("stdio", "http")


def _options(data: Dict[str, Any]) -> Dict[str, Any]:
    options = data.get('options') or {}
    if not isinstance(options, dict):
        raise ConfigError(f"Source options must be a mapping, got {type(options).__name__}")
    return options


def _pick(data: Dict[str, Any], options: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """First present key, looked up in options then at the top level."""
    for container in (options, data):
        for key in keys:
            if key in container and container[key] is not None:
                return container[key]
    return default


def _string_list(value: Any, what: str) -> Optional[List[str]]:
    if value is None:
        return None
    if isinstance(value, str):
        return [value]
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"{what} must be a list of strings")
    return list(value)


@dataclass
class WebsiteSource:
    """A documentation website crawled from a seed URL."""
    name: str
    url: str
    max_depth: int = DEFAULT_MAX_DEPTH
    content_selector: Optional[str] = None
    title_selector: Optional[str] = None
    exclude: List[str] = field(default_factory=list)
    type: str = field(default=WEBSITE, init=False)

    def __post_init__(self):
        if not self.name:
            raise ConfigError("Source name cannot be empty")
        if not self.url or not re.match(r"^https?://[^/\s]+", self.url):
            raise ConfigError(f"Website source '{self.name}' needs an http(s) URL, got {self.url!r}")
        if not isinstance(self.max_depth, int) or isinstance(self.max_depth, bool) or self.max_depth < 0:
            raise ConfigError(f"maxDepth must be a non-negative integer, got {self.max_depth!r}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WebsiteSource':
        options = _options(data)
        selectors = options.get('selectors') or {}
        return cls(
            name=data.get('name', ''),
            url=data.get('url', ''),
            max_depth=_pick(data, options, 'maxDepth', 'max_depth', default=DEFAULT_MAX_DEPTH),
            content_selector=selectors.get('content') or _pick(data, options, 'contentSelector', 'content_selector'),
            title_selector=selectors.get('title') or _pick(data, options, 'titleSelector', 'title_selector'),
            exclude=_string_list(_pick(data, options, 'exclude', 'excludePatterns'), "exclude") or []
        )

    def to_dict(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {'maxDepth': self.max_depth}
        selectors = {}
        if self.content_selector:
            selectors['content'] = self.content_selector
        if self.title_selector:
            selectors['title'] = self.title_selector
        if selectors:
            options['selectors'] = selectors
        if self.exclude:
            options['exclude'] = list(self.exclude)
        return {'type': self.type, 'name': self.name, 'url': self.url, 'options': options}

    def describe(self) -> str:
        return f"URL: {self.url} (maxDepth={self.max_depth})"


@dataclass
class GitHubSource:
    """A repository whose documentation files are extracted from a shallow clone."""
    name: str
    repo: str
    branch: Optional[str] = None
    include_readme: bool = True
    include_wiki: bool = False
    exclude: Optional[List[str]] = None
    token: Optional[str] = None
    host: str = "https://github.com"
    type: str = field(default=GITHUB, init=False)

    def __post_init__(self):
        if not self.name:
            raise ConfigError("Source name cannot be empty")
        if not self.repo or not REPO_PATTERN.match(self.repo):
            raise ConfigError(f"GitHub source '{self.name}' needs an owner/repo identifier, got {self.repo!r}")
        if self.branch is not None and not str(self.branch).strip():
            raise ConfigError("Branch cannot be blank")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GitHubSource':
        options = _options(data)
        return cls(
            name=data.get('name', ''),
            repo=data.get('repo', ''),
            branch=_pick(data, options, 'branch'),
            include_readme=bool(_pick(data, options, 'includeReadme', 'include_readme', default=True)),
            include_wiki=bool(_pick(data, options, 'includeWiki', 'include_wiki', default=False)),
            exclude=_string_list(_pick(data, options, 'exclude', 'excludePatterns'), "exclude"),
            token=_pick(data, options, 'token'),
            host=_pick(data, options, 'host', default="https://github.com").rstrip('/')
        )

    def to_dict(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {
            'includeReadme': self.include_readme,
            'includeWiki': self.include_wiki,
        }
        if self.branch:
            options['branch'] = self.branch
        if self.exclude is not None:
            options['exclude'] = list(self.exclude)
        # Tokens are never written back out
        return {'type': self.type, 'name': self.name, 'repo': self.repo, 'options': options}

    def describe(self) -> str:
        return f"Repository: {self.repo}" + (f" (branch {self.branch})" if self.branch else "")


@dataclass
class LocalSource:
    """A file or directory tree on the local filesystem."""
    name: str
    path: str
    include: Optional[List[str]] = None
    exclude: Optional[List[str]] = None
    format: str = "auto"
    recursive: bool = True
    type: str = field(default=LOCAL, init=False)

    def __post_init__(self):
        if not self.name:
            raise ConfigError("Source name cannot be empty")
        if not self.path:
            raise ConfigError(f"Local source '{self.name}' needs a path")
        if self.format not in LOCAL_FORMATS:
            raise ConfigError(f"Invalid format {self.format!r}, expected one of {', '.join(LOCAL_FORMATS)}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LocalSource':
        options = _options(data)
        return cls(
            name=data.get('name', ''),
            path=str(data.get('path', '')),
            include=_string_list(_pick(data, options, 'include'), "include"),
            exclude=_string_list(_pick(data, options, 'exclude'), "exclude"),
            format=_pick(data, options, 'format', default="auto"),
            recursive=bool(_pick(data, options, 'recursive', default=True))
        )

    def to_dict(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {'format': self.format, 'recursive': self.recursive}
        if self.include is not None:
            options['include'] = list(self.include)
        if self.exclude is not None:
            options['exclude'] = list(self.exclude)
        return {'type': self.type, 'name': self.name, 'path': self.path, 'options': options}

    def describe(self) -> str:
        return f"Path: {self.path}"


SourceConfig = Union[WebsiteSource, GitHubSource, LocalSource]

SOURCE_TYPES = {
    WEBSITE: WebsiteSource,
    GITHUB: GitHubSource,
    LOCAL: LocalSource,
}


def source_from_dict(data: Dict[str, Any]) -> SourceConfig:
    """Build the tagged source variant named by ``data['type']``."""
    if not isinstance(data, dict):
        raise ConfigError(f"Source entry must be a mapping, got {type(data).__name__}")
    source_type = data.get('type')
    source_cls = SOURCE_TYPES.get(source_type)
    if source_cls is None:
        raise ConfigError(f"Unsupported source type: {source_type!r}")
    try:
        return source_cls.from_dict(data)
    except (TypeError, AttributeError) as e:
        raise ConfigError(f"Invalid {source_type} source '{data.get('name', '?')}': {e}") from e


@dataclass
class ProcessingOptions:
    """Global processing knobs; advisory for correctness."""
    max_concurrency: int = 5
    timeout: float = 10.0

    def __post_init__(self):
        if self.max_concurrency < 1:
            raise ConfigError("maxConcurrency must be at least 1")
        if self.timeout <= 0:
            raise ConfigError("timeout must be positive")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'ProcessingOptions':
        data = data or {}
        return cls(
            max_concurrency=int(data.get('maxConcurrency', data.get('max_concurrency', 5))),
            timeout=float(data.get('timeout', 10.0))
        )


@dataclass
class OutputOptions:
    """Where the snapshot goes and how it is served."""
    directory: Optional[str] = None
    transport: str = "stdio"
    port: int = 3000

    def __post_init__(self):
        if self.transport not in TRANSPORTS:
            raise ConfigError(f"Invalid transport {self.transport!r}, expected one of {', '.join(TRANSPORTS)}")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], server: Optional[Dict[str, Any]] = None) -> 'OutputOptions':
        data = data or {}
        server = server or {}
        return cls(
            directory=data.get('directory'),
            transport=server.get('transport', data.get('transport', 'stdio')),
            port=int(server.get('port', data.get('port', 3000)))
        )


@dataclass
class GeneratorConfig:
    """A full ingestion run: ordered sources plus processing and output options."""
    sources: List[SourceConfig]
    processing: ProcessingOptions = field(default_factory=ProcessingOptions)
    output: OutputOptions = field(default_factory=OutputOptions)

    def __post_init__(self):
        if not self.sources:
            raise ConfigError("At least one source must be configured")
        names = [source.name for source in self.sources]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ConfigError(f"Duplicate source names: {', '.join(duplicates)}")

    @property
    def source_names(self) -> List[str]:
        return [source.name for source in self.sources]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GeneratorConfig':
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a mapping")
        sources = data.get('sources')
        if not isinstance(sources, list):
            raise ConfigError("Configuration needs a 'sources' list")
        return cls(
            sources=[source_from_dict(entry) for entry in sources],
            processing=ProcessingOptions.from_dict(data.get('processing')),
            output=OutputOptions.from_dict(data.get('output'), data.get('server'))
        )


def load_config(config_path: Union[str, Path]) -> GeneratorConfig:
    """Load a generator configuration from a YAML or JSON file.

    Args:
        config_path: Path to a ``.yaml``/``.yml`` or ``.json`` file

    Returns:
        Validated GeneratorConfig

    Raises:
        ConfigError: if the file is missing, unparsable or invalid
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        text = path.read_text(encoding='utf-8')
        if path.suffix.lower() == '.json':
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to parse configuration {path}: {e}") from e

    config = GeneratorConfig.from_dict(data)
    logger.info(f"Loaded configuration with {len(config.sources)} sources from {path}")
    return config
