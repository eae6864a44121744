import json
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from indexer.source_schema import ConfigError
from sources.loader import (
    GeneratorConfig, GitHubSource, LocalSource, WebsiteSource, load_config, source_from_dict
)

CONFIG_YAML = """
sources:
  - type: website
    name: site
    url: https://docs.example.com
    options:
      maxDepth: 2
      selectors:
        content: article
        title: h1
      exclude: ["/blog/"]
  - type: github
    name: repo
    repo: owner/project
    options:
      includeWiki: true
      branch: develop
  - type: local
    name: notes
    path: ./notes
    options:
      format: markdown
      recursive: false
processing:
  maxConcurrency: 3
  timeout: 20
output:
  directory: ./out
server:
  transport: http
  port: 8080
"""

def test_load_yaml_config(tmp_path):
    """Test loading a full YAML configuration with nested options."""
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG_YAML, encoding="utf-8")
    config = load_config(path)

    site, repo, notes = config.sources
    assert isinstance(site, WebsiteSource)
    assert site.max_depth == 2
    assert site.content_selector == "article"
    assert site.title_selector == "h1"
    assert site.exclude == ["/blog/"]

    assert isinstance(repo, GitHubSource)
    assert repo.include_wiki is True
    assert repo.include_readme is True
    assert repo.branch == "develop"

    assert isinstance(notes, LocalSource)
    assert notes.format == "markdown"
    assert notes.recursive is False

    assert config.processing.max_concurrency == 3
    assert config.processing.timeout == 20.0
    assert config.output.directory == "./out"
    assert config.output.transport == "http"
    assert config.output.port == 8080
    assert config.source_names == ["site", "repo", "notes"]

def test_load_json_config(tmp_path):
    """Test loading a JSON configuration."""
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"sources": [{"type": "local", "name": "n", "path": "."}]}),
                    encoding="utf-8")
    config = load_config(path)
    assert config.sources[0].type == "local"
    assert config.output.transport == "stdio"

def test_missing_config_file(tmp_path):
    """Test that a missing file is a configuration error."""
    with pytest.raises(ConfigError):
        load_config(tmp_path / "nope.yaml")

def test_unparsable_config(tmp_path):
    """Test that invalid YAML is a configuration error."""
    path = tmp_path / "bad.yaml"
    path.write_text("sources: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)

def test_website_defaults():
    """Test default crawl depth."""
    source = source_from_dict({"type": "website", "name": "s", "url": "https://example.com"})
    assert source.max_depth == 5
    assert source.exclude == []

def test_invalid_source_combinations():
    """Test construction-time validation of each source kind."""
    with pytest.raises(ConfigError):
        source_from_dict({"type": "website", "name": "s", "url": "ftp://example.com"})
    with pytest.raises(ConfigError):
        source_from_dict({"type": "website", "name": "s", "url": "https://x.com", "options": {"maxDepth": -1}})
    with pytest.raises(ConfigError):
        source_from_dict({"type": "github", "name": "g", "repo": "not-a-repo"})
    with pytest.raises(ConfigError):
        source_from_dict({"type": "local", "name": "l", "path": ".", "options": {"format": "pdf"}})
    with pytest.raises(ConfigError):
        source_from_dict({"type": "ftp", "name": "x"})
    with pytest.raises(ConfigError):
        source_from_dict({"type": "local", "name": "", "path": "."})

def test_duplicate_source_names_rejected():
    """Test that source names must be unique."""
    with pytest.raises(ConfigError, match="Duplicate source names"):
        GeneratorConfig(sources=[LocalSource(name="a", path="."), LocalSource(name="a", path="docs")])

def test_empty_sources_rejected():
    """Test that at least one source is required."""
    with pytest.raises(ConfigError):
        GeneratorConfig.from_dict({"sources": []})

def test_token_not_serialized():
    """Test that repository tokens are not written back out."""
    source = GitHubSource(name="g", repo="owner/repo", token="secret")
    assert "secret" not in json.dumps(source.to_dict())
    assert GitHubSource.from_dict(source.to_dict()).repo == "owner/repo"
