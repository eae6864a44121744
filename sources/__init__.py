"""Sources package for docforge.

Provides source configuration loading and validation.
"""

from .loader import (
    WebsiteSource,
    GitHubSource,
    LocalSource,
    SourceConfig,
    ProcessingOptions,
    OutputOptions,
    GeneratorConfig,
    source_from_dict,
    load_config
)

__all__ = [
    'WebsiteSource',
    'GitHubSource',
    'LocalSource',
    'SourceConfig',
    'ProcessingOptions',
    'OutputOptions',
    'GeneratorConfig',
    'source_from_dict',
    'load_config'
]
