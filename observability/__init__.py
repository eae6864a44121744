"""Observability package for docforge."""

from .logging import setup_logging, JSONFormatter, ColoredFormatter

__all__ = [
    'setup_logging',
    'JSONFormatter',
    'ColoredFormatter'
]
