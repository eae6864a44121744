"""Command line entry points for docforge."""

from .main import main, build_parser

__all__ = ['main', 'build_parser']
