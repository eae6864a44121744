"""Configuration module for docforge.

Provides environment-driven runtime settings.
"""

from .settings import (
    Settings,
    get_settings,
    reset_settings
)

__all__ = [
    'Settings',
    'get_settings',
    'reset_settings'
]
