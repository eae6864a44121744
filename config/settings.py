"""Runtime settings for docforge.

Environment-driven defaults for crawling, cloning, logging and serving. Values
in a source configuration file take precedence over these.
"""

import os
import logging
from typing import List, Optional
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class Settings(BaseModel):
    """Process-wide settings."""
    log_level: str = Field(default="INFO", description="Root log level")
    json_logs: bool = Field(default=False, description="Emit JSON log lines instead of colored text")
    log_file: Optional[str] = Field(default=None, description="Optional JSON log file")

    user_agent: str = Field(default="Mozilla/5.0 (compatible; docforge/0.1.0)", description="Crawler User-Agent")
    request_timeout: float = Field(default=10.0, description="Per-page fetch timeout in seconds")
    max_concurrency: int = Field(default=5, description="Maximum outstanding page fetches")

    clone_timeout: float = Field(default=300.0, description="Timeout for one git clone in seconds")
    github_token: Optional[str] = Field(default=None, description="Token used for private repository clones")

    host: str = Field(default="127.0.0.1", description="HTTP bind address")
    port: int = Field(default=3000, description="HTTP port")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], description="Origins allowed by the HTTP transport")

    @classmethod
    def from_env(cls) -> 'Settings':
        """Create settings from environment variables."""
        return cls(
            log_level=os.getenv('DOCFORGE_LOG_LEVEL', 'INFO').upper(),
            json_logs=os.getenv('DOCFORGE_JSON_LOGS', 'false').lower() in ('1', 'true', 'yes'),
            log_file=os.getenv('DOCFORGE_LOG_FILE') or None,
            user_agent=os.getenv('DOCFORGE_USER_AGENT', 'Mozilla/5.0 (compatible; docforge/0.1.0)'),
            request_timeout=float(os.getenv('DOCFORGE_TIMEOUT', '10')),
            max_concurrency=int(os.getenv('DOCFORGE_MAX_CONCURRENCY', '5')),
            clone_timeout=float(os.getenv('DOCFORGE_CLONE_TIMEOUT', '300')),
            github_token=os.getenv('GITHUB_TOKEN') or None,
            host=os.getenv('DOCFORGE_HOST', '127.0.0.1'),
            port=int(os.getenv('DOCFORGE_PORT', '3000')),
            cors_origins=[o.strip() for o in os.getenv('DOCFORGE_CORS_ORIGINS', '*').split(',') if o.strip()]
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the cached settings instance, reading the environment once."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings():
    """Drop cached settings so the environment is read again."""
    global _settings
    _settings = None
