"""Logging setup for the docforge CLI and servers.

Console output is a colored one-line format or JSON lines; the optional log
file is always JSON.
"""

from __future__ import annotations
import logging
import sys
import json
from typing import Optional, TextIO
from datetime import datetime, timezone
from pathlib import Path

SERVICE_NAME = "docforge"

# Attributes every LogRecord carries; anything else was passed via ``extra``
_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message"}

LEVEL_COLORS = {
    'DEBUG': '\033[90m',
    'INFO': '\033[32m',
    'WARNING': '\033[33m',
    'ERROR': '\033[31m',
    'CRITICAL': '\033[35m',
}
RESET = '\033[0m'

class JSONFormatter(logging.Formatter):
    """One JSON object per record, including ``extra`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": SERVICE_NAME,
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update((key, value) for key, value in vars(record).items() if key not in _RESERVED_ATTRS)
        return json.dumps(entry, default=str)

class ColoredFormatter(logging.Formatter):
    """``time | LEVEL | logger | message``, colored by level on a terminal."""

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S')
        line = f"{timestamp} | {record.levelname:8} | {record.name} | {record.getMessage()}"
        if self.use_colors and record.levelname in LEVEL_COLORS:
            line = f"{LEVEL_COLORS[record.levelname]}{line}{RESET}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line

def setup_logging(level: str = "INFO", log_file: Optional[str] = None, use_json: bool = False,
                  use_colors: bool = True, stream: Optional[TextIO] = None) -> None:
    """Replace the root handlers with a console handler and an optional file handler.

    Args:
        level: Log level name; unknown names fall back to INFO
        log_file: Path of a JSON-lines log file, parents created as needed
        use_json: JSON lines on the console instead of the colored format
        use_colors: Color console lines by level
        stream: Console stream; stderr when stdout carries a protocol
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(numeric_level)

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setFormatter(JSONFormatter() if use_json else ColoredFormatter(use_colors))
    root_logger.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    # Per-request chatter from the HTTP stack
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
