"""exex environment configuration.

Environment variables:
    EXEX_CAPTURE_CHUNK_SIZE: Read size used when draining a captured stderr
        - default 1024 bytes
        - clamped to 64..1048576, invalid values fall back to the default

    EXEX_LOG_DEBUG: Debug logging for the exex command line
        - true/1/yes/on = DEBUG logs written to a temporary file
        - false/0/no/off = INFO logs on stderr (default)
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_CAPTURE_CHUNK_SIZE = 1024
MIN_CAPTURE_CHUNK_SIZE = 64
MAX_CAPTURE_CHUNK_SIZE = 1024 * 1024


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_chunk_size(value: str | None) -> int:
    """Parse EXEX_CAPTURE_CHUNK_SIZE."""
    if not value:
        return DEFAULT_CAPTURE_CHUNK_SIZE
    try:
        size = int(value)
    except ValueError:
        return DEFAULT_CAPTURE_CHUNK_SIZE
    return max(MIN_CAPTURE_CHUNK_SIZE, min(size, MAX_CAPTURE_CHUNK_SIZE))


def _generate_log_file_path() -> str:
    """Build a timestamped log file path under the system temp directory."""
    log_dir = Path(tempfile.gettempdir()) / "exex"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"exex_debug_{timestamp}.log"

    return str(log_file.resolve())


@dataclass
class Config:
    """exex settings.

    Attributes:
        capture_chunk_size: Bytes read per call when draining captured stderr
        log_debug: Send DEBUG logs to a temporary file
        log_file: Log file path (set when log_debug is on)
    """

    capture_chunk_size: int = DEFAULT_CAPTURE_CHUNK_SIZE
    log_debug: bool = False
    log_file: str | None = None


def load_config() -> Config:
    """Load settings from the environment."""
    log_debug = _parse_bool(os.environ.get("EXEX_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        capture_chunk_size=_parse_chunk_size(os.environ.get("EXEX_CAPTURE_CHUNK_SIZE")),
        log_debug=log_debug,
        log_file=log_file,
    )


# Loaded on first use
_config: Config | None = None


def get_config() -> Config:
    """Return the process-wide configuration."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload the configuration from the environment (used by tests)."""
    global _config
    _config = load_config()
    return _config
