"""Configuration management for ragsmith."""

from .manager import (
    DEFAULT_CONFIG,
    DEFAULT_INCLUDE_PATTERNS,
    DEFAULT_EXCLUDE_PATTERNS,
    STATE_DIR_NAME,
    load_config,
    cfg_fingerprint,
    expand_pattern,
    normalize_ignore_line,
    read_index_ignore,
    ensure_index_ignore,
)

__all__ = [
    "DEFAULT_CONFIG",
    "DEFAULT_INCLUDE_PATTERNS",
    "DEFAULT_EXCLUDE_PATTERNS",
    "STATE_DIR_NAME",
    "load_config",
    "cfg_fingerprint",
    "expand_pattern",
    "normalize_ignore_line",
    "read_index_ignore",
    "ensure_index_ignore",
]
