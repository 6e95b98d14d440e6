"""Utility helpers for ragsmith."""

from .file_utils import (
    ensure_dir,
    is_binary_file,
    match_any,
    iter_matching_files,
    normalize_path,
    write_json_atomic,
)
from .llm_text import (
    clean_llm_json_block,
    clean_llm_code_block,
    extract_only_code,
    parse_json_object,
    parse_summary,
)

__all__ = [
    "ensure_dir",
    "is_binary_file",
    "match_any",
    "iter_matching_files",
    "normalize_path",
    "write_json_atomic",
    "clean_llm_json_block",
    "clean_llm_code_block",
    "extract_only_code",
    "parse_json_object",
    "parse_summary",
]
