"""Configuration management for ragsmith."""

from __future__ import annotations

import copy
import hashlib
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

STATE_DIR_NAME = ".ragsmith"
INDEX_IGNORE_NAME = ".indexignore"

DEFAULT_INCLUDE_PATTERNS: List[str] = [
    "*.py", "*.js", "*.jsx", "*.mjs", "*.cjs", "*.ts", "*.tsx",
    "*.java", "*.cs",
    "*.c", "*.h", "*.cc", "*.cpp", "*.cxx", "*.hh", "*.hpp", "*.hxx",
    "*.json", "*.css",
]

DEFAULT_EXCLUDE_PATTERNS: List[str] = [
    ".git/**",
    "node_modules/**",
    "dist/**",
    "out/**",
    "build/**",
    ".venv/**",
    "venv/**",
    "__pycache__/**",
    STATE_DIR_NAME + "/**",
    ".next/**",
    ".idea/**",
    ".vscode/**",
    "package-lock.json",
    "**/package-lock.json",
    ".env",
    ".env.*",
]

# The planner index also covers docs and config files that carry no chunks.
PLANNER_INCLUDE_PATTERNS: List[str] = [
    "*.ts", "*.tsx", "*.js", "*.jsx", "*.py", "*.java", "*.go", "*.cs",
    "*.cpp", "*.c", "*.hpp", "*.h", "*.json", "*.md", "*.yml", "*.yaml",
]

INDEX_IGNORE_TEMPLATE = """# Paths excluded from the planner and chunk indexes.
# One glob per line. Lines starting with # or // are comments.
# "name/" excludes every directory called name, "name" excludes name/**.

**/node_modules/**
**/dist/**
**/out/**
**/.git/**
**/.vscode/**
**/{state_dir}/**
""".format(state_dir=STATE_DIR_NAME)

DEFAULT_CONFIG: Dict[str, Any] = {
    "state_dir": STATE_DIR_NAME,
    "source_name": "workspace",
    "max_file_size_kb": 512,
    "indexing": {
        "concurrency": 4,
        "summaries": True,
        "embeddings": True,
        "summary_timeout_s": 10.0,
        "embedding_timeout_s": 10.0,
    },
    "planner_index": {
        "concurrency": 4,
        "file_timeout_s": 15.0,
        "dir_timeout_s": 15.0,
        "root_timeout_s": 20.0,
    },
    "llm": {
        "api_base": "http://localhost:8000/v1",
        "model": "",
        "api_key": None,
        "max_tokens": 2048,
        "temperature": 0.1,
        "timeout": 120,
    },
    "embedding": {
        # sentence_transformers | api | none
        "backend": "sentence_transformers",
        "sentence_transformers_model": "sentence-transformers/all-MiniLM-L6-v2",
        "api_model": "",
    },
    "retrieval": {
        "top_k": 50,
        "rerank_top_n": 10,
        "max_context_tokens": 10000,
        "rerank_threshold": 0.7,
        "cohere_api_key": None,
        "cohere_model": "rerank-english-v3.0",
        "cohere_url": "https://api.cohere.com/v1/rerank",
    },
    "executor": {
        "recent_outputs": 5,
        "command_timeout_ms": 60000,
        "allowed_command_prefixes": [
            "npm", "npx", "pnpm", "yarn", "node", "tsc", "eslint", "prettier",
            "python", "python3", "pip", "pytest", "ruff", "black", "mypy",
            "git status", "git diff", "git log", "ls", "dir", "make",
            "cargo", "go",
        ],
        "formatters": {
            ".py": ["black", "-q"],
            ".js": ["npx", "prettier", "--write"],
            ".jsx": ["npx", "prettier", "--write"],
            ".ts": ["npx", "prettier", "--write"],
            ".tsx": ["npx", "prettier", "--write"],
            ".json": ["npx", "prettier", "--write"],
            ".css": ["npx", "prettier", "--write"],
        },
    },
}


def expand_pattern(pattern: str) -> List[str]:
    """Expand pattern to include both root and nested versions.

    Examples:
        '*.py' -> ['*.py', '**/*.py']
        'venv/**' -> ['venv/**', '**/venv/**']
    """
    pattern = pattern.strip()
    if not pattern or pattern.startswith("#"):
        return []

    if pattern.startswith("**/"):
        return [pattern]

    if pattern.startswith("*."):
        return [pattern, "**/" + pattern]

    if "/**" in pattern:
        return [pattern, "**/" + pattern]

    return [pattern]


def _expand_patterns(patterns: List[str]) -> List[str]:
    """Expand and deduplicate patterns while preserving order."""
    out: List[str] = []
    seen: set[str] = set()
    for p in patterns:
        for ep in expand_pattern(p):
            if ep not in seen:
                seen.add(ep)
                out.append(ep)
    return out


def normalize_ignore_line(line: str) -> Optional[str]:
    """Turn one .indexignore line into a glob, or None for blanks/comments.

    Examples:
        'build/'   -> '**/build**'
        'coverage' -> '**/coverage/**'
        '*.log'    -> '*.log'
    """
    line = line.strip()
    if not line or line.startswith("#") or line.startswith("//"):
        return None
    if line.endswith("/**") or "*" in line:
        return line
    if line.endswith("/"):
        return f"**/{line}**"
    return f"**/{line}/**"


def read_index_ignore(repo: Path, state_dir: str = STATE_DIR_NAME) -> List[str]:
    """Read exclusion globs from the state dir's .indexignore, else the root one."""
    for candidate in (repo / state_dir / INDEX_IGNORE_NAME, repo / INDEX_IGNORE_NAME):
        if candidate.is_file():
            text = candidate.read_text(encoding="utf-8", errors="replace")
            patterns = [p for p in (normalize_ignore_line(l) for l in text.splitlines()) if p]
            logger.debug(f"Loaded {len(patterns)} ignore patterns from {candidate}")
            return patterns
    return []


def ensure_index_ignore(repo: Path, state_dir: str = STATE_DIR_NAME) -> Path:
    """Write the template .indexignore into the state dir if no file exists yet."""
    path = repo / state_dir / INDEX_IGNORE_NAME
    if not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(INDEX_IGNORE_TEMPLATE, encoding="utf-8")
        logger.info(f"Created {path}")
    return path


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def load_config(repo: Path) -> Dict[str, Any]:
    """Load configuration.

    Starts from DEFAULT_CONFIG, merges ``<state_dir>/config.json`` when present,
    applies environment overrides and expands include/exclude patterns.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    user_cfg = repo / config["state_dir"] / "config.json"
    if user_cfg.is_file():
        try:
            _deep_merge(config, json.loads(user_cfg.read_text(encoding="utf-8")))
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring invalid {user_cfg}: {e}")

    # Override from environment
    config["llm"]["api_base"] = os.getenv("RAGSMITH_LLM_API_BASE", config["llm"]["api_base"])
    config["llm"]["model"] = os.getenv("RAGSMITH_LLM_MODEL", config["llm"]["model"])
    config["llm"]["api_key"] = os.getenv("RAGSMITH_LLM_API_KEY", config["llm"]["api_key"])
    config["embedding"]["backend"] = os.getenv(
        "RAGSMITH_EMBEDDING_BACKEND", config["embedding"]["backend"]
    )
    config["embedding"]["sentence_transformers_model"] = os.getenv(
        "RAGSMITH_EMBEDDING_MODEL", config["embedding"]["sentence_transformers_model"]
    )
    config["retrieval"]["cohere_api_key"] = os.getenv(
        "COHERE_API_KEY", config["retrieval"]["cohere_api_key"]
    )

    # Expand patterns
    ignore = read_index_ignore(repo, config["state_dir"])
    config["include_globs"] = _expand_patterns(config.get("include_patterns", DEFAULT_INCLUDE_PATTERNS))
    config["exclude_globs"] = _expand_patterns(
        config.get("exclude_patterns", DEFAULT_EXCLUDE_PATTERNS)
    ) + ignore
    config["planner_include_globs"] = _expand_patterns(PLANNER_INCLUDE_PATTERNS)
    config["planner_exclude_globs"] = _expand_patterns(
        ["node_modules/**", "dist/**", "out/**", ".git/**", ".vscode/**", config["state_dir"] + "/**"]
    ) + ignore

    return config


def cfg_fingerprint(cfg: Dict) -> str:
    """Generate fingerprint hash for config."""
    payload = json.dumps(cfg, sort_keys=True, ensure_ascii=False).encode("utf-8")
    return hashlib.sha256(payload).hexdigest()
