"""File utility functions."""

from __future__ import annotations

import fnmatch
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Iterable, List


def ensure_dir(p: Path) -> None:
    """Create directory if it doesn't exist."""
    p.mkdir(parents=True, exist_ok=True)


def is_binary_file(path: Path) -> bool:
    """Check if file is binary by looking for null bytes."""
    try:
        with path.open("rb") as f:
            sample = f.read(2048)
        return b"\x00" in sample
    except OSError:
        return True


def match_any(rel_posix: str, patterns: Iterable[str]) -> bool:
    """Match a repo-relative posix path against fnmatch globs.

    ``**/x/**`` style patterns also match at the root ("x/a.py").
    """
    anchored = "/" + rel_posix
    return any(fnmatch.fnmatch(rel_posix, p) or fnmatch.fnmatch(anchored, p) for p in patterns)


def iter_matching_files(
    root: Path,
    include_globs: List[str],
    exclude_globs: List[str],
    max_kb: int = 0,
) -> List[Path]:
    """List files under root matching include globs and none of the excludes.

    Oversized and binary files are skipped. The result is sorted.
    """
    out: List[Path] = []
    for p in root.rglob("*"):
        if not p.is_file():
            continue
        rel = p.relative_to(root).as_posix()
        if include_globs and not match_any(rel, include_globs):
            continue
        if match_any(rel, exclude_globs):
            continue
        try:
            if max_kb and p.stat().st_size > max_kb * 1024:
                continue
        except OSError:
            continue
        if is_binary_file(p):
            continue
        out.append(p)
    return sorted(out)


def normalize_path(path: str | Path) -> str:
    """Absolute posix form used as a key in the chunk store and planner index."""
    return Path(path).resolve().as_posix()


def write_json_atomic(path: Path, data: Any) -> None:
    """Write JSON through a temp file in the same directory, then os.replace."""
    ensure_dir(path.parent)
    fd, tmp = tempfile.mkstemp(prefix=path.name, suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise
