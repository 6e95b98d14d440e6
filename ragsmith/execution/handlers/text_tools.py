"""Plain-text search/replace and structured JSON updates."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Tuple

from ...config.manager import DEFAULT_EXCLUDE_PATTERNS, _expand_patterns
from ...errors import ToolExecutionError
from ...planning.models import Step
from ...utils import iter_matching_files
from ..context import ToolContext
from .args import int_arg

_FLAG_LETTERS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}


def parse_flags(flags: str) -> int:
    value = 0
    for letter in (flags or "").lower():
        if letter in _FLAG_LETTERS:
            value |= _FLAG_LETTERS[letter]
        elif letter not in " ,g":
            raise ToolExecutionError(f"Unknown regex flag: {letter}")
    return value


def _compile(pattern: str, flags: int = 0) -> re.Pattern:
    try:
        return re.compile(pattern, flags)
    except re.error as e:
        raise ToolExecutionError(f"Invalid regex {pattern!r}: {e}") from e


def _globs(value: Any) -> List[str]:
    if isinstance(value, list):
        raw = [str(v) for v in value]
    elif isinstance(value, str) and value.strip():
        raw = [v.strip() for v in value.split(",") if v.strip()]
    else:
        return []
    return _expand_patterns(raw)


def handle_search_text(ctx: ToolContext, args: Dict[str, Any], step: Step) -> str:
    query = str(args.get("query") or "")
    if not query:
        return "search_text: empty query."
    pattern = _compile(query if args.get("is_regex") else re.escape(query))
    top_k = int_arg(args, "top_k", 20, minimum=1)
    include = _globs(args.get("include")) or ["**/*"]
    exclude = ctx.cfg.get("exclude_globs") or _expand_patterns(DEFAULT_EXCLUDE_PATTERNS)
    exclude = list(exclude) + _globs(args.get("exclude"))
    max_kb = int(ctx.cfg.get("max_file_size_kb", 512))

    hits: List[str] = []
    for path in iter_matching_files(ctx.workspace.root, include, exclude, max_kb):
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            continue
        for lineno, line in enumerate(text.split("\n"), start=1):
            if pattern.search(line):
                hits.append(f"{ctx.workspace.rel(path)}:{lineno}: {line.strip()[:200]}")
                if len(hits) >= top_k:
                    return f"search_text: {len(hits)} matches (limit reached)\n" + "\n".join(hits)
    if not hits:
        return f"search_text: no matches for {query!r}."
    return f"search_text: {len(hits)} matches\n" + "\n".join(hits)


def handle_replace_in_file(ctx: ToolContext, args: Dict[str, Any], step: Step) -> str:
    raw_path = str(args.get("path") or "")
    find = args.get("find")
    replace = args.get("replace")
    if not isinstance(find, str) or not find or not isinstance(replace, str):
        return "replace_in_file: 'find' and 'replace' strings are required."
    target = ctx.workspace.resolve(raw_path)
    text = ctx.workspace.read_text(target)

    if args.get("is_regex"):
        pattern = _compile(find, parse_flags(str(args.get("flags") or "")))
        try:
            updated, count = pattern.subn(replace, text)
        except re.error as e:
            raise ToolExecutionError(f"Invalid replacement {replace!r}: {e}") from e
    else:
        count = text.count(find)
        updated = text.replace(find, replace)
    if count == 0:
        return f"replace_in_file: no occurrences in {raw_path}."
    ctx.workspace.write_text(target, updated)
    ctx.mark_changed(target)
    return f"replace_in_file: replaced {count} occurrence(s) in {raw_path}."


def split_json_path(path: str) -> List[str]:
    """``a.b.0`` or ``/a/b/0`` (JSON pointer, with ~0/~1 escapes) into keys."""
    if path.startswith("/"):
        return [p.replace("~1", "/").replace("~0", "~") for p in path[1:].split("/")]
    return [p for p in path.split(".") if p != ""]


def _child(container: Any, key: str) -> Tuple[Any, Any]:
    if isinstance(container, list):
        if key == "-":
            idx = len(container)
        elif key.isdigit():
            idx = int(key)
        else:
            raise ToolExecutionError(f"List index expected, got {key!r}")
        if idx > len(container):
            raise ToolExecutionError(f"List index out of range: {key}")
        return container, idx
    if isinstance(container, dict):
        return container, key
    raise ToolExecutionError(f"Cannot descend into {type(container).__name__} at {key!r}")


def set_json_value(doc: Any, path: str, value: Any) -> Any:
    """Set value at path, creating missing objects; an index equal to the list length appends."""
    keys = split_json_path(path)
    if not keys:
        return value
    node = doc
    for key in keys[:-1]:
        parent, slot = _child(node, key)
        if isinstance(parent, list):
            if slot == len(parent):
                parent.append({})
            node = parent[slot]
            continue
        if slot not in parent or not isinstance(parent[slot], (dict, list)):
            parent[slot] = {}
        node = parent[slot]
    parent, slot = _child(node, keys[-1])
    if isinstance(parent, list) and slot == len(parent):
        parent.append(value)
    else:
        parent[slot] = value
    return doc


def handle_update_json(ctx: ToolContext, args: Dict[str, Any], step: Step) -> str:
    raw_path = str(args.get("path") or "")
    updates = args.get("updates")
    if not isinstance(updates, list) or not updates:
        return "update_json: 'updates' must be a non-empty list."
    target = ctx.workspace.resolve(raw_path)
    create = bool(args.get("create_if_missing"))
    if target.is_file():
        try:
            doc = json.loads(ctx.workspace.read_text(target) or "{}")
        except json.JSONDecodeError as e:
            raise ToolExecutionError(f"{raw_path} is not valid JSON: {e}") from e
    elif create:
        doc = {}
    else:
        raise ToolExecutionError(f"File not found: {raw_path}")

    applied = []
    for update in updates:
        if not isinstance(update, dict) or not isinstance(update.get("path"), str) or "value" not in update:
            raise ToolExecutionError(f"Bad update entry: {update!r}")
        doc = set_json_value(doc, update["path"], update["value"])
        applied.append(update["path"])
    ctx.workspace.write_text(target, json.dumps(doc, indent=2, ensure_ascii=False) + "\n")
    ctx.mark_changed(target)
    return f"update_json: set {', '.join(applied)} in {raw_path}."
