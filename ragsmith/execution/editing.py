"""Range resolution and splicing for edit_file, plus block lookup for locate_code."""

from __future__ import annotations

import dataclasses
import re
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from ..core.chunking import find_brace_block_end, find_python_block_end
from ..session import Session
from ..utils import normalize_path

_REPLACE_REQUEST = re.compile(r"\b(replace|overwrite|rewrite|regenerate|recreate)\b", re.IGNORECASE)


@dataclasses.dataclass(frozen=True)
class EditRange:
    start: int
    end: int
    # explicit | saved | retrieved | focus | find_spec | whole_file | append
    source: str


def line_span_to_offsets(text: str, start_line: int, end_line: int) -> Tuple[int, int]:
    """Character span of 1-based inclusive lines, excluding the last line's newline."""
    lines = text.split("\n")
    s = min(max(start_line, 1), len(lines))
    e = min(max(end_line, s), len(lines))
    start = sum(len(line) + 1 for line in lines[:s - 1])
    end = start + len("\n".join(lines[s - 1:e]))
    return start, end


def offsets_to_lines(text: str, start: int, end: int) -> Tuple[int, int]:
    return text.count("\n", 0, start) + 1, text.count("\n", 0, end) + 1


def splice(original: str, rng: EditRange, replacement: str) -> str:
    return original[:rng.start] + replacement + original[rng.end:]


def looks_like_replace_request(text: str) -> bool:
    return bool(_REPLACE_REQUEST.search(text or ""))


def _explicit_range(raw: Any, length: int) -> Optional[Tuple[int, int]]:
    if not isinstance(raw, dict):
        return None
    start, end = raw.get("start"), raw.get("end")
    if isinstance(start, bool) or isinstance(end, bool):
        return None
    if not isinstance(start, int) or not isinstance(end, int):
        return None
    start = min(max(start, 0), length)
    end = min(max(end, start), length)
    return start, end


def resolve_edit_range(
    original: str,
    path: Path,
    args: Dict[str, Any],
    session: Session,
    request_text: str = "",
) -> EditRange:
    """Pick the character range an edit applies to.

    Candidates, first match wins: explicit ``range``; a saved location on the
    same file (``use_saved_range`` or the most recent one); the cached
    retrieval chunk on the same file; the editor focus on the same file; a
    literal ``find_spec`` hit; the whole file. The whole-file case becomes an
    append when the file has content and the request does not ask to
    replace it.
    """
    key = normalize_path(path)
    length = len(original)

    explicit = _explicit_range(args.get("range"), length)
    if explicit is not None:
        return EditRange(explicit[0], explicit[1], "explicit")

    wanted = args.get("use_saved_range")
    saved = None
    if isinstance(wanted, str) and wanted in session.saved_locations:
        candidate = session.saved_locations[wanted]
        if normalize_path(candidate.path) == key:
            saved = candidate
    if saved is None:
        for loc in reversed(list(session.saved_locations.values())):
            if normalize_path(loc.path) == key:
                saved = loc
                break
    if saved is not None and saved.end_offset <= length:
        return EditRange(saved.start_offset, saved.end_offset, "saved")

    for item in session.last_retrieved:
        if normalize_path(item.chunk.file_path) == key:
            start, end = line_span_to_offsets(original, item.chunk.start_line, item.chunk.end_line)
            return EditRange(start, end, "retrieved")

    focus = session.focus
    if focus is not None and normalize_path(focus.path) == key and focus.end_offset <= length:
        return EditRange(focus.start_offset, max(focus.start_offset, focus.end_offset), "focus")

    find_spec = args.get("find_spec")
    if isinstance(find_spec, str) and find_spec.strip():
        idx = original.find(find_spec)
        if idx != -1:
            return EditRange(idx, idx + len(find_spec), "find_spec")

    if original.strip() and not looks_like_replace_request(request_text):
        return EditRange(length, length, "append")
    return EditRange(0, length, "whole_file")


_NAME_TEMPLATES = (
    r"(?:export\s+)?(?:async\s+)?function\s*\*?\s*{name}\s*\(",
    r"(?:const|let|var)\s+{name}\s*=",
    r"(?:async\s+)?def\s+{name}\s*\(",
    r"class\s+{name}\b",
    r"interface\s+{name}\b",
    r"{name}\s*=\s*\(",
    r"{name}\s*\([^)\n]*\)\s*(?::\s*[\w<>\[\], |]+)?\s*\{{",
)


def find_block(text: str, language: Optional[str], name: str = "", pattern: str = "") -> Optional[Tuple[int, int]]:
    """Character span of the block declared by the first name/pattern hit.

    Raises re.error for an invalid pattern.
    """
    match = None
    if pattern:
        match = re.compile(pattern, re.MULTILINE).search(text)
    if match is None and name:
        for template in _NAME_TEMPLATES:
            match = re.compile(template.format(name=re.escape(name)), re.MULTILINE).search(text)
            if match:
                break
    if match is None:
        return None

    lines = text.split("\n")
    first = text.count("\n", 0, match.start())
    if language == "python":
        last = find_python_block_end(lines, first)
    else:
        last = find_brace_block_end(lines, first)
    start, _ = line_span_to_offsets(text, first + 1, first + 1)
    _, end = line_span_to_offsets(text, first + 1, last)
    return start, end
