"""File system handlers. Code is generated here, at execution time, never in the plan."""

from __future__ import annotations

import fnmatch
import logging
from pathlib import Path
from typing import Any, Dict, List

from ...core.chunking import get_language_for_file
from ...errors import ToolExecutionError
from ...planning.models import Step
from ...session import SavedLocation
from ...utils import extract_only_code, normalize_path
from ..context import ToolContext
from .args import int_arg
from ..editing import line_span_to_offsets, resolve_edit_range, splice
from .index_tools import compose_retrieved_context, pick_best_retrieved

logger = logging.getLogger(__name__)

MAX_READ_CHARS = 12000

EDIT_SNIPPET_SYSTEM = (
    "You are a senior engineer. Update ONLY the provided code snippet based on the change specification. "
    "Output ONLY the updated snippet as a single Markdown code block. No prose, no explanation."
)
EDIT_FILE_SYSTEM = (
    "You are a senior engineer. Update the given file based on the change specification. "
    "Output ONLY the complete, final file content as a single Markdown code block. No prose, no explanation."
)
ADD_CODE_SYSTEM = (
    "You are a senior engineer. Produce ONLY the minimal {language} code to add to the file, based on the "
    "specification. Output ONE Markdown code block with only the code. Do not repeat existing code."
)
CREATE_FILE_SYSTEM = (
    "You are a senior engineer. Write the complete content of a new {language} file named {name} based on "
    "the specification. Output ONE Markdown code block with only the file content."
)


def _spec_block(title: str, text: str) -> List[str]:
    return [f"{title}:", "---", text, "---"]


def _request_parts(step: Step, spec: str) -> List[str]:
    parts = _spec_block("Change specification", spec or step.action or step.thought)
    if step.thought.strip():
        parts += _spec_block("User request (from plan.thought)", step.thought)
    return parts


def _with_context(ctx: ToolContext, parts: List[str]) -> str:
    retrieved = compose_retrieved_context(ctx)
    if retrieved:
        parts = parts + ["", "Relevant context (snippets):", retrieved]
    return "\n".join(parts)


def _generate(ctx: ToolContext, system: str, user: str) -> str:
    return extract_only_code(ctx.chat([{"role": "system", "content": system}, {"role": "user", "content": user}]))


def _language(path: Path) -> str:
    return get_language_for_file(path.name) or "plain text"


def handle_create_file(ctx: ToolContext, args: Dict[str, Any], step: Step) -> str:
    raw_path = str(args.get("path") or "").strip()
    if not raw_path:
        return "create_file: missing path."
    target = ctx.workspace.resolve(raw_path)
    if target.exists():
        return f"create_file: file already exists: {raw_path}"

    content = ""
    spec = args.get("content_spec")
    if isinstance(spec, str) and spec.strip():
        system = CREATE_FILE_SYSTEM.format(language=_language(target), name=target.name)
        content = _generate(ctx, system, _with_context(ctx, _spec_block("Specification", spec)))
        if content and not content.endswith("\n"):
            content += "\n"
    ctx.workspace.write_text(target, content)
    ctx.mark_changed(target)
    return f"File created: {raw_path}" + (f" ({len(content)} chars)" if content else "")


def handle_edit_file(ctx: ToolContext, args: Dict[str, Any], step: Step) -> str:
    raw_path = str(args.get("path") or "").strip()
    if raw_path:
        target = ctx.workspace.resolve(raw_path)
    else:
        best = pick_best_retrieved(ctx, step.action or step.ui_text or "")
        if best is None:
            return "edit_file: no path given and no retrieved chunk to edit."
        target = ctx.workspace.resolve(best.chunk.file_path)
    rel = ctx.workspace.rel(target)
    original = target.read_text(encoding="utf-8", errors="replace") if target.is_file() else ""

    change_spec = str(args.get("change_spec") or "")
    find_spec = args.get("find_spec") if isinstance(args.get("find_spec"), str) else ""
    rng = resolve_edit_range(original, target, args, ctx.session, " ".join([change_spec, step.text()]))
    logger.debug(f"edit_file {rel}: range {rng.start}-{rng.end} from {rng.source}")
    parts = _request_parts(step, change_spec)

    if rng.source == "append":
        parts += ["Existing file (reference only; do NOT repeat unchanged parts):", "```", original, "```"]
        system = ADD_CODE_SYSTEM.format(language=_language(target))
        snippet = _generate(ctx, system, _with_context(ctx, parts))
        if not snippet.strip():
            return "edit_file: model returned no usable code."
        updated = original + ("" if original.endswith("\n") else "\n") + snippet + "\n"
        ctx.workspace.write_text(target, updated)
        ctx.mark_changed(target)
        return f"Appended to {rel} (no target range found)."

    if rng.source == "whole_file":
        if find_spec:
            parts.append(f"Locate using find_spec: {find_spec}")
        parts += ["Current file content:", "```", original, "```"]
        content = _generate(ctx, EDIT_FILE_SYSTEM, _with_context(ctx, parts))
        if not content.strip():
            return "edit_file: model returned no usable content."
        ctx.workspace.write_text(target, content if content.endswith("\n") else content + "\n")
        ctx.mark_changed(target)
        return f"File updated: {rel}"

    if find_spec:
        parts.append(f"Helpful find_spec: {find_spec}")
    parts += ["Current snippet:", "```", original[rng.start:rng.end], "```"]
    snippet = _generate(ctx, EDIT_SNIPPET_SYSTEM, _with_context(ctx, parts))
    if not snippet.strip():
        return "edit_file: model returned no usable snippet."
    ctx.workspace.write_text(target, splice(original, rng, snippet))
    ctx.mark_changed(target)
    return f"Range updated: {rel} [{rng.start}-{rng.end}] ({rng.source})"


def handle_append_file(ctx: ToolContext, args: Dict[str, Any], step: Step) -> str:
    raw_path = str(args.get("path") or "").strip()
    if not raw_path:
        return "append_file: missing path."
    position = args.get("position") if args.get("position") in ("beginning", "end") else "end"
    target = ctx.workspace.resolve(raw_path)
    original = ctx.workspace.read_text(target)

    spec = args.get("content_spec") if isinstance(args.get("content_spec"), str) else (step.action or step.thought)
    parts = _spec_block("Goal", " ".join(spec.replace("```", "").split()))
    parts += ["", "Existing file (reference only; do NOT repeat unchanged parts):", "```", original, "```"]
    snippet = _generate(ctx, ADD_CODE_SYSTEM.format(language=_language(target)), _with_context(ctx, parts))
    if not snippet.strip():
        return "append_file: model returned no usable content."

    if position == "beginning":
        updated = snippet + "\n" + original
    else:
        updated = original + ("" if not original or original.endswith("\n") else "\n") + snippet + "\n"
    ctx.workspace.write_text(target, updated)
    ctx.mark_changed(target)
    return f"Content added to {raw_path} ({position})."


def handle_read_file(ctx: ToolContext, args: Dict[str, Any], step: Step) -> str:
    target = ctx.workspace.resolve(str(args.get("path") or ""))
    text = ctx.workspace.read_text(target)
    lines = text.split("\n")
    start = int_arg(args, "start_line") or 1
    end = int_arg(args, "end_line") or len(lines)
    start = min(max(start, 1), len(lines))
    end = min(max(end, start), len(lines))
    body = "\n".join(lines[start - 1:end])

    save_as = str(args.get("save_as") or "").strip()
    if save_as:
        s, e = line_span_to_offsets(text, start, end)
        ctx.session.save_location(save_as, SavedLocation(normalize_path(target), s, e, start, end))

    if len(body) > MAX_READ_CHARS:
        body = body[:MAX_READ_CHARS] + "\n…(truncated)…"
    return f"read_file: {ctx.workspace.rel(target)} lines {start}-{end}\n{body}"


def handle_list_dir(ctx: ToolContext, args: Dict[str, Any], step: Step) -> str:
    base = ctx.workspace.resolve(str(args.get("path") or "."))
    depth = max(1, int_arg(args, "depth") or 1)
    pattern = str(args.get("glob") or "")
    files_only = bool(args.get("files_only"))
    dirs_only = bool(args.get("dirs_only"))
    state_dir = ctx.cfg.get("state_dir", ".ragsmith")

    entries: List[str] = []

    def walk(directory: Path, level: int) -> None:
        for child in ctx.workspace.list_dir(directory):
            if child.name == state_dir:
                continue
            is_dir = child.is_dir()
            keep = not (files_only and is_dir) and not (dirs_only and not is_dir)
            if keep and (not pattern or fnmatch.fnmatch(child.name, pattern)):
                entries.append(ctx.workspace.rel(child) + ("/" if is_dir else ""))
            if is_dir and level < depth:
                walk(child, level + 1)

    walk(base, 1)
    if not entries:
        return f"list_dir: {ctx.workspace.rel(base)} has no matching entries."
    return f"list_dir: {ctx.workspace.rel(base)}\n" + "\n".join(entries)


def handle_delete_path(ctx: ToolContext, args: Dict[str, Any], step: Step) -> str:
    raw_path = str(args.get("path") or "")
    target = ctx.workspace.resolve(raw_path)
    try:
        ctx.workspace.delete(target, recursive=bool(args.get("recursive")))
    except OSError as e:
        raise ToolExecutionError(f"Cannot delete {raw_path}: {e}") from e
    ctx.mark_changed(target)
    return f"Deleted: {raw_path}"


def handle_move_path(ctx: ToolContext, args: Dict[str, Any], step: Step) -> str:
    source, dest = str(args.get("source") or ""), str(args.get("target") or "")
    src = ctx.workspace.resolve(source)
    moved = ctx.workspace.move(src, dest, overwrite=bool(args.get("overwrite")))
    ctx.mark_changed(src)
    ctx.mark_changed(moved)
    return f"Moved: {source} -> {dest}"


def handle_copy_path(ctx: ToolContext, args: Dict[str, Any], step: Step) -> str:
    source, dest = str(args.get("source") or ""), str(args.get("target") or "")
    copied = ctx.workspace.copy(source, dest, overwrite=bool(args.get("overwrite")))
    ctx.mark_changed(copied)
    return f"Copied: {source} -> {dest}"


def handle_create_directory(ctx: ToolContext, args: Dict[str, Any], step: Step) -> str:
    raw_path = str(args.get("path") or "")
    ctx.workspace.mkdir(raw_path)
    return f"Directory ready: {raw_path}"
