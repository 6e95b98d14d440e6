"""Handlers backed by the chunk store and the architecture index."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from ...core.chunking import get_language_for_file
from ...errors import ToolExecutionError
from ...planning.models import Step
from ...search.retrieval import RetrievedChunk, format_hit
from ...session import SavedLocation
from ...utils import normalize_path
from ..context import ToolContext
from .args import int_arg
from ..editing import find_block, offsets_to_lines

logger = logging.getLogger(__name__)

_WANTS_CREATE = re.compile(r"\bcreate\b", re.IGNORECASE)
_SEARCH_NOISE = re.compile(r"\b(step|search|find|look\s+for)\b", re.IGNORECASE)
PREVIEW_HITS = 3
PREVIEW_CHARS = 600


def _threshold(ctx: ToolContext) -> float:
    return float(ctx.cfg.get("retrieval", {}).get("rerank_threshold", 0.7))


def _relevant(ctx: ToolContext) -> List[RetrievedChunk]:
    hits = ctx.session.last_retrieved
    strong = [r for r in hits if (r.rerank_score or 0.0) >= _threshold(ctx)]
    return strong or hits


def pick_best_retrieved(ctx: ToolContext, hint: str = "") -> Optional[RetrievedChunk]:
    """Best cached hit, preferring a path, then name, then content match on hint."""
    candidates = _relevant(ctx)
    if not candidates:
        return None
    h = hint.strip().lower()
    if h:
        for pick in (
            lambda r: h in r.chunk.file_path.lower(),
            lambda r: h in r.chunk.name.lower(),
            lambda r: h in r.chunk.content.lower(),
        ):
            for r in candidates:
                if pick(r):
                    return r
    return candidates[0]


def best_matches_summary(ctx: ToolContext, limit: int = 5) -> str:
    hits = _relevant(ctx)[:limit]
    if not hits:
        return "(no results)"
    return "\n".join(f"{i + 1}. {ctx.workspace.rel(r.chunk.file_path)}" for i, r in enumerate(hits))


def compose_retrieved_context(ctx: ToolContext, limit: int = 5) -> str:
    blocks = []
    for r in ctx.session.last_retrieved[:limit]:
        blocks.append(f"File: {ctx.workspace.rel(r.chunk.file_path)}\n```\n{r.chunk.content}\n```")
    return "\n\n".join(blocks)


def _run_retrieval(ctx: ToolContext, query: str, top_k: int) -> None:
    if ctx.retriever is None:
        raise ToolExecutionError("No chunk index is available; index the project first")
    hits = ctx.retriever.retrieve(query, k=top_k, top_n=max(1, min(10, top_k)))
    ctx.session.last_retrieved = hits[:10]
    logger.debug(f"retrieval for {query!r}: {len(hits)} hits")


def handle_retrieve_chunks(ctx: ToolContext, args: Dict[str, Any], step: Step) -> str:
    query = str(args.get("query") or step.action or step.thought or "").strip()
    if not query:
        return "retrieve_chunks: empty query."
    _run_retrieval(ctx, query, int_arg(args, "top_k", 8, minimum=1))
    previews = "\n".join(
        format_hit(r, ctx.workspace.rel(r.chunk.file_path), max_chars=PREVIEW_CHARS)
        for r in _relevant(ctx)[:PREVIEW_HITS]
    )
    return f"retrieve_chunks done. Matching files:\n{best_matches_summary(ctx)}\n\n{previews}".rstrip()


def handle_search(ctx: ToolContext, args: Dict[str, Any], step: Step) -> str:
    query = str(args.get("query") or "").strip()
    keywords = [k for k in args.get("keywords") or [] if isinstance(k, str) and k.strip()]
    if not query and keywords:
        query = " ".join(keywords)
    if not query:
        query = _SEARCH_NOISE.sub("", step.action or step.thought or "").strip()
    if not query:
        return "search: no query or keywords given."
    _run_retrieval(ctx, query, int_arg(args, "top_k", 8, minimum=1))
    return f'search done. Query: "{query}"\nMatching files:\n{best_matches_summary(ctx)}'


def handle_check_index(ctx: ToolContext, args: Dict[str, Any], step: Step) -> str:
    if ctx.index_store is None or not ctx.index_store.exists():
        return "check_index: planner_index.json is missing; build the architecture index first."
    files = args.get("files")
    if not isinstance(files, list):
        files = [args["file"]] if args.get("file") else []
    files = [str(f) for f in files if str(f).strip()]
    if not files:
        return "check_index: no files given."

    root = normalize_path(ctx.workspace.root).lower()
    keys = [k.replace("\\", "/").lower() for k in ctx.index_store.load()]
    existing: List[str] = []
    missing: List[str] = []
    for f in files:
        needle = f.replace("\\", "/").lower()
        needle = needle[2:] if needle.startswith("./") else needle.lstrip("/")
        found = any(k.startswith(root) and k.endswith(needle) for k in keys)
        (existing if found else missing).append(f)
    result = f"check_index: existing=[{', '.join(existing)}] missing=[{', '.join(missing)}]"

    if missing and _WANTS_CREATE.search(step.text()):
        created = []
        for f in missing:
            target = ctx.workspace.resolve(f)
            if target.exists():
                created.append(f"create_file: already exists: {f}")
                continue
            ctx.workspace.write_text(target, "")
            ctx.mark_changed(target)
            created.append(f"File created: {f}")
        result += "\n" + "\n".join(created)
    return result


def handle_locate_code(ctx: ToolContext, args: Dict[str, Any], step: Step) -> str:
    save_as = str(args.get("save_as") or "default").strip() or "default"
    name = str(args.get("name") or "").strip()
    pattern = str(args.get("pattern") or "").strip()
    raw_path = str(args.get("path") or "").strip()

    if raw_path:
        target = ctx.workspace.resolve(raw_path)
        text = ctx.workspace.read_text(target)
    else:
        best = pick_best_retrieved(ctx, name or pattern)
        if best is None:
            return "locate_code: run search/retrieve first or give a path."
        target = Path(best.chunk.file_path)
        text = ctx.workspace.read_text(target)

    try:
        span = find_block(text, get_language_for_file(target.name), name=name, pattern=pattern)
    except re.error as e:
        raise ToolExecutionError(f"Invalid pattern {pattern!r}: {e}") from e
    if span is None:
        return "locate_code: no matching code found."

    start_line, end_line = offsets_to_lines(text, *span)
    ctx.session.save_location(save_as, SavedLocation(
        path=normalize_path(target), start_offset=span[0], end_offset=span[1],
        start_line=start_line, end_line=end_line,
    ))
    return f"locate_code done: {ctx.workspace.rel(target)} lines {start_line}-{end_line} (key: {save_as})."
