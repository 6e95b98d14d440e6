"""Code indexing logic."""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from ..config import DEFAULT_EXCLUDE_PATTERNS, DEFAULT_INCLUDE_PATTERNS
from ..config.manager import _expand_patterns
from ..core.chunking import extract_spans, simple_dependencies, wants_dependencies
from ..core.models import CodeChunk, new_chunk_id
from ..host import ProgressReporter
from ..llm.base import ModelProvider
from ..storage import ChunkStore, make_chunk_store
from ..utils import is_binary_file, iter_matching_files, match_any, normalize_path, parse_summary
from .base import Indexer, call_with_timeout, run_pool

logger = logging.getLogger(__name__)

CHUNK_SUMMARY_PROMPT = """You are documenting a codebase for a retrieval system.
Describe in ONE sentence what the following {language} {content_type} "{name}" does.
Respond ONLY with JSON: {{"summary": "<one sentence>"}}

File: {path}
```
{content}
```"""

_MAX_SUMMARY_CHARS = 8000


@dataclasses.dataclass
class IndexResult:
    chunks: List[CodeChunk]
    files_indexed: int = 0
    files_skipped: int = 0


def iter_files(repo: Path, cfg: Dict, include_globs: Optional[List[str]] = None,
               exclude_globs: Optional[List[str]] = None) -> List[Path]:
    include = include_globs or cfg.get("include_globs", _expand_patterns(DEFAULT_INCLUDE_PATTERNS))
    exclude = exclude_globs or cfg.get("exclude_globs", _expand_patterns(DEFAULT_EXCLUDE_PATTERNS))
    max_kb = int(cfg.get("max_file_size_kb", 512))
    return iter_matching_files(repo, include, exclude, max_kb)


def chunks_for_file(path: Path, source: str = "workspace") -> List[CodeChunk]:
    """Extract chunks for one file. Deterministic given the file content (ids aside)."""
    text = path.read_text(encoding="utf-8", errors="replace")
    file_path = normalize_path(path)
    language, spans = extract_spans(text, file_path)
    return [
        CodeChunk(
            id=new_chunk_id(),
            source=source,
            file_path=file_path,
            language=language,
            content_type=span.content_type,
            name=span.name,
            start_line=span.start_line,
            end_line=max(span.start_line, span.end_line),
            content=span.content,
            dependencies=simple_dependencies(span.content) if wants_dependencies(span) else [],
        )
        for span in spans
    ]


def embedding_text(chunk: CodeChunk) -> str:
    parts = [chunk.name]
    if chunk.summary:
        parts.append(chunk.summary)
    parts.append(chunk.content)
    return ". ".join(parts)


class ProjectIndexer(Indexer):
    """Builds and incrementally maintains the chunk store."""

    def __init__(
        self,
        repo: Path,
        cfg: Dict,
        provider: Optional[ModelProvider] = None,
        store: Optional[ChunkStore] = None,
    ) -> None:
        self.repo = repo.resolve()
        self.cfg = cfg
        self.provider = provider
        self.store = store or make_chunk_store(cfg, self.repo)
        opts = cfg.get("indexing", {})
        self.concurrency = int(opts.get("concurrency", 4))
        self.summary_timeout = float(opts.get("summary_timeout_s", 10.0))
        self.embedding_timeout = float(opts.get("embedding_timeout_s", 10.0))
        self.want_summaries = bool(opts.get("summaries", True))
        self.want_embeddings = bool(opts.get("embeddings", True))
        self.source = str(cfg.get("source_name", "workspace"))

    def _accepts(self, path: Path) -> bool:
        try:
            rel = path.relative_to(self.repo).as_posix()
        except ValueError:
            return False
        include = self.cfg.get("include_globs", _expand_patterns(DEFAULT_INCLUDE_PATTERNS))
        exclude = self.cfg.get("exclude_globs", _expand_patterns(DEFAULT_EXCLUDE_PATTERNS))
        if not match_any(rel, include) or match_any(rel, exclude):
            return False
        max_kb = int(self.cfg.get("max_file_size_kb", 512))
        if path.stat().st_size > max_kb * 1024:
            return False
        return not is_binary_file(path)

    def _resolve(self, path: str) -> Path:
        p = Path(path)
        return (p if p.is_absolute() else self.repo / p).resolve()

    def _extract(self, files: Iterable[Path]) -> IndexResult:
        result = IndexResult(chunks=[])
        for fp in files:
            try:
                result.chunks.extend(chunks_for_file(fp, self.source))
                result.files_indexed += 1
            except OSError as e:
                logger.warning(f"Skipping {fp}: {e}")
                result.files_skipped += 1
        return result

    async def index_workspace(
        self,
        include_globs: Optional[List[str]] = None,
        exclude_globs: Optional[List[str]] = None,
        progress: Optional[ProgressReporter] = None,
    ) -> IndexResult:
        """Index every matching file and replace the store contents."""
        progress = progress or ProgressReporter()
        files = iter_files(self.repo, self.cfg, include_globs, exclude_globs)
        progress.report(message=f"Extracting chunks from {len(files)} files", percent=0)
        result = self._extract(files)
        await self.annotate(result.chunks, progress)
        self.store.save_chunks(result.chunks)
        logger.info(
            f"Indexed {result.files_indexed} files into {len(result.chunks)} chunks "
            f"({result.files_skipped} skipped)"
        )
        progress.report(message=f"Indexed {len(result.chunks)} chunks", percent=100)
        return result

    async def update_for_files(
        self, paths: Iterable[str], progress: Optional[ProgressReporter] = None
    ) -> List[CodeChunk]:
        """Re-index the given files; missing files are dropped from the store."""
        if not self.store.exists():
            logger.info("No chunk store yet, skipping incremental update")
            return []
        touched: List[str] = []
        fresh: List[Path] = []
        for raw in paths:
            path = self._resolve(raw)
            touched.append(normalize_path(path))
            if path.is_file() and self._accepts(path):
                fresh.append(path)
        result = self._extract(fresh)
        await self.annotate(result.chunks, progress)
        self.store.replace_files(touched, result.chunks)
        logger.info(f"Updated {len(touched)} files with {len(result.chunks)} chunks")
        return result.chunks

    def remove_file(self, path: str) -> int:
        removed = self.store.remove_file(normalize_path(self._resolve(path)))
        logger.info(f"Removed {removed} chunks for {path}")
        return removed

    def _summarize(self, chunk: CodeChunk) -> Optional[str]:
        prompt = CHUNK_SUMMARY_PROMPT.format(
            language=chunk.language,
            content_type=chunk.content_type,
            name=chunk.name,
            path=chunk.file_path,
            content=chunk.content[:_MAX_SUMMARY_CHARS],
        )
        return parse_summary(self.provider.generate_text(prompt))

    async def annotate(self, chunks: List[CodeChunk], progress: Optional[ProgressReporter] = None) -> None:
        """Attach summaries and embeddings using a bounded worker pool."""
        if self.provider is None or not chunks:
            return
        do_summary = self.want_summaries
        do_embed = self.want_embeddings and self.provider.supports_embeddings
        if not (do_summary or do_embed):
            return
        progress = progress or ProgressReporter()
        total = len(chunks)
        done = 0

        async def work(chunk: CodeChunk) -> None:
            nonlocal done
            if do_summary:
                summary = await call_with_timeout(
                    self._summarize, chunk, timeout=self.summary_timeout,
                    label=f"Summary for {chunk.name}",
                )
                if summary:
                    chunk.summary = summary
            if do_embed:
                vector = await call_with_timeout(
                    self.provider.embed, embedding_text(chunk), timeout=self.embedding_timeout,
                    label=f"Embedding for {chunk.name}",
                )
                if vector:
                    chunk.embedding = [float(x) for x in vector]
            done += 1
            progress.report(message=f"Annotated {chunk.name}", percent=round(done * 100.0 / total, 1))

        await run_pool(chunks, work, self.concurrency)
