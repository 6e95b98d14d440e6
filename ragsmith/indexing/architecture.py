"""Architecture indexer: one-sentence summaries for files, directories and the root.

Summaries are computed bottom-up. A directory summary is generated only from
the entries of its immediate children, so directories are always processed
deepest first and the root last.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..config import ensure_index_ignore
from ..config.manager import PLANNER_INCLUDE_PATTERNS, _expand_patterns
from ..host import ProgressReporter
from ..llm.base import ModelProvider
from ..storage import PlannerIndexStore, make_planner_index_store
from ..utils import iter_matching_files, match_any, normalize_path, parse_summary
from .base import Indexer, call_with_timeout, run_pool

logger = logging.getLogger(__name__)

ROOT_FALLBACK_SUMMARY = "A high-level summary describing the overall purpose of the project."

FILE_SUMMARY_PROMPT = """You are helping a planning agent understand a project.
Summarize the responsibility of this file in ONE sentence.
Respond ONLY with JSON: {{"summary": "<one sentence>"}}

File: {rel}
```
{content}
```"""

DIR_SUMMARY_PROMPT = """You are helping a planning agent understand a project.
Below are the immediate children of the directory "{rel}" with their summaries.
Summarize the responsibility of the directory in ONE sentence.
Respond ONLY with JSON: {{"summary": "<one sentence>"}}

{children}"""

ROOT_SUMMARY_PROMPT = """You are helping a planning agent understand a project.
Below are the top-level entries of the project "{name}" with their summaries.
Describe the overall purpose of the project in ONE sentence.
Respond ONLY with JSON: {{"summary": "<one sentence>"}}

{children}"""

_MAX_FILE_CHARS = 12000


class ArchitectureIndexer(Indexer):
    """Builds and maintains ``planner_index.json``."""

    def __init__(
        self,
        repo: Path,
        cfg: Dict,
        provider: Optional[ModelProvider] = None,
        store: Optional[PlannerIndexStore] = None,
    ) -> None:
        self.repo = repo.resolve()
        self.root_key = normalize_path(self.repo)
        self.cfg = cfg
        self.provider = provider
        self.store = store or make_planner_index_store(cfg, self.repo)
        opts = cfg.get("planner_index", {})
        self.concurrency = int(opts.get("concurrency", 4))
        self.file_timeout = float(opts.get("file_timeout_s", 15.0))
        self.dir_timeout = float(opts.get("dir_timeout_s", 15.0))
        self.root_timeout = float(opts.get("root_timeout_s", 20.0))

    @property
    def include_globs(self) -> List[str]:
        return self.cfg.get("planner_include_globs") or _expand_patterns(PLANNER_INCLUDE_PATTERNS)

    @property
    def exclude_globs(self) -> List[str]:
        return self.cfg.get("planner_exclude_globs") or self.cfg.get("exclude_globs", [])

    def iter_files(self) -> List[Path]:
        return iter_matching_files(
            self.repo, self.include_globs, self.exclude_globs, int(self.cfg.get("max_file_size_kb", 512))
        )

    def _accepts(self, path: Path) -> bool:
        try:
            rel = path.relative_to(self.repo).as_posix()
        except ValueError:
            return False
        return match_any(rel, self.include_globs) and not match_any(rel, self.exclude_globs)

    def _rel(self, key: str) -> str:
        try:
            return Path(key).relative_to(self.repo).as_posix() or "."
        except ValueError:
            return key

    def _ask(self, prompt: str) -> Optional[str]:
        if self.provider is None:
            return None
        return parse_summary(self.provider.generate_text(prompt))

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------

    async def _summarize_file(self, path: Path, index: Dict[str, str]) -> None:
        key = normalize_path(path)
        rel = self._rel(key)
        try:
            content = path.read_text(encoding="utf-8", errors="replace")[:_MAX_FILE_CHARS]
        except OSError as e:
            logger.warning(f"Cannot read {rel}: {e}")
            return
        summary = await call_with_timeout(
            self._ask, FILE_SUMMARY_PROMPT.format(rel=rel, content=content),
            timeout=self.file_timeout, label=f"File summary for {rel}",
        )
        index[key] = summary or f"Source file {rel}."

    def _children(self, index: Dict[str, str], directory: str) -> List[Tuple[str, str]]:
        return sorted(
            (k, v) for k, v in index.items()
            if k != directory and Path(k).parent.as_posix() == directory
        )

    def _format_children(self, children: List[Tuple[str, str]]) -> str:
        lines = []
        for key, summary in children:
            kind = "dir" if Path(key).is_dir() else "file"
            lines.append(f"- {kind} {Path(key).name}: {summary}")
        return "\n".join(lines)

    async def _recompute_dir(self, index: Dict[str, str], directory: str) -> None:
        children = self._children(index, directory)
        if not children:
            if index.pop(directory, None) is not None:
                logger.debug(f"Dropped empty directory {self._rel(directory)}")
            return
        listing = self._format_children(children)
        if directory == self.root_key:
            prompt = ROOT_SUMMARY_PROMPT.format(name=self.repo.name, children=listing)
            timeout, label = self.root_timeout, "Root summary"
        else:
            prompt = DIR_SUMMARY_PROMPT.format(rel=self._rel(directory), children=listing)
            timeout, label = self.dir_timeout, f"Directory summary for {self._rel(directory)}"
        summary = await call_with_timeout(self._ask, prompt, timeout=timeout, label=label)
        if summary:
            index[directory] = summary
        elif directory == self.root_key:
            index[directory] = ROOT_FALLBACK_SUMMARY
        else:
            names = ", ".join(Path(k).name for k, _ in children)
            index[directory] = f"Directory containing {names}."

    def _ancestors(self, keys: Iterable[str]) -> List[str]:
        """Directories strictly between the root and each key, deepest first."""
        dirs: Set[str] = set()
        for key in keys:
            parent = Path(key).parent
            while parent != self.repo and self.repo in parent.parents:
                dirs.add(parent.as_posix())
                parent = parent.parent
        return sorted(dirs, key=lambda d: (-len(Path(d).parts), d))

    async def _recompute_chain(self, index: Dict[str, str], keys: Iterable[str]) -> None:
        for directory in self._ancestors(keys):
            await self._recompute_dir(index, directory)
        await self._recompute_dir(index, self.root_key)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def build_index(self, progress: Optional[ProgressReporter] = None) -> Dict[str, str]:
        """Summarize every file, then every directory deepest first, then the root."""
        progress = progress or ProgressReporter()
        ensure_index_ignore(self.repo, self.cfg.get("state_dir", ".ragsmith"))
        files = self.iter_files()
        index: Dict[str, str] = {}
        total = len(files)
        done = 0

        async def work(path: Path) -> None:
            nonlocal done
            await self._summarize_file(path, index)
            done += 1
            progress.report(message=f"Summarized {self._rel(normalize_path(path))}",
                            percent=round(done * 80.0 / max(total, 1), 1))

        await run_pool(files, work, self.concurrency)
        progress.report(message="Summarizing directories", percent=80)
        await self._recompute_chain(index, list(index.keys()))
        self.store.save(index)
        logger.info(f"Planner index built: {len(files)} files, {len(index)} entries")
        progress.report(message="Planner index ready", percent=100)
        return index

    async def update_for_files(self, paths: Iterable[str]) -> Dict[str, str]:
        """Refresh the given files and only their ancestor chains."""
        return await self._apply(paths, force_remove=False)

    async def remove_file(self, path: str) -> Dict[str, str]:
        return await self._apply([path], force_remove=True)

    async def _apply(self, paths: Iterable[str], force_remove: bool) -> Dict[str, str]:
        if not self.store.exists():
            logger.info("No planner index yet, skipping incremental update")
            return {}
        index = self.store.load()
        keys: List[str] = []
        for raw in paths:
            p = Path(raw)
            path = (p if p.is_absolute() else self.repo / p).resolve()
            key = normalize_path(path)
            keys.append(key)
            if not force_remove and path.is_file() and self._accepts(path):
                await self._summarize_file(path, index)
            else:
                index.pop(key, None)
        await self._recompute_chain(index, keys)
        self.store.save(index)
        return index
