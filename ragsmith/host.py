"""Interfaces consumed from the host: file system, progress sink, message channel."""

from __future__ import annotations

import dataclasses
import logging
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ToolExecutionError

logger = logging.getLogger(__name__)


class ProgressReporter:
    """Sink for long-running indexing progress. The default just logs."""

    def report(self, message: Optional[str] = None, percent: Optional[float] = None) -> None:
        logger.debug(f"progress {percent if percent is not None else '-'}%: {message or ''}")


class MessageChannel:
    """postMessage-style channel for UI-facing plan/step/chunk events."""

    def post_message(self, type: str, payload: Dict[str, Any]) -> None:
        logger.debug(f"message {type}: {payload}")


class RecordingChannel(MessageChannel):
    """Keeps every posted message in memory."""

    def __init__(self) -> None:
        self.messages: List[Dict[str, Any]] = []

    def post_message(self, type: str, payload: Dict[str, Any]) -> None:
        self.messages.append({"type": type, "payload": payload})


@dataclasses.dataclass(frozen=True)
class FocusHint:
    """Focused file plus selected character range in the editor."""

    path: str
    start_offset: int
    end_offset: int


class Workspace:
    """File I/O rooted at the project directory.

    Relative paths are resolved against the root; anything that resolves
    outside of it is rejected.
    """

    def __init__(self, root: Path) -> None:
        self.root = root.resolve()

    def resolve(self, path: str | Path) -> Path:
        if not str(path).strip():
            raise ToolExecutionError("Empty path")
        p = Path(path)
        if not p.is_absolute():
            p = self.root / p
        p = p.resolve()
        if p != self.root and self.root not in p.parents:
            raise ToolExecutionError(f"Path is outside the workspace: {path}")
        return p

    def rel(self, path: str | Path) -> str:
        p = Path(path).resolve()
        try:
            return p.relative_to(self.root).as_posix() or "."
        except ValueError:
            return p.as_posix()

    def exists(self, path: str | Path) -> bool:
        return self.resolve(path).exists()

    def read_text(self, path: str | Path) -> str:
        p = self.resolve(path)
        if not p.is_file():
            raise ToolExecutionError(f"File not found: {self.rel(p)}")
        return p.read_text(encoding="utf-8", errors="replace")

    def write_text(self, path: str | Path, text: str) -> Path:
        p = self.resolve(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(text, encoding="utf-8")
        return p

    def mkdir(self, path: str | Path) -> Path:
        p = self.resolve(path)
        p.mkdir(parents=True, exist_ok=True)
        return p

    def list_dir(self, path: str | Path) -> List[Path]:
        p = self.resolve(path)
        if not p.is_dir():
            raise ToolExecutionError(f"Not a directory: {self.rel(p)}")
        return sorted(p.iterdir(), key=lambda c: (not c.is_dir(), c.name.lower()))

    def delete(self, path: str | Path, recursive: bool = False) -> None:
        p = self.resolve(path)
        if p == self.root:
            raise ToolExecutionError("Refusing to delete the workspace root")
        if not p.exists():
            raise ToolExecutionError(f"Path not found: {self.rel(p)}")
        if p.is_dir():
            if recursive:
                shutil.rmtree(p)
            else:
                p.rmdir()
        else:
            p.unlink()

    def move(self, source: str | Path, target: str | Path, overwrite: bool = False) -> Path:
        src, dst = self._pair(source, target, overwrite)
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(src), str(dst))
        return dst

    def copy(self, source: str | Path, target: str | Path, overwrite: bool = False) -> Path:
        src, dst = self._pair(source, target, overwrite)
        dst.parent.mkdir(parents=True, exist_ok=True)
        if src.is_dir():
            shutil.copytree(src, dst, dirs_exist_ok=overwrite)
        else:
            shutil.copy2(src, dst)
        return dst

    def _pair(self, source: str | Path, target: str | Path, overwrite: bool):
        src = self.resolve(source)
        dst = self.resolve(target)
        if not src.exists():
            raise ToolExecutionError(f"Source not found: {self.rel(src)}")
        if dst.exists():
            if not overwrite:
                raise ToolExecutionError(f"Target already exists: {self.rel(dst)}")
            if dst.is_dir() and not src.is_dir():
                raise ToolExecutionError(f"Target is a directory: {self.rel(dst)}")
            if dst.is_file():
                dst.unlink()
        return src, dst
