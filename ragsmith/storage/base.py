"""Abstract chunk storage interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from ..core.models import CodeChunk
from ..utils.file_utils import normalize_path


class ChunkStore(ABC):
    """Abstract base class for chunk storage backends."""

    @abstractmethod
    def save_chunks(self, chunks: List[CodeChunk]) -> None:
        """Replace the whole store with chunks."""
        pass

    @abstractmethod
    def load_chunks(self) -> List[CodeChunk]:
        """Load every chunk in the store."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove all chunks."""
        pass

    @abstractmethod
    def exists(self) -> bool:
        """Check if the store has been written at least once."""
        pass

    def replace_files(self, paths: Iterable[str], new_chunks: List[CodeChunk]) -> List[CodeChunk]:
        """Purge chunks owned by paths, then append new_chunks (default implementation)."""
        purge = {normalize_path(p) for p in paths}
        kept = [c for c in self.load_chunks() if normalize_path(c.file_path) not in purge]
        merged = kept + list(new_chunks)
        self.save_chunks(merged)
        return merged

    def remove_file(self, path: str) -> int:
        """Delete chunks of one file; returns how many were removed."""
        before = self.load_chunks()
        target = normalize_path(path)
        kept = [c for c in before if normalize_path(c.file_path) != target]
        if len(kept) != len(before):
            self.save_chunks(kept)
        return len(before) - len(kept)

    def embedding_dim(self) -> Optional[int]:
        for c in self.load_chunks():
            if c.embedding:
                return len(c.embedding)
        return None

    def count(self) -> int:
        """Count chunks in the store (default implementation)."""
        return len(self.load_chunks())
