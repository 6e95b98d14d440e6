"""Flat-file chunk store (``chunks.json``)."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional

from ..core.models import CodeChunk
from ..utils.file_utils import write_json_atomic
from .base import ChunkStore

logger = logging.getLogger(__name__)

CHUNKS_FILE = "chunks.json"


class JsonChunkStore(ChunkStore):
    """Keeps ``{"chunks": [...]}`` in one JSON file and caches it in memory."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._cache: Optional[List[CodeChunk]] = None

    def exists(self) -> bool:
        return self.path.is_file()

    def load_chunks(self) -> List[CodeChunk]:
        if self._cache is not None:
            return list(self._cache)
        if not self.path.is_file():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning(f"Corrupt chunk store {self.path}: {e}")
            return []
        chunks: List[CodeChunk] = []
        for item in raw.get("chunks", []):
            try:
                chunks.append(CodeChunk.from_dict(item))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Skipping malformed chunk in {self.path}: {e}")
        self._cache = chunks
        return list(chunks)

    def save_chunks(self, chunks: List[CodeChunk]) -> None:
        ids = set()
        vector_dim: Optional[int] = None
        for chunk in chunks:
            if chunk.id in ids:
                raise ValueError(f"Duplicate chunk id {chunk.id} for {chunk.file_path}")
            ids.add(chunk.id)
            if not chunk.embedding:
                continue
            if vector_dim is None:
                vector_dim = len(chunk.embedding)
            elif len(chunk.embedding) != vector_dim:
                raise ValueError(
                    f"Chunk {chunk.name} at {chunk.file_path}:{chunk.start_line} has different dimension: "
                    f"{len(chunk.embedding)} vs expected {vector_dim}. Please clear the store and re-index."
                )

        write_json_atomic(self.path, {"chunks": [c.to_dict() for c in chunks]})
        self._cache = list(chunks)
        logger.info(f"Saved {len(chunks)} chunks to {self.path}")

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
        self._cache = None
