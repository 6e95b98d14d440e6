"""Searcher Interface."""

from __future__ import annotations

from typing import List, Tuple

from ..core.models import CodeChunk


class Searcher:
    """Abstract base class for semantic search."""

    def search(self, query: str, top_k: int) -> List[Tuple[float, CodeChunk]]:
        """Search for code chunks semantically similar to query.

        Args:
            query: Search query text
            top_k: Number of results to return

        Returns:
            List of (score, CodeChunk) tuples sorted by relevance
        """
        raise NotImplementedError
