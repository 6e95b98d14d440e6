"""Indexing functionality for ragsmith."""

from .indexer import IndexResult, ProjectIndexer, chunks_for_file, embedding_text, iter_files
from .architecture import ArchitectureIndexer

__all__ = [
    "IndexResult",
    "ProjectIndexer",
    "ArchitectureIndexer",
    "chunks_for_file",
    "embedding_text",
    "iter_files",
]
