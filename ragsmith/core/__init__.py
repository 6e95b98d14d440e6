"""Core functionality for ragsmith."""

from .models import CodeChunk, ChunkSpan, CONTENT_TYPES, new_chunk_id
from .embeddings import Embedder, SentenceTransformersEmbedder, make_embedder
from .chunking import (
    ExtractionStrategy,
    TreeSitterJsStrategy,
    PythonStrategy,
    BraceStrategy,
    JsonStrategy,
    TreeSitterCssStrategy,
    extract_spans,
    get_language_for_file,
    get_strategy,
    simple_dependencies,
)

__all__ = [
    "CodeChunk",
    "ChunkSpan",
    "CONTENT_TYPES",
    "new_chunk_id",
    "Embedder",
    "SentenceTransformersEmbedder",
    "make_embedder",
    "ExtractionStrategy",
    "TreeSitterJsStrategy",
    "PythonStrategy",
    "BraceStrategy",
    "JsonStrategy",
    "TreeSitterCssStrategy",
    "extract_spans",
    "get_language_for_file",
    "get_strategy",
    "simple_dependencies",
]
