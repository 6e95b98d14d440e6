"""Retrieval engine."""

from .base import Searcher
from .rerankers import CohereReranker, Reranker, make_reranker
from .retrieval import (
    RetrievedChunk,
    Retriever,
    cosine_similarity,
    extract_imports,
    format_hit,
    quoted_identifiers,
    top_k_by_embedding,
)
from .assembler import assemble_context, count_tokens

__all__ = [
    "Searcher",
    "Reranker",
    "CohereReranker",
    "make_reranker",
    "RetrievedChunk",
    "Retriever",
    "cosine_similarity",
    "extract_imports",
    "format_hit",
    "quoted_identifiers",
    "top_k_by_embedding",
    "assemble_context",
    "count_tokens",
]
