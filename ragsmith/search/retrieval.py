"""Retrieval engine: embedding similarity, optional rerank, import expansion."""

from __future__ import annotations

import dataclasses
import logging
import math
import posixpath
import re
from typing import Dict, List, Optional, Sequence, Tuple

from ..core.models import CodeChunk
from ..errors import ProviderError
from ..llm.base import ModelProvider
from ..storage import ChunkStore
from .base import Searcher
from .rerankers import Reranker

logger = logging.getLogger(__name__)

DIRECT_PRIORITY = 1.0
LITERAL_PRIORITY = 0.8
EXPANSION_PRIORITY = 0.6

_QUOTED_IDENT = re.compile(r"\"([\w$]+)\"|'([\w$]+)'")
_IMPORT_FROM = re.compile(r"import\s+[^'\"\n]+from\s+['\"]([^'\"]+)['\"];?")
_REQUIRE = re.compile(r"require\(\s*['\"]([^'\"]+)['\"]\s*\)")


@dataclasses.dataclass
class RetrievedChunk:
    chunk: CodeChunk
    score: float = 0.0
    priority: float = DIRECT_PRIORITY
    rerank_score: Optional[float] = None

    @property
    def best_score(self) -> float:
        return self.rerank_score if self.rerank_score is not None else self.score


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a,b)/(|a||b|) over the common prefix; 0.0 when a norm is zero."""
    n = min(len(a), len(b))
    dot = na = nb = 0.0
    for i in range(n):
        x, y = a[i], b[i]
        dot += x * y
        na += x * x
        nb += y * y
    denom = math.sqrt(na) * math.sqrt(nb)
    if denom == 0:
        return 0.0
    return dot / denom


def top_k_by_embedding(chunks: List[CodeChunk], query_vector: Sequence[float], k: int) -> List[Tuple[float, CodeChunk]]:
    scored = [(cosine_similarity(query_vector, c.embedding), c) for c in chunks if c.embedding]
    scored.sort(key=lambda x: x[0], reverse=True)
    return scored[:max(k, 0)]


def quoted_identifiers(query: str) -> List[str]:
    out: List[str] = []
    for m in _QUOTED_IDENT.finditer(query):
        name = m.group(1) or m.group(2)
        if len(name) >= 3 and name not in out:
            out.append(name)
    return out


def extract_imports(content: str) -> List[str]:
    found = [m.group(1) for m in _IMPORT_FROM.finditer(content)]
    found += [m.group(1) for m in _REQUIRE.finditer(content)]
    return list(dict.fromkeys(found))


def _import_needle(ref: str) -> str:
    """'./utils' -> 'utils', '../lib/api.js' -> 'lib/api.js'."""
    parts = [p for p in ref.split("/") if p not in (".", "..", "")]
    return "/".join(parts)


def _dedupe(items: List[RetrievedChunk]) -> List[RetrievedChunk]:
    seen = set()
    out = []
    for item in items:
        if item.chunk.id in seen:
            continue
        seen.add(item.chunk.id)
        out.append(item)
    return out


class Retriever(Searcher):
    """Runs candidates -> rerank -> expand against a chunk store."""

    def __init__(
        self,
        store: ChunkStore,
        provider: Optional[ModelProvider] = None,
        reranker: Optional[Reranker] = None,
        cfg: Optional[Dict] = None,
    ) -> None:
        self.store = store
        self.provider = provider
        self.reranker = reranker
        opts = (cfg or {}).get("retrieval", {})
        self.default_top_k = int(opts.get("top_k", 50))
        self.default_top_n = int(opts.get("rerank_top_n", 10))

    def _query_vector(self, query: str) -> Optional[List[float]]:
        if self.provider is None or not self.provider.supports_embeddings:
            return None
        return self.provider.embed(query)

    def retrieve_candidates(self, query: str, k: Optional[int] = None) -> List[RetrievedChunk]:
        """At most k chunks, sorted by descending similarity.

        Chunks whose name or content contains a quoted identifier from the
        query are always kept (up to k) at a lower priority.
        """
        k = self.default_top_k if k is None else k
        if k <= 0:
            return []
        chunks = self.store.load_chunks()
        query_vector = self._query_vector(query) if any(c.embedding for c in chunks) else None

        literal: List[RetrievedChunk] = []
        for ident in quoted_identifiers(query):
            for c in chunks:
                if ident in f"{c.name} {c.content}":
                    score = cosine_similarity(query_vector, c.embedding) if query_vector and c.embedding else 0.0
                    literal.append(RetrievedChunk(c, score=score, priority=LITERAL_PRIORITY))
        literal = _dedupe(literal)[:k]

        taken = {item.chunk.id for item in literal}
        semantic: List[RetrievedChunk] = []
        if query_vector:
            for score, c in top_k_by_embedding(chunks, query_vector, k):
                if len(literal) + len(semantic) >= k:
                    break
                if c.id not in taken:
                    semantic.append(RetrievedChunk(c, score=score, priority=DIRECT_PRIORITY))

        merged = semantic + literal
        merged.sort(key=lambda r: r.score, reverse=True)
        logger.debug(f"retrieve_candidates: {len(semantic)} semantic, {len(literal)} literal")
        return merged

    def rerank(self, query: str, candidates: List[RetrievedChunk]) -> List[RetrievedChunk]:
        """Replace scores with the reranker's, or pass similarity through."""
        items = _dedupe(candidates)
        scores: Optional[Dict[int, float]] = None
        if self.reranker is not None and items:
            try:
                scores = self.reranker.rerank(
                    query, [r.chunk.content for r in items], top_n=min(self.default_top_n, len(items))
                )
            except ProviderError as e:
                logger.warning(f"Rerank failed, using similarity scores: {e}")
                scores = None
        out = []
        for i, r in enumerate(items):
            value = scores.get(i, 0.0) if scores is not None else r.score
            out.append(dataclasses.replace(r, rerank_score=float(value)))
        out.sort(key=lambda r: r.rerank_score, reverse=True)
        return out

    def expand_context(self, candidates: List[RetrievedChunk]) -> List[RetrievedChunk]:
        """Add chunks from files referenced by import/require in the same directory tree."""
        out = _dedupe(candidates)
        seen = {r.chunk.id for r in out}
        all_chunks: Optional[List[CodeChunk]] = None
        for r in list(out):
            refs = [n for n in (_import_needle(x) for x in extract_imports(r.chunk.content)) if n]
            if not refs:
                continue
            if all_chunks is None:
                all_chunks = self.store.load_chunks()
            base_dir = posixpath.dirname(r.chunk.file_path)
            for c in all_chunks:
                if c.id in seen or not c.file_path.startswith(base_dir + "/"):
                    continue
                if any(ref in c.file_path for ref in refs):
                    seen.add(c.id)
                    out.append(RetrievedChunk(c, score=0.0, priority=EXPANSION_PRIORITY))
        return out

    def retrieve(self, query: str, k: Optional[int] = None, top_n: Optional[int] = None) -> List[RetrievedChunk]:
        """Full pipeline: candidates, rerank, first top_n, expansion."""
        top_n = self.default_top_n if top_n is None else top_n
        candidates = self.retrieve_candidates(query, k)
        ranked = self.rerank(query, candidates)
        return self.expand_context(ranked[:top_n])

    def search(self, query: str, top_k: int) -> List[Tuple[float, CodeChunk]]:
        return [(r.best_score, r.chunk) for r in self.retrieve(query, k=top_k, top_n=top_k)]


def format_hit(hit: RetrievedChunk, display_path: Optional[str] = None, max_chars: int = 1200) -> str:
    """Score header plus the chunk text, clipped to max_chars."""
    chunk = hit.chunk
    snippet = chunk.content
    if len(snippet) > max_chars:
        snippet = snippet[:max_chars] + "\n…(truncated)…\n"
    path = display_path or chunk.file_path
    header = f"{hit.best_score:0.4f}  {path}:{chunk.start_line}-{chunk.end_line} ({chunk.content_type} {chunk.name})"
    return header + "\n" + snippet.rstrip() + "\n"
