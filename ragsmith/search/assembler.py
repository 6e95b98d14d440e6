"""Pack retrieved chunks into a token-bounded context block."""

from __future__ import annotations

import logging
from typing import Callable, List

import tiktoken

from .retrieval import RetrievedChunk

logger = logging.getLogger(__name__)

SEPARATOR = "\n\n---\n\n"


def _get_token_counter() -> Callable[[str], int]:
    """
    Return a token counting function.
    - Use tiktoken's cl100k_base encoding.
    - Fallback to heuristic when the encoding cannot be loaded (offline).
    """
    try:
        encoding = tiktoken.get_encoding("cl100k_base")

        def count_tokens(text: str) -> int:
            return len(encoding.encode(text))

        return count_tokens
    except Exception as e:
        logger.warning(f"tiktoken encoding unavailable, estimating tokens: {e}")

        def count_tokens(text: str) -> int:
            return max(1, int(len(text) / 3.5))

        return count_tokens


_counter: Callable[[str], int] | None = None


def count_tokens(text: str) -> int:
    global _counter
    if _counter is None:
        _counter = _get_token_counter()
    return _counter(text)


def render_chunk(item: RetrievedChunk) -> str:
    c = item.chunk
    header = f"// File: {c.file_path} (Rerank Score: {item.best_score:.2f})"
    return f"{header}\n{c.content}"


def assemble_context(items: List[RetrievedChunk], max_tokens: int = 10000) -> str:
    """Join rendered chunks in order until the token budget is reached."""
    parts: List[str] = []
    used = 0
    sep_tokens = count_tokens(SEPARATOR)
    for item in items:
        block = render_chunk(item)
        cost = count_tokens(block) + (sep_tokens if parts else 0)
        if used + cost > max_tokens:
            logger.debug(f"Context budget reached after {len(parts)} chunks ({used} tokens)")
            break
        parts.append(block)
        used += cost
    return SEPARATOR.join(parts)
