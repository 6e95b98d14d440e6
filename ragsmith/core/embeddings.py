"""Embedding models for semantic search."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from ..errors import ProviderError

logger = logging.getLogger(__name__)


class Embedder:
    """Abstract base class for embedding models."""

    def embed(self, texts: List[str]) -> List[List[float]]:
        """Embed multiple texts into vectors."""
        raise NotImplementedError

    def embed_one(self, text: str) -> List[float]:
        """Embed a single text into a vector."""
        return self.embed([text])[0]


class SentenceTransformersEmbedder(Embedder):
    """Embedder using SentenceTransformers library.

    The model is loaded on first use so that building a provider stays cheap.
    """

    def __init__(self, model_name: str) -> None:
        self.model_name = model_name
        self._model = None

    @property
    def model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer  # type: ignore

            logger.info(f"Loading embedding model {self.model_name}")
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def embed(self, texts: List[str]) -> List[List[float]]:
        """Embed texts using SentenceTransformers model."""
        arr = self.model.encode(texts, normalize_embeddings=True, show_progress_bar=False)
        return [row.tolist() for row in arr]


def make_embedder(cfg: Dict) -> Optional[Embedder]:
    """Create a local embedder from config.

    Args:
        cfg: Configuration dictionary

    Returns:
        Embedder instance, or None when the backend is not local
        ("api" embeddings go through the model provider, "none" disables them)

    Raises:
        ProviderError: If the backend name is unknown
    """
    backend = str(cfg.get("embedding", {}).get("backend", "sentence_transformers")).strip().lower()
    if backend in ("none", "api"):
        return None
    if backend != "sentence_transformers":
        raise ProviderError(f"Invalid embedding.backend: {backend!r}")

    model_name = cfg.get("embedding", {}).get("sentence_transformers_model", "all-MiniLM-L6-v2")
    return SentenceTransformersEmbedder(model_name)
