"""Secondary relevance scoring services."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import requests

from ..errors import ProviderError

logger = logging.getLogger(__name__)


class Reranker:
    """Abstract reranker: maps document index -> relevance score."""

    def rerank(self, query: str, documents: List[str], top_n: int) -> Dict[int, float]:
        raise NotImplementedError


class CohereReranker(Reranker):
    """Cohere ``/rerank`` REST endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = "rerank-english-v3.0",
        url: str = "https://api.cohere.com/v1/rerank",
        timeout: int = 30,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.url = url
        self.timeout = timeout

    def rerank(self, query: str, documents: List[str], top_n: int) -> Dict[int, float]:
        payload = {
            "model": self.model,
            "query": query,
            "documents": documents,
            "top_n": top_n,
        }
        try:
            response = requests.post(
                self.url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
            results = response.json().get("results", [])
        except (requests.RequestException, ValueError) as e:
            raise ProviderError(f"Cohere rerank failed: {e}") from e
        scores = {int(r["index"]): float(r.get("relevance_score", 0.0)) for r in results if "index" in r}
        logger.debug(f"Cohere reranked {len(documents)} documents, {len(scores)} scored")
        return scores


def make_reranker(cfg: Dict) -> Optional[Reranker]:
    """Cohere reranker when an API key is configured, else None (pass-through)."""
    opts = cfg.get("retrieval", {})
    key = opts.get("cohere_api_key")
    if not key:
        return None
    return CohereReranker(
        api_key=key,
        model=opts.get("cohere_model", "rerank-english-v3.0"),
        url=opts.get("cohere_url", "https://api.cohere.com/v1/rerank"),
    )
