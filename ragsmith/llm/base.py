"""Model provider contract and cancellation token."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

ChatMessage = Dict[str, str]
ChunkCallback = Callable[[str], None]


class CancelToken:
    """Cancellation signal shared by a planning/chat call and its caller."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class ModelProvider(ABC):
    """Abstract contract every LLM provider must satisfy."""

    supports_embeddings: bool = False

    @abstractmethod
    def generate_text(self, prompt: str) -> str:
        """Single-shot completion."""

    @abstractmethod
    def generate_chat(
        self,
        messages: List[ChatMessage],
        on_chunk: Optional[ChunkCallback] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> Optional[str]:
        """Chat completion.

        With ``on_chunk`` the reply is streamed piecewise to the callback and
        the full text is still returned. Returns None when cancelled.
        """

    def embed(self, text: str) -> Optional[List[float]]:
        """Embedding vector for text, or None when the provider has no embeddings."""
        return None
