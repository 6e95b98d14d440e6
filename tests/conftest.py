"""Shared fixtures: a scripted model provider and a small temporary project."""

from __future__ import annotations

import json
import time
from collections import deque
from pathlib import Path
from typing import Deque, List, Optional, Sequence, Union

import pytest

from ragsmith.config import load_config
from ragsmith.core.models import CodeChunk, new_chunk_id
from ragsmith.llm.base import CancelToken, ChatMessage, ModelProvider
from ragsmith.utils import normalize_path

Reply = Union[str, Exception]


class StubProvider(ModelProvider):
    """Deterministic provider.

    ``generate_chat`` pops scripted replies (falling back to ``text``); an
    Exception in the script is raised instead. ``generate_text`` answers every
    summary prompt with ``{"summary": text}``. Embeddings are a fixed vector.
    """

    def __init__(
        self,
        replies: Optional[Sequence[Reply]] = None,
        text: str = "Stub summary.",
        vector: Sequence[float] = (1.0, 0.0, 0.0),
        delay: float = 0.0,
        embeddings: bool = True,
        chunk_size: int = 7,
    ) -> None:
        self.replies: Deque[Reply] = deque(replies or [])
        self.text = text
        self.vector = list(vector)
        self.delay = delay
        self.supports_embeddings = embeddings
        self.chunk_size = chunk_size
        self.prompts: List[str] = []
        self.chats: List[List[ChatMessage]] = []

    def generate_text(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            time.sleep(self.delay)
        return json.dumps({"summary": self.text})

    def generate_chat(self, messages, on_chunk=None, cancel_token: Optional[CancelToken] = None):
        self.chats.append(messages)
        if cancel_token is not None and cancel_token.cancelled:
            return None
        reply = self.replies.popleft() if self.replies else self.text
        if isinstance(reply, Exception):
            raise reply
        if on_chunk is not None:
            for i in range(0, len(reply), self.chunk_size):
                on_chunk(reply[i:i + self.chunk_size])
        return reply

    def embed(self, text: str) -> Optional[List[float]]:
        if self.delay:
            time.sleep(self.delay)
        return list(self.vector)


UTIL_TS = """export function add(a: number, b: number): number {
  return a + b;
}
"""

APP_TS = """import { add } from './util';

export function main(): number {
  return add(1, 2);
}
"""

HELPERS_PY = """def slugify(text):
    return text.lower().replace(" ", "-")


def shout(text):
    return text.upper()
"""


@pytest.fixture
def stub_provider() -> StubProvider:
    return StubProvider()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "demo"
    (root / "src").mkdir(parents=True)
    (root / "pkg").mkdir()
    (root / "src" / "util.ts").write_text(UTIL_TS, encoding="utf-8")
    (root / "src" / "app.ts").write_text(APP_TS, encoding="utf-8")
    (root / "pkg" / "helpers.py").write_text(HELPERS_PY, encoding="utf-8")
    (root / "README.md").write_text("# Demo\n\nA tiny demo project.\n", encoding="utf-8")
    return root


@pytest.fixture
def cfg(project: Path, monkeypatch):
    monkeypatch.delenv("COHERE_API_KEY", raising=False)
    config = load_config(project)
    config["embedding"]["backend"] = "none"
    config["retrieval"]["cohere_api_key"] = None
    config["indexing"]["concurrency"] = 2
    config["planner_index"]["concurrency"] = 2
    return config


def make_chunk(
    file_path: Union[str, Path],
    name: str = "fn",
    content: str = "function fn() {}",
    start_line: int = 1,
    end_line: int = 1,
    content_type: str = "function",
    embedding: Optional[List[float]] = None,
) -> CodeChunk:
    return CodeChunk(
        id=new_chunk_id(),
        source="workspace",
        file_path=normalize_path(file_path),
        language="typescript",
        content_type=content_type,
        name=name,
        start_line=start_line,
        end_line=end_line,
        content=content,
        embedding=embedding,
    )
