"""OpenAI/vLLM-compatible HTTP client."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

import requests
from pydantic import BaseModel

from ..core.embeddings import Embedder, make_embedder
from ..errors import ProviderError
from .base import CancelToken, ChatMessage, ChunkCallback, ModelProvider

logger = logging.getLogger(__name__)


class LLMResponse(BaseModel):
    content: Optional[str] = None
    finish_reason: str
    usage: Optional[Dict[str, int]] = None
    time_taken: float
    error: str | None = None


@dataclass
class LLMConfig:
    api_base: str = "http://localhost:8000/v1"
    model: str = ""
    api_key: Optional[str] = None
    max_tokens: int = 2048
    temperature: float = 0.1
    timeout: int = 120
    embedding_model: str = ""

    @classmethod
    def from_cfg(cls, cfg: Dict) -> "LLMConfig":
        llm = cfg.get("llm", {})
        return cls(
            api_base=str(llm.get("api_base", cls.api_base)).rstrip("/"),
            model=str(llm.get("model", "")),
            api_key=llm.get("api_key"),
            max_tokens=int(llm.get("max_tokens", cls.max_tokens)),
            temperature=float(llm.get("temperature", cls.temperature)),
            timeout=int(llm.get("timeout", cls.timeout)),
            embedding_model=str(cfg.get("embedding", {}).get("api_model", "")),
        )


def _usage(data: Dict) -> Dict[str, int]:
    usage = data.get("usage") or {}
    return {
        "prompt_tokens": usage.get("prompt_tokens", 0),
        "completion_tokens": usage.get("completion_tokens", 0),
        "total_tokens": usage.get("total_tokens", 0),
    }


class OpenAICompatibleClient(ModelProvider):
    """Talks to ``/completions``, ``/chat/completions`` and ``/embeddings``.

    Embeddings come from a local Embedder when one is given, otherwise from
    the server's ``/embeddings`` endpoint when ``api_embeddings`` is set.
    """

    def __init__(
        self,
        config: LLMConfig | None = None,
        embedder: Optional[Embedder] = None,
        api_embeddings: bool = False,
    ):
        self.config = config or LLMConfig()
        self.embedder = embedder
        self.api_embeddings = api_embeddings
        self.supports_embeddings = embedder is not None or api_embeddings
        self.last_usage: Optional[Dict[str, int]] = None

        self.headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            self.headers["Authorization"] = f"Bearer {self.config.api_key}"

    def _url(self, path: str) -> str:
        return f"{self.config.api_base.rstrip('/')}/{path}"

    def _params(self) -> Dict:
        return {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
        }

    def complete(self, prompt: str) -> LLMResponse:
        payload = dict(self._params(), prompt=prompt)
        start_time = time.time()
        try:
            response = requests.post(
                self._url("completions"),
                headers=self.headers,
                json=payload,
                timeout=self.config.timeout,
            )
            response.raise_for_status()
            data = response.json()
            if not data.get("choices"):
                raise ValueError(f"Unexpected response format: {data}")
            choice = data["choices"][0]
            self.last_usage = _usage(data)
            return LLMResponse(
                content=(choice.get("text") or "").strip(),
                finish_reason=choice.get("finish_reason") or "stop",
                usage=self.last_usage,
                time_taken=time.time() - start_time,
            )
        except (requests.RequestException, ValueError) as e:
            return LLMResponse(finish_reason="error", time_taken=time.time() - start_time, error=str(e))

    def chat(self, messages: List[ChatMessage]) -> LLMResponse:
        payload = dict(self._params(), messages=messages)
        start_time = time.time()
        try:
            response = requests.post(
                self._url("chat/completions"),
                headers=self.headers,
                json=payload,
                timeout=self.config.timeout,
            )
            response.raise_for_status()
            data = response.json()
            if not data.get("choices"):
                raise ValueError(f"Unexpected response format: {data}")
            choice = data["choices"][0]
            self.last_usage = _usage(data)
            return LLMResponse(
                content=(choice.get("message", {}).get("content") or "").strip(),
                finish_reason=choice.get("finish_reason") or "stop",
                usage=self.last_usage,
                time_taken=time.time() - start_time,
            )
        except (requests.RequestException, ValueError) as e:
            return LLMResponse(finish_reason="error", time_taken=time.time() - start_time, error=str(e))

    def generate_text(self, prompt: str) -> str:
        resp = self.complete(prompt)
        if resp.error:
            logger.error(f"Completion failed: {resp.error}")
            raise ProviderError(resp.error)
        return resp.content or ""

    def generate_chat(
        self,
        messages: List[ChatMessage],
        on_chunk: Optional[ChunkCallback] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> Optional[str]:
        if cancel_token and cancel_token.cancelled:
            return None
        if on_chunk is None:
            resp = self.chat(messages)
            if cancel_token and cancel_token.cancelled:
                return None
            if resp.error:
                logger.error(f"Chat completion failed: {resp.error}")
                raise ProviderError(resp.error)
            return resp.content or ""
        return self._stream_chat(messages, on_chunk, cancel_token)

    def _stream_chat(
        self,
        messages: List[ChatMessage],
        on_chunk: ChunkCallback,
        cancel_token: Optional[CancelToken],
    ) -> Optional[str]:
        payload = dict(self._params(), messages=messages, stream=True)
        parts: List[str] = []
        try:
            with requests.post(
                self._url("chat/completions"),
                headers=self.headers,
                json=payload,
                timeout=self.config.timeout,
                stream=True,
            ) as response:
                response.raise_for_status()
                for line in response.iter_lines(decode_unicode=True):
                    if cancel_token and cancel_token.cancelled:
                        logger.info("Chat stream cancelled")
                        return None
                    if not line or not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if data == "[DONE]":
                        break
                    try:
                        event = json.loads(data)
                    except json.JSONDecodeError:
                        logger.debug(f"Skipping malformed stream event: {data[:80]}")
                        continue
                    choices = event.get("choices") or []
                    if event.get("usage"):
                        self.last_usage = _usage(event)
                    if not choices:
                        continue
                    delta = (choices[0].get("delta") or {}).get("content") or choices[0].get("text")
                    if delta:
                        parts.append(delta)
                        on_chunk(delta)
        except requests.RequestException as e:
            logger.error(f"Chat stream failed: {e}")
            raise ProviderError(str(e)) from e
        if cancel_token and cancel_token.cancelled:
            return None
        return "".join(parts)

    def embed(self, text: str) -> Optional[List[float]]:
        if self.embedder is not None:
            return self.embedder.embed_one(text)
        if not self.api_embeddings:
            return None
        try:
            response = requests.post(
                self._url("embeddings"),
                headers=self.headers,
                json={"model": self.config.embedding_model or self.config.model, "input": text},
                timeout=self.config.timeout,
            )
            response.raise_for_status()
            data = response.json()
            return list(data["data"][0]["embedding"])
        except (requests.RequestException, KeyError, IndexError, ValueError) as e:
            raise ProviderError(f"Embedding request failed: {e}") from e


def make_provider(cfg: Dict) -> OpenAICompatibleClient:
    """Create the model provider from config."""
    backend = str(cfg.get("embedding", {}).get("backend", "sentence_transformers")).strip().lower()
    return OpenAICompatibleClient(
        LLMConfig.from_cfg(cfg),
        embedder=make_embedder(cfg),
        api_embeddings=backend == "api",
    )
