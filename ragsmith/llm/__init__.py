"""Model provider layer."""

from .base import CancelToken, ChatMessage, ModelProvider
from .client import LLMConfig, LLMResponse, OpenAICompatibleClient, make_provider

__all__ = [
    "CancelToken",
    "ChatMessage",
    "ModelProvider",
    "LLMConfig",
    "LLMResponse",
    "OpenAICompatibleClient",
    "make_provider",
]
