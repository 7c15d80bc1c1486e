"""LLM client abstraction layer."""

from .base_client import BaseLLMClient, Message, LLMResponse, StreamChunk
from .factory import create_llm_client, LLMProvider

__all__ = [
    "BaseLLMClient",
    "Message",
    "LLMResponse",
    "StreamChunk",
    "create_llm_client",
    "LLMProvider",
]
