"""Base LLM client interface."""

from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Iterator
from pydantic import BaseModel


class Message(BaseModel):
    """Chat message."""
    role: str  # "system", "user", "assistant"
    content: str


class LLMResponse(BaseModel):
    """Complete response from LLM."""
    content: str
    usage: Optional[Dict[str, int]] = None
    finish_reason: Optional[str] = None


class StreamChunk(BaseModel):
    """Incremental text delta; the final chunk has done=True and usage when known."""
    delta: str = ""
    done: bool = False
    usage: Optional[Dict[str, int]] = None
    finish_reason: Optional[str] = None


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients."""

    @abstractmethod
    def chat(
        self,
        messages: List[Message],
        temperature: float = 0.7,
        max_tokens: int = 4000,
        stop: Optional[List[str]] = None
    ) -> LLMResponse:
        """
        Send chat completion request.

        Args:
            messages: Ordered list of messages
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum tokens in response
            stop: Optional stop sequences

        Returns:
            LLMResponse with the complete reply
        """
        pass

    def stream(
        self,
        messages: List[Message],
        temperature: float = 0.7,
        max_tokens: int = 4000,
        stop: Optional[List[str]] = None
    ) -> Iterator[StreamChunk]:
        """
        Stream a chat completion as text deltas.

        The default implementation emits the complete reply as one delta
        followed by the completion marker.
        """
        response = self.chat(messages, temperature=temperature, max_tokens=max_tokens, stop=stop)
        if response.content:
            yield StreamChunk(delta=response.content)
        yield StreamChunk(done=True, usage=response.usage, finish_reason=response.finish_reason)

    @abstractmethod
    def get_provider_name(self) -> str:
        """Get the name of the LLM provider."""
        pass

    @abstractmethod
    def get_model_name(self) -> str:
        """Get the name of the model being used."""
        pass
