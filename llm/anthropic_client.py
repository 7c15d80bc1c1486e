"""Anthropic Claude LLM client implementation."""

import os
import logging
from typing import Optional, List, Iterator

from .base_client import BaseLLMClient, Message, LLMResponse, StreamChunk

logger = logging.getLogger(__name__)


class AnthropicClient(BaseLLMClient):
    """Anthropic Claude client implementation."""

    DEFAULT_MODEL = "claude-sonnet-4-20250514"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None
    ):
        """
        Initialize Anthropic client.

        Args:
            api_key: Anthropic API key (falls back to ANTHROPIC_API_KEY env var)
            model: Model to use (default: claude-sonnet-4-20250514)
        """
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self.model = model or self.DEFAULT_MODEL
        self.client = None

        if self.api_key:
            try:
                import anthropic
                self.client = anthropic.Anthropic(api_key=self.api_key)
                logger.info(f"Anthropic client initialized with model: {self.model}")
            except ImportError:
                logger.error("anthropic package not installed. Run: pip install anthropic")
        else:
            logger.warning("No Anthropic API key provided")

    def _build_kwargs(
        self,
        messages: List[Message],
        temperature: float,
        max_tokens: int,
        stop: Optional[List[str]]
    ) -> dict:
        # System entries are hoisted into the system parameter; the rest must
        # alternate user/assistant, so consecutive same-role turns are merged.
        system_parts = []
        conversation_messages = []

        for msg in messages:
            if msg.role == "system":
                system_parts.append(msg.content)
            elif conversation_messages and conversation_messages[-1]["role"] == msg.role:
                conversation_messages[-1]["content"] += "\n\n" + msg.content
            else:
                conversation_messages.append({"role": msg.role, "content": msg.content})

        # A truncated buffer can start on an assistant turn
        if conversation_messages and conversation_messages[0]["role"] == "assistant":
            conversation_messages.insert(0, {"role": "user", "content": "(conversation continues)"})

        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": conversation_messages,
        }
        if system_parts:
            kwargs["system"] = "\n".join(system_parts).strip()
        if stop:
            kwargs["stop_sequences"] = stop
        return kwargs

    def chat(
        self,
        messages: List[Message],
        temperature: float = 0.7,
        max_tokens: int = 4000,
        stop: Optional[List[str]] = None
    ) -> LLMResponse:
        """Send chat completion request to Anthropic."""
        if not self.client:
            raise RuntimeError("Anthropic client not initialized. Check API key.")

        kwargs = self._build_kwargs(messages, temperature, max_tokens, stop)

        try:
            response = self.client.messages.create(**kwargs)

            content = ""
            for block in response.content:
                if block.type == "text":
                    content += block.text

            usage = None
            if response.usage:
                usage = {
                    "prompt_tokens": response.usage.input_tokens,
                    "completion_tokens": response.usage.output_tokens,
                    "total_tokens": response.usage.input_tokens + response.usage.output_tokens,
                }

            return LLMResponse(
                content=content,
                usage=usage,
                finish_reason=response.stop_reason
            )

        except Exception as e:
            logger.error(f"Anthropic API error: {e}")
            raise

    def stream(
        self,
        messages: List[Message],
        temperature: float = 0.7,
        max_tokens: int = 4000,
        stop: Optional[List[str]] = None
    ) -> Iterator[StreamChunk]:
        """Stream a chat completion from Anthropic."""
        if not self.client:
            raise RuntimeError("Anthropic client not initialized. Check API key.")

        kwargs = self._build_kwargs(messages, temperature, max_tokens, stop)

        try:
            with self.client.messages.stream(**kwargs) as stream:
                for text in stream.text_stream:
                    if text:
                        yield StreamChunk(delta=text)
                final = stream.get_final_message()

            usage = None
            if final.usage:
                usage = {
                    "prompt_tokens": final.usage.input_tokens,
                    "completion_tokens": final.usage.output_tokens,
                    "total_tokens": final.usage.input_tokens + final.usage.output_tokens,
                }
            yield StreamChunk(done=True, usage=usage, finish_reason=final.stop_reason)

        except Exception as e:
            logger.error(f"Anthropic streaming error: {e}")
            raise

    def get_provider_name(self) -> str:
        """Get the provider name."""
        return "anthropic"

    def get_model_name(self) -> str:
        """Get the model name."""
        return self.model
