"""LLM client factory."""

import logging
from enum import Enum
from typing import Optional

from config.settings import Settings
from .base_client import BaseLLMClient
from .openai_client import OpenAIClient
from .anthropic_client import AnthropicClient

logger = logging.getLogger(__name__)


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


def create_llm_client(
    provider: LLMProvider,
    api_key: Optional[str] = None,
    model: Optional[str] = None
) -> BaseLLMClient:
    """
    Create an LLM client for the specified provider.

    Raises:
        ValueError: If provider is not supported
    """
    if provider == LLMProvider.OPENAI:
        return OpenAIClient(api_key=api_key, model=model)
    elif provider == LLMProvider.ANTHROPIC:
        return AnthropicClient(api_key=api_key, model=model)
    else:
        raise ValueError(f"Unsupported LLM provider: {provider}")


def create_llm_client_from_settings(settings: Settings) -> Optional[BaseLLMClient]:
    """
    Create the configured client, or None when no API key is available.

    Without a client the conversational path is unavailable, but structured
    answers and deterministic summaries keep working.
    """
    api_key = settings.get_llm_api_key()
    if not api_key:
        logger.warning(
            f"No API key for {settings.llm_provider}. "
            "Conversational replies disabled; structured answers still available."
        )
        return None

    client = create_llm_client(
        provider=LLMProvider(settings.llm_provider),
        api_key=api_key,
        model=settings.llm_model
    )
    logger.info(f"LLM client initialized: {settings.llm_provider} ({client.get_model_name()})")
    return client
