"""Application settings."""

import os
from typing import Optional
from pydantic import BaseModel, Field


class Settings(BaseModel):
    """Application configuration settings."""

    # Storage
    db_path: str = "data/conversations.db"
    facts_db_path: Optional[str] = None  # Defaults to db_path (single-file deployments)

    # LLM Provider settings
    llm_provider: str = "openai"  # "openai" or "anthropic"
    llm_model: Optional[str] = None  # Override default model

    # API Keys
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None

    # Generation settings
    temperature: float = 0.7
    max_tokens: int = 1024
    stop_sequences: list[str] = Field(default_factory=list)

    # Memory settings
    buffer_size: int = 10  # Rolling buffer window (most recent messages)
    summary_threshold: int = 8  # Uncompressed messages before summarization
    context_token_budget: int = 3000
    chars_per_token: int = 4
    max_context_pins: int = 5
    max_context_summaries: int = 3
    min_buffer_messages: int = 3  # Tail of the buffer that is never truncated
    pin_promotion_threshold: float = 0.6

    # Subject resolution
    default_patient_id: Optional[str] = None

    # Keyword lexicon (None -> bundled data/clinical_lexicon.yaml)
    lexicon_path: Optional[str] = None

    # Logging
    verbose: bool = False

    def __init__(self, **data):
        # Auto-load API keys from environment if not provided
        if "openai_api_key" not in data or data["openai_api_key"] is None:
            data["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

        if "anthropic_api_key" not in data or data["anthropic_api_key"] is None:
            data["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")

        super().__init__(**data)

    def get_llm_api_key(self) -> Optional[str]:
        """Get the API key for the configured LLM provider."""
        if self.llm_provider == "openai":
            return self.openai_api_key
        elif self.llm_provider == "anthropic":
            return self.anthropic_api_key
        return None

    def get_facts_db_path(self) -> str:
        """Path of the clinical records database."""
        return self.facts_db_path or self.db_path
