"""
Shared fixtures: temporary stores, a seeded care-record database and a fake LLM.
"""
import pytest
from datetime import date
from typing import Iterator, List, Optional

from config.settings import Settings
from llm.base_client import BaseLLMClient, Message, LLMResponse, StreamChunk
from memory.sqlite_store import SQLiteMemoryStore
from retrieval.fact_store import SQLiteFactStore
from retrieval.lexicon import ClinicalLexicon
from schemas.memory import Role
from utils.seed_demo_data import seed_demo_household


TODAY = date(2026, 3, 10)


class FakeLLMClient(BaseLLMClient):
    """In-process LLM that records every invocation."""

    def __init__(self, reply: str = "That sounds hard. Let's keep an eye on how she is doing together.",
                 fail: bool = False):
        self.reply = reply
        self.fail = fail
        self.chat_calls: List[List[Message]] = []
        self.stream_calls: List[List[Message]] = []

    @property
    def calls(self) -> int:
        return len(self.chat_calls) + len(self.stream_calls)

    def chat(self, messages, temperature=0.7, max_tokens=4000, stop=None) -> LLMResponse:
        self.chat_calls.append(list(messages))
        if self.fail:
            raise RuntimeError("backend unavailable")
        return LLMResponse(
            content=self.reply,
            usage={"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
            finish_reason="stop",
        )

    def stream(self, messages, temperature=0.7, max_tokens=4000, stop=None) -> Iterator[StreamChunk]:
        self.stream_calls.append(list(messages))
        if self.fail:
            raise RuntimeError("backend unavailable")
        words = self.reply.split(" ")
        for i, word in enumerate(words):
            yield StreamChunk(delta=word if i == 0 else " " + word)
        yield StreamChunk(done=True, usage={"completion_tokens": len(words), "total_tokens": 20})

    def get_provider_name(self) -> str:
        return "fake"

    def get_model_name(self) -> str:
        return "fake-model"


@pytest.fixture
def fact_db_path(tmp_path):
    """Care-record database with the demo household."""
    db_path = tmp_path / "facts.db"
    seed_demo_household(str(db_path), today=TODAY)
    return str(db_path)


@pytest.fixture
def fact_store(fact_db_path):
    return SQLiteFactStore(db_path=fact_db_path)


@pytest.fixture
def broken_fact_store(tmp_path):
    """Fact store pointing at a database that does not exist."""
    return SQLiteFactStore(db_path=str(tmp_path / "empty.db"))


@pytest.fixture
def memory_store(tmp_path):
    return SQLiteMemoryStore(db_path=str(tmp_path / "memory.db"))


@pytest.fixture
def lexicon():
    return ClinicalLexicon()


@pytest.fixture
def fake_llm():
    return FakeLLMClient()


@pytest.fixture
def settings(tmp_path):
    """Settings with no API keys so nothing reaches a real provider."""
    return Settings(
        db_path=str(tmp_path / "memory.db"),
        openai_api_key="",
        anthropic_api_key="",
    )


def add_exchange(store: SQLiteMemoryStore, session_id: str, count: int, text: Optional[str] = None):
    """Append `count` alternating user/assistant messages."""
    messages = []
    for i in range(count):
        role = Role.USER if i % 2 == 0 else Role.ASSISTANT
        body = text or (
            f"Message {i}: we talked about the garden and the weekly grocery run in some detail."
            if role == Role.USER else
            f"Reply {i}: noted, the garden and the grocery run both sound manageable this week."
        )
        messages.append(store.add_message(session_id, role, body))
    return messages
