"""Context payload schemas emitted to the model-invocation boundary."""

from pydantic import BaseModel, ConfigDict, Field


class ContextEntry(BaseModel):
    """One ordered role/text entry handed to the model."""
    model_config = ConfigDict(frozen=True)

    role: str  # "system", "user", "assistant"
    text: str


class BudgetReport(BaseModel):
    """Budget usage of an assembled context."""
    model_config = ConfigDict(frozen=True)

    tokens_used: int
    tokens_budget: int
    truncated: bool = False


class ContextPayload(BaseModel):
    """Frozen, ordered context for one conversational turn."""
    model_config = ConfigDict(frozen=True)

    session_id: str
    entries: list[ContextEntry] = Field(default_factory=list)
    budget: BudgetReport
    summary_ids: list[str] = Field(default_factory=list)
    pin_ids: list[str] = Field(default_factory=list)
    message_ids: list[int] = Field(default_factory=list)
