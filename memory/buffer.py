"""Rolling buffer: the most recent messages of a session."""

from typing import List, Optional

from .sqlite_store import SQLiteMemoryStore
from schemas.memory import Message


class RollingBuffer:
    """
    Bounded view over the last K messages of a session.

    Not a separate store: always the tail of the message table, so there is
    nothing to keep in sync. Store errors propagate to the caller.
    """

    def __init__(self, store: SQLiteMemoryStore, size: int = 10):
        if size < 1:
            raise ValueError("Buffer size must be at least 1")
        self.store = store
        self.size = size

    def window(self, session_id: str) -> List[Message]:
        """Most recent `size` messages in chronological order."""
        return self.store.get_recent_messages(session_id, limit=self.size)

    def window_start_id(self, session_id: str) -> Optional[int]:
        """Id of the oldest message inside the window, None for an empty session."""
        messages = self.window(session_id)
        return messages[0].id if messages else None
