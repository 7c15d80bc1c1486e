"""Per-session mutual exclusion for turn processing."""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class SessionLockRegistry:
    """
    One lock per session id, created on demand and dropped when idle.

    Turns on different sessions never wait on each other. A holder never
    acquires a second session's lock, so there is no lock ordering to get wrong.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._holders: Dict[str, int] = {}

    @contextmanager
    def hold(self, session_id: str) -> Iterator[None]:
        """Run the enclosed block exclusively for this session."""
        with self._guard:
            lock = self._locks.setdefault(session_id, threading.Lock())
            self._holders[session_id] = self._holders.get(session_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._holders[session_id] -= 1
                if self._holders[session_id] == 0:
                    del self._holders[session_id]
                    self._locks.pop(session_id, None)

    def is_locked(self, session_id: str) -> bool:
        with self._guard:
            lock = self._locks.get(session_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
