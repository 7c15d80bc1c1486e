"""SQLite-based memory store for sessions, messages, summaries and pins."""

import sqlite3
import logging
from contextlib import contextmanager
from pathlib import Path
from datetime import datetime
from typing import Iterator, Optional, List

from errors import StoreUnavailableError
from schemas.memory import (
    Role,
    PinType,
    UrgencyLevel,
    ClinicalCategory,
    Session,
    Message,
    ConversationSummary,
    SemanticPin,
    MemoryStats,
)

logger = logging.getLogger(__name__)


def _ts(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")


def _parse_ts(value: Optional[str]) -> datetime:
    return datetime.fromisoformat(value) if value else datetime.now()


class SQLiteMemoryStore:
    """SQLite-based persistent memory store."""

    def __init__(self, db_path: str = "data/conversations.db"):
        """
        Initialize SQLite memory store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory."""
        conn = sqlite3.connect(self.db_path, timeout=10)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Connection scope: commit on success, roll back on error, always close."""
        try:
            conn = self._get_connection()
        except sqlite3.Error as e:
            logger.error(f"Memory store unavailable: {e}")
            raise StoreUnavailableError(f"Memory store unavailable: {e}") from e
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Memory store operation failed: {e}")
            raise StoreUnavailableError(f"Memory store operation failed: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self):
        """Initialize database schema."""
        with self._transaction() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    patient_id TEXT,
                    persona_id TEXT,
                    model TEXT,
                    recap TEXT,
                    saved INTEGER DEFAULT 0,
                    created_at TEXT,
                    updated_at TEXT
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id TEXT NOT NULL,
                    role TEXT NOT NULL CHECK(role IN ('user', 'assistant', 'system')),
                    text TEXT NOT NULL,
                    model_id TEXT,
                    token_count INTEGER DEFAULT 0,
                    importance_score REAL,
                    created_at TEXT,
                    FOREIGN KEY (session_id) REFERENCES sessions(id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS conversation_summaries (
                    id TEXT PRIMARY KEY,
                    session_id TEXT NOT NULL,
                    summary TEXT NOT NULL,
                    message_count INTEGER NOT NULL,
                    start_message_id INTEGER NOT NULL,
                    end_message_id INTEGER NOT NULL,
                    importance_score REAL DEFAULT 0.7,
                    created_at TEXT,
                    FOREIGN KEY (session_id) REFERENCES sessions(id)
                )
            """)

            # source_message_id is a weak reference: no foreign key
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS semantic_pins (
                    id TEXT PRIMARY KEY,
                    session_id TEXT NOT NULL,
                    content TEXT NOT NULL,
                    source_message_id INTEGER,
                    importance_score REAL DEFAULT 0.8,
                    pin_type TEXT DEFAULT 'auto',
                    clinical_category TEXT,
                    urgency_level TEXT,
                    patient_id TEXT,
                    created_at TEXT,
                    FOREIGN KEY (session_id) REFERENCES sessions(id)
                )
            """)

            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_messages_session ON messages(session_id, id)"
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_summaries_session "
                "ON conversation_summaries(session_id, end_message_id)"
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_pins_session "
                "ON semantic_pins(session_id, importance_score DESC)"
            )

        logger.info(f"Database initialized at {self.db_path}")

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def ensure_session(
        self,
        session_id: str,
        persona_id: Optional[str] = None,
        model: Optional[str] = None
    ) -> Session:
        """
        Get a session, creating it on first use.

        Args:
            session_id: Session ID
            persona_id: Active persona for new sessions
            model: Model id for new sessions

        Returns:
            Session object
        """
        now = _ts(datetime.now())
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO sessions (id, persona_id, model, saved, created_at, updated_at)
                VALUES (?, ?, ?, 0, ?, ?)
                """,
                (session_id, persona_id, model, now, now)
            )
            row = conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
        return self._row_to_session(row)

    def get_session(self, session_id: str) -> Optional[Session]:
        """Get a session or None."""
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
        return self._row_to_session(row) if row else None

    def get_session_patient(self, session_id: str) -> Optional[str]:
        """Patient currently linked to the session, if any."""
        session = self.get_session(session_id)
        return session.patient_id if session else None

    def set_session_patient(self, session_id: str, patient_id: Optional[str]):
        """Link the session to a subject (set by the application when focus changes)."""
        with self._transaction() as conn:
            conn.execute(
                "UPDATE sessions SET patient_id = ?, updated_at = ? WHERE id = ?",
                (patient_id, _ts(datetime.now()), session_id)
            )

    def update_session_recap(self, session_id: str, recap: str):
        """Store the latest summary text as the session recap."""
        with self._transaction() as conn:
            conn.execute(
                "UPDATE sessions SET recap = ? WHERE id = ?",
                (recap, session_id)
            )

    def set_session_saved(self, session_id: str, saved: bool = True):
        """Mark a session as saved (vs ephemeral)."""
        with self._transaction() as conn:
            conn.execute(
                "UPDATE sessions SET saved = ? WHERE id = ?",
                (1 if saved else 0, session_id)
            )

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def add_message(
        self,
        session_id: str,
        role: Role,
        text: str,
        model_id: Optional[str] = None,
        token_count: int = 0,
        importance_score: Optional[float] = None,
        patient_id: Optional[str] = None
    ) -> Message:
        """
        Append a complete message to a session.

        The session's updated_at (and linked patient, when given) change in
        the same transaction as the insert.

        Args:
            session_id: Session ID
            role: Role (user, assistant, system)
            text: Message text (must be non-empty)
            model_id: Originating model id
            token_count: Token usage reported for the message
            importance_score: Score if already known
            patient_id: Subject named by this turn, linked to the session

        Returns:
            Created Message object
        """
        role = Role(role)
        if not text or not text.strip():
            raise ValueError("Refusing to persist a message without text")

        now = datetime.now()
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO messages
                (session_id, role, text, model_id, token_count, importance_score, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (session_id, role.value, text, model_id, token_count, importance_score, _ts(now))
            )
            message_id = cursor.lastrowid

            if patient_id:
                conn.execute(
                    "UPDATE sessions SET updated_at = ?, patient_id = ? WHERE id = ?",
                    (_ts(now), patient_id, session_id)
                )
            else:
                conn.execute(
                    "UPDATE sessions SET updated_at = ? WHERE id = ?",
                    (_ts(now), session_id)
                )

        return Message(
            id=message_id,
            session_id=session_id,
            role=role,
            text=text,
            model_id=model_id,
            token_count=token_count,
            importance_score=importance_score,
            created_at=now
        )

    def update_message_importance(self, message_id: int, importance_score: float):
        """Update message importance score."""
        with self._transaction() as conn:
            conn.execute(
                "UPDATE messages SET importance_score = ? WHERE id = ?",
                (importance_score, message_id)
            )

    def get_recent_messages(self, session_id: str, limit: int = 10) -> List[Message]:
        """
        Get most recent messages from a session.

        Returns:
            Up to `limit` messages in chronological order
        """
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM messages
                WHERE session_id = ?
                ORDER BY id DESC
                LIMIT ?
                """,
                (session_id, limit)
            ).fetchall()
        return [self._row_to_message(row) for row in reversed(rows)]

    def get_messages_after(
        self,
        session_id: str,
        after_id: int = 0,
        before_id: Optional[int] = None
    ) -> List[Message]:
        """Messages with after_id < id (< before_id when given), chronological."""
        sql = "SELECT * FROM messages WHERE session_id = ? AND id > ?"
        params: list = [session_id, after_id]
        if before_id is not None:
            sql += " AND id < ?"
            params.append(before_id)
        sql += " ORDER BY id ASC"

        with self._transaction() as conn:
            rows = conn.execute(sql, tuple(params)).fetchall()
        return [self._row_to_message(row) for row in rows]

    def get_messages_in_range(self, session_id: str, start_id: int, end_id: int) -> List[Message]:
        """Messages in the inclusive id range, chronological."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM messages
                WHERE session_id = ? AND id BETWEEN ? AND ?
                ORDER BY id ASC
                """,
                (session_id, start_id, end_id)
            ).fetchall()
        return [self._row_to_message(row) for row in rows]

    def get_all_messages(self, session_id: str) -> List[Message]:
        """Full session history, chronological."""
        return self.get_messages_after(session_id, 0)

    def get_unscored_messages(self, session_id: str) -> List[Message]:
        """Messages whose importance score has not been computed yet."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM messages
                WHERE session_id = ? AND importance_score IS NULL
                ORDER BY id ASC
                """,
                (session_id,)
            ).fetchall()
        return [self._row_to_message(row) for row in rows]

    def get_message_count(self, session_id: str) -> int:
        """Get the number of messages in a session."""
        with self._transaction() as conn:
            result = conn.execute(
                "SELECT COUNT(*) FROM messages WHERE session_id = ?",
                (session_id,)
            ).fetchone()
        return result[0] if result else 0

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------

    def get_last_covered_message_id(self, session_id: str) -> int:
        """End id of the newest summary, 0 when nothing is compressed."""
        with self._transaction() as conn:
            return self._last_covered(conn, session_id)

    @staticmethod
    def _last_covered(conn: sqlite3.Connection, session_id: str) -> int:
        row = conn.execute(
            "SELECT MAX(end_message_id) FROM conversation_summaries WHERE session_id = ?",
            (session_id,)
        ).fetchone()
        return row[0] or 0

    def insert_summary(self, summary: ConversationSummary) -> bool:
        """
        Persist a summary if its range starts after everything already covered.

        The check and the insert share one write transaction, so two
        compressors racing on the same session cannot create overlapping spans.

        Returns:
            True if stored, False if the range overlaps an existing summary
        """
        if summary.start_message_id > summary.end_message_id:
            raise ValueError("Summary range is inverted")

        with self._transaction() as conn:
            conn.execute("BEGIN IMMEDIATE")
            last_covered = self._last_covered(conn, summary.session_id)
            if summary.start_message_id <= last_covered:
                logger.warning(
                    f"Skipping summary for {summary.session_id}: range "
                    f"[{summary.start_message_id}, {summary.end_message_id}] overlaps "
                    f"covered range ending at {last_covered}"
                )
                return False

            conn.execute(
                """
                INSERT INTO conversation_summaries
                (id, session_id, summary, message_count, start_message_id, end_message_id,
                 importance_score, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    summary.id,
                    summary.session_id,
                    summary.summary,
                    summary.message_count,
                    summary.start_message_id,
                    summary.end_message_id,
                    summary.importance_score,
                    _ts(summary.created_at),
                )
            )
        return True

    def get_summaries(self, session_id: str) -> List[ConversationSummary]:
        """All summaries for a session, oldest span first."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM conversation_summaries
                WHERE session_id = ?
                ORDER BY start_message_id ASC
                """,
                (session_id,)
            ).fetchall()
        return [self._row_to_summary(row) for row in rows]

    def get_last_summary(self, session_id: str) -> Optional[ConversationSummary]:
        """Summary covering the newest span, or None."""
        summaries = self.get_summaries(session_id)
        return summaries[-1] if summaries else None

    # ------------------------------------------------------------------
    # Pins
    # ------------------------------------------------------------------

    def insert_pin(self, pin: SemanticPin) -> SemanticPin:
        """Persist a semantic pin."""
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO semantic_pins
                (id, session_id, content, source_message_id, importance_score, pin_type,
                 clinical_category, urgency_level, patient_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    pin.id,
                    pin.session_id,
                    pin.content,
                    pin.source_message_id,
                    pin.importance_score,
                    pin.pin_type.value,
                    pin.clinical_category.value if pin.clinical_category else None,
                    pin.urgency_level.value if pin.urgency_level else None,
                    pin.patient_id,
                    _ts(pin.created_at),
                )
            )
        return pin

    def has_pin_content(self, session_id: str, content: str) -> bool:
        """True if the session already holds a pin with this exact content."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT 1 FROM semantic_pins WHERE session_id = ? AND content = ? LIMIT 1",
                (session_id, content)
            ).fetchone()
        return row is not None

    def get_pins(
        self,
        session_id: str,
        patient_id: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[SemanticPin]:
        """
        Get pins ranked by importance.

        Args:
            session_id: Session ID
            patient_id: When given, only pins about this patient or about no one
            limit: Maximum number of pins

        Returns:
            Pins ordered by importance desc, newest first on ties
        """
        sql = "SELECT * FROM semantic_pins WHERE session_id = ?"
        params: list = [session_id]
        if patient_id is not None:
            sql += " AND (patient_id IS NULL OR patient_id = ?)"
            params.append(patient_id)
        sql += " ORDER BY importance_score DESC, created_at DESC, id ASC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        with self._transaction() as conn:
            rows = conn.execute(sql, tuple(params)).fetchall()
        return [self._row_to_pin(row) for row in rows]

    # ------------------------------------------------------------------
    # Accounting
    # ------------------------------------------------------------------

    def unaccounted_message_ids(self, session_id: str, buffer_size: int) -> List[int]:
        """
        Messages neither inside the rolling-buffer window nor inside a summary.

        Empty when the tiered memory accounts for the whole session history.
        """
        messages = self.get_all_messages(session_id)
        window_ids = {m.id for m in messages[-buffer_size:]} if buffer_size > 0 else set()
        covered = [(s.start_message_id, s.end_message_id) for s in self.get_summaries(session_id)]

        unaccounted = []
        for message in messages:
            if message.id in window_ids:
                continue
            if any(start <= message.id <= end for start, end in covered):
                continue
            unaccounted.append(message.id)
        return unaccounted

    def get_stats(self, session_id: str, buffer_size: int = 10) -> MemoryStats:
        """Per-session memory statistics."""
        with self._transaction() as conn:
            message_row = conn.execute(
                """
                SELECT COUNT(*) AS total, MIN(created_at) AS oldest, MAX(created_at) AS newest,
                       AVG(importance_score) AS avg_score
                FROM messages WHERE session_id = ?
                """,
                (session_id,)
            ).fetchone()
            summary_count = conn.execute(
                "SELECT COUNT(*) FROM conversation_summaries WHERE session_id = ?",
                (session_id,)
            ).fetchone()[0]
            pin_count = conn.execute(
                "SELECT COUNT(*) FROM semantic_pins WHERE session_id = ?",
                (session_id,)
            ).fetchone()[0]

        avg_score = message_row["avg_score"]
        return MemoryStats(
            session_id=session_id,
            total_messages=message_row["total"],
            total_summaries=summary_count,
            total_pins=pin_count,
            oldest_message=datetime.fromisoformat(message_row["oldest"]) if message_row["oldest"] else None,
            newest_message=datetime.fromisoformat(message_row["newest"]) if message_row["newest"] else None,
            average_importance_score=round(avg_score, 4) if avg_score is not None else None,
            unaccounted_messages=len(self.unaccounted_message_ids(session_id, buffer_size)),
        )

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> Session:
        return Session(
            id=row["id"],
            patient_id=row["patient_id"],
            persona_id=row["persona_id"],
            model=row["model"],
            recap=row["recap"],
            saved=bool(row["saved"]),
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> Message:
        return Message(
            id=row["id"],
            session_id=row["session_id"],
            role=Role(row["role"]),
            text=row["text"],
            model_id=row["model_id"],
            token_count=row["token_count"] or 0,
            importance_score=row["importance_score"],
            created_at=_parse_ts(row["created_at"]),
        )

    @staticmethod
    def _row_to_summary(row: sqlite3.Row) -> ConversationSummary:
        return ConversationSummary(
            id=row["id"],
            session_id=row["session_id"],
            summary=row["summary"],
            message_count=row["message_count"],
            start_message_id=row["start_message_id"],
            end_message_id=row["end_message_id"],
            importance_score=row["importance_score"],
            created_at=_parse_ts(row["created_at"]),
        )

    @staticmethod
    def _row_to_pin(row: sqlite3.Row) -> SemanticPin:
        return SemanticPin(
            id=row["id"],
            session_id=row["session_id"],
            content=row["content"],
            source_message_id=row["source_message_id"],
            importance_score=row["importance_score"],
            pin_type=PinType(row["pin_type"]),
            clinical_category=ClinicalCategory(row["clinical_category"]) if row["clinical_category"] else None,
            urgency_level=UrgencyLevel(row["urgency_level"]) if row["urgency_level"] else None,
            patient_id=row["patient_id"],
            created_at=_parse_ts(row["created_at"]),
        )
