"""SQLite-based store for MaBar.

4 tables:
    users, sessions, messages, conversation_state
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from loguru import logger


def conversation_key(session_id: str) -> str:
    """Persistence key of one conversation snapshot."""
    return f"conversation:{session_id}"


class MemoryStore:
    """SQLite memory — users, chat sessions, message log, conversation snapshots."""

    def __init__(self, db_path: str = "data/mabar.db"):
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        logger.info(f"MemoryStore initialized: {db_path}")

    @contextmanager
    def _get_conn(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
        finally:
            conn.close()

    def _init_db(self):
        with self._get_conn() as conn:
            conn.executescript(_SCHEMA)
            conn.commit()

    # ════════════════════════════════════════════════════════════
    # USERS
    # ════════════════════════════════════════════════════════════

    def get_or_create_user(self, user_id: str, name: str | None = None) -> str:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT user_id FROM users WHERE user_id = ?", (user_id,)
            ).fetchone()
            if row:
                return user_id
            conn.execute(
                "INSERT INTO users (user_id, name) VALUES (?, ?)",
                (user_id, name),
            )
            conn.commit()
            logger.info(f"New user created: {user_id}")
        return user_id

    def get_user(self, user_id: str) -> dict[str, Any] | None:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT user_id, name, created_at FROM users WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        return dict(row) if row else None

    # ════════════════════════════════════════════════════════════
    # SESSIONS
    # ════════════════════════════════════════════════════════════

    def create_session(self, user_id: str, session_id: str | None = None) -> str:
        self.get_or_create_user(user_id)
        if session_id is None:
            session_id = str(uuid.uuid4())
        with self._get_conn() as conn:
            conn.execute(
                "INSERT INTO sessions (session_id, user_id) VALUES (?, ?)",
                (session_id, user_id),
            )
            conn.commit()
        logger.info(f"Session created: {session_id} for {user_id}")
        return session_id

    def get_session(self, session_id: str) -> dict[str, Any] | None:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM sessions WHERE session_id = ?", (session_id,)
            ).fetchone()
        return dict(row) if row else None

    def get_active_session(self, user_id: str) -> dict[str, Any] | None:
        """The user's most recent chat that has not been closed."""
        with self._get_conn() as conn:
            row = conn.execute(
                """SELECT * FROM sessions
                   WHERE user_id = ? AND ended_at IS NULL
                   ORDER BY started_at DESC, rowid DESC LIMIT 1""",
                (user_id,),
            ).fetchone()
        return dict(row) if row else None

    def end_session(self, session_id: str, close_reason: str = "manual") -> None:
        with self._get_conn() as conn:
            conn.execute(
                """UPDATE sessions
                   SET ended_at = CURRENT_TIMESTAMP, close_reason = ?
                   WHERE session_id = ?""",
                (close_reason, session_id),
            )
            conn.commit()
        logger.info(f"Session ended: {session_id} ({close_reason})")

    def get_user_sessions(self, user_id: str, limit: int = 10) -> list[dict[str, Any]]:
        with self._get_conn() as conn:
            rows = conn.execute(
                """SELECT session_id, started_at, ended_at, close_reason,
                          (SELECT COUNT(*) FROM messages m
                           WHERE m.session_id = s.session_id) AS message_count
                   FROM sessions s WHERE user_id = ?
                   ORDER BY started_at DESC, rowid DESC LIMIT ?""",
                (user_id, limit),
            ).fetchall()
        return [dict(r) for r in rows]

    # ════════════════════════════════════════════════════════════
    # MESSAGES
    # ════════════════════════════════════════════════════════════

    def add_message(
        self,
        session_id: str,
        role: str,
        content: str,
        cards: list[dict[str, Any]] | None = None,
    ) -> int:
        with self._get_conn() as conn:
            cursor = conn.execute(
                """INSERT INTO messages (session_id, role, content, cards)
                   VALUES (?, ?, ?, ?)""",
                (session_id, role, content, json.dumps(cards) if cards else None),
            )
            conn.commit()
            return cursor.lastrowid or 0

    def get_session_messages(self, session_id: str) -> list[dict[str, Any]]:
        with self._get_conn() as conn:
            rows = conn.execute(
                """SELECT role, content, cards, created_at
                   FROM messages WHERE session_id = ?
                   ORDER BY id ASC""",
                (session_id,),
            ).fetchall()
        result = []
        for r in rows:
            msg = dict(r)
            msg["cards"] = json.loads(msg["cards"]) if msg["cards"] else []
            result.append(msg)
        return result

    # ════════════════════════════════════════════════════════════
    # CONVERSATION STATE (history + accumulated info snapshot)
    # ════════════════════════════════════════════════════════════

    def save_state(self, session_id: str, data: dict[str, Any]) -> None:
        """Write / replace the snapshot of one conversation."""
        with self._get_conn() as conn:
            conn.execute(
                """INSERT INTO conversation_state (key, data)
                   VALUES (?, ?)
                   ON CONFLICT(key) DO UPDATE SET
                       data = excluded.data,
                       updated_at = CURRENT_TIMESTAMP""",
                (conversation_key(session_id), json.dumps(data, default=str)),
            )
            conn.commit()

    def load_state(self, session_id: str) -> dict[str, Any] | None:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT data FROM conversation_state WHERE key = ?",
                (conversation_key(session_id),),
            ).fetchone()
        if not row:
            return None
        try:
            return json.loads(row["data"])
        except json.JSONDecodeError:
            logger.warning(f"Corrupt conversation snapshot for {session_id}, ignoring")
            return None

    def delete_state(self, session_id: str) -> bool:
        """Remove the snapshot. Returns True if one existed."""
        with self._get_conn() as conn:
            cursor = conn.execute(
                "DELETE FROM conversation_state WHERE key = ?",
                (conversation_key(session_id),),
            )
            conn.commit()
        return cursor.rowcount > 0


# ════════════════════════════════════════════════════════════
# SQL SCHEMA
# ════════════════════════════════════════════════════════════

_SCHEMA = """
-- 1. Users
CREATE TABLE IF NOT EXISTS users (
    user_id TEXT PRIMARY KEY,
    name TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- 2. Chat sessions
CREATE TABLE IF NOT EXISTS sessions (
    session_id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    started_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    ended_at TIMESTAMP,
    close_reason TEXT,
    FOREIGN KEY (user_id) REFERENCES users(user_id)
);
CREATE INDEX IF NOT EXISTS idx_sessions_user ON sessions(user_id, started_at DESC);

-- 3. Message log
CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    role TEXT NOT NULL,
    content TEXT,
    cards TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (session_id) REFERENCES sessions(session_id)
);
CREATE INDEX IF NOT EXISTS idx_messages_session ON messages(session_id, id);

-- 4. Conversation snapshots, keyed "conversation:<session_id>"
CREATE TABLE IF NOT EXISTS conversation_state (
    key TEXT PRIMARY KEY,
    data TEXT NOT NULL,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""
