"""Server-side storage for in-flight bank link attempts, keyed by browser session."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class LinkSession:
    """PKCE state for one browser session's current link attempt."""

    session_id: str
    user_id: Optional[str] = None
    code_verifier: Optional[str] = None
    code_exchange_done: bool = False
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def mark_exchange_done(self) -> None:
        self.code_exchange_done = True
        self.updated_at = _utcnow()


class LinkSessionStore:
    """SQLite-backed link session store with TTL pruning."""

    def __init__(self, db_path: str, ttl_seconds: int = 7200) -> None:
        self._db_path = Path(db_path)
        self._ttl = ttl_seconds
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_tables()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_tables(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS link_sessions (
                    session_id TEXT PRIMARY KEY,
                    user_id TEXT,
                    code_verifier TEXT,
                    code_exchange_done INTEGER NOT NULL DEFAULT 0,
                    exchange_in_progress INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    def _prune(self) -> None:
        threshold = (_utcnow() - timedelta(seconds=self._ttl)).isoformat()
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM link_sessions WHERE created_at < ?",
                (threshold,),
            )

    def start(self, *, session_id: str, user_id: str, code_verifier: str) -> LinkSession:
        """Begin a fresh attempt, replacing whatever the session held before."""
        session = LinkSession(
            session_id=session_id,
            user_id=user_id,
            code_verifier=code_verifier,
            code_exchange_done=False,
        )
        self.save(session)
        with self._connect() as conn:
            conn.execute(
                "UPDATE link_sessions SET exchange_in_progress = 0 WHERE session_id = ?",
                (session_id,),
            )
        return session

    def save(self, session: LinkSession) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO link_sessions
                    (session_id, user_id, code_verifier, code_exchange_done, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(session_id) DO UPDATE SET
                    user_id = excluded.user_id,
                    code_verifier = excluded.code_verifier,
                    code_exchange_done = excluded.code_exchange_done,
                    created_at = excluded.created_at,
                    updated_at = excluded.updated_at
                """,
                (
                    session.session_id,
                    session.user_id,
                    session.code_verifier,
                    int(session.code_exchange_done),
                    session.created_at.isoformat(),
                    session.updated_at.isoformat(),
                ),
            )

    def get(self, session_id: str) -> Optional[LinkSession]:
        self._prune()
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM link_sessions WHERE session_id = ?",
                (session_id,),
            ).fetchone()
        if not row:
            return None
        return LinkSession(
            session_id=row["session_id"],
            user_id=row["user_id"],
            code_verifier=row["code_verifier"],
            code_exchange_done=bool(row["code_exchange_done"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def claim(self, session_id: str) -> bool:
        """
        Reserve the session for a single code exchange.

        The check and the update are one statement, so of several concurrent
        callbacks on the same session exactly one gets True.
        """
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE link_sessions
                SET exchange_in_progress = 1, updated_at = ?
                WHERE session_id = ? AND code_exchange_done = 0 AND exchange_in_progress = 0
                """,
                (_utcnow().isoformat(), session_id),
            )
            return cursor.rowcount == 1

    def release(self, session_id: str) -> None:
        """Drop a claim after a failed exchange so the attempt can be retried."""
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE link_sessions
                SET exchange_in_progress = 0, updated_at = ?
                WHERE session_id = ? AND code_exchange_done = 0
                """,
                (_utcnow().isoformat(), session_id),
            )

    def mark_exchange_done(self, session_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE link_sessions
                SET code_exchange_done = 1, exchange_in_progress = 0, updated_at = ?
                WHERE session_id = ?
                """,
                (_utcnow().isoformat(), session_id),
            )


__all__ = ["LinkSession", "LinkSessionStore"]
