"""SQLite-backed credential store holding one aggregator token row per user."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from banklink.models import TokenRecord

if TYPE_CHECKING:
    from banklink.services.token_cipher import TokenCipherService


class SQLiteTokenStore:
    """Persist token sets keyed by user id; writes replace the existing row."""

    def __init__(self, db_path: str, cipher: TokenCipherService) -> None:
        self._db_path = Path(db_path)
        self._cipher = cipher
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS user_tokens (
                    user_id TEXT PRIMARY KEY,
                    access_token TEXT NOT NULL,
                    refresh_token TEXT,
                    expires_in INTEGER,
                    scope TEXT,
                    token_type TEXT,
                    created_at TEXT NOT NULL
                )
                """
            )

    def save_token(
        self,
        user_id: str,
        *,
        access_token: str,
        refresh_token: Optional[str],
        expires_in: Optional[int],
        scope: Optional[str],
        token_type: Optional[str],
    ) -> TokenRecord:
        """Insert or replace the user's token row and return what was stored."""
        if not user_id:
            raise ValueError("user_id is required to store a token")

        created_at = datetime.now(timezone.utc)
        encrypted_refresh = (
            self._cipher.encrypt(refresh_token) if refresh_token else None
        )
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO user_tokens
                    (user_id, access_token, refresh_token, expires_in, scope, token_type, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    access_token = excluded.access_token,
                    refresh_token = excluded.refresh_token,
                    expires_in = excluded.expires_in,
                    scope = excluded.scope,
                    token_type = excluded.token_type,
                    created_at = excluded.created_at
                """,
                (
                    user_id,
                    self._cipher.encrypt(access_token),
                    encrypted_refresh,
                    expires_in,
                    scope,
                    token_type,
                    created_at.isoformat(),
                ),
            )
        return TokenRecord(
            user_id=user_id,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=expires_in,
            scope=scope,
            token_type=token_type,
            created_at=created_at,
        )

    def get_token(self, user_id: str) -> Optional[TokenRecord]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM user_tokens WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        if not row:
            return None

        created_at = datetime.fromisoformat(row["created_at"])
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        refresh_token = row["refresh_token"]
        return TokenRecord(
            user_id=row["user_id"],
            access_token=self._cipher.decrypt(row["access_token"]),
            refresh_token=self._cipher.decrypt(refresh_token) if refresh_token else None,
            expires_in=row["expires_in"],
            scope=row["scope"],
            token_type=row["token_type"],
            created_at=created_at,
        )

    def ping(self) -> str:
        """Round-trip a trivial query; used by the health endpoint."""
        with self._connect() as conn:
            row = conn.execute("SELECT datetime('now') AS now").fetchone()
        return row["now"]


__all__ = ["SQLiteTokenStore"]
