"""
Access-token lifecycle for linked bank connections.

``TokenLifecycleService.get_usable_access_token`` is the single entry point the
data endpoints use. It returns the stored access token while it is still
comfortably valid, refreshes it through the aggregator when it is not, and
resolves every failure to ``None`` so callers can uniformly ask the user to
re-link.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import weakref
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol, Tuple

from jose import jwt
from jose.exceptions import JOSEError

from banklink.clients.truelayer import OAuthTokenExchangeError
from banklink.models import TokenRecord
from banklink.schemas import TokenBundle

logger = logging.getLogger(__name__)


class CredentialStore(Protocol):
    def get_token(self, user_id: str) -> Optional[TokenRecord]: ...

    def save_token(
        self,
        user_id: str,
        *,
        access_token: str,
        refresh_token: Optional[str],
        expires_in: Optional[int],
        scope: Optional[str],
        token_type: Optional[str],
    ) -> TokenRecord: ...


class TokenRefresher(Protocol):
    async def refresh_access_token(self, refresh_token: str) -> TokenBundle: ...


def _claim_timestamp(value: object) -> Optional[datetime]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def try_decode_expiry(token: str) -> Optional[Tuple[datetime, datetime]]:
    """
    Read ``(issued_at, expires_at)`` from a JWT access token without verifying it.

    Returns None for opaque tokens and for payloads lacking numeric ``iat`` and
    ``exp`` claims.
    """
    try:
        claims = jwt.get_unverified_claims(token)
    except JOSEError:
        return None

    issued_at = _claim_timestamp(claims.get("iat"))
    expires_at = _claim_timestamp(claims.get("exp"))
    if issued_at is None or expires_at is None:
        return None
    return issued_at, expires_at


class TokenLifecycleService:
    """Hands out usable bearer tokens, refreshing and persisting them as needed."""

    EXPIRY_BUFFER = timedelta(seconds=30)

    def __init__(
        self,
        store: CredentialStore,
        refresher: TokenRefresher,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._refresher = refresher
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._refresh_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def expires_at(self, record: TokenRecord) -> Optional[datetime]:
        """Expiry from the token's own claims, else ``created_at + expires_in``."""
        decoded = try_decode_expiry(record.access_token)
        if decoded is not None:
            return decoded[1]
        if record.expires_in is None:
            return None
        created_at = record.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return created_at + timedelta(seconds=record.expires_in)

    def is_expired(self, record: TokenRecord, now: Optional[datetime] = None) -> bool:
        """True once ``now`` is within ``EXPIRY_BUFFER`` of expiry, or expiry is unknown."""
        expires_at = self.expires_at(record)
        if expires_at is None:
            return True
        return (now or self._clock()) >= expires_at - self.EXPIRY_BUFFER

    def save_tokens(self, user_id: str, bundle: TokenBundle) -> TokenRecord:
        """Upsert the user's token row with exactly what the aggregator issued."""
        return self._store.save_token(
            user_id,
            access_token=bundle.access_token,
            refresh_token=bundle.refresh_token,
            expires_in=bundle.expires_in,
            scope=bundle.scope,
            token_type=bundle.token_type,
        )

    def _load(self, user_id: str) -> Optional[TokenRecord]:
        try:
            return self._store.get_token(user_id)
        except (sqlite3.Error, ValueError):
            logger.exception("Could not read stored token for user %s", user_id)
            return None

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._refresh_locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._refresh_locks[user_id] = lock
        return lock

    async def get_usable_access_token(self, user_id: str) -> Optional[str]:
        """
        Return a bearer token for ``user_id`` or None when re-linking is required.

        None covers both "never linked" and "refresh failed"; the two are logged
        differently but callers must treat them alike and must not retry.
        """
        record = self._load(user_id)
        if record is None:
            logger.info("No linked bank connection for user %s", user_id)
            return None
        if not self.is_expired(record):
            return record.access_token

        lock = self._lock_for(user_id)
        async with lock:
            # A concurrent request may have refreshed while this one waited.
            current = self._load(user_id)
            if current is None:
                return None
            if not self.is_expired(current):
                return current.access_token
            return await self._refresh(user_id, current)

    async def _refresh(self, user_id: str, record: TokenRecord) -> Optional[str]:
        if not record.refresh_token:
            logger.warning(
                "Access token expired for user %s and no refresh token is stored",
                user_id,
            )
            return None

        try:
            bundle = await self._refresher.refresh_access_token(record.refresh_token)
        except OAuthTokenExchangeError as exc:
            logger.warning(
                "Token refresh rejected for user %s (status=%s); re-link required",
                user_id,
                exc.status_code,
            )
            return None

        if not bundle.refresh_token:
            bundle = bundle.model_copy(update={"refresh_token": record.refresh_token})

        # The new access token is still served for this request even if the
        # write fails; only the next refresh depends on the stored row.
        try:
            self.save_tokens(user_id, bundle)
        except sqlite3.Error:
            if bundle.refresh_token != record.refresh_token:
                logger.exception(
                    "Refreshed token for user %s could not be stored; the aggregator "
                    "rotated the refresh token, so the stored one is now invalid and "
                    "the next expiry will require a re-link",
                    user_id,
                )
            else:
                logger.exception(
                    "Refreshed token for user %s could not be stored; the stored "
                    "refresh token is unchanged and remains usable",
                    user_id,
                )
        else:
            logger.info("Refreshed access token for user %s", user_id)
        return bundle.access_token


__all__ = ["TokenLifecycleService", "try_decode_expiry"]
