"""
Factory functions providing settings, shared clients and services as FastAPI
dependencies. Tests swap any of them through ``app.dependency_overrides``.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from banklink.clients import SQLiteTokenStore, TrueLayerClient
from banklink.core.config import AppSettings, get_settings
from banklink.services import (
    BankDataService,
    BankLinkService,
    LinkSessionStore,
    TokenCipherService,
    TokenLifecycleService,
)


def get_app_settings() -> AppSettings:
    """FastAPI dependency returning application settings."""
    return get_settings()


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for token storage."""
    settings = get_app_settings()
    secret = (
        settings.security.token_encryption_secret
        or settings.truelayer.client_secret
    )
    return TokenCipherService(
        secret=secret,
        previous_secrets=settings.security.previous_encryption_secrets,
    )


@lru_cache()
def get_truelayer_client() -> TrueLayerClient:
    """Create a singleton TrueLayer API client."""
    return TrueLayerClient(get_app_settings().truelayer)


@lru_cache()
def get_token_store() -> SQLiteTokenStore:
    """Provide the credential store backing the token lifecycle."""
    return SQLiteTokenStore(
        get_app_settings().database_path, cipher=get_token_cipher_service()
    )


@lru_cache()
def get_link_session_store() -> LinkSessionStore:
    """Provide server-side storage for pending link attempts."""
    settings = get_app_settings()
    return LinkSessionStore(
        settings.database_path, ttl_seconds=settings.session.max_age_seconds
    )


@lru_cache()
def get_token_lifecycle_service() -> TokenLifecycleService:
    """Provide the process-wide token lifecycle service."""
    return TokenLifecycleService(get_token_store(), get_truelayer_client())


def get_bank_link_service(
    oauth_client: Annotated[TrueLayerClient, Depends(get_truelayer_client)],
    token_service: Annotated[
        TokenLifecycleService, Depends(get_token_lifecycle_service)
    ],
    link_sessions: Annotated[LinkSessionStore, Depends(get_link_session_store)],
) -> BankLinkService:
    """Build the link flow service around the shared client, tokens and sessions."""
    return BankLinkService(oauth_client, token_service, link_sessions)


def get_bank_data_service(
    client: Annotated[TrueLayerClient, Depends(get_truelayer_client)],
) -> BankDataService:
    """Build a data aggregation service over the shared client."""
    return BankDataService(client)


__all__ = [
    "get_app_settings",
    "get_bank_data_service",
    "get_bank_link_service",
    "get_link_session_store",
    "get_token_cipher_service",
    "get_token_lifecycle_service",
    "get_token_store",
    "get_truelayer_client",
]
