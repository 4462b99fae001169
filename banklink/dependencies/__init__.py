"""Expose dependency helpers for FastAPI routers."""

from .auth import AuthenticationError, CurrentUser, CurrentUserDependency, get_current_user
from .clients import (
    get_app_settings,
    get_bank_data_service,
    get_bank_link_service,
    get_link_session_store,
    get_token_cipher_service,
    get_token_lifecycle_service,
    get_token_store,
    get_truelayer_client,
)

__all__ = [
    "AuthenticationError",
    "CurrentUser",
    "CurrentUserDependency",
    "get_app_settings",
    "get_bank_data_service",
    "get_bank_link_service",
    "get_current_user",
    "get_link_session_store",
    "get_token_cipher_service",
    "get_token_lifecycle_service",
    "get_token_store",
    "get_truelayer_client",
]
