"""Bearer-token authentication for API routes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Annotated, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from banklink.core.config import AppSettings
from banklink.dependencies.clients import get_app_settings

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


class AuthenticationError(Exception):
    """Raised when a request carries no valid session token."""


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: Optional[str] = None


def get_current_user(
    credentials: Annotated[
        Optional[HTTPAuthorizationCredentials], Depends(_bearer_scheme)
    ],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> CurrentUser:
    """Resolve the user from the HS256 JWT issued by the login endpoint."""
    if credentials is None:
        raise AuthenticationError("Missing bearer token.")

    try:
        claims = jwt.decode(
            credentials.credentials,
            settings.security.jwt_secret,
            algorithms=[settings.security.jwt_algorithm],
        )
    except JWTError as exc:
        logger.info("Rejected bearer token: %s", exc)
        raise AuthenticationError("Invalid bearer token.") from exc

    user_id = claims.get("id")
    if user_id in (None, ""):
        raise AuthenticationError("Bearer token carries no user id.")
    return CurrentUser(id=str(user_id), email=claims.get("email"))


CurrentUserDependency = Annotated[CurrentUser, Depends(get_current_user)]

__all__ = [
    "AuthenticationError",
    "CurrentUser",
    "CurrentUserDependency",
    "get_current_user",
]
