"""
TrueLayer API client.

Wraps the consent URL, the token endpoint (authorization-code and refresh
grants) and the Data API resources used by the dashboard. The client holds no
per-user state; every call receives the bearer token it should use.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Type, TypeVar
from urllib.parse import quote, urlencode

import httpx
from pydantic import BaseModel, ValidationError

from banklink.core.config import TrueLayerSettings
from banklink.schemas import Account, Balance, TokenBundle, Transaction

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class OAuthTokenExchangeError(Exception):
    """Raised when the token endpoint rejects a grant or cannot be reached."""

    def __init__(self, detail: Any, *, status_code: Optional[int] = None) -> None:
        super().__init__(detail if isinstance(detail, str) else repr(detail))
        self.detail = detail
        self.status_code = status_code


class AggregatorAPIError(Exception):
    """Raised when a Data API request fails after a token was obtained."""

    def __init__(self, detail: Any, *, status_code: Optional[int] = None) -> None:
        super().__init__(detail if isinstance(detail, str) else repr(detail))
        self.detail = detail
        self.status_code = status_code


def _error_detail(response: httpx.Response) -> Any:
    """Prefer the JSON error body; fall back to raw text."""
    try:
        return response.json()
    except ValueError:
        return response.text


class TrueLayerClient:
    """Build consent URLs, exchange codes and read account data."""

    TOKEN_PATH = "/connect/token"
    DATA_PATH = "/data/v1"

    def __init__(
        self,
        settings: TrueLayerSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    @property
    def redirect_uri(self) -> str:
        return self._settings.redirect_uri

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._settings.request_timeout_seconds,
            transport=self._transport,
        )

    def build_authorization_url(self, *, code_challenge: str, nonce: str) -> str:
        """Construct the consent screen URL for a PKCE-protected link attempt."""
        params = {
            "response_type": "code",
            "client_id": self._settings.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": self._settings.scopes,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
            "nonce": nonce,
            "providers": self._settings.providers,
        }
        return f"{self._settings.auth_base_url}/?{urlencode(params)}"

    async def exchange_authorization_code(
        self,
        *,
        code: str,
        code_verifier: str,
        redirect_uri: Optional[str] = None,
    ) -> TokenBundle:
        """Exchange a one-time authorization code for a token set."""
        payload = {
            "grant_type": "authorization_code",
            "client_id": self._settings.client_id,
            "client_secret": self._settings.client_secret,
            "redirect_uri": redirect_uri or self.redirect_uri,
            "code": code,
            "code_verifier": code_verifier,
        }
        return await self._request_token(payload)

    async def refresh_access_token(self, refresh_token: str) -> TokenBundle:
        """Renew the access token. The response may carry a rotated refresh token."""
        payload = {
            "grant_type": "refresh_token",
            "client_id": self._settings.client_id,
            "client_secret": self._settings.client_secret,
            "refresh_token": refresh_token,
        }
        return await self._request_token(payload)

    async def _request_token(self, payload: Dict[str, str]) -> TokenBundle:
        url = f"{self._settings.auth_base_url}{self.TOKEN_PATH}"
        try:
            async with self._client() as client:
                response = await client.post(url, data=payload)
        except httpx.HTTPError as exc:
            raise OAuthTokenExchangeError(
                f"Token endpoint unreachable: {exc.__class__.__name__}"
            ) from exc

        if response.status_code != httpx.codes.OK:
            raise OAuthTokenExchangeError(
                _error_detail(response), status_code=response.status_code
            )

        try:
            return TokenBundle.model_validate(response.json())
        except ValueError as exc:
            raise OAuthTokenExchangeError(
                "Incomplete token payload returned from TrueLayer.",
                status_code=response.status_code,
            ) from exc

    async def get_accounts(self, access_token: str) -> List[Account]:
        payload = await self._send("GET", "/accounts", access_token)
        return self._results(payload, Account)

    async def get_transactions(
        self, access_token: str, account_id: str
    ) -> List[Transaction]:
        path = f"/accounts/{quote(account_id, safe='')}/transactions"
        payload = await self._send("GET", path, access_token)
        return self._results(payload, Transaction)

    async def get_balance(self, access_token: str, account_id: str) -> Optional[Balance]:
        """Return the first balance entry for an account, or None if none is reported."""
        path = f"/accounts/{quote(account_id, safe='')}/balance"
        payload = await self._send("GET", path, access_token)
        balances = self._results(payload, Balance)
        return balances[0] if balances else None

    async def extend_connection(
        self, access_token: str, user_has_reconfirmed_consent: bool = True
    ) -> Any:
        """Ask the provider to extend the consent window of the connection."""
        return await self._send(
            "POST",
            "/connections/extend",
            access_token,
            json={"user_has_reconfirmed_consent": user_has_reconfirmed_consent},
        )

    async def _send(
        self,
        method: str,
        path: str,
        access_token: str,
        *,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self._settings.api_base_url}{self.DATA_PATH}{path}"
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }
        try:
            async with self._client() as client:
                response = await client.request(method, url, headers=headers, json=json)
        except httpx.HTTPError as exc:
            logger.warning("TrueLayer %s %s failed: %s", method, path, exc.__class__.__name__)
            raise AggregatorAPIError(
                f"TrueLayer request failed: {exc.__class__.__name__}"
            ) from exc

        if response.is_error:
            logger.warning(
                "TrueLayer %s %s returned %s", method, path, response.status_code
            )
            raise AggregatorAPIError(
                _error_detail(response), status_code=response.status_code
            )

        try:
            return response.json()
        except ValueError as exc:
            raise AggregatorAPIError(
                "TrueLayer returned a non-JSON response.",
                status_code=response.status_code,
            ) from exc

    @staticmethod
    def _results(payload: Any, model: Type[ModelT]) -> List[ModelT]:
        """Decode the ``results`` envelope; anything other than a list is empty."""
        results = payload.get("results") if isinstance(payload, dict) else None
        if not isinstance(results, list):
            return []
        try:
            return [model.model_validate(item) for item in results]
        except ValidationError as exc:
            raise AggregatorAPIError(
                f"Unexpected {model.__name__} payload from TrueLayer."
            ) from exc


__all__ = [
    "AggregatorAPIError",
    "OAuthTokenExchangeError",
    "TrueLayerClient",
]
