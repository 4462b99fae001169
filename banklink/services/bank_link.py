"""
PKCE authorization-code flow for linking a user's bank connection.

The flow spans two requests. ``begin_link`` produces the consent URL and the
verifier that the caller keeps in server-side session state. ``complete_link``
runs on the redirect back from the aggregator and exchanges the code at most
once per link attempt.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from banklink.clients.truelayer import OAuthTokenExchangeError
from banklink.schemas import TokenBundle
from banklink.services.link_sessions import LinkSession, LinkSessionStore
from banklink.services.pkce import generate_nonce, generate_pkce_pair
from banklink.services.token_lifecycle import TokenLifecycleService

logger = logging.getLogger(__name__)


class LinkError(Exception):
    """Base class for link-flow failures; ``message`` is safe to show the user."""

    message = "Bank linking failed."

    def __init__(self, message: Optional[str] = None, *, detail: Any = None) -> None:
        if message is not None:
            self.message = message
        self.detail = detail
        super().__init__(self.message)


class MissingCodeError(LinkError):
    message = "Missing code"


class MissingVerifierError(LinkError):
    message = (
        "Missing PKCE code_verifier in session. "
        "Please restart the bank linking process."
    )


class CodeAlreadyUsedError(LinkError):
    message = (
        "This authorization code has already been used. "
        "Please restart the bank linking process."
    )


class ExchangeFailedError(LinkError):
    message = "Token exchange failed"


class AuthorizationClient(Protocol):
    @property
    def redirect_uri(self) -> str: ...

    def build_authorization_url(self, *, code_challenge: str, nonce: str) -> str: ...

    async def exchange_authorization_code(
        self, *, code: str, code_verifier: str, redirect_uri: Optional[str] = None
    ) -> TokenBundle: ...


@dataclass(frozen=True)
class LinkStart:
    authorization_url: str
    code_verifier: str


class BankLinkService:
    """Starts link attempts and completes them with a single code exchange."""

    def __init__(
        self,
        oauth_client: AuthorizationClient,
        token_service: TokenLifecycleService,
        link_sessions: LinkSessionStore,
    ) -> None:
        self._oauth = oauth_client
        self._tokens = token_service
        self._sessions = link_sessions

    def begin_link(self, user_id: str) -> LinkStart:
        """Create a fresh verifier/challenge pair and the consent URL carrying it."""
        pkce = generate_pkce_pair()
        url = self._oauth.build_authorization_url(
            code_challenge=pkce.code_challenge,
            nonce=generate_nonce(),
        )
        logger.info("Started bank link attempt for user %s", user_id)
        return LinkStart(authorization_url=url, code_verifier=pkce.code_verifier)

    async def complete_link(
        self,
        session: Optional[LinkSession],
        *,
        user_id: str,
        code: Optional[str],
    ) -> TokenBundle:
        """
        Exchange ``code`` using the session's verifier and persist the tokens.

        Preconditions are checked in order and each raises its own ``LinkError``.
        The session is claimed in the store before the exchange, so concurrent
        callbacks for one attempt cannot both reach the aggregator. A rejected
        exchange releases the claim and the attempt may be retried; a
        successful one marks the session done for good.
        """
        if not code:
            raise MissingCodeError()
        if session is None or not session.code_verifier or session.user_id != user_id:
            raise MissingVerifierError()
        if session.code_exchange_done or not self._sessions.claim(session.session_id):
            logger.warning(
                "Rejected repeated callback for session owned by user %s", user_id
            )
            raise CodeAlreadyUsedError()

        try:
            bundle = await self._oauth.exchange_authorization_code(
                code=code,
                code_verifier=session.code_verifier,
                redirect_uri=self._oauth.redirect_uri,
            )
        except OAuthTokenExchangeError as exc:
            self._sessions.release(session.session_id)
            logger.warning(
                "Code exchange rejected for user %s (status=%s)", user_id, exc.status_code
            )
            raise ExchangeFailedError(detail=exc.detail) from exc

        # The aggregator has consumed the code whether or not the write below succeeds.
        self._sessions.mark_exchange_done(session.session_id)
        session.mark_exchange_done()
        self._tokens.save_tokens(user_id, bundle)
        logger.info("Linked bank connection for user %s", user_id)
        return bundle


__all__ = [
    "BankLinkService",
    "CodeAlreadyUsedError",
    "ExchangeFailedError",
    "LinkError",
    "LinkStart",
    "MissingCodeError",
    "MissingVerifierError",
]
