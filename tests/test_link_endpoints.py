try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import asyncio
import sqlite3
from urllib.parse import parse_qs, urlparse

import pytest
from jose import jwt

from banklink.services.pkce import derive_code_challenge


@pytest.mark.anyio
async def test_link_requires_authentication(api) -> None:
    async with api.client() as client:
        response = await client.post("/banks/link")

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorised"}


@pytest.mark.anyio
async def test_link_rejects_token_signed_with_other_secret(api) -> None:
    forged = jwt.encode({"id": "user-1"}, "not-the-secret", algorithm="HS256")
    async with api.client() as client:
        response = await client.post(
            "/banks/link", headers={"Authorization": f"Bearer {forged}"}
        )

    assert response.status_code == 401


@pytest.mark.anyio
async def test_link_returns_consent_url_and_keeps_verifier_server_side(api) -> None:
    async with api.client() as client:
        response = await client.post("/banks/link", headers=api.auth_headers())

    assert response.status_code == 200
    url = response.json()["url"]
    challenge = parse_qs(urlparse(url).query)["code_challenge"][0]

    sessions = [
        api.link_sessions.get(session_id)
        for session_id in _stored_session_ids(api)
    ]
    assert len(sessions) == 1
    assert sessions[0].user_id == "user-1"
    assert derive_code_challenge(sessions[0].code_verifier) == challenge
    assert sessions[0].code_verifier not in response.text


@pytest.mark.anyio
async def test_full_link_then_replay_is_rejected(api) -> None:
    headers = api.auth_headers()
    async with api.client() as client:
        await client.post("/banks/link", headers=headers)
        code = api.truelayer.approve_consent("code-1")

        first = await client.get("/banks/callback", params={"code": code}, headers=headers)
        replay = await client.get("/banks/callback", params={"code": code}, headers=headers)

    assert first.status_code == 200
    body = first.json()
    assert body["success"] is True
    assert body["tokens"]["access_token"] == "access-1"
    assert body["tokens"]["refresh_token"] == "refresh-1"

    assert replay.status_code == 400
    assert replay.json() == {
        "error": (
            "This authorization code has already been used. "
            "Please restart the bank linking process."
        )
    }
    assert len(api.truelayer.exchange_calls) == 1
    assert api.token_store.get_token("user-1").access_token == "access-1"


@pytest.mark.anyio
async def test_concurrent_callbacks_link_once(api) -> None:
    headers = api.auth_headers()
    exchange = api.truelayer.exchange_authorization_code

    async def slow_exchange(**kwargs):
        await asyncio.sleep(0.01)
        return await exchange(**kwargs)

    api.truelayer.exchange_authorization_code = slow_exchange
    async with api.client() as client:
        await client.post("/banks/link", headers=headers)
        code = api.truelayer.approve_consent("code-1")

        responses = await asyncio.gather(
            client.get("/banks/callback", params={"code": code}, headers=headers),
            client.get("/banks/callback", params={"code": code}, headers=headers),
        )

    assert sorted(response.status_code for response in responses) == [200, 400]
    assert len(api.truelayer.exchange_calls) == 1


@pytest.mark.anyio
async def test_callback_without_link_attempt_reports_missing_verifier(api) -> None:
    async with api.client() as client:
        response = await client.get(
            "/banks/callback", params={"code": "code-1"}, headers=api.auth_headers()
        )

    assert response.status_code == 400
    assert response.json()["error"].startswith("Missing PKCE code_verifier in session.")
    assert api.truelayer.exchange_calls == []


@pytest.mark.anyio
async def test_callback_without_code(api) -> None:
    headers = api.auth_headers()
    async with api.client() as client:
        await client.post("/banks/link", headers=headers)
        response = await client.get("/banks/callback", headers=headers)

    assert response.status_code == 400
    assert response.json() == {"error": "Missing code"}


@pytest.mark.anyio
async def test_restarting_link_invalidates_earlier_code(api) -> None:
    headers = api.auth_headers()
    async with api.client() as client:
        await client.post("/banks/link", headers=headers)
        stale_code = api.truelayer.approve_consent("first-tab-code")
        await client.post("/banks/link", headers=headers)

        response = await client.get(
            "/banks/callback", params={"code": stale_code}, headers=headers
        )

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Token exchange failed"
    assert body["details"]["error"] == "invalid_grant"
    assert api.token_store.get_token("user-1") is None


@pytest.mark.anyio
async def test_failed_exchange_allows_retry_on_same_attempt(api) -> None:
    headers = api.auth_headers()
    async with api.client() as client:
        await client.post("/banks/link", headers=headers)
        failed = await client.get(
            "/banks/callback", params={"code": "never-issued"}, headers=headers
        )
        code = api.truelayer.approve_consent("code-1")
        retried = await client.get("/banks/callback", params={"code": code}, headers=headers)

    assert failed.status_code == 400
    assert retried.status_code == 200


@pytest.mark.anyio
async def test_callback_from_another_user_is_rejected(api) -> None:
    async with api.client() as client:
        await client.post("/banks/link", headers=api.auth_headers("user-1"))
        code = api.truelayer.approve_consent("code-1")
        response = await client.get(
            "/banks/callback", params={"code": code}, headers=api.auth_headers("user-2")
        )

    assert response.status_code == 400
    assert api.truelayer.exchange_calls == []


@pytest.mark.anyio
async def test_relinking_replaces_stored_tokens(api) -> None:
    headers = api.auth_headers()
    async with api.client() as client:
        for code in ("code-a", "code-b"):
            await client.post("/banks/link", headers=headers)
            await client.get(
                "/banks/callback",
                params={"code": api.truelayer.approve_consent(code)},
                headers=headers,
            )

    stored = api.token_store.get_token("user-1")
    assert stored.access_token == "access-2"
    assert stored.refresh_token == "refresh-2"


def _stored_session_ids(api) -> list:
    with sqlite3.connect(api.db_path) as conn:
        return [row[0] for row in conn.execute("SELECT session_id FROM link_sessions")]
