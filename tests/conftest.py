"""Pytest configuration shared across the suite."""

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

try:
    from ._fakes import FakeTrueLayer
except ImportError:  # pragma: no cover
    from _fakes import FakeTrueLayer  # type: ignore

import httpx
import pytest
from jose import jwt

from banklink import dependencies
from banklink.clients.token_store import SQLiteTokenStore
from banklink.core.config import get_settings
from banklink.main import app
from banklink.services import LinkSessionStore, TokenCipherService, TokenLifecycleService


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


class ApiHarness:
    """The app wired to a fake TrueLayer and a throwaway SQLite file."""

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self.truelayer = FakeTrueLayer()
        self.token_store = SQLiteTokenStore(
            db_path, cipher=TokenCipherService(secret="harness-secret")
        )
        self.link_sessions = LinkSessionStore(db_path)
        self.token_service = TokenLifecycleService(self.token_store, self.truelayer)

    @staticmethod
    def auth_headers(user_id: str = "user-1") -> dict:
        token = jwt.encode(
            {"id": user_id}, get_settings().security.jwt_secret, algorithm="HS256"
        )
        return {"Authorization": f"Bearer {token}"}

    @staticmethod
    def client() -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://testserver"
        )


@pytest.fixture()
def api(tmp_path):
    harness = ApiHarness(str(tmp_path / "banklink.db"))
    app.dependency_overrides.update(
        {
            dependencies.get_truelayer_client: lambda: harness.truelayer,
            dependencies.get_token_store: lambda: harness.token_store,
            dependencies.get_link_session_store: lambda: harness.link_sessions,
            dependencies.get_token_lifecycle_service: lambda: harness.token_service,
        }
    )

    yield harness

    app.dependency_overrides.clear()
