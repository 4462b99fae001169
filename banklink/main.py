"""
FastAPI application entrypoint for the bank-link dashboard API.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from banklink.api.errors import register_exception_handlers
from banklink.api.routes import health_router, router as banks_router
from banklink.core.config import get_settings
from banklink.core.logging import configure_logging


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Bank Link Dashboard API",
        version="0.1.0",
        description="Links bank accounts through TrueLayer and serves aggregated account data.",
    )
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session.secret_key,
        session_cookie=settings.session.cookie_name,
        max_age=settings.session.max_age_seconds,
        same_site="lax",
        https_only=settings.is_production,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )
    register_exception_handlers(app)
    app.include_router(health_router)
    app.include_router(banks_router, prefix="/banks")
    return app


app = create_app()

__all__ = ["app", "create_app"]
