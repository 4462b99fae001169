"""
Exception-to-response mapping for the API.

Every error body uses an ``error`` key so the browser client can show it
directly.
"""

from __future__ import annotations

import logging
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from banklink.clients.truelayer import AggregatorAPIError
from banklink.dependencies.auth import AuthenticationError
from banklink.services.bank_link import LinkError

logger = logging.getLogger(__name__)

# Frontend page that restarts linking; the API entry point is /banks/link.
RELINK_URL = "/link"


class RelinkRequiredError(Exception):
    """No usable access token could be obtained for the user."""

    message = "Authorisation expired. Please re-link your bank account."


async def _authentication_error(request: Request, exc: AuthenticationError) -> JSONResponse:
    return JSONResponse(
        status_code=HTTPStatus.UNAUTHORIZED, content={"error": "Unauthorised"}
    )


async def _relink_required(request: Request, exc: RelinkRequiredError) -> JSONResponse:
    return JSONResponse(
        status_code=HTTPStatus.UNAUTHORIZED,
        content={"error": exc.message, "relink_url": RELINK_URL},
    )


async def _link_error(request: Request, exc: LinkError) -> JSONResponse:
    content = {"error": exc.message}
    if exc.detail is not None:
        content["details"] = jsonable_encoder(exc.detail)
    return JSONResponse(status_code=HTTPStatus.BAD_REQUEST, content=content)


async def _aggregator_error(request: Request, exc: AggregatorAPIError) -> JSONResponse:
    logger.error(
        "TrueLayer data request failed during %s %s (status=%s)",
        request.method,
        request.url.path,
        exc.status_code,
    )
    return JSONResponse(
        status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
        content={"error": "Failed to fetch data from the bank provider."},
    )


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=HTTPStatus.BAD_REQUEST,
        content={"errors": jsonable_encoder(exc.errors())},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthenticationError, _authentication_error)
    app.add_exception_handler(RelinkRequiredError, _relink_required)
    app.add_exception_handler(LinkError, _link_error)
    app.add_exception_handler(AggregatorAPIError, _aggregator_error)
    app.add_exception_handler(RequestValidationError, _validation_error)


__all__ = ["RELINK_URL", "RelinkRequiredError", "register_exception_handlers"]
