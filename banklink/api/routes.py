"""
FastAPI routes for linking bank accounts and reading their data.
"""

from __future__ import annotations

import logging
import secrets
from http import HTTPStatus
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, Path, Query, Request
from fastapi.responses import JSONResponse

from banklink.api.errors import RelinkRequiredError
from banklink.clients.truelayer import AggregatorAPIError
from banklink.dependencies import (
    CurrentUserDependency,
    get_bank_data_service,
    get_bank_link_service,
    get_link_session_store,
    get_token_lifecycle_service,
    get_token_store,
)
from banklink.schemas import ExtendConnectionRequest

router = APIRouter()
health_router = APIRouter()
logger = logging.getLogger(__name__)

SESSION_KEY = "link_session_id"

YearPath = Annotated[int, Path(ge=1900, le=2100, description="Four digit year.")]
MonthPath = Annotated[int, Path(ge=1, le=12, description="Month, 1 = January.")]


async def require_access_token(
    user: CurrentUserDependency,
    token_service: Annotated[Any, Depends(get_token_lifecycle_service)],
) -> str:
    """Resolve a usable bearer token for the current user or demand a re-link."""
    access_token = await token_service.get_usable_access_token(user.id)
    if access_token is None:
        raise RelinkRequiredError()
    return access_token


AccessToken = Annotated[str, Depends(require_access_token)]
BankData = Annotated[Any, Depends(get_bank_data_service)]


@health_router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@health_router.get("/db-health")
async def database_healthcheck(
    token_store: Annotated[Any, Depends(get_token_store)],
) -> JSONResponse:
    """Confirm the token database answers queries."""
    try:
        now = token_store.ping()
    except Exception as exc:  # pylint: disable=broad-except
        logger.exception("Database health check failed")
        return JSONResponse(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            content={"status": "error", "error": str(exc)},
        )
    return JSONResponse(content={"status": "ok", "time": now})


@router.post("/link", status_code=HTTPStatus.OK)
async def start_bank_link(
    request: Request,
    user: CurrentUserDependency,
    link_service: Annotated[Any, Depends(get_bank_link_service)],
    link_sessions: Annotated[Any, Depends(get_link_session_store)],
) -> dict:
    """
    Begin a link attempt and return the consent URL.

    The PKCE verifier stays server-side, attached to this browser session;
    any earlier pending attempt on the session is discarded.
    """
    session_id = request.session.get(SESSION_KEY)
    if not session_id:
        session_id = secrets.token_urlsafe(32)
        request.session[SESSION_KEY] = session_id

    link = link_service.begin_link(user.id)
    link_sessions.start(
        session_id=session_id,
        user_id=user.id,
        code_verifier=link.code_verifier,
    )
    return {"url": link.authorization_url}


@router.get("/callback", status_code=HTTPStatus.OK)
async def complete_bank_link(
    request: Request,
    user: CurrentUserDependency,
    link_service: Annotated[Any, Depends(get_bank_link_service)],
    link_sessions: Annotated[Any, Depends(get_link_session_store)],
    code: Optional[str] = Query(
        default=None, description="Authorization code returned by TrueLayer."
    ),
) -> dict:
    """Exchange the returned authorization code once and store the tokens."""
    session_id = request.session.get(SESSION_KEY)
    link_session = link_sessions.get(session_id) if session_id else None

    tokens = await link_service.complete_link(link_session, user_id=user.id, code=code)
    return {"success": True, "tokens": tokens.model_dump(exclude_none=True)}


@router.get("/accounts")
async def list_accounts(access_token: AccessToken, bank_data: BankData) -> dict:
    """Return all linked bank accounts."""
    accounts = await bank_data.list_accounts(access_token)
    return {"status": "Succeeded", "results": accounts}


@router.get("/transactions")
async def list_all_transactions(access_token: AccessToken, bank_data: BankData) -> dict:
    """Return transactions across every account, newest first."""
    transactions = await bank_data.list_all_transactions(access_token)
    return {"status": "Succeeded", "results": transactions}


@router.get("/transactions/month/{year}/{month}")
async def list_transactions_for_month(
    year: YearPath,
    month: MonthPath,
    access_token: AccessToken,
    bank_data: BankData,
) -> dict:
    transactions = await bank_data.list_transactions_for_month(
        access_token, year=year, month=month
    )
    return {"status": "Succeeded", "year": year, "month": month, "results": transactions}


@router.get("/transactions/{account_id}")
async def list_account_transactions(
    account_id: Annotated[str, Path(min_length=1)],
    access_token: AccessToken,
    bank_data: BankData,
) -> dict:
    """Return transactions for a single account."""
    transactions = await bank_data.list_account_transactions(access_token, account_id)
    return {"status": "Succeeded", "results": transactions}


@router.get("/balances")
async def list_balances(access_token: AccessToken, bank_data: BankData) -> dict:
    """Return balances for every account with the combined total."""
    summary = await bank_data.list_balances(access_token)
    return {"status": "Succeeded", "total": summary.total, "balances": summary.balances}


@router.get("/income")
async def income(access_token: AccessToken, bank_data: BankData) -> dict:
    summary = await bank_data.summarise_income(access_token)
    return {
        "status": "Succeeded",
        "totalIncome": summary.total_income,
        "incomeTransactions": summary.transactions,
    }


@router.get("/income/year/{year}")
async def income_for_year(
    year: YearPath, access_token: AccessToken, bank_data: BankData
) -> dict:
    summary = await bank_data.summarise_income(access_token, year=year)
    return {
        "status": "Succeeded",
        "year": year,
        "totalIncome": summary.total_income,
        "incomeTransactions": summary.transactions,
    }


@router.get("/income/month/{year}/{month}")
async def income_for_month(
    year: YearPath,
    month: MonthPath,
    access_token: AccessToken,
    bank_data: BankData,
) -> dict:
    summary = await bank_data.summarise_income(access_token, year=year, month=month)
    return {
        "status": "Succeeded",
        "year": year,
        "month": month,
        "totalIncome": summary.total_income,
        "incomeTransactions": summary.transactions,
    }


@router.get("/regular-payments")
async def list_regular_payments(access_token: AccessToken, bank_data: BankData) -> dict:
    """Direct debits, bill payments, standing orders and recurring payments."""
    payments = await bank_data.list_regular_payments(access_token)
    return {"status": "Succeeded", "results": payments}


@router.post("/extend-connection", response_model=None)
async def extend_connection(
    payload: ExtendConnectionRequest,
    access_token: AccessToken,
    bank_data: BankData,
) -> dict | JSONResponse:
    """Forward a consent re-confirmation; provider errors are passed through as-is."""
    try:
        result = await bank_data.extend_connection(
            access_token,
            user_has_reconfirmed_consent=payload.user_has_reconfirmed_consent,
        )
    except AggregatorAPIError as exc:
        if exc.status_code is None:
            raise
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return {"status": "Succeeded", "result": result}


__all__ = ["health_router", "require_access_token", "router"]
