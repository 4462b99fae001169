"""
Aggregated views over the Data API for a single bearer token.

Transaction fan-out fails as a whole when any account fails. Balances are the
exception: a failed balance feed for one account is reported as a null balance
so the rest of the dashboard still renders.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Any, List, Optional

from banklink.clients.truelayer import AggregatorAPIError, TrueLayerClient
from banklink.schemas import (
    Account,
    AccountBalance,
    BalanceSummary,
    IncomeSummary,
    Transaction,
)

logger = logging.getLogger(__name__)

_REGULAR_CATEGORIES = frozenset({"DIRECT_DEBIT", "BILL_PAYMENT", "STANDING_ORDER"})
_VRP_PATTERN = re.compile(r"vrp|variable recurring", re.IGNORECASE)


def _sort_key(transaction: Transaction) -> datetime:
    timestamp = transaction.timestamp
    if timestamp is None:
        return datetime.min.replace(tzinfo=timezone.utc)
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp


def sort_by_recency(transactions: List[Transaction]) -> List[Transaction]:
    """Newest first; undated transactions go last."""
    return sorted(transactions, key=_sort_key, reverse=True)


def in_period(
    transaction: Transaction, *, year: Optional[int] = None, month: Optional[int] = None
) -> bool:
    if transaction.timestamp is None:
        return False
    if year is not None and transaction.timestamp.year != year:
        return False
    if month is not None and transaction.timestamp.month != month:
        return False
    return True


def is_regular_payment(transaction: Transaction) -> bool:
    """Direct debits, bills, standing orders and variable recurring payments."""
    if transaction.transaction_category in _REGULAR_CATEGORIES:
        return True
    if transaction.vrp_id:
        return True
    return bool(transaction.description and _VRP_PATTERN.search(transaction.description))


class BankDataService:
    """Fetch and merge account data for a usable access token."""

    def __init__(self, client: TrueLayerClient) -> None:
        self._client = client

    async def list_accounts(self, access_token: str) -> List[Account]:
        return await self._client.get_accounts(access_token)

    async def list_account_transactions(
        self, access_token: str, account_id: str
    ) -> List[Transaction]:
        transactions = await self._client.get_transactions(access_token, account_id)
        return [self._tag(tx, account_id) for tx in transactions]

    async def list_all_transactions(self, access_token: str) -> List[Transaction]:
        """Every account's transactions, fetched in parallel and merged newest first."""
        accounts = await self._client.get_accounts(access_token)
        per_account = await asyncio.gather(
            *(
                self.list_account_transactions(access_token, account.account_id)
                for account in accounts
            )
        )
        merged = [tx for batch in per_account for tx in batch]
        return sort_by_recency(merged)

    async def list_transactions_for_month(
        self, access_token: str, *, year: int, month: int
    ) -> List[Transaction]:
        transactions = await self.list_all_transactions(access_token)
        return [tx for tx in transactions if in_period(tx, year=year, month=month)]

    async def summarise_income(
        self,
        access_token: str,
        *,
        year: Optional[int] = None,
        month: Optional[int] = None,
    ) -> IncomeSummary:
        transactions = await self.list_all_transactions(access_token)
        income = [
            tx
            for tx in transactions
            if tx.amount is not None and tx.amount > 0
            and (year is None or in_period(tx, year=year, month=month))
        ]
        return IncomeSummary(
            total_income=sum(tx.amount for tx in income),
            transactions=income,
        )

    async def list_regular_payments(self, access_token: str) -> List[Transaction]:
        transactions = await self.list_all_transactions(access_token)
        return [tx for tx in transactions if is_regular_payment(tx)]

    async def list_balances(self, access_token: str) -> BalanceSummary:
        """Balances for every account; per-account feed failures become null balances."""
        accounts = await self._client.get_accounts(access_token)
        balances = await asyncio.gather(
            *(self._account_balance(access_token, account) for account in accounts)
        )
        total = sum(item.balance.effective_amount() for item in balances if item.balance)
        return BalanceSummary(total=total, balances=list(balances))

    async def extend_connection(
        self, access_token: str, *, user_has_reconfirmed_consent: bool
    ) -> Any:
        return await self._client.extend_connection(
            access_token, user_has_reconfirmed_consent
        )

    async def _account_balance(
        self, access_token: str, account: Account
    ) -> AccountBalance:
        try:
            balance = await self._client.get_balance(access_token, account.account_id)
        except AggregatorAPIError as exc:
            logger.info(
                "Balance unavailable for account %s (status=%s)",
                account.account_id,
                exc.status_code,
            )
            balance = None
        return AccountBalance(
            account_id=account.account_id,
            account_type=account.account_type,
            currency=account.currency,
            balance=balance,
            type=(account.model_extra or {}).get("type"),
            name=account.display_name or account.account_name,
            display_name=account.display_name,
            account_number=account.account_number,
            provider=account.provider,
        )

    @staticmethod
    def _tag(transaction: Transaction, account_id: str) -> Transaction:
        return transaction.model_copy(update={"account_id": account_id})


__all__ = [
    "BankDataService",
    "in_period",
    "is_regular_payment",
    "sort_by_recency",
]
