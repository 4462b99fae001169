"""
Pydantic models for the aggregator Data API resources.

Aggregator payloads carry many optional, provider-dependent fields. The models
name the fields this service reads, keep everything else via ``extra="allow"``
and treat a missing value as ``None``.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _AggregatorModel(BaseModel):
    model_config = ConfigDict(extra="allow")


class Account(_AggregatorModel):
    """A bank account exposed by the connected provider."""

    account_id: str
    account_type: Optional[str] = None
    display_name: Optional[str] = None
    account_name: Optional[str] = None
    currency: Optional[str] = None
    account_number: Optional[Dict[str, Any]] = None
    provider: Optional[Dict[str, Any]] = None
    update_timestamp: Optional[datetime] = None


class Transaction(_AggregatorModel):
    """A settled transaction on an account."""

    transaction_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    description: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    transaction_type: Optional[str] = None
    transaction_category: Optional[str] = None
    merchant_name: Optional[str] = None
    vrp_id: Optional[str] = None
    account_id: Optional[str] = Field(
        None, description="Source account, set when transactions are merged."
    )


class Balance(_AggregatorModel):
    """Point-in-time balance of an account."""

    currency: Optional[str] = None
    available: Optional[float] = None
    current: Optional[float] = None
    overdraft: Optional[float] = None
    update_timestamp: Optional[datetime] = None

    def effective_amount(self) -> float:
        """Available funds when reported, else the ledger balance, else zero."""
        if self.available is not None:
            return self.available
        if self.current is not None:
            return self.current
        return 0.0


class AccountBalance(BaseModel):
    """An account joined with its balance; ``balance`` is None when the feed failed."""

    account_id: str
    account_type: Optional[str] = None
    currency: Optional[str] = None
    balance: Optional[Balance] = None
    type: Optional[str] = None
    name: Optional[str] = None
    display_name: Optional[str] = None
    account_number: Optional[Dict[str, Any]] = None
    provider: Optional[Dict[str, Any]] = None


class BalanceSummary(BaseModel):
    total: float
    balances: List[AccountBalance] = Field(default_factory=list)


class IncomeSummary(BaseModel):
    total_income: float
    transactions: List[Transaction] = Field(default_factory=list)


__all__ = [
    "Account",
    "AccountBalance",
    "Balance",
    "BalanceSummary",
    "IncomeSummary",
    "Transaction",
]
