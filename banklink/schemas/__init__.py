"""Public schema exports."""

from .auth import ExtendConnectionRequest, TokenBundle
from .banking import (
    Account,
    AccountBalance,
    Balance,
    BalanceSummary,
    IncomeSummary,
    Transaction,
)

__all__ = [
    "Account",
    "AccountBalance",
    "Balance",
    "BalanceSummary",
    "ExtendConnectionRequest",
    "IncomeSummary",
    "TokenBundle",
    "Transaction",
]
