"""Service layer exports."""

from .bank_data import BankDataService
from .bank_link import (
    BankLinkService,
    CodeAlreadyUsedError,
    ExchangeFailedError,
    LinkError,
    LinkStart,
    MissingCodeError,
    MissingVerifierError,
)
from .link_sessions import LinkSession, LinkSessionStore
from .token_cipher import TokenCipherService
from .token_lifecycle import TokenLifecycleService, try_decode_expiry

__all__ = [
    "BankDataService",
    "BankLinkService",
    "CodeAlreadyUsedError",
    "ExchangeFailedError",
    "LinkError",
    "LinkSession",
    "LinkSessionStore",
    "LinkStart",
    "MissingCodeError",
    "MissingVerifierError",
    "TokenCipherService",
    "TokenLifecycleService",
    "try_decode_expiry",
]
