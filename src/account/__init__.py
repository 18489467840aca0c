"""
Account Layer: Accounts, settlement and the position ledger.
"""
from .account import Account
from .events import EventKind, LedgerEvent
from .ledger import LedgerResult, PositionIds
from .store import (
    AccountStore,
    InMemoryAccountStore,
    JsonFileAccountStore,
    WithdrawalRequest,
)

__all__ = [
    "Account",
    "EventKind",
    "LedgerEvent",
    "LedgerResult",
    "PositionIds",
    "AccountStore",
    "InMemoryAccountStore",
    "JsonFileAccountStore",
    "WithdrawalRequest",
]
