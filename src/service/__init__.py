"""
Service Layer: Configuration, notifiers and the request-facing ledger service.
"""
from .config import LedgerConfig
from .notifications import CompositeNotifier, EmailNotifier, LoggingNotifier, Notifier
from .ledger_service import (
    BalanceResult,
    CloseResult,
    LedgerService,
    OpenResult,
    PositionsView,
)

__all__ = [
    "LedgerConfig",
    "Notifier",
    "LoggingNotifier",
    "EmailNotifier",
    "CompositeNotifier",
    "LedgerService",
    "OpenResult",
    "CloseResult",
    "BalanceResult",
    "PositionsView",
]
