"""
Ledger error taxonomy.

Every failure surfaces as a distinct type with a stable `code`, so callers can
tell "try again" (PriceUnavailable) from user errors and not-found errors.
"""
from typing import Optional


class LedgerError(Exception):
    """Base class for all ledger failures."""
    code = "LEDGER_ERROR"
    retryable = False

    def __init__(self, message: str, username: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.username = username

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "retryable": self.retryable}


class AccountNotFound(LedgerError):
    code = "ACCOUNT_NOT_FOUND"


class AccountExists(LedgerError):
    code = "ACCOUNT_EXISTS"


class PositionNotFound(LedgerError):
    code = "POSITION_NOT_FOUND"

    def __init__(self, position_id: int, username: Optional[str] = None):
        super().__init__(f"Position not found: {position_id}", username)
        self.position_id = position_id


class InsufficientBalance(LedgerError):
    code = "INSUFFICIENT_BALANCE"

    def __init__(self, required: float, available: float, username: Optional[str] = None):
        super().__init__(
            f"Insufficient balance: required {required:.4f}, available {available:.4f}",
            username,
        )
        self.required = required
        self.available = available


class LimitOrderCapExceeded(LedgerError):
    code = "LIMIT_ORDER_CAP_EXCEEDED"


class PriceUnavailable(LedgerError):
    code = "PRICE_UNAVAILABLE"
    retryable = True


class InvalidCloseState(LedgerError):
    code = "INVALID_CLOSE_STATE"


class InvalidRequest(LedgerError):
    code = "INVALID_REQUEST"
