"""
Ledger service configuration.
"""
import os
from dataclasses import dataclass
from typing import Optional

from ..data.quote_source import FUTURES_TICKER_URL, SPOT_TICKER_URL
from ..domain.markets import MAX_PENDING_LIMIT_ORDERS


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    if v is None or not v.strip():
        return default
    return v.strip()


@dataclass
class LedgerConfig:
    """Settings for store, quote feed, order limits and the e-mail notifier."""

    store_path: str = "users.json"
    withdrawals_path: Optional[str] = None

    futures_ticker_url: str = FUTURES_TICKER_URL
    spot_ticker_url: str = SPOT_TICKER_URL
    quote_timeout: float = 5.0  # seconds per ticker request

    max_pending_limit_orders: int = MAX_PENDING_LIMIT_ORDERS

    # E-mail notifications are off unless both server and admin address are set
    smtp_server: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    from_email: str = "noreply@ledger.local"
    admin_email: Optional[str] = None

    @property
    def email_enabled(self) -> bool:
        return bool(self.smtp_server and self.admin_email)

    @classmethod
    def from_env(cls, prefix: str = "LEDGER_") -> "LedgerConfig":
        """Build a config from `LEDGER_*` environment variables, falling back to defaults."""
        defaults = cls()
        return cls(
            store_path=_env(f"{prefix}STORE_PATH", defaults.store_path),
            withdrawals_path=_env(f"{prefix}WITHDRAWALS_PATH"),
            futures_ticker_url=_env(f"{prefix}FUTURES_TICKER_URL", defaults.futures_ticker_url),
            spot_ticker_url=_env(f"{prefix}SPOT_TICKER_URL", defaults.spot_ticker_url),
            quote_timeout=float(_env(f"{prefix}QUOTE_TIMEOUT", str(defaults.quote_timeout))),
            max_pending_limit_orders=int(
                _env(f"{prefix}MAX_PENDING_LIMIT_ORDERS", str(defaults.max_pending_limit_orders))
            ),
            smtp_server=_env(f"{prefix}SMTP_SERVER"),
            smtp_port=int(_env(f"{prefix}SMTP_PORT", str(defaults.smtp_port))),
            smtp_username=_env(f"{prefix}SMTP_USERNAME"),
            smtp_password=_env(f"{prefix}SMTP_PASSWORD"),
            from_email=_env(f"{prefix}FROM_EMAIL", defaults.from_email),
            admin_email=_env(f"{prefix}ADMIN_EMAIL"),
        )
