"""
Market vocabulary - markets, sides, order kinds, close reasons and the asset whitelist.
"""
from enum import Enum, IntEnum
from typing import Tuple


# Tradable assets, all quoted against USDT
ASSET_TYPES: Tuple[str, ...] = ("BTC", "ETH", "BNB", "NEO", "LTC", "SOL", "XRP", "DOT")
QUOTE_CURRENCY = "USDT"

# Max limit orders waiting for activation, per account and market
MAX_PENDING_LIMIT_ORDERS = 5


class Market(str, Enum):
    FUTURES = "futures"
    SPOT = "spot"


class Side(str, Enum):
    LONG = "Long"
    SHORT = "Short"
    BUY = "Buy"
    SELL = "Sell"

    @property
    def direction(self) -> int:
        """+1 for sides that profit from a rising price, -1 otherwise."""
        return 1 if self in (Side.LONG, Side.BUY) else -1


FUTURES_SIDES = (Side.LONG, Side.SHORT)
SPOT_SIDES = (Side.BUY, Side.SELL)


class OrderKind(str, Enum):
    MARKET = "Market"
    LIMIT = "Limit"


class CloseReason(IntEnum):
    """Why a position left the open set. Values are the stored wire codes."""
    USER_CLOSE = 0
    TAKE_PROFIT = 1
    STOP_LOSS = 2
    LIQUIDATION = 3
    PARTIAL_CLOSE = 4


def is_tradable(asset: str) -> bool:
    return asset in ASSET_TYPES
