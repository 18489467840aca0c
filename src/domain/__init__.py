"""
Domain Layer: Market vocabulary, quotes and position records.
"""
from .markets import (
    ASSET_TYPES,
    MAX_PENDING_LIMIT_ORDERS,
    CloseReason,
    Market,
    OrderKind,
    Side,
)
from .quotes import Quote
from .errors import (
    AccountExists,
    AccountNotFound,
    InsufficientBalance,
    InvalidCloseState,
    InvalidRequest,
    LedgerError,
    LimitOrderCapExceeded,
    PositionNotFound,
    PriceUnavailable,
)
from .positions import (
    ClosedPosition,
    FuturesPosition,
    Position,
    SpotPosition,
    position_from_dict,
)

__all__ = [
    "ASSET_TYPES",
    "MAX_PENDING_LIMIT_ORDERS",
    "CloseReason",
    "Market",
    "OrderKind",
    "Side",
    "Quote",
    "Position",
    "FuturesPosition",
    "SpotPosition",
    "ClosedPosition",
    "position_from_dict",
    "LedgerError",
    "AccountNotFound",
    "AccountExists",
    "PositionNotFound",
    "InsufficientBalance",
    "LimitOrderCapExceeded",
    "PriceUnavailable",
    "InvalidCloseState",
    "InvalidRequest",
]
