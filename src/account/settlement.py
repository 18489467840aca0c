"""
Settlement engine - realized/unrealized PnL and liquidation estimates.
"""
from typing import Optional

from ..domain.markets import CloseReason, Side
from ..domain.positions import AnyPosition, FuturesPosition, SpotPosition

# Leverage tier used for the liquidation price estimate
LIQUIDATION_TIER = 125.0


def price_move_pnl(
    side: Side,
    amount: float,
    leverage: float,
    entry_price: float,
    exit_price: float,
) -> float:
    """
    PnL of a leveraged move.
    PnL = amount * leverage * (exit - entry) * direction / entry
    """
    price_delta = (exit_price - entry_price) * side.direction
    return amount * leverage * (price_delta / entry_price)


def realized_pnl(
    position: FuturesPosition,
    exit_price: float,
    reason: CloseReason = CloseReason.USER_CLOSE,
    amount: Optional[float] = None,
) -> float:
    """
    Realized PnL of closing `amount` (default: all) of a futures position.

    A limit order that never filled had no exposure and realizes nothing.
    Liquidation loses the whole committed margin regardless of price.
    """
    amount = position.amount if amount is None else amount
    pnl = price_move_pnl(position.side, amount, position.leverage, position.entry_price, exit_price)
    if position.pending_activation:
        pnl = 0.0
    if reason == CloseReason.LIQUIDATION:
        pnl = -amount
    return pnl


def settlement_credit(
    position: FuturesPosition,
    exit_price: float,
    reason: CloseReason = CloseReason.USER_CLOSE,
    amount: Optional[float] = None,
) -> float:
    """Cash returned to the balance on close: released margin plus realized PnL."""
    amount = position.amount if amount is None else amount
    return amount + realized_pnl(position, exit_price, reason, amount)


def spot_cancel_credit(position: SpotPosition) -> float:
    """
    Balance change when an unfilled spot limit order is withdrawn.
    A buy gets its cost back; a sell gives back the proceeds it was credited.
    """
    return position.notional * position.side.direction


def unrealized_pnl(position: AnyPosition, price: float) -> float:
    """Mark-to-market PnL of an open futures position; zero for spot and pending orders."""
    if not isinstance(position, FuturesPosition) or position.pending_activation:
        return 0.0
    return price_move_pnl(position.side, position.amount, position.leverage, position.entry_price, price)


def liquidation_price(position: FuturesPosition) -> float:
    """Estimated price at which the margin of `position` is wiped out."""
    tier = LIQUIDATION_TIER
    if position.side == Side.LONG:
        return position.entry_price * (tier - 100.0 / position.leverage) / tier
    return position.entry_price * (tier + 100.0 / position.leverage) / tier
