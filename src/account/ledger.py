"""
Position ledger - the open / activate / TP-SL / close / partial-close lifecycle.

Every operation works on a copy of the account and returns the new account
with the events it produced. A failing operation raises before anything is
returned, so the caller has nothing partial to persist.
"""
import math
import threading
import time
from dataclasses import dataclass, field
from typing import List, Optional

from loguru import logger

from ..domain.errors import (
    InsufficientBalance,
    InvalidCloseState,
    InvalidRequest,
    LimitOrderCapExceeded,
    PositionNotFound,
)
from ..domain.markets import (
    FUTURES_SIDES,
    MAX_PENDING_LIMIT_ORDERS,
    SPOT_SIDES,
    CloseReason,
    Market,
    OrderKind,
    Side,
    is_tradable,
)
from ..domain.positions import AnyPosition, ClosedPosition, FuturesPosition, SpotPosition
from .account import Account
from .events import EventKind, LedgerEvent
from .settlement import (
    liquidation_price,
    realized_pnl,
    settlement_credit,
    spot_cancel_credit,
)


@dataclass
class LedgerResult:
    """New account state plus what the operation did."""
    account: Account
    events: List[LedgerEvent] = field(default_factory=list)
    position: Optional[AnyPosition] = None
    closed: Optional[ClosedPosition] = None
    pnl: Optional[float] = None


class PositionIds:
    """
    Position id generator.
    Ids come from the clock in milliseconds but never repeat or go backwards.
    """

    def __init__(self):
        self._last = 0
        self._lock = threading.Lock()

    def next_id(self, floor: int = 0) -> int:
        with self._lock:
            self._last = max(int(time.time() * 1000), self._last + 1, floor + 1)
            return self._last


def now_ms() -> int:
    return int(time.time() * 1000)


# ---------------------------------------------------------------------
# OPEN
# ---------------------------------------------------------------------

def _check_order(
    account: Account,
    market: Market,
    asset_type: str,
    side: Side,
    order_kind: OrderKind,
    amount: float,
    max_pending: int,
) -> None:
    allowed = FUTURES_SIDES if market == Market.FUTURES else SPOT_SIDES
    if not is_tradable(asset_type):
        raise InvalidRequest(f"Unsupported asset: {asset_type}", account.username)
    if side not in allowed:
        raise InvalidRequest(f"Side {side.value} is not valid for {market.value}", account.username)
    if not (amount > 0 and math.isfinite(amount)):
        raise InvalidRequest(f"Amount must be positive, got {amount}", account.username)
    if order_kind == OrderKind.LIMIT and account.pending_count(market) >= max_pending:
        raise LimitOrderCapExceeded(
            f"Limit orders limited to {max_pending} per {market.value} account",
            account.username,
        )


def open_futures(
    account: Account,
    asset_type: str,
    side: Side,
    order_kind: OrderKind,
    amount: float,
    leverage: float,
    price: float,
    position_id: int,
    limit_price: Optional[float] = None,
    max_pending: int = MAX_PENDING_LIMIT_ORDERS,
) -> LedgerResult:
    """
    Open a futures position at `price`.
    Margin is reserved right away, also for limit orders that are not yet active.
    """
    _check_order(account, Market.FUTURES, asset_type, side, order_kind, amount, max_pending)
    if not (leverage >= 1 and math.isfinite(leverage)):
        raise InvalidRequest(f"Leverage must be finite and at least 1, got {leverage}", account.username)

    available = account.balance(Market.FUTURES)
    if available < amount:
        raise InsufficientBalance(amount, available, account.username)

    account = account.copy()
    position = FuturesPosition(
        id=max(position_id, account.max_position_id() + 1),
        asset_type=asset_type,
        side=side,
        order_kind=order_kind,
        amount=amount,
        entry_price=price,
        pending_activation=order_kind == OrderKind.LIMIT,
        limit_price=limit_price,
        leverage=leverage,
    )
    account.debit(Market.FUTURES, amount)
    account.open_positions(Market.FUTURES).append(position)

    logger.info(f"{account.username} opened {position}")
    event = LedgerEvent(
        kind=EventKind.POSITION_OPENED,
        username=account.username,
        position_id=position.id,
        details={
            "market": Market.FUTURES.value,
            "asset": asset_type,
            "side": side.value,
            "order_kind": order_kind.value,
            "amount": amount,
            "leverage": leverage,
            "entry_price": price,
            "liquidation_price": liquidation_price(position),
        },
    )
    return LedgerResult(account=account, events=[event], position=position)


def open_spot(
    account: Account,
    asset_type: str,
    side: Side,
    order_kind: OrderKind,
    amount: float,
    price: float,
    position_id: int,
    limit_price: Optional[float] = None,
    max_pending: int = MAX_PENDING_LIMIT_ORDERS,
) -> LedgerResult:
    """
    Open a spot position of `amount` units at `price`.
    A buy pays amount * price. A sell is credited amount * price with no
    holding check: short sales are not borrowed against anything.
    """
    _check_order(account, Market.SPOT, asset_type, side, order_kind, amount, max_pending)

    cost = amount * price
    available = account.balance(Market.SPOT)
    if side == Side.BUY and available < cost:
        raise InsufficientBalance(cost, available, account.username)

    account = account.copy()
    position = SpotPosition(
        id=max(position_id, account.max_position_id() + 1),
        asset_type=asset_type,
        side=side,
        order_kind=order_kind,
        amount=amount,
        entry_price=price,
        pending_activation=order_kind == OrderKind.LIMIT,
        limit_price=limit_price,
    )
    account.credit(Market.SPOT, -cost * side.direction)
    account.open_positions(Market.SPOT).append(position)

    logger.info(f"{account.username} opened {position}")
    event = LedgerEvent(
        kind=EventKind.POSITION_OPENED,
        username=account.username,
        position_id=position.id,
        details={
            "market": Market.SPOT.value,
            "asset": asset_type,
            "side": side.value,
            "order_kind": order_kind.value,
            "amount": amount,
            "leverage": None,
            "entry_price": price,
            "liquidation_price": None,
        },
    )
    return LedgerResult(account=account, events=[event], position=position)


# ---------------------------------------------------------------------
# MODIFY
# ---------------------------------------------------------------------

def activate(account: Account, position_id: int) -> LedgerResult:
    """Mark a limit order as triggered. The margin was already reserved at open."""
    found = account.find_position(position_id)
    if found is None:
        raise PositionNotFound(position_id, account.username)

    account = account.copy()
    market, index = found
    position = account.open_positions(market)[index]
    position.pending_activation = False
    logger.info(f"{account.username} activated {position}")
    return LedgerResult(account=account, position=position)


def set_tp_sl(
    account: Account,
    position_id: int,
    take_profit: Optional[float],
    stop_loss: Optional[float],
) -> LedgerResult:
    """Overwrite take-profit and stop-loss of a futures position. None means never triggers."""
    found = account.find_position(position_id, Market.FUTURES)
    if found is None:
        raise PositionNotFound(position_id, account.username)

    account = account.copy()
    position = account.open_positions(Market.FUTURES)[found[1]]
    events = []

    if position.take_profit != take_profit:
        position.take_profit = take_profit
        events.append(LedgerEvent(
            kind=EventKind.TAKE_PROFIT_SET,
            username=account.username,
            position_id=position.id,
            details={"take_profit": take_profit},
        ))

    if position.stop_loss != stop_loss:
        position.stop_loss = stop_loss
        events.append(LedgerEvent(
            kind=EventKind.STOP_LOSS_SET,
            username=account.username,
            position_id=position.id,
            details={"stop_loss": stop_loss},
        ))

    return LedgerResult(account=account, events=events, position=position)


# ---------------------------------------------------------------------
# CLOSE
# ---------------------------------------------------------------------

def close_futures(
    account: Account,
    position_id: int,
    exit_price: float,
    reason: CloseReason = CloseReason.USER_CLOSE,
    closed_at: int = 0,
) -> LedgerResult:
    """Close a futures position entirely and settle margin plus PnL to the balance."""
    found = account.find_position(position_id, Market.FUTURES)
    if found is None:
        raise PositionNotFound(position_id, account.username)

    account = account.copy()
    position = account.open_positions(Market.FUTURES).pop(found[1])
    pnl = realized_pnl(position, exit_price, reason)
    account.credit(Market.FUTURES, position.amount + pnl)

    closed = ClosedPosition(
        position=position,
        exit_price=exit_price,
        close_reason=reason,
        realized_pnl=pnl,
        closed_at=closed_at,
    )
    account.closed_positions(Market.FUTURES).append(closed)

    logger.info(f"{account.username} closed {position} at {exit_price} ({reason.name}), pnl={pnl:.4f}")
    event = LedgerEvent(
        kind=EventKind.POSITION_CLOSED,
        username=account.username,
        position_id=position.id,
        details={"exit_price": exit_price, "realized_pnl": pnl, "reason": reason.name},
    )
    return LedgerResult(account=account, events=[event], position=position, closed=closed, pnl=pnl)


def close_spot(
    account: Account,
    position_id: int,
    exit_price: float,
    closed_at: int = 0,
) -> LedgerResult:
    """
    Withdraw an unfilled spot limit order.
    Filled spot positions are already settled and cannot be closed.
    """
    found = account.find_position(position_id, Market.SPOT)
    if found is None:
        raise PositionNotFound(position_id, account.username)

    position = account.open_positions(Market.SPOT)[found[1]]
    if not (position.is_limit and position.pending_activation):
        raise InvalidCloseState("Open position can't be closed in spot trading", account.username)

    account = account.copy()
    position = account.open_positions(Market.SPOT).pop(found[1])
    account.credit(Market.SPOT, spot_cancel_credit(position))

    closed = ClosedPosition(
        position=position,
        exit_price=exit_price,
        close_reason=CloseReason.USER_CLOSE,
        closed_at=closed_at,
    )
    account.closed_positions(Market.SPOT).append(closed)

    logger.info(f"{account.username} withdrew {position}")
    event = LedgerEvent(
        kind=EventKind.POSITION_CLOSED,
        username=account.username,
        position_id=position.id,
        details={"exit_price": exit_price, "realized_pnl": None, "reason": CloseReason.USER_CLOSE.name},
    )
    return LedgerResult(account=account, events=[event], position=position, closed=closed)


def partial_close(
    account: Account,
    position_id: int,
    percent: float,
    exit_price: float,
    closed_at: int = 0,
) -> LedgerResult:
    """
    Close `percent` of a futures position's margin.
    The closed fraction is settled and recorded; the rest stays open.
    Closing 100% goes through the full close, so no empty position stays open.
    """
    if not 0 < percent <= 100:
        raise InvalidRequest(f"Percent must be in (0, 100], got {percent}", account.username)
    if percent == 100:
        return close_futures(account, position_id, exit_price, CloseReason.PARTIAL_CLOSE, closed_at)

    found = account.find_position(position_id, Market.FUTURES)
    if found is None:
        raise PositionNotFound(position_id, account.username)

    account = account.copy()
    position = account.open_positions(Market.FUTURES)[found[1]]
    closed_amount = position.amount * percent / 100
    pnl = realized_pnl(position, exit_price, CloseReason.PARTIAL_CLOSE, closed_amount)
    account.credit(Market.FUTURES, settlement_credit(position, exit_price, CloseReason.PARTIAL_CLOSE, closed_amount))

    closed = ClosedPosition(
        position=position.scaled(closed_amount),
        exit_price=exit_price,
        close_reason=CloseReason.PARTIAL_CLOSE,
        realized_pnl=pnl,
        closed_at=closed_at,
    )
    account.closed_positions(Market.FUTURES).append(closed)
    position.amount -= closed_amount

    logger.info(f"{account.username} closed {percent}% of {position.id} at {exit_price}, pnl={pnl:.4f}")
    event = LedgerEvent(
        kind=EventKind.POSITION_PARTIALLY_CLOSED,
        username=account.username,
        position_id=position.id,
        details={"exit_price": exit_price, "percent": percent, "realized_pnl": pnl},
    )
    return LedgerResult(account=account, events=[event], position=position, closed=closed, pnl=pnl)
