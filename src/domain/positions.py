"""
Position records - open futures/spot positions and closed-position history.
"""
from dataclasses import dataclass, field, asdict, replace
from typing import Any, ClassVar, Dict, Optional, Union

from .markets import CloseReason, Market, OrderKind, Side


@dataclass
class Position:
    """
    Shape shared by every open position.
    `pending_activation` stays True while a limit order has not been triggered.
    """
    id: int
    asset_type: str
    side: Side
    order_kind: OrderKind
    amount: float
    entry_price: float
    pending_activation: bool = False
    limit_price: Optional[float] = None

    market: ClassVar[Market]

    @property
    def is_limit(self) -> bool:
        return self.order_kind == OrderKind.LIMIT

    def scaled(self, amount: float) -> "Position":
        """Copy of this position carrying a different amount."""
        return replace(self, amount=amount)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["market"] = self.market.value
        data["side"] = self.side.value
        data["order_kind"] = self.order_kind.value
        return data


@dataclass
class FuturesPosition(Position):
    """Leveraged position; `amount` is the margin committed."""
    leverage: float = 1.0
    take_profit: Optional[float] = None  # None = never triggers
    stop_loss: Optional[float] = None

    market: ClassVar[Market] = Market.FUTURES

    def __repr__(self) -> str:
        state = " pending" if self.pending_activation else ""
        return (
            f"FuturesPosition({self.id}, {self.side.value} {self.asset_type} "
            f"{self.amount:.2f} x{self.leverage:g} @ {self.entry_price:.4f}{state})"
        )


@dataclass
class SpotPosition(Position):
    """Spot holding; `amount` is a quantity of the asset."""

    market: ClassVar[Market] = Market.SPOT

    @property
    def notional(self) -> float:
        return self.amount * self.entry_price

    def __repr__(self) -> str:
        state = " pending" if self.pending_activation else ""
        return (
            f"SpotPosition({self.id}, {self.side.value} {self.asset_type} "
            f"{self.amount:g} @ {self.entry_price:.4f}{state})"
        )


AnyPosition = Union[FuturesPosition, SpotPosition]


def position_from_dict(data: Dict[str, Any]) -> AnyPosition:
    """Rebuild a position, choosing the variant from its `market` tag."""
    data = dict(data)
    market = Market(data.pop("market"))
    data["side"] = Side(data["side"])
    data["order_kind"] = OrderKind(data["order_kind"])
    if market == Market.FUTURES:
        return FuturesPosition(**data)
    return SpotPosition(**data)


@dataclass
class ClosedPosition:
    """Snapshot of a position as it left the open set."""
    position: AnyPosition
    exit_price: float
    close_reason: CloseReason
    realized_pnl: Optional[float] = None  # None for spot
    closed_at: int = field(default=0)

    @property
    def id(self) -> int:
        return self.position.id

    @property
    def market(self) -> Market:
        return self.position.market

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position": self.position.to_dict(),
            "exit_price": self.exit_price,
            "close_reason": int(self.close_reason),
            "realized_pnl": self.realized_pnl,
            "closed_at": self.closed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClosedPosition":
        return cls(
            position=position_from_dict(data["position"]),
            exit_price=data["exit_price"],
            close_reason=CloseReason(data["close_reason"]),
            realized_pnl=data.get("realized_pnl"),
            closed_at=data.get("closed_at", 0),
        )
