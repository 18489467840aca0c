"""
Account class - per-market cash balances, open positions and closed-position history.
"""
import copy
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from ..domain.markets import Market
from ..domain.positions import AnyPosition, ClosedPosition, position_from_dict


class Account:
    """
    Trading account of one user.
    Holds one cash balance, one ordered open-position list and one append-only
    closed-position list per market.
    """

    def __init__(
        self,
        username: str,
        balances: Optional[Dict[Market, float]] = None,
        open_positions: Optional[Dict[Market, List[AnyPosition]]] = None,
        closed_positions: Optional[Dict[Market, List[ClosedPosition]]] = None,
        address: Optional[str] = None,
        values: Optional[Dict[Market, float]] = None,
    ):
        self.username = username
        self.address = address
        self._balances: Dict[Market, float] = {m: 0.0 for m in Market}
        self._open: Dict[Market, List[AnyPosition]] = {m: [] for m in Market}
        self._closed: Dict[Market, List[ClosedPosition]] = {m: [] for m in Market}
        self._values: Dict[Market, float] = {m: 0.0 for m in Market}

        self._balances.update(balances or {})
        self._open.update(open_positions or {})
        self._closed.update(closed_positions or {})
        self._values.update(values or {})

    def __repr__(self) -> str:
        return (
            f"Account({self.username}, futures={self.balance(Market.FUTURES):.2f}, "
            f"spot={self.balance(Market.SPOT):.2f}, open={sum(len(p) for p in self._open.values())})"
        )

    def __eq__(self, other) -> bool:
        if not isinstance(other, Account):
            return False
        return self.to_dict() == other.to_dict()

    @property
    def balances(self) -> Dict[Market, float]:
        return self._balances

    @property
    def values(self) -> Dict[Market, float]:
        return self._values

    @property
    def total_balance(self) -> float:
        """Cash across both markets."""
        return sum(self._balances.values())

    @property
    def total_value(self) -> float:
        """Last stored valuation across both markets."""
        return sum(self._values.values())

    def balance(self, market: Market) -> float:
        return self._balances[market]

    def credit(self, market: Market, amount: float) -> None:
        self._balances[market] += amount

    def debit(self, market: Market, amount: float) -> None:
        self._balances[market] -= amount

    def open_positions(self, market: Market) -> List[AnyPosition]:
        return self._open[market]

    def closed_positions(self, market: Market) -> List[ClosedPosition]:
        return self._closed[market]

    def pending_count(self, market: Market) -> int:
        """Number of limit orders still waiting for activation."""
        return sum(1 for p in self._open[market] if p.pending_activation)

    def max_position_id(self) -> int:
        ids = [p.id for positions in self._open.values() for p in positions]
        ids += [c.id for closed in self._closed.values() for c in closed]
        return max(ids, default=0)

    def find_position(
        self,
        position_id: int,
        market: Optional[Market] = None,
    ) -> Optional[Tuple[Market, int]]:
        """
        Locate an open position.
        Searches futures first, then spot, unless `market` narrows the search.
        Returns (market, index) or None.
        """
        markets = [market] if market is not None else list(Market)
        for m in markets:
            for i, position in enumerate(self._open[m]):
                if position.id == position_id:
                    return m, i
        return None

    def get_position(self, position_id: int) -> Optional[AnyPosition]:
        found = self.find_position(position_id)
        if found is None:
            return None
        market, index = found
        return self._open[market][index]

    def copy(self) -> "Account":
        """Deep copy; ledger operations mutate the copy only."""
        return copy.deepcopy(self)

    def get_closed_summary(self, market: Market) -> pd.DataFrame:
        """Get closed-position history of one market as DataFrame."""
        closed = self._closed[market]
        if not closed:
            return pd.DataFrame()

        records = [
            {
                "id": c.id,
                "asset": c.position.asset_type,
                "side": c.position.side.value,
                "order_kind": c.position.order_kind.value,
                "amount": c.position.amount,
                "leverage": getattr(c.position, "leverage", None),
                "entry_price": c.position.entry_price,
                "exit_price": c.exit_price,
                "realized_pnl": c.realized_pnl,
                "close_reason": c.close_reason.name,
                "closed_at": pd.to_datetime(c.closed_at, unit="ms"),
            }
            for c in closed
        ]
        return pd.DataFrame(records)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "username": self.username,
            "address": self.address,
            "balances": {m.value: self._balances[m] for m in Market},
            "values": {m.value: self._values[m] for m in Market},
            "total_balance": self.total_balance,
            "total_value": self.total_value,
            "open_positions": {
                m.value: [p.to_dict() for p in self._open[m]] for m in Market
            },
            "closed_positions": {
                m.value: [c.to_dict() for c in self._closed[m]] for m in Market
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Account":
        return cls(
            username=data["username"],
            address=data.get("address"),
            balances={Market(k): float(v) for k, v in data.get("balances", {}).items()},
            values={Market(k): float(v) for k, v in data.get("values", {}).items()},
            open_positions={
                Market(k): [position_from_dict(p) for p in v]
                for k, v in data.get("open_positions", {}).items()
            },
            closed_positions={
                Market(k): [ClosedPosition.from_dict(c) for c in v]
                for k, v in data.get("closed_positions", {}).items()
            },
        )
