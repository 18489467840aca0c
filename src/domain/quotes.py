"""
Quote data structure for the last traded price of an asset.
"""
from dataclasses import dataclass

from .markets import Market


@dataclass(frozen=True)
class Quote:
    """Last price of one whitelisted asset in one market."""
    market: Market
    asset_type: str
    price: float

    def __repr__(self) -> str:
        return f"Quote({self.market.value}, {self.asset_type}, price={self.price:.4f})"
