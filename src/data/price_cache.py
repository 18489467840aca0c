"""
Price cache - last successfully fetched price list per market.
"""
import math
from typing import Dict, List, Tuple

from loguru import logger

from ..domain.errors import PriceUnavailable
from ..domain.markets import ASSET_TYPES, Market
from ..domain.quotes import Quote
from .quote_source import QuoteSource, QuoteSourceError


class PriceCache:
    """
    Refreshes a market's price list on every request and keeps the last good one.

    A failed or empty fetch falls back to the cached list, so once any fetch has
    succeeded callers always get a price. Reads take no lock: each market maps
    to an immutable tuple that a refresh replaces in one assignment.
    """

    def __init__(self, source: QuoteSource):
        self.source = source
        self._quotes: Dict[Market, Tuple[Quote, ...]] = {}

    def __repr__(self) -> str:
        cached = {m.value: len(q) for m, q in self._quotes.items()}
        return f"PriceCache(source={self.source!r}, cached={cached})"

    def refresh(self, market: Market) -> List[Quote]:
        """
        Fetch a fresh list; fall back to the cache on failure.
        Fresh quotes are merged into the cached ones per asset, so an asset
        missing from one fetch keeps its last known price.
        """
        try:
            fetched = self.source.fetch(market)
        except QuoteSourceError as e:
            return self._fallback(market, str(e))

        fresh = {
            q.asset_type: q
            for q in fetched
            if q.asset_type in ASSET_TYPES and math.isfinite(q.price) and q.price > 0
        }
        if not fresh:
            return self._fallback(market, "empty quote list")

        merged = {q.asset_type: q for q in self._quotes.get(market, ())}
        stale = sorted(set(merged) - set(fresh))
        if stale:
            logger.warning(f"Keeping cached {market.value} prices for {', '.join(stale)}")
        merged.update(fresh)

        quotes = tuple(merged[a] for a in ASSET_TYPES if a in merged)
        self._quotes[market] = quotes
        return list(quotes)

    def _fallback(self, market: Market, reason: str) -> List[Quote]:
        stale = self._quotes.get(market)
        if not stale:
            logger.error(f"No {market.value} prices available: {reason}")
            raise PriceUnavailable(f"No {market.value} prices available")
        logger.warning(f"Using cached {market.value} prices ({reason})")
        return list(stale)

    def get_prices(self, market: Market) -> List[Quote]:
        return self.refresh(market)

    def get_price(self, market: Market, asset_type: str) -> float:
        """Current price of `asset_type` in `market`."""
        for quote in self.refresh(market):
            if quote.asset_type == asset_type:
                return quote.price
        raise PriceUnavailable(f"No {market.value} price for {asset_type}")
