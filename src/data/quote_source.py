"""
Quote sources - fetch the full last-price list of a market from an external feed.
"""
import math
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests
from loguru import logger

from ..domain.markets import ASSET_TYPES, QUOTE_CURRENCY, Market
from ..domain.quotes import Quote

FUTURES_TICKER_URL = "https://contract.mexc.com/api/v1/contract/ticker"
SPOT_TICKER_URL = "https://www.mexc.com/open/api/v2/market/ticker"


class QuoteSourceError(Exception):
    """The feed could not be reached or returned an unusable payload."""


class QuoteSource(ABC):
    """Interface for anything that can list the current prices of a market."""

    @abstractmethod
    def fetch(self, market: Market) -> List[Quote]:
        """
        Return quotes for the whitelisted assets of `market`.
        Raises QuoteSourceError on network or format failure.
        """
        pass


def parse_ticker_item(
    item: Dict[str, Any],
    market: Market,
    price_field: str,
) -> Optional[Quote]:
    """
    Turn one ticker row into a Quote.
    Returns None for rows outside the whitelist or not quoted in USDT.
    """
    symbol = str(item.get("symbol", ""))
    base, _, quote_ccy = symbol.partition("_")
    if base not in ASSET_TYPES or quote_ccy != QUOTE_CURRENCY:
        return None

    try:
        price = float(item[price_field])
    except (KeyError, TypeError, ValueError):
        logger.warning(f"Skipping malformed {market.value} ticker row for {symbol}")
        return None

    if not (math.isfinite(price) and price > 0):
        return None
    return Quote(market=market, asset_type=base, price=price)


class MexcQuoteSource(QuoteSource):
    """
    MEXC public ticker endpoints.
    Futures rows carry `lastPrice`, spot rows carry `last`.
    """

    PRICE_FIELDS = {
        Market.FUTURES: "lastPrice",
        Market.SPOT: "last",
    }

    def __init__(
        self,
        futures_url: str = FUTURES_TICKER_URL,
        spot_url: str = SPOT_TICKER_URL,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ):
        self.urls = {
            Market.FUTURES: futures_url,
            Market.SPOT: spot_url,
        }
        self.timeout = float(timeout)
        self.sess = session or requests.Session()

    def __repr__(self) -> str:
        return f"MexcQuoteSource(timeout={self.timeout:.1f}s)"

    def fetch(self, market: Market) -> List[Quote]:
        url = self.urls[market]
        try:
            r = self.sess.get(url, timeout=self.timeout)
            r.raise_for_status()
            payload = r.json()
        except requests.RequestException as e:
            raise QuoteSourceError(f"{market.value} ticker request failed: {e}") from e
        except ValueError as e:
            raise QuoteSourceError(f"{market.value} ticker returned non-JSON body") from e

        rows = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(rows, list):
            raise QuoteSourceError(f"{market.value} ticker payload has no data list")

        price_field = self.PRICE_FIELDS[market]
        quotes = []
        for item in rows:
            if not isinstance(item, dict):
                continue
            quote = parse_ticker_item(item, market, price_field)
            if quote is not None:
                quotes.append(quote)
        return quotes
