"""
Shared fakes for the quote feed and notifiers.
"""
from typing import Dict, List

import pytest

from src.account.account import Account
from src.account.events import LedgerEvent
from src.data.price_cache import PriceCache
from src.data.quote_source import QuoteSource, QuoteSourceError
from src.domain.markets import Market
from src.domain.quotes import Quote
from src.service.notifications import Notifier


class FakeQuoteSource(QuoteSource):
    """Serves prices from a dict; set `fail = True` to simulate an outage."""

    def __init__(self, prices: Dict[Market, Dict[str, float]]):
        self.prices = prices
        self.fail = False
        self.calls = 0

    def fetch(self, market: Market) -> List[Quote]:
        self.calls += 1
        if self.fail:
            raise QuoteSourceError("feed down")
        return [Quote(market, asset, price) for asset, price in self.prices.get(market, {}).items()]


class RecordingNotifier(Notifier):
    def __init__(self):
        self.events: List[LedgerEvent] = []

    def notify(self, event: LedgerEvent) -> None:
        self.events.append(event)


class FailingNotifier(Notifier):
    def notify(self, event: LedgerEvent) -> None:
        raise ConnectionError("smtp unreachable")


@pytest.fixture
def quote_source():
    return FakeQuoteSource({
        Market.FUTURES: {"BTC": 50000.0, "ETH": 3000.0},
        Market.SPOT: {"BTC": 50010.0, "ETH": 3001.0},
    })


@pytest.fixture
def price_cache(quote_source):
    return PriceCache(quote_source)


@pytest.fixture
def funded_account():
    return Account(
        "alice",
        balances={Market.FUTURES: 1000.0, Market.SPOT: 100000.0},
    )
