"""
Tests for data layer: quote parsing and the price cache.
"""
from unittest import mock

import pytest
import requests

from src.data.price_cache import PriceCache
from src.data.quote_source import MexcQuoteSource, QuoteSourceError, parse_ticker_item
from src.domain.errors import PriceUnavailable
from src.domain.markets import Market


def _response(payload):
    resp = mock.Mock()
    resp.json.return_value = payload
    resp.raise_for_status.return_value = None
    return resp


class TestParseTicker:
    """Tests for ticker row parsing."""

    def test_whitelisted_usdt_pair(self):
        quote = parse_ticker_item({"symbol": "BTC_USDT", "lastPrice": 50000.5}, Market.FUTURES, "lastPrice")
        assert quote.asset_type == "BTC"
        assert quote.price == 50000.5

    def test_string_price(self):
        quote = parse_ticker_item({"symbol": "ETH_USDT", "last": "3001.25"}, Market.SPOT, "last")
        assert quote.price == 3001.25

    def test_unknown_symbol_discarded(self):
        assert parse_ticker_item({"symbol": "DOGE_USDT", "lastPrice": 0.1}, Market.FUTURES, "lastPrice") is None

    def test_non_usdt_pair_discarded(self):
        assert parse_ticker_item({"symbol": "BTC_USDC", "lastPrice": 50000}, Market.FUTURES, "lastPrice") is None

    def test_malformed_price_discarded(self):
        assert parse_ticker_item({"symbol": "BTC_USDT", "lastPrice": "n/a"}, Market.FUTURES, "lastPrice") is None
        assert parse_ticker_item({"symbol": "BTC_USDT"}, Market.FUTURES, "lastPrice") is None

    @pytest.mark.parametrize("price", ["NaN", "inf", "-inf", 0, -1.5])
    def test_non_finite_or_non_positive_price_discarded(self, price):
        item = {"symbol": "BTC_USDT", "lastPrice": price}
        assert parse_ticker_item(item, Market.FUTURES, "lastPrice") is None


class TestMexcQuoteSource:
    """Tests for MexcQuoteSource."""

    def test_fetch_futures(self):
        session = mock.Mock()
        session.get.return_value = _response({"data": [
            {"symbol": "BTC_USDT", "lastPrice": 50000},
            {"symbol": "SOL_USDT", "lastPrice": 150.5},
            {"symbol": "PEPE_USDT", "lastPrice": 0.00001},
        ]})
        source = MexcQuoteSource(timeout=2.0, session=session)

        quotes = source.fetch(Market.FUTURES)

        assert [q.asset_type for q in quotes] == ["BTC", "SOL"]
        url = session.get.call_args[0][0]
        assert url == "https://contract.mexc.com/api/v1/contract/ticker"
        assert session.get.call_args[1]["timeout"] == 2.0

    def test_fetch_spot_uses_last_field(self):
        session = mock.Mock()
        session.get.return_value = _response({"data": [{"symbol": "XRP_USDT", "last": "0.52"}]})
        quotes = MexcQuoteSource(session=session).fetch(Market.SPOT)
        assert quotes[0].price == 0.52
        assert quotes[0].market == Market.SPOT

    def test_network_error_raises_quote_source_error(self):
        session = mock.Mock()
        session.get.side_effect = requests.Timeout("slow")
        with pytest.raises(QuoteSourceError):
            MexcQuoteSource(session=session).fetch(Market.FUTURES)

    def test_bad_payload_raises_quote_source_error(self):
        session = mock.Mock()
        session.get.return_value = _response({"code": 500})
        with pytest.raises(QuoteSourceError):
            MexcQuoteSource(session=session).fetch(Market.FUTURES)


class TestPriceCache:
    """Tests for PriceCache."""

    def test_get_price(self, price_cache):
        assert price_cache.get_price(Market.FUTURES, "BTC") == 50000.0
        assert price_cache.get_price(Market.SPOT, "ETH") == 3001.0

    def test_refreshes_on_every_request(self, price_cache, quote_source):
        price_cache.get_price(Market.FUTURES, "BTC")
        quote_source.prices[Market.FUTURES]["BTC"] = 51000.0
        assert price_cache.get_price(Market.FUTURES, "BTC") == 51000.0
        assert quote_source.calls == 2

    def test_falls_back_to_stale_prices(self, price_cache, quote_source):
        price_cache.get_price(Market.FUTURES, "BTC")
        quote_source.prices[Market.FUTURES]["BTC"] = 99999.0
        quote_source.fail = True

        assert price_cache.get_price(Market.FUTURES, "BTC") == 50000.0
        assert len(price_cache.get_prices(Market.FUTURES)) == 2

    def test_empty_fetch_keeps_cache(self, price_cache, quote_source):
        price_cache.get_prices(Market.SPOT)
        quote_source.prices[Market.SPOT] = {}
        assert price_cache.get_price(Market.SPOT, "BTC") == 50010.0

    def test_no_cache_and_failed_fetch(self, price_cache, quote_source):
        quote_source.fail = True
        with pytest.raises(PriceUnavailable):
            price_cache.get_price(Market.FUTURES, "BTC")

    def test_markets_cached_separately(self, price_cache, quote_source):
        price_cache.get_prices(Market.FUTURES)
        quote_source.fail = True
        with pytest.raises(PriceUnavailable):
            price_cache.get_prices(Market.SPOT)

    def test_asset_missing_from_list(self, price_cache):
        with pytest.raises(PriceUnavailable):
            price_cache.get_price(Market.FUTURES, "DOT")

    def test_unlisted_asset_dropped_at_ingestion(self, quote_source):
        quote_source.prices[Market.FUTURES]["DOGE"] = 0.1
        cache = PriceCache(quote_source)
        assets = {q.asset_type for q in cache.get_prices(Market.FUTURES)}
        assert "DOGE" not in assets

    def test_asset_missing_from_fresh_fetch_keeps_cached_price(self, price_cache, quote_source):
        price_cache.get_prices(Market.FUTURES)
        quote_source.prices[Market.FUTURES] = {"ETH": 3100.0}

        assert price_cache.get_price(Market.FUTURES, "BTC") == 50000.0
        assert price_cache.get_price(Market.FUTURES, "ETH") == 3100.0
        assert [q.asset_type for q in price_cache.get_prices(Market.FUTURES)] == ["BTC", "ETH"]

    def test_non_finite_quote_keeps_cached_price(self, price_cache, quote_source):
        price_cache.get_prices(Market.FUTURES)
        quote_source.prices[Market.FUTURES]["BTC"] = float("nan")
        assert price_cache.get_price(Market.FUTURES, "BTC") == 50000.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
