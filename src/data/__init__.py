"""
Data Layer: Quote sources and the market price cache.
"""
from .quote_source import MexcQuoteSource, QuoteSource, QuoteSourceError
from .price_cache import PriceCache

__all__ = [
    "QuoteSource",
    "QuoteSourceError",
    "MexcQuoteSource",
    "PriceCache",
]
