"""Market data providers."""

from .base import InMemoryQuoteSource, PriceSource, Quote, RoutingQuoteSource
from .quotes import FundQuoteSource, HttpQuoteSource, build_quote_source, parse_localized_number

__all__ = [
    "FundQuoteSource",
    "HttpQuoteSource",
    "InMemoryQuoteSource",
    "PriceSource",
    "Quote",
    "RoutingQuoteSource",
    "build_quote_source",
    "parse_localized_number",
]
