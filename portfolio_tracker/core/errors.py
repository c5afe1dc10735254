"""Error taxonomy shared by the ledger, valuation and refresh layers."""

from __future__ import annotations


class PortfolioError(RuntimeError):
    """Base class for errors raised by the portfolio tracker."""


class ValidationError(PortfolioError, ValueError):
    """Raised when caller-supplied data fails validation. Never retried."""


class UnknownScopeError(ValidationError):
    """Raised when a refresh is requested for an unknown scope."""


class NotFoundError(PortfolioError, LookupError):
    """Raised when an operation references a row that does not exist."""


class ProviderError(PortfolioError):
    """Raised by price source adapters when a quote cannot be obtained."""


class SchemaError(PortfolioError):
    """Raised when a persisted row cannot be interpreted."""


__all__ = [
    "NotFoundError",
    "PortfolioError",
    "ProviderError",
    "SchemaError",
    "UnknownScopeError",
    "ValidationError",
]
