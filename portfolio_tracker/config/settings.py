"""Application configuration and environment helpers."""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings

DEFAULT_TIMEZONE = "Europe/Istanbul"
DEFAULT_BASE_CURRENCY = "TRY"
DEFAULT_CORE_SYMBOLS = {
    "USD": "fx",
    "EUR": "fx",
    "GA": "commodity",
    "XU100": "index",
}


class AppSettings(BaseSettings):
    """Configuration options for the portfolio tracker."""

    app_name: str = Field(default="Portfolio Tracker")
    timezone: str = Field(default=DEFAULT_TIMEZONE)
    base_currency: str = Field(default=DEFAULT_BASE_CURRENCY)
    usd_symbol: str = Field(
        default="USD",
        description="Cached asset whose price converts the local total into USD.",
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./portfolio.db",
        description="SQLAlchemy database URL.",
    )

    quote_service_url: str = Field(
        default="http://localhost:8300",
        description="Base URL of the quote provider for short-cycle asset classes.",
    )
    fund_service_url: str = Field(
        default="http://localhost:8300",
        description="Base URL of the fund price provider.",
    )
    quote_service_token: str | None = Field(default=None)
    quote_timeout_seconds: float = Field(default=10.0, gt=0)

    refresh_concurrency: int = Field(default=6, ge=1, le=32)
    general_ttl_minutes: int = Field(default=15, ge=0)
    fund_ttl_minutes: int = Field(default=240, ge=0)
    core_symbols: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_CORE_SYMBOLS))
    auto_refresh_minutes: int = Field(
        default=0,
        ge=0,
        description="Interval of the background refresh loop; 0 disables it.",
    )

    telemetry_enabled: bool = Field(default=False)
    telemetry_service_name: str = Field(default="portfolio-tracker")
    telemetry_otlp_endpoint: str | None = Field(default=None)
    telemetry_otlp_insecure: bool = Field(default=True)
    telemetry_sample_ratio: float = Field(default=1.0, ge=0.0, le=1.0)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    def dict_for_logging(self) -> dict[str, Any]:
        """Return a sanitized dict for logging purposes."""

        hidden = {"quote_service_token"}
        return {k: ("***" if k in hidden and v else v) for k, v in self.model_dump().items()}


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """Return cached application settings."""

    return AppSettings()


__all__ = [
    "AppSettings",
    "DEFAULT_BASE_CURRENCY",
    "DEFAULT_CORE_SYMBOLS",
    "DEFAULT_TIMEZONE",
    "get_settings",
]
