"""Configuration helpers for the portfolio analytics core."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BASE_CURRENCY = "USD"
DEFAULT_FX_API_URL = "https://api.exchangerate.host/latest"


class AnalyticsSettings(BaseSettings):
    """Settings shared by the importer, FX cache and report CLI."""

    base_currency: str = Field(DEFAULT_BASE_CURRENCY, description="Currency used for the unified view")
    fx_api_url: str = Field(DEFAULT_FX_API_URL, description="Rates endpoint queried with ?base=CCY")
    fx_cache_ttl_hours: float = Field(12.0, gt=0, description="Lifetime of a cached FX snapshot")
    fx_http_timeout_seconds: float = Field(10.0, gt=0)
    weight_tolerance: float = Field(0.01, ge=0, description="Allowed deviation from 100% per currency group")
    extra_action_rules: dict[str, Literal["inflow", "outflow"]] = Field(
        default_factory=dict,
        description="Additional action substrings mapped to a cash direction",
    )
    log_level: str = Field("INFO")

    telemetry_enabled: bool = Field(default=False)
    telemetry_service_name: str = Field(default="portfolio-analytics")
    telemetry_otlp_endpoint: str | None = Field(default=None)
    telemetry_otlp_insecure: bool = Field(default=True)

    model_config = SettingsConfigDict(env_prefix="PORTFOLIO_", env_file=".env", env_file_encoding="utf-8")

    def dict_for_logging(self) -> dict[str, Any]:
        """Return a sanitized dict for logging purposes."""

        hidden = {"telemetry_otlp_endpoint"}
        return {k: ("***" if k in hidden and v else v) for k, v in self.model_dump().items()}


@lru_cache(maxsize=1)
def get_settings() -> AnalyticsSettings:
    """Return cached analytics settings."""

    return AnalyticsSettings()


__all__ = [
    "AnalyticsSettings",
    "DEFAULT_BASE_CURRENCY",
    "DEFAULT_FX_API_URL",
    "get_settings",
]
