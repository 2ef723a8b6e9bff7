"""FX rate lookup with a per-base-currency cache."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Callable, Dict, Protocol

import httpx
from opentelemetry import trace

from .config import get_settings
from .models import FxSnapshot

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

Clock = Callable[[], datetime]


class RatesResponse(Protocol):
    def raise_for_status(self) -> Any: ...

    def json(self) -> Any: ...


class RatesHTTPClient(Protocol):
    async def get(self, url: str, params: dict[str, Any], timeout: float) -> RatesResponse: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _CachedSnapshot:
    snapshot: FxSnapshot
    fetched_at: datetime


def parse_rates_payload(payload: Any, requested_base: str, fallback_date: str) -> FxSnapshot:
    """Build a snapshot from a ``{base, date, rates}`` payload.

    Currency codes are upper-cased, unusable rates are dropped and the base
    currency is forced to ``1``.
    """

    if not isinstance(payload, dict):
        raise ValueError("FX payload is not an object")
    raw_rates = payload.get("rates")
    if not isinstance(raw_rates, dict):
        raise ValueError("FX payload has no rates")

    raw_base = payload.get("base")
    base = raw_base.strip().upper() if isinstance(raw_base, str) and raw_base.strip() else requested_base
    rates: Dict[str, float] = {}
    for code, value in raw_rates.items():
        try:
            rate = float(value)
        except (TypeError, ValueError):
            continue
        if math.isfinite(rate) and rate > 0:
            rates[str(code).strip().upper()] = rate
    rates[base] = 1.0
    on = payload.get("date") if isinstance(payload.get("date"), str) else fallback_date
    return FxSnapshot(base=base, date=on, rates=rates)


class FxRateCache:
    """Fetches rates relative to a base currency and keeps them for ``ttl``.

    A failed fetch is cached as an identity snapshot (``{base: 1}``) for the
    same lifetime as a successful one; there is no retry before expiry.
    """

    def __init__(
        self,
        client: RatesHTTPClient | None = None,
        *,
        url: str | None = None,
        ttl: timedelta | None = None,
        clock: Clock | None = None,
        timeout: float | None = None,
        default_base: str | None = None,
    ) -> None:
        settings = get_settings()
        self._client = client
        self._url = url or settings.fx_api_url
        self._ttl = ttl if ttl is not None else timedelta(hours=settings.fx_cache_ttl_hours)
        self._clock = clock or _utcnow
        self._timeout = timeout if timeout is not None else settings.fx_http_timeout_seconds
        self._default_base = (default_base or settings.base_currency).upper()
        self._store: Dict[str, _CachedSnapshot] = {}

    def cached(self, base: str) -> FxSnapshot | None:
        entry = self._store.get(base.strip().upper())
        if not entry:
            return None
        if self._clock() - entry.fetched_at >= self._ttl:
            return None
        return entry.snapshot

    def invalidate(self, base: str | None = None) -> None:
        """Drop the cached snapshot for ``base``, or every snapshot when omitted."""

        if base is None:
            self._store.clear()
            return
        self._store.pop(base.strip().upper(), None)

    async def get_rates(self, base_currency: str | None = None) -> FxSnapshot:
        base = (base_currency or "").strip().upper() or self._default_base
        hit = self.cached(base)
        if hit is not None:
            return hit

        now = self._clock()
        with tracer.start_as_current_span("fx.get_rates") as span:
            span.set_attribute("fx.base", base)
            try:
                snapshot = await self._fetch(base, now.date().isoformat())
            except Exception as exc:  # noqa: BLE001 - any failure degrades to identity rates
                logger.error("FX fetch for %s failed, using identity rates: %s", base, exc)
                span.set_attribute("fx.fallback", True)
                snapshot = FxSnapshot.identity(base, now.date().isoformat())
        self._store[base] = _CachedSnapshot(snapshot=snapshot, fetched_at=now)
        return snapshot

    async def _fetch(self, base: str, today: str) -> FxSnapshot:
        params = {"base": base}
        logger.info("Fetching FX rates for %s from %s", base, self._url)
        if self._client is not None:
            response = await self._client.get(self._url, params=params, timeout=self._timeout)
        else:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self._timeout)) as client:
                response = await client.get(self._url, params=params)
        response.raise_for_status()
        return parse_rates_payload(response.json(), base, today)


@lru_cache(maxsize=1)
def get_fx_cache() -> FxRateCache:
    """Return the process-wide cache used when callers do not supply one."""

    return FxRateCache()


def has_rate(snapshot: FxSnapshot, currency: str | None) -> bool:
    code = (currency or snapshot.base).upper()
    return code == snapshot.base or snapshot.rate(code) is not None


def convert(amount: float, from_ccy: str | None, to_ccy: str | None, snapshot: FxSnapshot) -> float:
    """Convert ``amount`` using ``snapshot``; unknown rates leave it at face value."""

    source = (from_ccy or snapshot.base).upper()
    target = (to_ccy or snapshot.base).upper()
    if source == target:
        return amount

    if source == snapshot.base:
        in_base = amount
    else:
        rate_from = snapshot.rate(source)
        in_base = amount / rate_from if rate_from else amount
    if target == snapshot.base:
        return in_base

    rate_to = snapshot.rate(target)
    return in_base * rate_to if rate_to else in_base


__all__ = [
    "FxRateCache",
    "convert",
    "get_fx_cache",
    "has_rate",
    "parse_rates_payload",
]
