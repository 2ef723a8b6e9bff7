"""Valuation of positions and cash with per-currency and base-currency weights."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .config import get_settings
from .fx import FxRateCache, convert, get_fx_cache, has_rate
from .models import CASH_LABEL, AllocationRow, CashRow, PortfolioRow, Position, Transaction
from .normalizer import calc_net_cash
from .positions import build_positions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Valued:
    label: str
    currency: str
    value: float
    stale: bool = False


def _weight(value: float, total: Optional[float]) -> Optional[float]:
    if total is None or total <= 0:
        return None
    return value / total * 100


def _weight_sort_key(row: AllocationRow) -> Tuple[int, float, str]:
    weight = row.weight_percent
    return (weight is None, -(weight or 0.0), row.label)


def cash_by_currency(transactions: Iterable[Transaction]) -> Dict[str, float]:
    """Residual cash per currency: Σ (amount − fees − taxes)."""

    buckets: Dict[str, float] = {}
    for txn in transactions:
        currency = txn.cash_currency
        buckets[currency] = buckets.get(currency, 0.0) + calc_net_cash(txn)
    return buckets


def _valued_items(transactions: Sequence[Transaction]) -> List[_Valued]:
    positions: List[Position] = build_positions(transactions)
    items = [
        _Valued(label=p.key, currency=p.last_price_currency, value=p.market_value, stale=p.is_stale)
        for p in positions
    ]
    for p in positions:
        if p.is_stale:
            logger.warning("No price observed for %s; valuing %.4f shares at 0", p.key, p.shares)
    items.extend(
        _Valued(label=CASH_LABEL, currency=currency, value=cash)
        for currency, cash in cash_by_currency(transactions).items()
    )
    return items


def _totals(items: Iterable[_Valued]) -> Dict[str, float]:
    totals: Dict[str, float] = {}
    for item in items:
        totals[item.currency] = totals.get(item.currency, 0.0) + item.value
    return totals


def value_and_weights_by_currency(transactions: Sequence[Transaction]) -> List[AllocationRow]:
    """Value positions and cash, weighting each row within its own currency.

    A weight is ``None`` when the currency total is not positive. Rows are
    ordered by currency code, then by descending weight.
    """

    items = _valued_items(transactions)
    totals = _totals(items)
    rows = [
        AllocationRow(
            currency=item.currency,
            label=item.label,
            value=item.value,
            weight_percent=_weight(item.value, totals.get(item.currency)),
            stale=item.stale,
            source_currency=item.currency,
        )
        for item in items
    ]
    rows.sort(key=lambda r: (r.currency,) + _weight_sort_key(r))
    logger.debug("Per-currency allocation rows: %s", rows[:5])
    return rows


async def value_and_weights_in_base(
    transactions: Sequence[Transaction],
    base_currency: str | None = None,
    fx_cache: FxRateCache | None = None,
) -> List[AllocationRow]:
    """Re-express every allocation row in ``base_currency`` with global weights.

    Rows whose currency has no known rate keep their nominal value and are
    flagged ``fx_fallback`` instead of being dropped.
    """

    base = (base_currency or get_settings().base_currency).strip().upper()
    cache = fx_cache or get_fx_cache()
    snapshot = await cache.get_rates(base)

    converted: List[Tuple[AllocationRow, float, bool]] = []
    for row in value_and_weights_by_currency(transactions):
        source = row.currency or snapshot.base
        fallback = not has_rate(snapshot, source)
        if fallback:
            logger.warning(
                "No %s rate for %s; keeping %s %.2f at nominal value", snapshot.base, source, row.label, row.value
            )
        converted.append((row, convert(row.value, source, base, snapshot), fallback))

    total = sum(value for _, value, _ in converted)
    rows = [
        AllocationRow(
            currency=base,
            label=row.label,
            value=value,
            weight_percent=_weight(value, total),
            stale=row.stale,
            source_currency=row.currency,
            fx_fallback=fallback,
        )
        for row, value, fallback in converted
    ]
    rows.sort(key=_weight_sort_key)
    return rows


def check_weight_closure(rows: Iterable[AllocationRow], tolerance: float | None = None) -> Dict[str, float]:
    """Return currency groups whose weights do not sum to 100 within ``tolerance``.

    Groups without any weight (non-positive totals) are not checked. This is a
    diagnostic; offending groups are logged, never raised.
    """

    limit = get_settings().weight_tolerance if tolerance is None else tolerance
    sums: Dict[str, float] = {}
    for row in rows:
        if row.weight_percent is None:
            continue
        sums[row.currency] = sums.get(row.currency, 0.0) + row.weight_percent

    flagged = {currency: total for currency, total in sums.items() if abs(total - 100.0) > limit}
    for currency, total in flagged.items():
        logger.warning("Weights for %s sum to %.4f%%, outside ±%s of 100%%", currency or "<none>", total, limit)
    return flagged


def portfolio_and_cash_by_currency(
    transactions: Sequence[Transaction],
) -> Tuple[List[PortfolioRow], List[CashRow]]:
    """Split the per-currency view into instrument rows and cash rows.

    Weights here are ``0`` rather than ``None`` when a currency total is not
    positive.
    """

    positions = build_positions(transactions)
    cash = cash_by_currency(transactions)
    items = [_Valued(label=p.key, currency=p.last_price_currency, value=p.market_value) for p in positions]
    items.extend(_Valued(label=CASH_LABEL, currency=c, value=v) for c, v in cash.items())
    totals = _totals(items)

    portfolio = [
        PortfolioRow(
            symbol=p.key,
            shares=p.shares,
            last_price=p.last_price or 0.0,
            position_value=p.market_value,
            currency=p.last_price_currency,
            weight_percent=_weight(p.market_value, totals.get(p.last_price_currency)) or 0.0,
        )
        for p in positions
    ]
    portfolio.sort(key=lambda r: (r.currency, -r.weight_percent, r.symbol))

    cash_rows = [
        CashRow(currency=c, cash_value=v, weight_percent=_weight(v, totals.get(c)) or 0.0)
        for c, v in cash.items()
    ]
    cash_rows.sort(key=lambda r: (r.currency, -r.weight_percent))
    return portfolio, cash_rows


__all__ = [
    "cash_by_currency",
    "check_weight_closure",
    "portfolio_and_cash_by_currency",
    "value_and_weights_by_currency",
    "value_and_weights_in_base",
]
