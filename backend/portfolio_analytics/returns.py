"""Time-weighted and money-weighted (XIRR) return calculations.

Both scalar entry points return ``0.0`` for input they cannot evaluate. The
``evaluate_*`` variants return a :class:`ReturnResult` so callers can tell an
undetermined rate from a genuine zero.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

from .actions import is_deposit, is_withdrawal
from .fx import convert
from .models import CashFlow, EquityPoint, FxSnapshot, ReturnResult, TradeRecord, Transaction
from .parsing import parse_timestamp

logger = logging.getLogger(__name__)

DAYS_PER_YEAR = 365.25
INITIAL_GUESS = 0.10
TOLERANCE = 1e-6
MAX_ITERATIONS = 100
RATE_FLOOR = -0.99
RATE_CEILING = 10.0


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def _flows_by_day(flows: Mapping[date | datetime | str, float]) -> Dict[date, float]:
    by_day: Dict[date, float] = {}
    for key, amount in flows.items():
        when = parse_timestamp(key)
        if when is None:
            logger.warning("Ignoring external flow with unreadable date %r", key)
            continue
        day = when.date()
        by_day[day] = by_day.get(day, 0.0) + amount
    return by_day


# --- time-weighted return -------------------------------------------------


def evaluate_twr(
    equity_series: Sequence[EquityPoint],
    external_flows_by_date: Mapping[date | datetime | str, float] | None = None,
) -> ReturnResult:
    if len(equity_series) < 2:
        return ReturnResult.undetermined("need at least two equity points")

    flows = _flows_by_day(external_flows_by_date or {})
    points = sorted(equity_series, key=lambda p: _as_date(p.date))
    growth = 1.0
    periods = 0
    for previous, current in zip(points, points[1:]):
        if previous.equity <= 0:
            continue
        flow = flows.get(_as_date(current.date), 0.0)
        growth *= 1 + (current.equity - previous.equity - flow) / previous.equity
        periods += 1

    if periods == 0:
        return ReturnResult.undetermined("no period with positive starting equity")
    twr = growth - 1
    if not math.isfinite(twr):
        return ReturnResult.undetermined("non-finite result")
    return ReturnResult.determined(twr, method="chain-linked")


def compute_twr(
    equity_series: Sequence[EquityPoint],
    external_flows_by_date: Mapping[date | datetime | str, float] | None = None,
) -> float:
    """Chain-link daily returns net of external flows: Π(1 + r_d) − 1."""

    return evaluate_twr(equity_series, external_flows_by_date).value_or_zero()


# --- XIRR -------------------------------------------------------------------


def _year_offsets(cash_flows: Sequence[CashFlow]) -> List[Tuple[float, float]]:
    start = min(_as_date(cf.date) for cf in cash_flows)
    return [((_as_date(cf.date) - start).days / DAYS_PER_YEAR, cf.amount) for cf in cash_flows]


def npv_and_derivative(rate: float, flows: Sequence[Tuple[float, float]]) -> Tuple[float, float]:
    """NPV at ``rate`` and its analytic derivative for ``(years, amount)`` flows."""

    npv = 0.0
    derivative = 0.0
    for years, amount in flows:
        if years == 0:
            npv += amount
            continue
        npv += amount / (1 + rate) ** years
        derivative -= amount * years / (1 + rate) ** (years + 1)
    return npv, derivative


def _newton(flows: Sequence[Tuple[float, float]]) -> float | None:
    rate = INITIAL_GUESS
    for _ in range(MAX_ITERATIONS):
        try:
            npv, derivative = npv_and_derivative(rate, flows)
        except (OverflowError, ZeroDivisionError):
            return None
        if not math.isfinite(npv) or not math.isfinite(derivative) or abs(derivative) < 1e-12:
            return None
        next_rate = rate - npv / derivative
        if not math.isfinite(next_rate) or not RATE_FLOOR <= next_rate <= RATE_CEILING:
            return None
        if abs(next_rate - rate) < TOLERANCE:
            return next_rate
        rate = next_rate
    return None


def _npv(rate: float, flows: Sequence[Tuple[float, float]]) -> float:
    try:
        return npv_and_derivative(rate, flows)[0]
    except (OverflowError, ZeroDivisionError):
        return math.nan


def _bisection(flows: Sequence[Tuple[float, float]]) -> float | None:
    low, high = RATE_FLOOR, RATE_CEILING
    npv_low = _npv(low, flows)
    npv_high = _npv(high, flows)
    if not (math.isfinite(npv_low) and math.isfinite(npv_high)):
        return None
    if npv_low == 0:
        return low
    if npv_high == 0:
        return high
    if (npv_low > 0) == (npv_high > 0):
        return None

    for _ in range(MAX_ITERATIONS):
        mid = (low + high) / 2
        npv_mid = _npv(mid, flows)
        if not math.isfinite(npv_mid):
            return None
        if abs(npv_mid) < TOLERANCE or (high - low) / 2 < TOLERANCE:
            return mid
        if (npv_mid > 0) == (npv_low > 0):
            low, npv_low = mid, npv_mid
        else:
            high = mid
    return (low + high) / 2


def evaluate_xirr(cash_flows: Sequence[CashFlow]) -> ReturnResult:
    if not any(cf.amount < 0 for cf in cash_flows) or not any(cf.amount > 0 for cf in cash_flows):
        return ReturnResult.undetermined("cash flows need both an outflow and an inflow")

    flows = _year_offsets(cash_flows)
    rate = _newton(flows)
    if rate is not None:
        return ReturnResult.determined(rate, method="newton")

    logger.debug("Newton-Raphson did not converge for %d flows; trying bisection", len(flows))
    rate = _bisection(flows)
    if rate is not None and math.isfinite(rate):
        return ReturnResult.determined(rate, method="bisection")

    logger.warning("XIRR undetermined for %d cash flows", len(flows))
    return ReturnResult.undetermined("no root found in [-0.99, 10]")


def compute_xirr(cash_flows: Sequence[CashFlow]) -> float:
    """Annualised rate at which the cash flows' NPV is zero (365.25-day years)."""

    return evaluate_xirr(cash_flows).value_or_zero()


# --- series builders --------------------------------------------------------


def equity_series_from_trades(trades: Sequence[TradeRecord], as_of: date | None = None) -> List[EquityPoint]:
    """End-of-day invested-capital equity per trading day, plus a closing point.

    The closing point at ``as_of`` merges into the last trading day when the
    two coincide, so every day appears once.
    """

    if not trades:
        return []
    by_day: Dict[date, float] = {}
    equity = 0.0
    for trade in sorted(trades, key=lambda t: _as_date(t.date)):
        equity += trade.total if trade.is_buy else -trade.total
        by_day[_as_date(trade.date)] = max(0.0, equity)
    by_day.setdefault(as_of or date.today(), max(0.0, equity))
    return [EquityPoint(date=day, equity=value) for day, value in sorted(by_day.items())]


def external_flows_by_date(trades: Iterable[TradeRecord]) -> Dict[date, float]:
    """Net external flow per day: buys bring money in, sells take it out."""

    flows: Dict[date, float] = {}
    for trade in trades:
        day = _as_date(trade.date)
        flows[day] = flows.get(day, 0.0) + (trade.total if trade.is_buy else -trade.total)
    return flows


def cash_flows_from_trades(
    trades: Iterable[TradeRecord],
    final_value: float,
    as_of: date | None = None,
) -> List[CashFlow]:
    flows = [
        CashFlow(date=_as_date(t.date), amount=-t.total if t.is_buy else t.total)
        for t in trades
    ]
    if final_value > 0:
        flows.append(CashFlow(date=as_of or date.today(), amount=final_value))
    return flows


def cash_flows_from_transactions(
    transactions: Iterable[Transaction],
    final_value: float,
    as_of: date | None = None,
    base_currency: str | None = None,
    snapshot: FxSnapshot | None = None,
) -> List[CashFlow]:
    """Investor cash flows from deposits and withdrawals, closed by ``final_value``.

    A deposit is money committed (negative); a withdrawal is money returned
    (positive). Fees charged on a deposit stay part of the committed amount.
    With a ``snapshot`` every flow is converted into ``base_currency`` (the
    snapshot base by default), the currency ``final_value`` is expressed in.
    Rows without a timestamp are skipped.
    """

    flows: List[CashFlow] = []
    for txn in transactions:
        if txn.time is None or not (is_deposit(txn.action) or is_withdrawal(txn.action)):
            continue
        amount = txn.amount
        if snapshot is not None:
            amount = convert(amount, txn.cash_currency or None, base_currency or snapshot.base, snapshot)
        if amount:
            flows.append(CashFlow(date=txn.time.date(), amount=-amount))
    if final_value > 0:
        flows.append(CashFlow(date=as_of or date.today(), amount=final_value))
    return flows


def calculate_portfolio_metrics(
    trades: Sequence[TradeRecord],
    current_value: float | None = None,
    as_of: date | None = None,
) -> Dict[str, float]:
    """Summary metrics for a trade list; ``current_value`` defaults to net invested."""

    if not trades:
        return {"total_value": 0.0, "total_invested": 0.0, "total_returns": 0.0, "twr": 0.0, "xirr": 0.0}

    invested = sum(t.total if t.is_buy else -t.total for t in trades)
    value = invested if current_value is None else current_value
    equity = equity_series_from_trades(trades, as_of)
    if equity:
        equity[-1] = EquityPoint(date=equity[-1].date, equity=value)
    twr = compute_twr(equity, external_flows_by_date(trades))
    xirr = compute_xirr(cash_flows_from_trades(trades, value, as_of))
    return {
        "total_value": max(0.0, value),
        "total_invested": max(0.0, invested),
        "total_returns": value - invested,
        "twr": twr,
        "xirr": xirr,
    }


__all__ = [
    "calculate_portfolio_metrics",
    "cash_flows_from_trades",
    "cash_flows_from_transactions",
    "compute_twr",
    "compute_xirr",
    "equity_series_from_trades",
    "evaluate_twr",
    "evaluate_xirr",
    "external_flows_by_date",
    "npv_and_derivative",
]
