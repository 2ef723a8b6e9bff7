"""Pipeline functions turning raw export rows into a portfolio report."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Mapping, Sequence

from .actions import ActionRules
from .allocation import (
    check_weight_closure,
    portfolio_and_cash_by_currency,
    value_and_weights_by_currency,
    value_and_weights_in_base,
)
from .config import get_settings
from .fx import FxRateCache, get_fx_cache
from .models import (
    AllocationRow,
    CashRow,
    PortfolioRow,
    Position,
    RealizedPnLSummary,
    ReturnResult,
    Transaction,
    UnrealizedPnLRow,
)
from .normalizer import RawRow, map_rows
from .pnl import compute_realized_pnl, compute_unrealized_pnl
from .positions import build_positions
from .returns import cash_flows_from_transactions, evaluate_xirr

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PortfolioCalculation:
    transactions: List[Transaction]
    positions: List[Position]
    portfolio: List[PortfolioRow]
    cash: List[CashRow]


@dataclass(frozen=True)
class PortfolioReport:
    base_currency: str
    transactions: List[Transaction]
    positions: List[Position]
    by_currency: List[AllocationRow]
    in_base: List[AllocationRow]
    closure_issues: Dict[str, float] = field(default_factory=dict)
    realized: RealizedPnLSummary = field(default_factory=RealizedPnLSummary)
    unrealized: List[UnrealizedPnLRow] = field(default_factory=list)
    xirr: ReturnResult = field(default_factory=lambda: ReturnResult.undetermined("not computed"))

    @property
    def total_in_base(self) -> float:
        return sum(row.value for row in self.in_base)


def _rules() -> ActionRules:
    extra: Mapping[str, str] = get_settings().extra_action_rules
    return ActionRules.with_overrides(extra) if extra else ActionRules()


def calc_portfolio(rows: Sequence[RawRow]) -> PortfolioCalculation:
    """Map export rows and split holdings into instrument and cash tables."""

    transactions = map_rows(rows, _rules())
    portfolio, cash = portfolio_and_cash_by_currency(transactions)
    logger.info(
        "Calculated portfolio from %d rows: %d instruments, %d cash buckets",
        len(transactions),
        len(portfolio),
        len(cash),
    )
    return PortfolioCalculation(
        transactions=transactions,
        positions=build_positions(transactions),
        portfolio=portfolio,
        cash=cash,
    )


async def build_portfolio_report(
    rows: Sequence[RawRow],
    base_currency: str | None = None,
    fx_cache: FxRateCache | None = None,
    *,
    as_of: date | None = None,
) -> PortfolioReport:
    """Run the full flow: rows → transactions → positions/cash → FX-converted weights."""

    settings = get_settings()
    base = (base_currency or settings.base_currency).upper()
    transactions = map_rows(rows, _rules())
    by_currency = value_and_weights_by_currency(transactions)
    cache = fx_cache or get_fx_cache()
    in_base = await value_and_weights_in_base(transactions, base, cache)
    snapshot = await cache.get_rates(base)
    closure_issues = check_weight_closure(by_currency, settings.weight_tolerance)

    total = sum(row.value for row in in_base)
    xirr = evaluate_xirr(cash_flows_from_transactions(transactions, total, as_of, base, snapshot))

    return PortfolioReport(
        base_currency=base,
        transactions=transactions,
        positions=build_positions(transactions),
        by_currency=by_currency,
        in_base=in_base,
        closure_issues=closure_issues,
        realized=compute_realized_pnl(transactions),
        unrealized=compute_unrealized_pnl(transactions),
        xirr=xirr,
    )


__all__ = ["PortfolioCalculation", "PortfolioReport", "build_portfolio_report", "calc_portfolio"]
