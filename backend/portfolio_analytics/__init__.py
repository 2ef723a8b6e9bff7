"""Core package for broker-export portfolio analytics."""

from .allocation import (
    check_weight_closure,
    portfolio_and_cash_by_currency,
    value_and_weights_by_currency,
    value_and_weights_in_base,
)
from .fx import FxRateCache, convert
from .models import (
    AllocationRow,
    CashFlow,
    EquityPoint,
    FxSnapshot,
    Position,
    ReturnResult,
    ReturnStatus,
    Transaction,
)
from .normalizer import calc_net_cash, map_row
from .parsing import parse_optional_number, parse_split_ratio
from .pipeline import build_portfolio_report, calc_portfolio
from .positions import build_positions
from .returns import compute_twr, compute_xirr, evaluate_twr, evaluate_xirr

__all__ = [
    "AllocationRow",
    "CashFlow",
    "EquityPoint",
    "FxRateCache",
    "FxSnapshot",
    "Position",
    "ReturnResult",
    "ReturnStatus",
    "Transaction",
    "build_portfolio_report",
    "build_positions",
    "calc_net_cash",
    "calc_portfolio",
    "check_weight_closure",
    "compute_twr",
    "compute_xirr",
    "convert",
    "evaluate_twr",
    "evaluate_xirr",
    "map_row",
    "parse_optional_number",
    "parse_split_ratio",
    "portfolio_and_cash_by_currency",
    "value_and_weights_by_currency",
    "value_and_weights_in_base",
]
