"""Average-cost realized and unrealized profit and loss."""
from __future__ import annotations

from typing import Dict, List, Sequence

from .actions import is_sell
from .models import PnLTotals, RealizedPnLRow, RealizedPnLSummary, Transaction, UnrealizedPnLRow
from .positions import _Holding, chronological, fold_holdings


def _realized_row(holding: _Holding, txn: Transaction) -> RealizedPnLRow | None:
    if txn.price is None or not txn.shares or holding.shares <= 0:
        return None
    quantity = min(abs(txn.shares), holding.shares)
    proceeds = quantity * txn.price
    cost = quantity * (holding.cost_basis / holding.shares)
    fees_taxes = txn.fees + txn.taxes
    return RealizedPnLRow(
        key=holding.key,
        currency=txn.currency_of_price,
        time=txn.time,
        quantity=quantity,
        proceeds=proceeds,
        cost=cost,
        fees_taxes=fees_taxes,
        pnl=proceeds - cost - fees_taxes,
    )


def compute_realized_pnl(transactions: Sequence[Transaction]) -> RealizedPnLSummary:
    """Realized P&L per sell, with the average cost of the shares held at that time."""

    holdings: Dict[str, _Holding] = {}
    rows: List[RealizedPnLRow] = []
    for txn in chronological(transactions):
        key = txn.key
        if not key:
            continue
        holding = holdings.setdefault(key, _Holding(key=key, name=txn.name))
        if txn.split_ratio is not None:
            holding.apply_split(txn.split_ratio)
            continue
        if is_sell(txn.action):
            row = _realized_row(holding, txn)
            if row is not None:
                rows.append(row)
        holding.apply_trade(txn)

    totals: Dict[str, PnLTotals] = {}
    for row in rows:
        current = totals.get(row.currency, PnLTotals())
        totals[row.currency] = PnLTotals(
            proceeds=current.proceeds + row.proceeds,
            cost=current.cost + row.cost,
            fees_taxes=current.fees_taxes + row.fees_taxes,
            pnl=current.pnl + row.pnl,
        )
    return RealizedPnLSummary(by_instrument=rows, totals_by_currency=totals)


def compute_unrealized_pnl(transactions: Sequence[Transaction]) -> List[UnrealizedPnLRow]:
    """Open shares marked at their last observed price against average cost."""

    rows: List[UnrealizedPnLRow] = []
    for holding in fold_holdings(transactions).values():
        if holding.shares <= 0:
            continue
        average_cost = holding.cost_basis / holding.shares
        stale = holding.last_price is None
        last_price = holding.last_price if holding.last_price is not None else 0.0
        rows.append(
            UnrealizedPnLRow(
                key=holding.key,
                currency=holding.last_price_currency,
                shares_open=holding.shares,
                average_cost=average_cost,
                last_price=last_price,
                pnl=0.0 if stale else holding.shares * (last_price - average_cost),
                stale=stale,
            )
        )
    return rows


__all__ = ["compute_realized_pnl", "compute_unrealized_pnl"]
