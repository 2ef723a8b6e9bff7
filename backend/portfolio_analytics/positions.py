"""Fold transactions into current per-instrument holdings."""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from .actions import shares_delta
from .models import Position, Transaction

_EPSILON = 1e-9


@dataclass
class _Holding:
    """Mutable accumulator for a single instrument during the fold."""

    key: str
    name: str
    shares: float = 0.0
    cost_basis: float = 0.0
    last_price: Optional[float] = None
    last_price_currency: str = ""
    last_price_timestamp: Optional[datetime] = None

    def apply_split(self, ratio: float) -> None:
        # Prices observed so far predate the split.
        self.shares *= ratio
        if self.last_price is not None:
            self.last_price /= ratio

    def apply_trade(self, txn: Transaction) -> None:
        delta = shares_delta(txn.action, txn.shares)
        if delta > 0:
            self.shares += delta
            self.cost_basis += delta * (txn.price or 0.0) + txn.fees + txn.taxes
        elif delta < 0:
            held = self.shares
            if held > _EPSILON:
                sold = min(-delta, held)
                self.cost_basis -= self.cost_basis * (sold / held)
            self.shares += delta
            if self.shares <= _EPSILON:
                self.cost_basis = 0.0

    def observe_price(self, txn: Transaction) -> None:
        price = txn.price
        if price is None or not math.isfinite(price):
            return
        newer = txn.time is not None and (
            self.last_price_timestamp is None or txn.time > self.last_price_timestamp
        )
        if self.last_price is None or newer:
            self.last_price = price
            self.last_price_currency = txn.currency_of_price or self.last_price_currency
            self.last_price_timestamp = txn.time

    def to_position(self) -> Position:
        return Position(
            key=self.key,
            name=self.name,
            shares=self.shares,
            last_price=self.last_price,
            last_price_currency=self.last_price_currency,
            last_price_timestamp=self.last_price_timestamp,
            cost_basis=self.cost_basis,
        )


def chronological(transactions: Iterable[Transaction]) -> List[Transaction]:
    """Stable sort by time; rows without a timestamp come first in input order."""

    return sorted(transactions, key=lambda t: (t.time is not None, t.time or datetime.min))


def fold_holdings(transactions: Sequence[Transaction]) -> Dict[str, _Holding]:
    holdings: Dict[str, _Holding] = {}
    for txn in chronological(transactions):
        key = txn.key
        if not key:
            continue
        holding = holdings.get(key)
        if holding is None:
            holding = _Holding(key=key, name=txn.name, last_price_currency=txn.currency_of_price)
            holdings[key] = holding

        if txn.split_ratio is not None:
            holding.apply_split(txn.split_ratio)
            continue
        holding.apply_trade(txn)
        holding.observe_price(txn)
    return holdings


def build_positions(transactions: Sequence[Transaction]) -> List[Position]:
    """Return holdings with a positive share count.

    Buys add shares, sells remove them, split rows multiply the running share
    count without touching cost basis, and every other action leaves shares
    unchanged. The price of the latest timestamped row wins; rows without a
    timestamp never displace an already observed price.
    """

    holdings = fold_holdings(transactions)
    return [h.to_position() for h in holdings.values() if h.shares > 0]


__all__ = ["build_positions", "chronological", "fold_holdings", "shares_delta"]
