"""Domain models used by the portfolio analytics core."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Mapping, Optional

CASH_LABEL = "CASH"


@dataclass(frozen=True)
class Transaction:
    """A normalized broker export row."""

    time: Optional[datetime] = None
    action: str = ""
    currency_of_amount: str = ""
    currency_of_price: str = ""
    amount: float = 0.0
    fees: float = 0.0
    taxes: float = 0.0
    price: Optional[float] = None
    shares: Optional[float] = None
    ticker: str = ""
    name: str = ""
    split_ratio: Optional[float] = None

    @property
    def key(self) -> str:
        """Instrument identity: ticker when present, otherwise name."""

        return (self.ticker.strip() or self.name.strip())

    @property
    def cash_currency(self) -> str:
        return self.currency_of_amount or self.currency_of_price or ""

    def is_trade(self) -> bool:
        return self.shares is not None and self.price is not None


@dataclass(frozen=True)
class Position:
    """Current holding of one instrument."""

    key: str
    shares: float
    last_price: Optional[float] = None
    last_price_currency: str = ""
    last_price_timestamp: Optional[datetime] = None
    cost_basis: float = 0.0
    name: str = ""

    @property
    def is_stale(self) -> bool:
        return self.last_price is None

    @property
    def market_value(self) -> float:
        if self.last_price is None:
            return 0.0
        return self.last_price * self.shares

    @property
    def average_cost(self) -> float:
        return self.cost_basis / self.shares if self.shares else 0.0


@dataclass(frozen=True)
class AllocationRow:
    """One valued, weighted line item within a currency group."""

    currency: str
    label: str
    value: float
    weight_percent: Optional[float]
    stale: bool = False
    source_currency: str = ""
    fx_fallback: bool = False

    @property
    def is_cash(self) -> bool:
        return self.label == CASH_LABEL


@dataclass(frozen=True)
class PortfolioRow:
    symbol: str
    shares: float
    last_price: float
    position_value: float
    currency: str
    weight_percent: float


@dataclass(frozen=True)
class CashRow:
    currency: str
    cash_value: float
    weight_percent: float


@dataclass(frozen=True)
class CashFlow:
    """Signed money movement: negative = committed, positive = returned."""

    date: date
    amount: float


@dataclass(frozen=True)
class EquityPoint:
    date: date
    equity: float


@dataclass(frozen=True)
class TradeRecord:
    """External buy/sell record used to derive equity and cash-flow series."""

    date: date
    side: str
    total: float

    @property
    def is_buy(self) -> bool:
        return self.side.strip().lower() == "buy"


@dataclass(frozen=True)
class FxSnapshot:
    """Exchange rates expressed as units of each currency per one base unit."""

    base: str
    date: str
    rates: Mapping[str, float]
    is_fallback: bool = False

    @classmethod
    def identity(cls, base: str, on: str | None = None) -> "FxSnapshot":
        base = base.upper()
        return cls(
            base=base,
            date=on or date.today().isoformat(),
            rates={base: 1.0},
            is_fallback=True,
        )

    def rate(self, currency: str) -> Optional[float]:
        value = self.rates.get(currency.upper())
        if value is None or not math.isfinite(value) or value <= 0:
            return None
        return value


class ReturnStatus(str, Enum):
    DETERMINED = "DETERMINED"
    UNDETERMINED = "UNDETERMINED"


@dataclass(frozen=True)
class ReturnResult:
    """Outcome of a return computation that may be undetermined."""

    status: ReturnStatus
    rate: Optional[float] = None
    reason: Optional[str] = None
    method: Optional[str] = None

    @classmethod
    def determined(cls, rate: float, method: str | None = None) -> "ReturnResult":
        return cls(status=ReturnStatus.DETERMINED, rate=rate, method=method)

    @classmethod
    def undetermined(cls, reason: str) -> "ReturnResult":
        return cls(status=ReturnStatus.UNDETERMINED, reason=reason)

    @property
    def is_determined(self) -> bool:
        return self.status is ReturnStatus.DETERMINED

    def value_or_zero(self) -> float:
        """Return the rate, or ``0.0`` when it could not be determined."""

        return self.rate if self.rate is not None else 0.0


@dataclass(frozen=True)
class RealizedPnLRow:
    key: str
    currency: str
    time: Optional[datetime]
    quantity: float
    proceeds: float
    cost: float
    fees_taxes: float
    pnl: float


@dataclass(frozen=True)
class PnLTotals:
    proceeds: float = 0.0
    cost: float = 0.0
    fees_taxes: float = 0.0
    pnl: float = 0.0


@dataclass(frozen=True)
class RealizedPnLSummary:
    by_instrument: List[RealizedPnLRow] = field(default_factory=list)
    totals_by_currency: Dict[str, PnLTotals] = field(default_factory=dict)


@dataclass(frozen=True)
class UnrealizedPnLRow:
    key: str
    currency: str
    shares_open: float
    average_cost: float
    last_price: float
    pnl: float
    stale: bool = False
