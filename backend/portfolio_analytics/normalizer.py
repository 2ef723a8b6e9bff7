"""Map raw broker export rows onto :class:`Transaction` records."""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from .actions import DEFAULT_ACTION_RULES, ActionRules, normalize_cash_sign
from .models import Transaction
from .parsing import parse_optional_number, parse_split_ratio, parse_timestamp

logger = logging.getLogger(__name__)

RawRow = Mapping[str, Any]

# Accepted header names per logical field, in priority order.
FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "time": ("Time", "Date", "Datetime"),
    "action": ("Action", "Type"),
    "amount": ("Amount", "Amount value", "Total amount", "Total"),
    "currency_of_amount": ("Currency (Amount)", "Currency (Total)", "Currency"),
    "currency_of_price": ("Currency (Price / share)",),
    "price": ("Price / share", "Price"),
    "shares": ("No. of shares", "Quantity", "Shares"),
    "ticker": ("Ticker", "Symbol"),
    "name": ("Name",),
    "split_ratio": ("Split ratio", "Ratio", "Split", "Reverse split"),
}

# Columns pooled into a single aggregate; every present column contributes.
FEE_COLUMNS: Tuple[str, ...] = (
    "Fee amount",
    "Deposit fee",
    "Charge amount",
    "Currency conversion fee",
)
TAX_COLUMNS: Tuple[str, ...] = (
    "Tax amount",
    "Withholding tax",
    "French transaction tax",
    "Stamp duty reserve tax",
)


def _is_blank(value: Any) -> bool:
    if isinstance(value, float) and math.isnan(value):
        return True
    return value is None or (isinstance(value, str) and not value.strip())


def resolve_field(row: RawRow, field: str, aliases: Mapping[str, Tuple[str, ...]] = FIELD_ALIASES) -> Any:
    """Return the first non-blank value among the aliases of ``field``."""

    for column in aliases.get(field, ()):
        value = row.get(column)
        if not _is_blank(value):
            return value
    return None


def _text(value: Any) -> str:
    return "" if _is_blank(value) else str(value).strip()


def _sum_columns(row: RawRow, columns: Iterable[str]) -> float:
    total = 0.0
    for column in columns:
        value = parse_optional_number(row.get(column))
        if value is not None:
            total += abs(value)
    return total


def map_row(row: RawRow, rules: ActionRules = DEFAULT_ACTION_RULES) -> Transaction:
    """Normalize one export row; malformed cells degrade to safe defaults."""

    action = _text(resolve_field(row, "action"))
    raw_amount = parse_optional_number(resolve_field(row, "amount"))
    amount = normalize_cash_sign(action, raw_amount, rules)
    currency_of_amount = _text(resolve_field(row, "currency_of_amount")).upper()
    currency_of_price = _text(resolve_field(row, "currency_of_price")).upper() or currency_of_amount

    txn = Transaction(
        time=parse_timestamp(resolve_field(row, "time")),
        action=action,
        currency_of_amount=currency_of_amount,
        currency_of_price=currency_of_price,
        amount=amount if amount is not None else 0.0,
        fees=_sum_columns(row, FEE_COLUMNS),
        taxes=_sum_columns(row, TAX_COLUMNS),
        price=parse_optional_number(resolve_field(row, "price")),
        shares=parse_optional_number(resolve_field(row, "shares")),
        ticker=_text(resolve_field(row, "ticker")),
        name=_text(resolve_field(row, "name")),
        split_ratio=parse_split_ratio(resolve_field(row, "split_ratio")),
    )
    logger.debug("Mapped export row %s -> %s", sorted(row.keys()), txn)
    return txn


def map_rows(rows: Iterable[RawRow], rules: ActionRules = DEFAULT_ACTION_RULES) -> List[Transaction]:
    return [map_row(row, rules) for row in rows]


def calc_net_cash(txn: Transaction) -> float:
    """Cash effect of a transaction after fees and taxes."""

    return txn.amount - txn.fees - txn.taxes


__all__ = [
    "FEE_COLUMNS",
    "FIELD_ALIASES",
    "TAX_COLUMNS",
    "calc_net_cash",
    "map_row",
    "map_rows",
    "resolve_field",
]
