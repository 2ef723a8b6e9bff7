"""Classification of free-text broker action labels.

Broker exports phrase the same event differently ("Market buy", "Limit buy",
"Dividend (Ordinary)", "Interest on cash"). Labels are matched by
case-insensitive substring against an ordered rule table; the first matching
rule wins. Cash signs follow the cash-account perspective: money entering the
brokerage account is positive, money leaving it is negative.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping, Tuple


class CashDirection(str, Enum):
    INFLOW = "inflow"
    OUTFLOW = "outflow"


@dataclass(frozen=True)
class ActionRule:
    substring: str
    direction: CashDirection


DEFAULT_RULES: Tuple[ActionRule, ...] = (
    ActionRule("buy", CashDirection.OUTFLOW),
    ActionRule("sell", CashDirection.INFLOW),
    ActionRule("dividend", CashDirection.INFLOW),
    ActionRule("interest", CashDirection.INFLOW),
    ActionRule("deposit", CashDirection.INFLOW),
    ActionRule("withdraw", CashDirection.OUTFLOW),
)


@dataclass(frozen=True)
class ActionRules:
    """Ordered substring → cash direction table."""

    rules: Tuple[ActionRule, ...] = DEFAULT_RULES

    @classmethod
    def with_overrides(cls, extra: Mapping[str, str] | Iterable[ActionRule]) -> "ActionRules":
        """Return a table where ``extra`` rules are consulted before the defaults."""

        if isinstance(extra, Mapping):
            extra_rules = tuple(
                ActionRule(substring.lower(), CashDirection(direction))
                for substring, direction in extra.items()
            )
        else:
            extra_rules = tuple(extra)
        return cls(rules=extra_rules + DEFAULT_RULES)

    def direction(self, action: str | None) -> CashDirection | None:
        label = (action or "").lower()
        for rule in self.rules:
            if rule.substring and rule.substring in label:
                return rule.direction
        return None


DEFAULT_ACTION_RULES = ActionRules()


def normalize_cash_sign(
    action: str | None,
    amount: float | None,
    rules: ActionRules = DEFAULT_ACTION_RULES,
) -> float | None:
    """Apply the action-driven sign convention to a raw cash magnitude."""

    if amount is None:
        return None
    direction = rules.direction(action)
    if direction is CashDirection.OUTFLOW:
        return -abs(amount)
    if direction is CashDirection.INFLOW:
        return abs(amount)
    return amount


def _label(action: str | None) -> str:
    return (action or "").lower()


def is_buy(action: str | None) -> bool:
    return "buy" in _label(action)


def is_sell(action: str | None) -> bool:
    return "sell" in _label(action)


def is_deposit(action: str | None) -> bool:
    return "deposit" in _label(action)


def is_withdrawal(action: str | None) -> bool:
    return "withdraw" in _label(action)


def shares_delta(action: str | None, shares: float | None) -> float:
    """Share-count change implied by a row: buys add, sells remove, others 0."""

    quantity = abs(shares or 0.0)
    if is_buy(action):
        return quantity
    if is_sell(action):
        return -quantity
    return 0.0


__all__ = [
    "ActionRule",
    "ActionRules",
    "CashDirection",
    "DEFAULT_ACTION_RULES",
    "DEFAULT_RULES",
    "is_buy",
    "is_deposit",
    "is_sell",
    "is_withdrawal",
    "normalize_cash_sign",
    "shares_delta",
]
