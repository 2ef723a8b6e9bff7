"""Permissive parsers for values found in broker export cells.

Every function here is total: malformed input yields ``None`` instead of an
exception so a single bad cell never interrupts an import.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timezone
from typing import Any

_CURRENCY_MARKERS = re.compile(r"[€$£¥₹]|Kč|USD|EUR|CZK|GBP", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")
_PLAIN_NUMBER = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_RATIO = re.compile(r"^\s*([^:/]+?)\s*[:/]\s*([^:/]+?)\s*$")

_TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d",
    "%d.%m.%Y %H:%M:%S",
    "%d.%m.%Y %H:%M",
    "%d.%m.%Y",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y",
    "%Y%m%d",
)


def _normalise_separators(text: str) -> str:
    last_comma = text.rfind(",")
    last_dot = text.rfind(".")
    if last_comma == -1:
        return text
    if last_dot == -1:
        # 1,234,567 and 1,2345 group thousands; 123,45 is a decimal comma
        if text.count(",") > 1 or len(text[last_comma + 1 :]) > 3:
            return text.replace(",", "")
        return text.replace(",", ".")
    if last_comma > last_dot:
        # 1.234.567,89 -> 1234567.89
        return text.replace(".", "").replace(",", ".", 1)
    # 1,234,567.89 -> 1234567.89
    return text.replace(",", "")


def parse_optional_number(raw: Any) -> float | None:
    """Parse a numeric cell, returning ``None`` when no number can be read.

    Rules:
    * ``None``, blank strings and booleans are not numbers.
    * Whitespace (including non-breaking spaces), currency symbols and the
      codes USD/EUR/CZK/GBP are ignored.
    * ``(123.45)`` is negative.
    * When both ``,`` and ``.`` appear, the rightmost one is the decimal
      separator and the other one groups thousands.
    * A single comma followed by at most three characters is a decimal comma.
      Several commas, or a longer tail, group thousands.
    * Non-finite results are rejected.
    """

    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
        return value if math.isfinite(value) else None

    text = _WHITESPACE.sub("", str(raw))
    text = _CURRENCY_MARKERS.sub("", text)
    if not text:
        return None

    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]

    text = _normalise_separators(text)
    if not _PLAIN_NUMBER.match(text):
        return None
    value = float(text)
    if not math.isfinite(value):
        return None
    return -abs(value) if negative else value


def parse_split_ratio(raw: Any) -> float | None:
    """Parse ``A:B``, ``A/B`` or a bare number into a positive split multiplier."""

    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
        return value if math.isfinite(value) and value > 0 else None

    text = str(raw).strip()
    if not text:
        return None

    match = _RATIO.match(text)
    if match:
        numerator = parse_optional_number(match.group(1))
        denominator = parse_optional_number(match.group(2))
        if numerator is None or denominator is None:
            return None
        if numerator <= 0 or denominator <= 0:
            return None
        return numerator / denominator

    if ":" in text or "/" in text:
        return None
    value = parse_optional_number(text)
    if value is None or value <= 0:
        return None
    return value


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_timestamp(raw: Any) -> datetime | None:
    """Parse an execution timestamp into a naive UTC ``datetime``."""

    if raw is None:
        return None
    if isinstance(raw, datetime):
        return _as_naive_utc(raw)
    if isinstance(raw, date):
        return datetime(raw.year, raw.month, raw.day)

    text = str(raw).strip()
    if not text:
        return None
    iso_text = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    try:
        return _as_naive_utc(datetime.fromisoformat(iso_text))
    except ValueError:
        pass
    for fmt in _TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


__all__ = ["parse_optional_number", "parse_split_ratio", "parse_timestamp"]
