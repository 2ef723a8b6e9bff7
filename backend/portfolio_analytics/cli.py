"""Print holdings, allocations and returns for a broker CSV export."""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Sequence

from .config import get_settings
from .csv_import import ExportReadError, read_export
from .fx import FxRateCache
from .logging import setup_logging
from .models import AllocationRow
from .pipeline import PortfolioReport, build_portfolio_report
from .telemetry import setup_telemetry


class _OfflineClient:
    """Rates client that always fails so the cache serves identity rates."""

    async def get(self, url: str, params: dict[str, object], timeout: float):
        raise ConnectionError("offline mode")


def _format_weight(row: AllocationRow) -> str:
    if row.weight_percent is None:
        return "    n/a"
    return f"{row.weight_percent:6.2f}%"


def _print_rows(title: str, rows: Sequence[AllocationRow]) -> None:
    print(title)
    for row in rows:
        flags = []
        if row.stale:
            flags.append("no price")
        if row.fx_fallback:
            flags.append(f"nominal {row.source_currency}")
        suffix = f"  ({', '.join(flags)})" if flags else ""
        print(f"  {row.currency or '-':<4} {row.label:<24} {row.value:>16,.2f} {_format_weight(row)}{suffix}")


def _print_report(report: PortfolioReport) -> None:
    print(f"Transactions: {len(report.transactions)}  Positions: {len(report.positions)}")
    for position in report.positions:
        price = "n/a" if position.last_price is None else f"{position.last_price:,.4f}"
        print(
            f"  {position.key:<24} {position.shares:>14,.4f} @ {price} {position.last_price_currency}"
            f"  avg cost {position.average_cost:,.4f}"
        )
    _print_rows("By currency:", report.by_currency)
    _print_rows(f"In {report.base_currency}:", report.in_base)
    print(f"Total ({report.base_currency}): {report.total_in_base:,.2f}")
    for currency, totals in report.realized.totals_by_currency.items():
        print(f"Realized P&L {currency or '-'}: {totals.pnl:,.2f}")
    if report.xirr.is_determined:
        print(f"XIRR: {report.xirr.rate:.4%} ({report.xirr.method})")
    else:
        print(f"XIRR: undetermined ({report.xirr.reason})")
    for currency, total in report.closure_issues.items():
        print(f"WARNING: weights for {currency or '-'} sum to {total:.4f}%")


async def _run(path: str, base: str | None, offline: bool) -> PortfolioReport:
    rows = read_export(path)
    cache = FxRateCache(client=_OfflineClient() if offline else None)
    return await build_portfolio_report(rows, base, cache)


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Summarise a broker CSV export")
    parser.add_argument("export", help="Path to the CSV export")
    parser.add_argument("--base", default=None, help="Base currency for the unified view")
    parser.add_argument("--offline", action="store_true", help="Skip the FX request and use face values")
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(args.log_level or settings.log_level)
    setup_telemetry(settings)
    try:
        report = asyncio.run(_run(args.export, args.base, args.offline))
    except ExportReadError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    _print_report(report)
    return 0


if __name__ == "__main__":
    sys.exit(main())
