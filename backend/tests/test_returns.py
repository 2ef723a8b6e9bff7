import logging
from datetime import date, datetime

import pytest

from portfolio_analytics.models import CashFlow, EquityPoint, FxSnapshot, ReturnStatus, TradeRecord, Transaction
from portfolio_analytics.returns import (
    calculate_portfolio_metrics,
    cash_flows_from_trades,
    cash_flows_from_transactions,
    compute_twr,
    compute_xirr,
    equity_series_from_trades,
    evaluate_twr,
    evaluate_xirr,
    external_flows_by_date,
    npv_and_derivative,
)


def _series(*values):
    return [EquityPoint(date=date(2024, 1, i + 1), equity=v) for i, v in enumerate(values)]


def test_twr_without_flows():
    assert compute_twr(_series(1000, 1100, 1045)) == pytest.approx(0.045)


def test_twr_strips_external_flows():
    flows = {date(2024, 1, 2): 500.0}
    assert compute_twr(_series(1000, 1600), flows) == pytest.approx(0.1)


def test_twr_accepts_datetime_and_string_keys():
    assert compute_twr(_series(1000, 1600), {datetime(2024, 1, 2, 15, 30): 500.0}) == pytest.approx(0.1)
    assert compute_twr(_series(1000, 1600), {"2024-01-02T00:00:00": 300.0, "2024-01-02": 200.0}) == pytest.approx(0.1)


def test_twr_sorts_points_by_date():
    points = list(reversed(_series(1000, 1100, 1045)))
    assert compute_twr(points) == pytest.approx(0.045)


def test_twr_skips_periods_starting_at_zero():
    assert compute_twr(_series(0, 100, 110)) == pytest.approx(0.1)


@pytest.mark.parametrize("values", [(), (1000,), (0, 0), (-5, 10)])
def test_twr_undetermined_is_zero(values):
    result = evaluate_twr(_series(*values))
    assert result.status is ReturnStatus.UNDETERMINED
    assert result.reason
    assert compute_twr(_series(*values)) == 0.0


def test_npv_and_derivative():
    npv, derivative = npv_and_derivative(0.1, [(0.0, -100.0), (1.0, 110.0)])
    assert npv == pytest.approx(0.0)
    assert derivative == pytest.approx(-110.0 / 1.21)


def test_xirr_one_year():
    flows = [CashFlow(date(2023, 1, 1), -10000.0), CashFlow(date(2024, 1, 1), 11250.0)]
    result = evaluate_xirr(flows)
    assert result.is_determined
    assert result.method == "newton"
    assert result.rate == pytest.approx(0.125, abs=1e-3)
    assert compute_xirr(flows) == pytest.approx(result.rate)


def test_xirr_order_of_flows_does_not_matter():
    flows = [
        CashFlow(date(2024, 1, 1), 11250.0),
        CashFlow(date(2023, 1, 1), -5000.0),
        CashFlow(date(2023, 1, 1), -5000.0),
    ]
    assert compute_xirr(flows) == pytest.approx(0.125, abs=1e-3)


def test_xirr_falls_back_to_bisection():
    flows = [CashFlow(date(2023, 1, 1), -1000.0), CashFlow(date(2024, 1, 1), 50.0)]
    result = evaluate_xirr(flows)
    assert result.is_determined
    assert result.method == "bisection"
    assert result.rate == pytest.approx(-0.95, abs=1e-3)


def test_xirr_outside_bracket_is_undetermined():
    flows = [CashFlow(date(2023, 1, 1), -100.0), CashFlow(date(2024, 1, 1), 10000.0)]
    result = evaluate_xirr(flows)
    assert result.status is ReturnStatus.UNDETERMINED
    assert compute_xirr(flows) == 0.0


@pytest.mark.parametrize(
    "flows",
    [
        [],
        [CashFlow(date(2023, 1, 1), 100.0), CashFlow(date(2024, 1, 1), 50.0)],
        [CashFlow(date(2023, 1, 1), -100.0), CashFlow(date(2024, 1, 1), -50.0)],
        [CashFlow(date(2023, 1, 1), 0.0)],
    ],
)
def test_xirr_degenerate_flows(flows):
    assert compute_xirr(flows) == 0.0
    assert not evaluate_xirr(flows).is_determined


TRADES = [
    TradeRecord(date=date(2024, 1, 1), side="buy", total=1000.0),
    TradeRecord(date=date(2024, 1, 2), side="Sell", total=200.0),
]


def test_equity_series_from_trades():
    points = equity_series_from_trades(list(reversed(TRADES)), as_of=date(2024, 1, 3))
    assert [(p.date, p.equity) for p in points] == [
        (date(2024, 1, 1), 1000.0),
        (date(2024, 1, 2), 800.0),
        (date(2024, 1, 3), 800.0),
    ]
    assert equity_series_from_trades([]) == []


def test_external_flows_and_cash_flows_from_trades():
    assert external_flows_by_date(TRADES) == {date(2024, 1, 1): 1000.0, date(2024, 1, 2): -200.0}
    flows = cash_flows_from_trades(TRADES, 900.0, as_of=date(2024, 1, 3))
    assert [(f.date, f.amount) for f in flows] == [
        (date(2024, 1, 1), -1000.0),
        (date(2024, 1, 2), 200.0),
        (date(2024, 1, 3), 900.0),
    ]
    assert len(cash_flows_from_trades(TRADES, 0.0)) == 2


def test_cash_flows_from_transactions():
    txns = [
        Transaction(time=datetime(2024, 1, 1, 9), action="Deposit", amount=1000.0, fees=2.0),
        Transaction(time=datetime(2024, 2, 1), action="Market buy", amount=-500.0),
        Transaction(time=datetime(2024, 3, 1), action="Withdrawal", amount=-200.0),
        Transaction(action="Deposit", amount=50.0),
    ]
    flows = cash_flows_from_transactions(txns, 1000.0, as_of=date(2024, 12, 31))
    assert [(f.date, f.amount) for f in flows] == [
        (date(2024, 1, 1), -1000.0),
        (date(2024, 3, 1), 200.0),
        (date(2024, 12, 31), 1000.0),
    ]


def test_calculate_portfolio_metrics():
    trades = [TradeRecord(date=date(2023, 1, 1), side="buy", total=1000.0)]
    metrics = calculate_portfolio_metrics(trades, current_value=1100.0, as_of=date(2024, 1, 1))

    assert metrics["total_value"] == 1100.0
    assert metrics["total_invested"] == 1000.0
    assert metrics["total_returns"] == pytest.approx(100.0)
    assert metrics["twr"] == pytest.approx(0.1)
    assert metrics["xirr"] == pytest.approx(0.1, abs=1e-3)


def test_calculate_portfolio_metrics_empty():
    assert calculate_portfolio_metrics([]) == {
        "total_value": 0.0,
        "total_invested": 0.0,
        "total_returns": 0.0,
        "twr": 0.0,
        "xirr": 0.0,
    }


def test_twr_reads_broker_date_keys():
    assert compute_twr(_series(1000, 1600), {"02/01/2024": 500.0}) == pytest.approx(0.1)


def test_twr_ignores_unreadable_flow_dates(caplog):
    caplog.set_level(logging.WARNING, logger="portfolio_analytics.returns")
    assert compute_twr(_series(1000, 1100), {"someday": 500.0}) == pytest.approx(0.1)
    assert "unreadable date" in caplog.text


def test_equity_series_has_one_point_per_day():
    trades = [
        TradeRecord(date=date(2024, 1, 1), side="buy", total=1000.0),
        TradeRecord(date=date(2024, 1, 1), side="buy", total=500.0),
        TradeRecord(date=date(2024, 1, 2), side="sell", total=200.0),
    ]
    points = equity_series_from_trades(trades, as_of=date(2024, 1, 2))
    assert [(p.date, p.equity) for p in points] == [
        (date(2024, 1, 1), 1500.0),
        (date(2024, 1, 2), 1300.0),
    ]


def test_metrics_with_same_day_trades():
    trades = [
        TradeRecord(date=date(2024, 1, 1), side="buy", total=1000.0),
        TradeRecord(date=date(2024, 1, 1), side="buy", total=500.0),
    ]
    metrics = calculate_portfolio_metrics(trades, current_value=1500.0, as_of=date(2024, 6, 1))
    assert metrics["twr"] == pytest.approx(0.0)


def test_metrics_when_closing_on_last_trade_day():
    trades = [
        TradeRecord(date=date(2024, 1, 1), side="buy", total=1000.0),
        TradeRecord(date=date(2024, 1, 2), side="buy", total=500.0),
    ]
    metrics = calculate_portfolio_metrics(trades, current_value=1650.0, as_of=date(2024, 1, 2))
    assert metrics["twr"] == pytest.approx(0.15)


def test_cash_flows_from_transactions_in_base_currency():
    snapshot = FxSnapshot(base="EUR", date="2024-01-01", rates={"EUR": 1.0, "USD": 1.1})
    txns = [
        Transaction(time=datetime(2024, 1, 1), action="Deposit", amount=1100.0, currency_of_amount="USD"),
        Transaction(time=datetime(2024, 2, 1), action="Deposit", amount=500.0, currency_of_amount="EUR"),
        Transaction(time=datetime(2024, 3, 1), action="Withdrawal", amount=-330.0, currency_of_amount="USD"),
    ]
    flows = cash_flows_from_transactions(txns, 1300.0, as_of=date(2024, 12, 31), base_currency="EUR", snapshot=snapshot)
    assert [(f.date, f.amount) for f in flows] == [
        (date(2024, 1, 1), pytest.approx(-1000.0)),
        (date(2024, 2, 1), pytest.approx(-500.0)),
        (date(2024, 3, 1), pytest.approx(300.0)),
        (date(2024, 12, 31), 1300.0),
    ]
