from datetime import datetime

import pytest

from portfolio_analytics.parsing import parse_optional_number, parse_split_ratio, parse_timestamp


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("123.45", 123.45),
        ("123,45", 123.45),
        ("1,234.56", 1234.56),
        ("1.234,56", 1234.56),
        ("€123.45", 123.45),
        ("$1,234.56", 1234.56),
        ("1.234,56 Kč", 1234.56),
        ("100 USD", 100.0),
        (" 123.45 ", 123.45),
        ("1 234.56", 1234.56),
        ("1 234,56", 1234.56),
        ("-123.45", -123.45),
        ("(123.45)", -123.45),
        ("1,234,567.89", 1234567.89),
        ("1.234.567,89", 1234567.89),
        ("1,2345", 12345.0),
        ("1,234,567", 1234567.0),
        ("12,3456", 123456.0),
        ("1,234", 1.234),
        ("1e3", 1000.0),
        (7, 7.0),
        (2.5, 2.5),
    ],
)
def test_parse_optional_number_accepts_broker_formats(raw, expected):
    assert parse_optional_number(raw) == pytest.approx(expected)


@pytest.mark.parametrize("raw", ["", "   ", "abc", None, "inf", "nan", "1_000", "1.2.3", True, float("nan")])
def test_parse_optional_number_rejects_non_numbers(raw):
    assert parse_optional_number(raw) is None


@pytest.mark.parametrize(
    "raw, expected",
    [("2:1", 2.0), ("3/2", 1.5), (" 4 : 1 ", 4.0), ("1:10", 0.1), ("1.5", 1.5), ("2", 2.0), (3, 3.0)],
)
def test_parse_split_ratio_shapes(raw, expected):
    assert parse_split_ratio(raw) == pytest.approx(expected)


@pytest.mark.parametrize("raw", [None, "", "abc", "0:1", "2:0", "-2", "2:1:1", "a/b", "0", -1])
def test_parse_split_ratio_rejects_other_shapes(raw):
    assert parse_split_ratio(raw) is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2024-01-02 09:30:00", datetime(2024, 1, 2, 9, 30)),
        ("2024-01-02T09:30:00Z", datetime(2024, 1, 2, 9, 30)),
        ("2024-01-02T10:30:00+01:00", datetime(2024, 1, 2, 9, 30)),
        ("02.01.2024", datetime(2024, 1, 2)),
        ("02/01/2024 09:30", datetime(2024, 1, 2, 9, 30)),
    ],
)
def test_parse_timestamp_formats(raw, expected):
    assert parse_timestamp(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "yesterday", "2024-13-45"])
def test_parse_timestamp_invalid(raw):
    assert parse_timestamp(raw) is None
