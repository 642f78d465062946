"""Tests for time_utils."""

from datetime import datetime, timedelta, timezone

from core.energy_optimizer.time_utils import (
    TIMEZONE,
    enrich_price_data,
    filter_current_and_future_intervals,
    find_current_interval,
    format_interval_range,
    get_interval_of_day,
    get_price_at_time,
    group_consecutive_intervals,
)

from core.energy_optimizer.tests.conftest import DAY_START, build_prices


def test_interval_of_day_local_time():
    assert get_interval_of_day(datetime(2025, 11, 15, 0, 0, tzinfo=TIMEZONE)) == 0
    assert get_interval_of_day(datetime(2025, 11, 15, 14, 30, tzinfo=TIMEZONE)) == 58
    assert get_interval_of_day(datetime(2025, 11, 15, 23, 59, tzinfo=TIMEZONE)) == 95


def test_interval_of_day_converts_to_price_timezone():
    """13:30 UTC is 14:30 in Berlin in November."""
    utc_time = datetime(2025, 11, 15, 13, 30, tzinfo=timezone.utc)
    assert get_interval_of_day(utc_time) == 58


def test_enrich_price_data_sorts_indexes_and_skips_malformed():
    raw = [
        {"starts_at": "2025-11-15T00:15:00+01:00", "total": 0.2},
        {"startsAt": "2025-11-15T00:00:00+01:00", "total": "0.1"},
        {"starts_at": "not a timestamp", "total": 1.0},
        {"total": 1.0},
    ]

    prices = enrich_price_data(raw)

    assert [p.total for p in prices] == [0.1, 0.2]
    assert [p.index for p in prices] == [0, 1]
    assert [p.interval_of_day for p in prices] == [0, 1]


def test_filter_keeps_current_interval_and_future():
    prices = build_prices([0.1, 0.2, 0.3, 0.4, 0.5])
    now = DAY_START + timedelta(minutes=20)

    current = filter_current_and_future_intervals(prices, now)

    assert [p.index for p in current] == [1, 2, 3, 4]


def test_filter_drops_interval_that_just_ended():
    prices = build_prices([0.1, 0.2, 0.3])
    now = DAY_START + timedelta(minutes=15)

    current = filter_current_and_future_intervals(prices, now)

    assert [p.index for p in current] == [1, 2]


def test_find_current_interval_and_price():
    prices = build_prices([0.1, 0.2, 0.3])

    assert find_current_interval(prices, DAY_START + timedelta(minutes=29)).index == 1
    assert get_price_at_time(prices, DAY_START + timedelta(minutes=30)) == 0.3
    assert get_price_at_time(prices, DAY_START + timedelta(minutes=45)) is None
    assert get_price_at_time([], DAY_START) is None


def test_group_consecutive_intervals():
    prices = build_prices([0.1] * 7)
    selected = [prices[5], prices[0], prices[1], prices[2], prices[6]]

    groups = group_consecutive_intervals(selected)

    assert [[p.index for p in group] for group in groups] == [[0, 1, 2], [5, 6]]
    assert format_interval_range(groups[0]) == "00:00-00:45"
    assert group_consecutive_intervals([]) == []
