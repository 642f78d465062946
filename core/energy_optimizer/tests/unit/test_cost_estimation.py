"""Tests for estimating the cost of untracked battery energy."""

import pytest

from core.energy_optimizer.charge_log import calculate_battery_energy_cost, create_charge_entry
from core.energy_optimizer.cost_estimation import (
    combine_battery_cost,
    estimate_battery_energy_cost,
    estimate_unknown_energy_price,
)
from core.energy_optimizer.models import ChargeInterval, Strategy
from core.energy_optimizer.tests.conftest import build_prices


def strategy_charging_at(prices):
    return Strategy(
        charge_intervals=[
            ChargeInterval.from_interval(p, planned_energy_kwh=1.0) for p in prices
        ]
    )


class TestUnknownEnergyPrice:
    def test_fallback_price(self):
        assert estimate_unknown_energy_price() == pytest.approx(0.20)

    def test_recent_prices(self):
        assert estimate_unknown_energy_price(prices=build_prices([0.1, 0.2])) == pytest.approx(0.15)

    def test_only_first_day_of_prices(self):
        prices = build_prices([0.1] * 96 + [1.0] * 20)
        assert estimate_unknown_energy_price(prices=prices) == pytest.approx(0.1)

    def test_planned_charge_prices_take_priority(self):
        strategy = strategy_charging_at(build_prices([0.05, 0.15]))
        prices = build_prices([0.3] * 4)

        assert estimate_unknown_energy_price(strategy, prices) == pytest.approx(0.10)

    def test_strategy_without_charges_uses_prices(self):
        assert estimate_unknown_energy_price(Strategy(), build_prices([0.3])) == pytest.approx(0.3)


class TestEstimateBatteryEnergyCost:
    def test_assumes_70_percent_grid(self):
        result = estimate_battery_energy_cost(0.5, 10.0)

        assert result.total_kwh == pytest.approx(5.0)
        assert result.grid_kwh == pytest.approx(3.5)
        assert result.solar_kwh == pytest.approx(1.5)
        assert result.total_cost == pytest.approx(0.70)
        assert result.avg_price == pytest.approx(0.14)
        assert result.unknown_kwh == pytest.approx(5.0)
        assert result.tracked_kwh == 0.0
        assert result.is_estimated is True

    def test_near_empty_battery(self):
        assert estimate_battery_energy_cost(0.0005, 10.0) is None
        assert estimate_battery_energy_cost(0.0011, 10.0) is not None


class TestCombineBatteryCost:
    def test_fully_tracked_is_not_estimated(self):
        tracked = calculate_battery_energy_cost([create_charge_entry(5.0, 0.0, 0.2)])

        result = combine_battery_cost(tracked, 5.0, 10.0)

        assert result.avg_price == pytest.approx(0.2)
        assert result.unknown_kwh == 0.0
        assert result.stored_kwh == 5.0
        assert result.is_estimated is False

    def test_ledger_result_is_not_modified(self):
        tracked = calculate_battery_energy_cost([create_charge_entry(5.0, 0.0, 0.2)])

        result = combine_battery_cost(tracked, 5.0, 10.0)

        assert result is not tracked
        assert tracked.stored_kwh is None
        assert tracked.tracked_kwh is None

    def test_tracked_plus_unknown(self):
        """3 kWh tracked @0.20 plus 2 kWh unknown @0.20 (70% grid)."""
        tracked = calculate_battery_energy_cost([create_charge_entry(3.0, 0.0, 0.2)])

        result = combine_battery_cost(tracked, 5.0, 10.0)

        assert result.total_kwh == pytest.approx(5.0)
        assert result.tracked_kwh == pytest.approx(3.0)
        assert result.unknown_kwh == pytest.approx(2.0)
        assert result.solar_kwh == pytest.approx(0.6)
        assert result.grid_kwh == pytest.approx(4.4)
        assert result.total_cost == pytest.approx(0.88)
        assert result.avg_price == pytest.approx(0.176)
        assert result.unknown_avg_price == pytest.approx(0.2)
        assert result.is_estimated is True

    def test_untracked_battery_is_estimated(self):
        result = combine_battery_cost(None, 4.0, 10.0, prices=build_prices([0.3]))

        assert result.total_kwh == pytest.approx(4.0)
        assert result.avg_price == pytest.approx(0.21)
        assert result.is_estimated is True

    def test_empty_battery(self):
        assert combine_battery_cost(None, 0.005, 10.0) is None
