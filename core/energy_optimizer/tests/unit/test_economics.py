"""Tests for thresholds, profitability and cost reporting."""

import pytest

from core.energy_optimizer.economics import (
    calculate_baseline_cost,
    calculate_expensive_threshold,
    calculate_trade_profitability,
    existing_energy_discharge_coefficient,
    find_expensive_intervals,
    is_existing_energy_profitable,
    summarize_economics,
    summarize_planned_charging,
)
from core.energy_optimizer.models import ChargeInterval, HouseSignals
from core.energy_optimizer.tests.conftest import build_prices


def test_threshold_uses_larger_of_factor_and_percentile():
    prices = build_prices([0.1, 0.2, 0.3, 0.4])

    avg_price, threshold = calculate_expensive_threshold(prices, 1.05)

    assert avg_price == pytest.approx(0.25)
    assert threshold == pytest.approx(0.31)  # p70 beats 0.2625


def test_threshold_uses_factor_when_higher():
    prices = build_prices([0.1, 0.2, 0.3, 0.4])

    _, threshold = calculate_expensive_threshold(prices, 1.5)

    assert threshold == pytest.approx(0.375)


def test_flat_prices_have_no_expensive_intervals():
    prices = build_prices([0.25] * 96)

    _, threshold = calculate_expensive_threshold(prices, 1.05)

    assert find_expensive_intervals(prices, threshold) == []


def test_empty_series():
    assert calculate_expensive_threshold([], 1.05) == (0.0, 0.0)


def test_raising_factor_never_adds_expensive_intervals():
    prices = build_prices([0.12, 0.35, 0.18, 0.41, 0.22, 0.29, 0.33, 0.15, 0.38, 0.27])

    counts = []
    for factor in (0.5, 1.0, 1.05, 1.1, 1.3, 1.6, 2.0):
        _, threshold = calculate_expensive_threshold(prices, factor)
        counts.append(len(find_expensive_intervals(prices, threshold)))

    assert counts == sorted(counts, reverse=True)


def test_trade_profitability():
    profitable, margin = calculate_trade_profitability(0.10, 0.30, 0.1, 0.06)
    assert profitable is True
    assert margin == pytest.approx(0.19)

    profitable, margin = calculate_trade_profitability(0.20, 0.25, 0.1, 0.06)
    assert profitable is False
    assert margin == pytest.approx(0.03)


class TestExistingEnergyProfitability:
    def test_no_cost_basis_is_always_eligible(self):
        assert is_existing_energy_profitable(0.01, None, 0.9, 0.06) is True
        assert is_existing_energy_profitable(0.01, 0.0, 0.9, 0.06) is True

    def test_gate_against_cost_basis(self):
        # 0.20 / 0.9 + 0.06 = 0.2822
        assert is_existing_energy_profitable(0.30, 0.20, 0.9, 0.06) is True
        assert is_existing_energy_profitable(0.28, 0.20, 0.9, 0.06) is False

    def test_coefficient_sign_matches_gate(self):
        for price in (0.1, 0.25, 0.2822, 0.29, 0.5):
            coefficient = existing_energy_discharge_coefficient(price, 0.2, 0.9, 0.06)
            assert (coefficient < 0) == is_existing_energy_profitable(price, 0.2, 0.9, 0.06)

    def test_coefficient_without_cost_basis(self):
        assert existing_energy_discharge_coefficient(0.3, None, 0.9, 0.06) == pytest.approx(-0.24)


def test_baseline_cost_buys_import_and_sells_surplus():
    prices = build_prices([0.3, 0.1])
    signals = HouseSignals(
        house_load_kwh=[1.0, 0.5],
        solar_kwh=[0.0, 2.5],
        import_demand_kwh=[1.0, 0.0],
        solar_surplus_kwh=[0.0, 2.0],
    )

    assert calculate_baseline_cost(prices, signals, 0.07) == pytest.approx(0.16)


def test_summarize_economics():
    economics = summarize_economics(1.0, charge_cost=0.2, avoided_import_value=0.5)

    assert economics.optimized_cost == pytest.approx(0.7)
    assert economics.savings == pytest.approx(0.3)


def test_savings_never_negative():
    economics = summarize_economics(1.0, charge_cost=0.5, avoided_import_value=0.2)

    assert economics.optimized_cost == pytest.approx(1.3)
    assert economics.savings == 0.0


def test_summarize_planned_charging():
    prices = build_prices([0.10, 0.20])
    charges = [
        ChargeInterval.from_interval(
            prices[0], planned_energy_kwh=1.0, planned_grid_energy_kwh=1.0
        ),
        ChargeInterval.from_interval(
            prices[1], planned_energy_kwh=2.0, planned_solar_energy_kwh=2.0
        ),
    ]

    planned = summarize_planned_charging(charges, 0.07)

    assert planned.total_kwh == pytest.approx(3.0)
    assert planned.grid_cost == pytest.approx(0.10)
    assert planned.solar_cost == pytest.approx(0.14)
    assert planned.avg_price == pytest.approx(0.08)
    assert charges[1].source == "solar"
