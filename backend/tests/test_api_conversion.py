"""Tests for API conversion functionality.

This test validates the backend API layer conversion from engine models to API responses.
"""

from datetime import datetime

import pytest
from api_conversion import (
    camel_to_snake,
    convert_keys_to_camel_case,
    convert_keys_to_snake_case,
    snake_to_camel,
    strategy_to_api,
)

from core.energy_optimizer.models import ChargeInterval, DischargeInterval, Strategy
from core.energy_optimizer.strategy_execution import BatteryMode, ModeDecision
from core.energy_optimizer.time_utils import TIMEZONE, enrich_price_data


@pytest.fixture
def prices():
    return enrich_price_data(
        [
            {"starts_at": f"2025-11-15T{hour:02d}:{minute:02d}:00+01:00", "total": 0.1}
            for hour in range(2)
            for minute in (0, 15, 30, 45)
        ]
    )


@pytest.mark.parametrize(
    "snake, camel",
    [
        ("capacity", "capacity"),
        ("charge_power_kw", "chargePowerKw"),
        ("min_soc_threshold", "minSocThreshold"),
        ("grid_only_avg_price", "gridOnlyAvgPrice"),
    ],
)
def test_key_conversion(snake, camel):
    assert snake_to_camel(snake) == camel
    assert camel_to_snake(camel) == snake


def test_nested_conversion():
    data = {"battery": {"target_soc": 85, "values": [{"grid_w": 1}]}}

    camel = convert_keys_to_camel_case(data)

    assert camel == {"battery": {"targetSoc": 85, "values": [{"gridW": 1}]}}
    assert convert_keys_to_snake_case(camel) == data


def test_dataclass_enum_and_datetime_values():
    decision = ModeDecision(BatteryMode.CHARGE, 3, "Planned grid charge interval")

    assert convert_keys_to_camel_case(decision) == {
        "mode": "CHARGE",
        "intervalIndex": 3,
        "reason": "Planned grid charge interval",
    }
    assert convert_keys_to_camel_case(
        {"calculated_at": datetime(2025, 11, 15, 12, 0, tzinfo=TIMEZONE)}
    ) == {"calculatedAt": "2025-11-15T12:00:00+01:00"}


def test_strategy_to_api(prices):
    strategy = Strategy(
        charge_intervals=[
            ChargeInterval.from_interval(p, planned_energy_kwh=1.0, planned_grid_energy_kwh=1.0)
            for p in prices[0:2]
        ],
        discharge_intervals=[
            DischargeInterval.from_interval(prices[5], demand_kwh=0.75),
            DischargeInterval.from_interval(prices[7], demand_kwh=0.75),
        ],
        savings=0.12,
    )

    result = strategy_to_api(strategy)

    assert result["isEmpty"] is False
    assert result["chargeWindows"] == ["00:00-00:30"]
    assert result["dischargeWindows"] == ["01:15-01:30", "01:45-02:00"]
    assert result["chargeIntervals"][0]["plannedEnergyKwh"] == 1.0
    assert result["chargeIntervals"][0]["startsAt"] == "2025-11-15T00:00:00+01:00"
    assert result["economics"]["baselineCost"] == 0.0
    assert result["savings"] == 0.12
