"""Shared test fixtures for the energy optimizer tests."""

import logging
import os
import sys
from datetime import datetime, timedelta

import pytest

# Add the project root to Python path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../../.."))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from core.energy_optimizer.models import PriceInterval  # noqa: E402
from core.energy_optimizer.settings import BatteryParams  # noqa: E402
from core.energy_optimizer.time_utils import TIMEZONE, get_interval_of_day  # noqa: E402

DAY_START = datetime(2025, 11, 15, 0, 0, tzinfo=TIMEZONE)


def build_prices(values, start=DAY_START, first_index=0):
    """Create consecutive 15-minute PriceIntervals from a list of prices."""
    intervals = []
    for offset, price in enumerate(values):
        starts_at = start + timedelta(minutes=15 * offset)
        intervals.append(
            PriceInterval(
                starts_at=starts_at,
                total=price,
                index=first_index + offset,
                interval_of_day=get_interval_of_day(starts_at),
            )
        )
    return intervals


def flat_history(grid_w=None, solar_w=None, battery_w=None):
    """History mapping with the same sample for every interval-of-day."""
    history = {}
    for name, value in (("grid", grid_w), ("solar", solar_w), ("battery", battery_w)):
        if value is not None:
            history[name] = {i: [value] for i in range(96)}
    return history


class FakeLpSolver:
    """LP solver returning a canned result and remembering the model."""

    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.models = []

    def solve(self, model):
        self.models.append(model)
        if self.error:
            raise self.error
        return self.result


@pytest.fixture
def make_prices():
    """Factory fixture for price series."""
    return build_prices


@pytest.fixture
def make_history():
    return flat_history


@pytest.fixture
def battery_params():
    """Empty 10 kWh battery with 5 kW charge power and default economics."""
    return BatteryParams(
        capacity=10.0,
        current_soc=0.0,
        target_soc=1.0,
        charge_power_kw=5.0,
        efficiency_loss=0.1,
        expensive_price_factor=1.05,
        min_profit_per_kwh=0.06,
        feed_in_tariff=0.07,
    )


@pytest.fixture
def fake_solver_factory():
    return FakeLpSolver
