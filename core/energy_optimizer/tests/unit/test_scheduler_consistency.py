"""The heuristic and LP schedulers agree on when stored energy is worth discharging."""

import pytest

from core.energy_optimizer.heuristic_scheduler import compute_heuristic_strategy
from core.energy_optimizer.lp_scheduler import PulpLpSolver, optimize_strategy_with_lp
from core.energy_optimizer.settings import BatteryParams
from core.energy_optimizer.tests.conftest import build_prices


def full_battery(cost_basis):
    """Battery at its target SoC, so only stored energy can be discharged."""
    return BatteryParams(
        capacity=10.0,
        current_soc=0.5,
        target_soc=0.5,
        charge_power_kw=5.0,
        efficiency_loss=0.1,
        min_profit_per_kwh=0.06,
        battery_cost_per_kwh=cost_basis,
    )


@pytest.mark.parametrize(
    "cost_basis, discharges",
    [
        (None, True),
        (0.2, True),
        (0.3, True),
        (0.32, False),
        (0.4, False),
    ],
)
def test_existing_energy_gate_matches(cost_basis, discharges):
    """Only the last interval (0.40) is expensive; the gate is 0.40 > basis / 0.9 + 0.06."""
    prices = build_prices([0.10] * 3 + [0.40])
    params = full_battery(cost_basis)

    heuristic = compute_heuristic_strategy(prices, params)
    lp = optimize_strategy_with_lp(prices, params, solver=PulpLpSolver())

    heuristic_discharges = 3 in [d.index for d in heuristic.discharge_intervals]
    lp_discharges = 3 in [d.index for d in lp.discharge_intervals]

    assert heuristic_discharges is discharges
    assert lp_discharges is discharges
