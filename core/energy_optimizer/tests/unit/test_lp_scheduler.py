"""Tests for the linear-program scheduler."""

import math
from dataclasses import replace

import pytest

from core.energy_optimizer.economics import existing_energy_discharge_coefficient
from core.energy_optimizer.forecaster import forecast_house_signals
from core.energy_optimizer.lp_scheduler import (
    OBJECTIVE,
    LpSolution,
    PulpLpSolver,
    build_lp_model,
    optimize_strategy_with_lp,
)
from core.energy_optimizer.tests.conftest import FakeLpSolver, build_prices


@pytest.fixture
def small_battery(battery_params):
    return replace(battery_params, target_soc=0.2)


@pytest.fixture
def two_prices():
    return build_prices([0.10, 0.40])


class TestBuildLpModel:
    def test_model_shape(self, small_battery, two_prices):
        signals = forecast_house_signals(two_prices, None)

        model = build_lp_model(two_prices, signals, small_battery)

        assert model["optimize"] == OBJECTIVE
        assert model["opType"] == "min"
        assert len(model["variables"]) == 12
        assert model["constraints"]["cCap_0"] == {"max": 1.25}
        assert model["constraints"]["sCap_1"] == {"max": 2.0}
        assert model["constraints"]["demandLimit_1"] == {"max": pytest.approx(0.75)}
        assert model["constraints"]["soc0_eqMax"] == {"max": 0.0}
        assert model["constraints"]["soc0_eqMin"] == {"min": 0.0}
        assert "soc_1_eqMax" in model["constraints"]
        assert "e_1_eqMin" in model["constraints"]

    def test_objective_coefficients(self, small_battery, two_prices):
        params = replace(small_battery, current_soc=0.1, battery_cost_per_kwh=0.2)
        signals = forecast_house_signals(two_prices, None)

        variables = build_lp_model(two_prices, signals, params)["variables"]

        assert variables["c_1"][OBJECTIVE] == 0.40
        assert variables["sc_0"][OBJECTIVE] == 0.07
        assert variables["d1_1"][OBJECTIVE] == pytest.approx(-0.34)
        assert variables["d0_1"][OBJECTIVE] == pytest.approx(
            existing_energy_discharge_coefficient(0.40, 0.2, 0.9, 0.06)
        )
        assert variables["s_0"]["soc_1_eqMax"] == -1

    def test_reserve_floor_row_only_when_set(self, small_battery, two_prices):
        signals = forecast_house_signals(two_prices, None)

        without_floor = build_lp_model(two_prices, signals, small_battery)
        with_floor = build_lp_model(
            two_prices,
            signals,
            replace(small_battery, current_soc=0.2, min_energy_kwh=1.0),
        )

        assert "sMin_0" not in without_floor["constraints"]
        assert with_floor["constraints"]["sMin_0"] == {"min": 1.0}


class TestOptimizeWithFakeSolver:
    def test_no_solver(self, small_battery, two_prices):
        assert optimize_strategy_with_lp(two_prices, small_battery) is None

    def test_interprets_solution(self, small_battery, two_prices):
        solver = FakeLpSolver(
            {"feasible": True, OBJECTIVE: -0.16, "c_0": 0.93, "d1_1": 0.75}
        )

        strategy = optimize_strategy_with_lp(two_prices, small_battery, solver=solver)

        assert len(solver.models) == 1
        assert strategy.source == "lp"
        assert strategy.objective_value == pytest.approx(-0.16)
        assert [c.index for c in strategy.charge_intervals] == [0]
        assert strategy.charge_intervals[0].planned_grid_energy_kwh == pytest.approx(0.93)
        assert [d.index for d in strategy.discharge_intervals] == [1]
        assert strategy.discharge_intervals[0].demand_from_new_kwh == pytest.approx(0.75)
        assert strategy.economics.baseline_cost == pytest.approx(0.375)
        assert strategy.economics.optimized_cost == pytest.approx(0.168)
        assert strategy.savings == pytest.approx(0.207)

    def test_objective_under_result_key(self, small_battery, two_prices):
        solver = FakeLpSolver({"feasible": True, "result": -0.1, "c_0": 0.5})

        strategy = optimize_strategy_with_lp(two_prices, small_battery, solver=solver)

        assert strategy.objective_value == pytest.approx(-0.1)

    def test_values_below_epsilon_are_ignored(self, small_battery, two_prices):
        solver = FakeLpSolver(
            LpSolution(feasible=True, objective=0.0, values={"c_0": 0.005, "d1_1": 0.009})
        )

        strategy = optimize_strategy_with_lp(two_prices, small_battery, solver=solver)

        assert strategy.is_empty

    def test_values_above_epsilon_are_kept(self, small_battery, two_prices):
        solver = FakeLpSolver(
            LpSolution(feasible=True, objective=0.0, values={"c_0": 0.011, "d1_1": 0.011})
        )

        strategy = optimize_strategy_with_lp(two_prices, small_battery, solver=solver)

        assert [c.index for c in strategy.charge_intervals] == [0]
        assert strategy.charge_intervals[0].planned_energy_kwh == pytest.approx(0.011)
        assert [d.index for d in strategy.discharge_intervals] == [1]

    @pytest.mark.parametrize(
        "result",
        [
            None,
            {"feasible": False, OBJECTIVE: 0.0},
            {"feasible": True},
            {"feasible": True, OBJECTIVE: math.nan},
            LpSolution(feasible=True, objective=math.inf),
            "garbage",
        ],
    )
    def test_unusable_results(self, small_battery, two_prices, result):
        solver = FakeLpSolver(result)

        assert optimize_strategy_with_lp(two_prices, small_battery, solver=solver) is None

    def test_solver_error(self, small_battery, two_prices):
        solver = FakeLpSolver(error=RuntimeError("solver crashed"))

        assert optimize_strategy_with_lp(two_prices, small_battery, solver=solver) is None

    def test_invalid_inputs_skip_solver(self, small_battery, two_prices):
        solver = FakeLpSolver({"feasible": True, OBJECTIVE: 0.0})

        assert optimize_strategy_with_lp([], small_battery, solver=solver) is None
        assert (
            optimize_strategy_with_lp(
                two_prices, replace(small_battery, current_soc=1.5), solver=solver
            )
            is None
        )
        assert (
            optimize_strategy_with_lp(
                two_prices, replace(small_battery, target_soc=0.0), solver=solver
            )
            is None
        )
        assert (
            optimize_strategy_with_lp(
                two_prices, replace(small_battery, capacity=0), solver=solver
            )
            is None
        )
        assert solver.models == []


class TestPulpSolver:
    def test_charges_cheap_and_discharges_expensive(self, small_battery, two_prices):
        strategy = optimize_strategy_with_lp(
            two_prices, small_battery, solver=PulpLpSolver()
        )

        assert strategy is not None
        assert [c.index for c in strategy.charge_intervals] == [0]
        assert [d.index for d in strategy.discharge_intervals] == [1]
        assert strategy.discharge_intervals[0].demand_kwh == pytest.approx(0.75, abs=1e-4)
        assert strategy.objective_value < 0
        assert strategy.savings > 0

    def test_never_exceeds_import_demand(self, battery_params):
        prices = build_prices([0.10] * 4 + [0.40] * 4)

        strategy = optimize_strategy_with_lp(
            prices, replace(battery_params, current_soc=0.5), solver=PulpLpSolver()
        )

        for discharge in strategy.discharge_intervals:
            assert discharge.demand_kwh <= 0.75 + 1e-6

    def test_infeasible_model(self):
        """A lower bound above the upper bound on the same row cannot be met."""
        model = {
            "optimize": OBJECTIVE,
            "opType": "min",
            "constraints": {"row": {"max": 1.0, "min": 2.0}},
            "variables": {"x": {OBJECTIVE: 1, "row": 1}},
        }

        solution = PulpLpSolver().solve(model)

        assert solution.feasible is False
        assert solution.objective is None


def test_pulp_solution_is_repeatable(battery_params):
    prices = build_prices([0.12, 0.35, 0.18, 0.41, 0.09, 0.33, 0.15, 0.44])
    params = replace(battery_params, target_soc=0.5)

    first = optimize_strategy_with_lp(prices, params, solver=PulpLpSolver())
    second = optimize_strategy_with_lp(prices, params, solver=PulpLpSolver())

    assert [c.index for c in first.charge_intervals] == [c.index for c in second.charge_intervals]
    assert [d.index for d in first.discharge_intervals] == [
        d.index for d in second.discharge_intervals
    ]
    assert first.savings == pytest.approx(second.savings)
