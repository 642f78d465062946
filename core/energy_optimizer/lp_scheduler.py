"""
Linear-program battery scheduler.

Same physical model as the heuristic scheduler, solved exactly. For each
interval t the model has:

    c_t   grid energy charged (kWh)
    sc_t  solar surplus charged (kWh), priced at the forgone feed-in revenue
    d0_t  delivered discharge from energy stored before the horizon
    d1_t  delivered discharge from energy charged within the horizon
    s_t   battery energy (kWh)
    e_t   part of s_t that was stored before the horizon

Objective (minimize):

    sum price_t*c_t + feed_in*sc_t - price_t*(d0_t + d1_t)
        + min_profit*(d0_t + d1_t) + cost_basis/eta_d * d0_t

Dynamics:

    s_t = s_{t-1} + eta_c*(c_t + sc_t) - (d0_t + d1_t)/eta_d
    e_t = e_{t-1} - d0_t/eta_d
    s_{-1} = e_{-1} = current energy

The model is built as a plain dict (objective name, constraint bounds,
per-variable coefficients) and handed to an ``LpSolver``. Any failure (no
solver, invalid input, solver error, infeasible, non-finite objective) makes
``optimize_strategy_with_lp`` return None so the caller can fall back to the
heuristic.
"""

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol

import pulp

from .economics import (
    calculate_baseline_cost,
    calculate_expensive_threshold,
    existing_energy_discharge_coefficient,
    find_expensive_intervals,
    summarize_economics,
    summarize_planned_charging,
)
from .forecaster import forecast_house_signals
from .models import (
    ChargeInterval,
    ChargePart,
    DischargeInterval,
    HouseSignals,
    PriceInterval,
    Strategy,
)
from .settings import ENERGY_EPSILON_KWH, BatteryParams

logger = logging.getLogger(__name__)

OBJECTIVE = "total_cost"

__all__ = [
    "OBJECTIVE",
    "LpSolution",
    "LpSolver",
    "PulpLpSolver",
    "build_lp_model",
    "optimize_strategy_with_lp",
]


@dataclass
class LpSolution:
    """Result of one solver run."""

    feasible: bool
    objective: float | None
    values: dict[str, float] = field(default_factory=dict)


class LpSolver(Protocol):
    """Anything that can solve a dict-form linear program."""

    def solve(self, model: dict) -> LpSolution | Mapping | None: ...


class PulpLpSolver:
    """Solves dict-form models with PuLP and the bundled CBC solver.

    All variables are non-negative. A constraint ``{"min": a, "max": b}``
    becomes ``a <= sum(coef * var) <= b``.
    """

    def __init__(self, time_limit: int | None = None):
        self.solver = pulp.PULP_CBC_CMD(msg=False, timeLimit=time_limit)

    def solve(self, model: dict) -> LpSolution:
        objective_name = model["optimize"]
        sense = pulp.LpMinimize if model.get("opType", "min") == "min" else pulp.LpMaximize
        prob = pulp.LpProblem("battery_schedule", sense)

        lp_vars = {
            name: pulp.LpVariable(name, lowBound=0) for name in model["variables"]
        }
        rows: dict[str, list] = {name: [] for name in model["constraints"]}
        objective_terms = []

        for name, coefficients in model["variables"].items():
            for key, coefficient in coefficients.items():
                if key == objective_name:
                    objective_terms.append(coefficient * lp_vars[name])
                elif key in rows:
                    rows[key].append(coefficient * lp_vars[name])

        prob += pulp.lpSum(objective_terms)

        for name, bounds in model["constraints"].items():
            if not rows[name]:
                continue
            expr = pulp.lpSum(rows[name])
            if "max" in bounds:
                prob += expr <= bounds["max"], f"{name}_max"
            if "min" in bounds:
                prob += expr >= bounds["min"], f"{name}_min"

        prob.solve(self.solver)
        status = pulp.LpStatus[prob.status]

        if status != "Optimal":
            logger.debug(f"LP solver status: {status}")
            return LpSolution(feasible=False, objective=None)

        objective = pulp.value(prob.objective)
        return LpSolution(
            feasible=True,
            objective=float(objective) if objective is not None else 0.0,
            values={name: var.varValue or 0.0 for name, var in lp_vars.items()},
        )


def _validate_inputs(prices: list[PriceInterval], params: BatteryParams) -> str | None:
    """Reason the LP cannot be built, or None when inputs are usable."""
    if not prices:
        return "no price data available"
    if params.capacity <= 0 or params.charge_power_kw <= 0:
        return "invalid battery parameters"
    if not 0 <= params.current_soc <= 1 or not 0 <= params.target_soc <= 1:
        return "invalid SoC values (must be 0-1)"
    usable_kwh = max(0.0, params.max_energy_kwh - params.current_energy_kwh)
    if usable_kwh < ENERGY_EPSILON_KWH and params.current_energy_kwh < ENERGY_EPSILON_KWH:
        return "no usable battery capacity (empty and no headroom)"
    return None


def build_lp_model(
    prices: list[PriceInterval], signals: HouseSignals, params: BatteryParams
) -> dict:
    """Build the dict-form LP for the given horizon.

    Inputs are assumed valid (see ``optimize_strategy_with_lp``). Equalities
    are written as a pair of ``max``/``min`` constraints on the same row.
    """
    current_kwh = params.current_energy_kwh
    max_kwh = params.max_energy_kwh
    energy_per_interval = params.max_interval_energy_kwh
    eta_charge = params.eta_charge
    eta_discharge = params.eta_discharge if params.eta_discharge > 0 else 1.0
    min_profit = max(0.0, params.min_profit_per_kwh)
    min_energy_kwh = min(min(max(0.0, params.min_energy_kwh), max_kwh), current_kwh)

    constraints: dict[str, dict] = {}
    variables: dict[str, dict] = {}

    for t, interval in enumerate(prices):
        price = interval.total
        c, sc, d0, d1, s, e = (
            f"c_{t}", f"sc_{t}", f"d0_{t}", f"d1_{t}", f"s_{t}", f"e_{t}"
        )

        variables[c] = {OBJECTIVE: price}
        variables[sc] = {OBJECTIVE: params.feed_in_tariff}
        variables[d0] = {
            OBJECTIVE: existing_energy_discharge_coefficient(
                price, params.battery_cost_per_kwh, eta_discharge, min_profit
            )
        }
        variables[d1] = {OBJECTIVE: -price + min_profit}
        variables[s] = {OBJECTIVE: 0}
        variables[e] = {OBJECTIVE: 0}

        constraints[f"cCap_{t}"] = {"max": energy_per_interval}
        variables[c][f"cCap_{t}"] = 1
        variables[sc][f"cCap_{t}"] = 1

        constraints[f"scCap_{t}"] = {"max": signals.solar_surplus_kwh[t]}
        variables[sc][f"scCap_{t}"] = 1

        constraints[f"dCap_{t}"] = {"max": energy_per_interval}
        variables[d0][f"dCap_{t}"] = 1
        variables[d1][f"dCap_{t}"] = 1

        constraints[f"sCap_{t}"] = {"max": max_kwh}
        variables[s][f"sCap_{t}"] = 1

        if min_energy_kwh > 0:
            constraints[f"sMin_{t}"] = {"min": min_energy_kwh}
            variables[s][f"sMin_{t}"] = 1

        # Never discharge into export
        constraints[f"demandLimit_{t}"] = {"max": signals.import_demand_kwh[t]}
        variables[d0][f"demandLimit_{t}"] = 1
        variables[d1][f"demandLimit_{t}"] = 1

        constraints[f"eCap_{t}"] = {"max": current_kwh}
        variables[e][f"eCap_{t}"] = 1
        constraints[f"eNonNeg_{t}"] = {"min": 0}
        variables[e][f"eNonNeg_{t}"] = 1

        # e_t <= s_t
        constraints[f"eLeSoc_{t}"] = {"min": 0}
        variables[s][f"eLeSoc_{t}"] = 1
        variables[e][f"eLeSoc_{t}"] = -1

    for t in range(len(prices)):
        if t == 0:
            soc_row, existing_row, rhs = "soc0_eq", "e0_eq", current_kwh
        else:
            soc_row, existing_row, rhs = f"soc_{t}_eq", f"e_{t}_eq", 0.0

        for suffix, bound in (("Max", "max"), ("Min", "min")):
            soc_name = f"{soc_row}{suffix}"
            constraints[soc_name] = {bound: rhs}
            variables[f"s_{t}"][soc_name] = 1
            variables[f"c_{t}"][soc_name] = -eta_charge
            variables[f"sc_{t}"][soc_name] = -eta_charge
            variables[f"d0_{t}"][soc_name] = 1 / eta_discharge
            variables[f"d1_{t}"][soc_name] = 1 / eta_discharge
            if t > 0:
                variables[f"s_{t - 1}"][soc_name] = -1

            existing_name = f"{existing_row}{suffix}"
            constraints[existing_name] = {bound: rhs}
            variables[f"e_{t}"][existing_name] = 1
            variables[f"d0_{t}"][existing_name] = 1 / eta_discharge
            if t > 0:
                variables[f"e_{t - 1}"][existing_name] = -1

    return {
        "optimize": OBJECTIVE,
        "opType": "min",
        "constraints": constraints,
        "variables": variables,
    }


def _read_solution(result) -> LpSolution | None:
    """Normalize a solver result; mappings may carry the objective as ``result``."""
    if result is None:
        return None
    if isinstance(result, LpSolution):
        return result
    if isinstance(result, Mapping):
        objective = result.get(OBJECTIVE)
        if not isinstance(objective, (int, float)):
            objective = result.get("result")
        values = {
            key: value
            for key, value in result.items()
            if isinstance(value, (int, float)) and not isinstance(value, bool)
        }
        return LpSolution(
            feasible=bool(result.get("feasible")),
            objective=objective if isinstance(objective, (int, float)) else None,
            values=values,
        )
    return None


def optimize_strategy_with_lp(
    prices: list[PriceInterval],
    params: BatteryParams,
    history=None,
    solver: LpSolver | None = None,
    signals: HouseSignals | None = None,
) -> Strategy | None:
    """Plan charge and discharge intervals by solving the LP.

    Args:
        prices: Current and future intervals in chronological order
        params: Battery state and economics
        history: PowerHistory (or mapping) used when ``signals`` is not given
        solver: LP solver port; None means no LP is available
        signals: Precomputed forecast for ``prices``

    Returns:
        Strategy, or None when the LP cannot produce one
    """
    if solver is None:
        logger.debug("LP solver not available")
        return None

    reason = _validate_inputs(prices, params)
    if reason:
        logger.debug(f"LP skipped: {reason}")
        return None

    if signals is None:
        signals = forecast_house_signals(prices, history, params.interval_hours)

    model = build_lp_model(prices, signals, params)
    logger.debug(
        f"LP model: {len(prices)} intervals, {len(model['variables'])} variables, "
        f"{len(model['constraints'])} constraints, battery "
        f"{params.current_energy_kwh:.2f}/{params.max_energy_kwh:.2f} kWh"
    )

    try:
        solution = _read_solution(solver.solve(model))
    except Exception as e:
        logger.error(f"LP solver error: {e}")
        return None

    if (
        solution is None
        or not solution.feasible
        or solution.objective is None
        or not math.isfinite(solution.objective)
    ):
        logger.info("LP solver returned no valid solution")
        return None

    return _interpret_solution(prices, signals, params, solution)


def _interpret_solution(
    prices: list[PriceInterval],
    signals: HouseSignals,
    params: BatteryParams,
    solution: LpSolution,
) -> Strategy:
    values = solution.values
    feed_in = params.feed_in_tariff
    eta_discharge = params.eta_discharge if params.eta_discharge > 0 else 1.0
    cost_basis = params.battery_cost_per_kwh

    charge_intervals: list[ChargeInterval] = []
    discharge_intervals: list[DischargeInterval] = []
    charge_cost = 0.0
    avoided_import_value = 0.0
    existing_energy_cost = 0.0

    for t, interval in enumerate(prices):
        grid_charge = values.get(f"c_{t}", 0.0) or 0.0
        solar_charge = values.get(f"sc_{t}", 0.0) or 0.0
        from_existing = values.get(f"d0_{t}", 0.0) or 0.0
        from_new = values.get(f"d1_{t}", 0.0) or 0.0

        if grid_charge + solar_charge > ENERGY_EPSILON_KWH:
            parts = []
            if grid_charge > ENERGY_EPSILON_KWH:
                parts.append(
                    ChargePart("grid", grid_charge, interval.total, grid_charge * interval.total)
                )
            if solar_charge > ENERGY_EPSILON_KWH:
                parts.append(
                    ChargePart("solar", solar_charge, feed_in, solar_charge * feed_in)
                )
            charge_intervals.append(
                ChargeInterval.from_interval(
                    interval,
                    planned_energy_kwh=grid_charge + solar_charge,
                    planned_grid_energy_kwh=grid_charge,
                    planned_solar_energy_kwh=solar_charge,
                    charge_parts=parts,
                )
            )
            charge_cost += grid_charge * interval.total + solar_charge * feed_in

        if from_existing + from_new > ENERGY_EPSILON_KWH:
            discharge_intervals.append(
                DischargeInterval.from_interval(
                    interval,
                    demand_kwh=from_existing + from_new,
                    demand_from_existing_kwh=from_existing,
                    demand_from_new_kwh=from_new,
                )
            )
            avoided_import_value += (from_existing + from_new) * interval.total
            if cost_basis is not None and cost_basis > 0:
                existing_energy_cost += from_existing * cost_basis / eta_discharge

    avg_price, threshold = calculate_expensive_threshold(
        prices, params.expensive_price_factor
    )
    baseline_cost = calculate_baseline_cost(prices, signals, feed_in)
    economics = summarize_economics(
        baseline_cost, charge_cost, avoided_import_value, existing_energy_cost
    )
    total_charge = sum(c.planned_energy_kwh for c in charge_intervals)
    total_discharge = sum(d.demand_kwh for d in discharge_intervals)

    logger.info(
        f"LP strategy: baseline {baseline_cost:.2f} €, optimized "
        f"{economics.optimized_cost:.2f} €, savings {economics.savings:.2f} €, "
        f"charge {total_charge:.2f} kWh, discharge {total_discharge:.2f} kWh"
    )

    return Strategy(
        charge_intervals=charge_intervals,
        discharge_intervals=discharge_intervals,
        expensive_intervals=find_expensive_intervals(prices, threshold),
        avg_price=avg_price,
        expensive_threshold=threshold,
        needed_kwh=total_charge,
        forecasted_demand=total_discharge,
        savings=economics.savings,
        economics=economics,
        planned_charging=summarize_planned_charging(charge_intervals, feed_in),
        total_charge_kwh=total_charge,
        total_discharge_kwh=total_discharge,
        source="lp",
        objective_value=solution.objective,
    )
