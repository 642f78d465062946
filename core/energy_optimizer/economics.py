"""Price thresholds, trade profitability and cost/savings reporting.

Shared by the heuristic and LP schedulers so both report baseline, optimized
cost and savings the same way and apply the same discharge profitability
rules.
"""

import logging

from .forecaster import get_percentile
from .models import ChargeInterval, Economics, HouseSignals, PlannedCharging, PriceInterval

logger = logging.getLogger(__name__)

# Percentile used as a floor for the expensive price threshold
EXPENSIVE_PERCENTILE = 0.7


def calculate_average_price(prices: list[PriceInterval]) -> float:
    if not prices:
        return 0.0
    return sum(p.total for p in prices) / len(prices)


def calculate_expensive_threshold(
    prices: list[PriceInterval], expensive_price_factor: float
) -> tuple[float, float]:
    """Return (average price, expensive threshold).

    The threshold is the larger of the scaled average and the 70th percentile,
    so flat or nearly flat days never produce expensive intervals.
    """
    avg_price = calculate_average_price(prices)
    sorted_prices = sorted(p.total for p in prices)
    threshold = max(
        avg_price * expensive_price_factor,
        get_percentile(sorted_prices, EXPENSIVE_PERCENTILE),
    )
    return avg_price, threshold


def find_expensive_intervals(
    prices: list[PriceInterval], threshold: float
) -> list[PriceInterval]:
    return [p for p in prices if p.total > threshold]


def calculate_trade_profitability(
    charge_price: float,
    discharge_price: float,
    efficiency_loss: float,
    min_profit_per_kwh: float,
) -> tuple[bool, float]:
    """Check if charging at one price to discharge at another is worth it.

    Args:
        charge_price: Effective charge price (spot for grid, feed-in tariff for solar)
        discharge_price: Spot price of the discharge interval
        efficiency_loss: Round-trip loss fraction applied to the charge price
        min_profit_per_kwh: Required margin per kWh

    Returns:
        Tuple of (is_profitable, margin_per_kwh)
    """
    margin = discharge_price - charge_price * (1 + efficiency_loss)
    return margin > min_profit_per_kwh, margin


def existing_energy_discharge_coefficient(
    price: float,
    cost_basis: float | None,
    eta_discharge: float,
    min_profit_per_kwh: float,
) -> float:
    """Net cost per delivered kWh of discharging energy that is already stored.

    Negative means discharging saves money. Without a known cost basis the
    stored energy is treated as free.
    """
    coefficient = -price + min_profit_per_kwh
    if cost_basis is not None and cost_basis > 0 and eta_discharge > 0:
        coefficient += cost_basis / eta_discharge
    return coefficient


def is_existing_energy_profitable(
    price: float,
    cost_basis: float | None,
    eta_discharge: float,
    min_profit_per_kwh: float,
) -> bool:
    """Discharge stored energy only if ``price > cost_basis / eta + min_profit``.

    No cost basis means stored energy is always eligible.
    """
    if cost_basis is None or cost_basis <= 0:
        return True
    return (
        existing_energy_discharge_coefficient(
            price, cost_basis, eta_discharge, min_profit_per_kwh
        )
        < 0
    )


def calculate_baseline_cost(
    prices: list[PriceInterval], signals: HouseSignals, feed_in_tariff: float
) -> float:
    """Cost of the horizon with no battery action.

    All import demand is bought at spot and all solar surplus is sold at the
    feed-in tariff.
    """
    import_cost = sum(
        demand * p.total for demand, p in zip(signals.import_demand_kwh, prices)
    )
    export_credit = sum(signals.solar_surplus_kwh[: len(prices)]) * feed_in_tariff
    return import_cost - export_credit


def summarize_economics(
    baseline_cost: float,
    charge_cost: float,
    avoided_import_value: float,
    existing_energy_cost: float = 0.0,
) -> Economics:
    """Combine planned flows into baseline vs optimized cost.

    Args:
        baseline_cost: Cost without battery action
        charge_cost: Cost of planned charging (grid at spot, solar at feed-in)
        avoided_import_value: Spot value of demand served from the battery
        existing_energy_cost: Cost basis of stored energy consumed
    """
    optimized_cost = baseline_cost + charge_cost - avoided_import_value + existing_energy_cost
    return Economics(
        baseline_cost=baseline_cost,
        optimized_cost=optimized_cost,
        savings=max(0.0, baseline_cost - optimized_cost),
    )


def summarize_planned_charging(
    charge_intervals: list[ChargeInterval], feed_in_tariff: float
) -> PlannedCharging:
    """Totals of planned charging split into grid and solar sources."""
    grid_kwh = sum(c.planned_grid_energy_kwh for c in charge_intervals)
    solar_kwh = sum(c.planned_solar_energy_kwh for c in charge_intervals)
    grid_cost = sum(c.planned_grid_energy_kwh * c.total for c in charge_intervals)
    solar_cost = solar_kwh * feed_in_tariff
    total_kwh = grid_kwh + solar_kwh

    return PlannedCharging(
        total_kwh=total_kwh,
        grid_kwh=grid_kwh,
        solar_kwh=solar_kwh,
        avg_price=(grid_cost + solar_cost) / total_kwh if total_kwh > 0 else 0.0,
        grid_cost=grid_cost,
        solar_cost=solar_cost,
        feed_in_tariff=feed_in_tariff,
    )
