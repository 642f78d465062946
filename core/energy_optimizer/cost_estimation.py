"""Cost estimation for battery energy the ledger has no record of.

When live SoC shows more energy than the ledger tracked (history lost,
tracking started mid-charge), the shortfall is priced from the best price
signal available and assumed to be mostly grid energy.
"""

import logging
from dataclasses import replace

from .models import CostBasis, PriceInterval, Strategy
from .settings import (
    ENERGY_EPSILON_KWH,
    FALLBACK_ENERGY_PRICE,
    INTERVALS_PER_DAY,
    UNKNOWN_ENERGY_GRID_SHARE,
)

logger = logging.getLogger(__name__)


def estimate_unknown_energy_price(
    strategy: Strategy | None = None, prices: list[PriceInterval] | None = None
) -> float:
    """Price for energy of unknown origin.

    Priority: average of planned charge interval prices, then the average of
    the first day of cached prices, then a fixed fallback.
    """
    if strategy is not None and strategy.charge_intervals:
        price = sum(i.total for i in strategy.charge_intervals) / len(
            strategy.charge_intervals
        )
        logger.debug(f"Using avg planned charge price as estimate: {price:.4f} €/kWh")
        return price

    if prices:
        recent = prices[:INTERVALS_PER_DAY]
        price = sum(p.total for p in recent) / len(recent)
        logger.debug(f"Using avg recent price as estimate: {price:.4f} €/kWh")
        return price

    logger.debug(f"Using fallback price as estimate: {FALLBACK_ENERGY_PRICE:.4f} €/kWh")
    return FALLBACK_ENERGY_PRICE


def estimate_battery_energy_cost(
    current_soc: float,
    capacity: float,
    strategy: Strategy | None = None,
    prices: list[PriceInterval] | None = None,
) -> CostBasis | None:
    """Estimate the cost basis of everything in the battery.

    Args:
        current_soc: State of charge as a fraction (0..1)
        capacity: Battery capacity in kWh

    Returns:
        Estimated CostBasis, or None when the battery holds less than 0.01 kWh
    """
    total_kwh = current_soc * capacity
    if total_kwh < ENERGY_EPSILON_KWH:
        return None

    price = estimate_unknown_energy_price(strategy, prices)
    grid_kwh = total_kwh * UNKNOWN_ENERGY_GRID_SHARE
    solar_kwh = total_kwh - grid_kwh
    total_cost = grid_kwh * price

    logger.info(
        f"Estimated battery cost (source unknown): {total_kwh:.2f} kWh "
        f"@ {total_cost / total_kwh:.4f} €/kWh"
    )

    return CostBasis(
        avg_price=total_cost / total_kwh,
        total_kwh=total_kwh,
        solar_kwh=solar_kwh,
        grid_kwh=grid_kwh,
        solar_percent=(1 - UNKNOWN_ENERGY_GRID_SHARE) * 100,
        grid_percent=UNKNOWN_ENERGY_GRID_SHARE * 100,
        total_cost=total_cost,
        grid_only_avg_price=price,
        stored_kwh=total_kwh,
        tracked_kwh=0.0,
        unknown_kwh=total_kwh,
        unknown_avg_price=price,
        is_estimated=True,
    )


def combine_battery_cost(
    tracked: CostBasis | None,
    stored_kwh: float,
    capacity: float,
    strategy: Strategy | None = None,
    prices: list[PriceInterval] | None = None,
) -> CostBasis | None:
    """Merge the ledger's cost basis with an estimate for untracked energy.

    Args:
        tracked: Ledger result, None when nothing is tracked
        stored_kwh: Energy implied by the live SoC
        capacity: Battery capacity in kWh

    Returns:
        Combined CostBasis, or None when the battery is effectively empty
    """
    if stored_kwh < ENERGY_EPSILON_KWH:
        return None

    tracked_kwh = tracked.total_kwh if tracked else 0.0
    unknown_kwh = max(0.0, stored_kwh - tracked_kwh)

    if unknown_kwh < ENERGY_EPSILON_KWH and tracked is not None:
        return replace(
            tracked,
            stored_kwh=stored_kwh,
            tracked_kwh=tracked_kwh,
            unknown_kwh=0.0,
            is_estimated=False,
        )

    if tracked_kwh < ENERGY_EPSILON_KWH:
        return estimate_battery_energy_cost(
            stored_kwh / capacity, capacity, strategy, prices
        )

    unknown_price = estimate_unknown_energy_price(strategy, prices)
    unknown_grid_kwh = unknown_kwh * UNKNOWN_ENERGY_GRID_SHARE
    unknown_solar_kwh = unknown_kwh - unknown_grid_kwh

    total_kwh = tracked_kwh + unknown_kwh
    solar_kwh = tracked.solar_kwh + unknown_solar_kwh
    grid_kwh = tracked.grid_kwh + unknown_grid_kwh
    total_cost = tracked.total_cost + unknown_grid_kwh * unknown_price

    logger.info(
        f"Combined battery cost: {total_kwh:.2f} kWh @ {total_cost / total_kwh:.4f} €/kWh "
        f"(tracked {tracked_kwh:.2f} kWh @ {tracked.avg_price:.4f}, "
        f"unknown {unknown_kwh:.2f} kWh @ {unknown_price:.4f})"
    )

    return CostBasis(
        avg_price=total_cost / total_kwh,
        total_kwh=total_kwh,
        solar_kwh=solar_kwh,
        grid_kwh=grid_kwh,
        solar_percent=solar_kwh / total_kwh * 100,
        grid_percent=grid_kwh / total_kwh * 100,
        total_cost=total_cost,
        grid_only_avg_price=total_cost / grid_kwh if grid_kwh > 0 else 0.0,
        stored_kwh=stored_kwh,
        tracked_kwh=tracked_kwh,
        unknown_kwh=unknown_kwh,
        unknown_avg_price=unknown_price,
        is_estimated=True,
    )
