"""Battery mode decisions for the current interval.

Maps "now" onto the active Strategy and live power readings. No device I/O
happens here; the caller applies the returned mode.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .models import ChargeInterval, PriceInterval, Strategy
from .settings import METER_EPSILON_KWH
from .time_utils import is_in_interval

logger = logging.getLogger(__name__)

SOLAR_START_THRESHOLD_W = 50
SOLAR_EXPORT_THRESHOLD_W = -300
CONSUMPTION_THRESHOLD_W = 300


class BatteryMode(Enum):
    """Inverter battery modes."""

    CHARGE = "CHARGE"  # Charge from grid
    NORMAL = "NORMAL"  # House load from solar, then battery, then grid
    CONSTANT = "CONSTANT"  # Hold charge, solar excess may still charge
    IDLE = "IDLE"  # No decision possible


@dataclass(frozen=True)
class ModeDecision:
    mode: BatteryMode
    interval_index: int | None
    reason: str


def find_current_interval_index(
    now: datetime, prices: list[PriceInterval]
) -> int | None:
    """Position in ``prices`` of the interval containing ``now``."""
    for position, interval in enumerate(prices):
        if is_in_interval(interval.starts_at, now):
            return position
    return None


def has_mode_changed(new_mode: BatteryMode, last_mode: BatteryMode | None) -> bool:
    """True on a real transition; the first decision is not a change."""
    return last_mode is not None and new_mode != last_mode


def _planned_grid_and_solar(interval: ChargeInterval) -> tuple[float, float]:
    grid = interval.planned_grid_energy_kwh
    solar = interval.planned_solar_energy_kwh
    if grid <= 0 and solar <= 0 and interval.charge_parts:
        grid = sum(p.energy_kwh for p in interval.charge_parts if p.source == "grid")
        solar = sum(p.energy_kwh for p in interval.charge_parts if p.source == "solar")
    return grid, solar


def decide_battery_mode(
    now: datetime,
    prices: list[PriceInterval],
    strategy: Strategy | None,
    grid_power_w: float | None = 0.0,
    solar_power_w: float | None = None,
    last_mode: BatteryMode | None = None,
    current_soc: float | None = None,
    min_soc_threshold: float | None = None,
) -> ModeDecision:
    """Decide the battery mode for the interval containing ``now``.

    Priority: planned charge, planned discharge, then solar-driven defaults
    with a grid power deadband that keeps the previous mode.

    Args:
        now: Current time (timezone-aware)
        prices: Price intervals the strategy was computed on
        strategy: Active strategy
        grid_power_w: Grid power, negative while exporting
        solar_power_w: PV production, None when no solar meter exists
        last_mode: Previously applied mode
        current_soc: SoC in percent, for the low-SoC discharge guard
        min_soc_threshold: Minimum SoC in percent
    """
    if not prices:
        return ModeDecision(BatteryMode.IDLE, None, "No price data available")
    if strategy is None:
        return ModeDecision(BatteryMode.IDLE, None, "No strategy available")

    position = find_current_interval_index(now, prices)
    if position is None:
        return ModeDecision(
            BatteryMode.IDLE, None, "Current time not in any price interval"
        )

    current = prices[position]
    solar_active = solar_power_w is not None and solar_power_w > SOLAR_START_THRESHOLD_W

    charge = next(
        (c for c in strategy.charge_intervals if c.starts_at == current.starts_at), None
    )
    if charge is not None:
        grid_kwh, solar_kwh = _planned_grid_and_solar(charge)
        has_grid = grid_kwh > METER_EPSILON_KWH
        has_solar = solar_kwh > METER_EPSILON_KWH
        if has_grid or not has_solar:
            return ModeDecision(
                BatteryMode.CHARGE,
                position,
                f"Planned grid charge interval (price: {current.total:.4f} €/kWh)",
            )
        if solar_active:
            return ModeDecision(
                BatteryMode.NORMAL,
                position,
                f"Planned solar-only charge (PV {solar_power_w:.0f} W) → NORMAL",
            )
        return ModeDecision(
            BatteryMode.CONSTANT,
            position,
            "Planned solar-only charge without PV → CONSTANT to prevent discharge",
        )

    if any(d.starts_at == current.starts_at for d in strategy.discharge_intervals):
        if (
            current_soc is not None
            and min_soc_threshold is not None
            and current_soc <= min_soc_threshold
        ):
            return ModeDecision(
                BatteryMode.NORMAL,
                position,
                f"Low SoC ({current_soc:.1f}% <= {min_soc_threshold:.1f}%) → NORMAL",
            )
        return ModeDecision(
            BatteryMode.NORMAL,
            position,
            f"Planned discharge interval (price: {current.total:.4f} €/kWh)",
        )

    if solar_active:
        if grid_power_w is not None and grid_power_w <= SOLAR_EXPORT_THRESHOLD_W:
            return ModeDecision(
                BatteryMode.NORMAL,
                position,
                f"PV active and exporting ({grid_power_w:.0f} W) → NORMAL",
            )
        if grid_power_w is not None and grid_power_w >= CONSUMPTION_THRESHOLD_W:
            return ModeDecision(
                BatteryMode.CONSTANT,
                position,
                f"PV active and importing ({grid_power_w:.0f} W) → CONSTANT",
            )
        if last_mode in (BatteryMode.NORMAL, BatteryMode.CONSTANT):
            return ModeDecision(
                last_mode, position, f"PV active, grid power in deadband → keep {last_mode.value}"
            )
        return ModeDecision(BatteryMode.NORMAL, position, "PV active → NORMAL")

    return ModeDecision(
        BatteryMode.CONSTANT, position, "Default interval → CONSTANT to prevent discharge"
    )
