"""Battery cost-basis ledger.

Tracks the blended purchase price of the energy currently held in the
battery from a sequence of charge and discharge events. Solar energy is
modeled at zero marginal cost. Discharges draw proportionally from the whole
remaining solar/grid mix (weighted average, not oldest-first).
"""

import logging
from collections.abc import Iterable
from datetime import datetime

from .models import ChargeLogEntry, CostBasis
from .settings import ENERGY_EPSILON_KWH, MAX_BATTERY_LOG_ENTRIES, METER_EPSILON_KWH

logger = logging.getLogger(__name__)

__all__ = [
    "ChargeLog",
    "calculate_battery_energy_cost",
    "calculate_discharge_profit",
    "create_charge_entry",
    "create_discharge_entry",
    "should_clear_charge_log",
    "trim_charge_log",
]


def _coerce_entry(entry) -> ChargeLogEntry:
    if isinstance(entry, ChargeLogEntry):
        return entry
    if isinstance(entry, dict):
        return ChargeLogEntry.from_dict(entry)
    return ChargeLogEntry(type="", total_kwh=0.0)


def calculate_battery_energy_cost(
    entries: Iterable[ChargeLogEntry | dict] | None,
) -> CostBasis | None:
    """Walk the ledger and return the cost basis of the remaining energy.

    Args:
        entries: Ledger rows in chronological order. Persisted dict rows are
            accepted; missing or malformed numbers count as 0.

    Returns:
        CostBasis, or None if the ledger is empty or less than 0.01 kWh
        remains (battery effectively empty).
    """
    rows = [_coerce_entry(entry) for entry in entries or []]
    if not rows:
        logger.debug("No battery charge log data available")
        return None

    net_solar_kwh = 0.0
    net_grid_kwh = 0.0
    total_grid_cost = 0.0

    for row in rows:
        if row.type == "charge":
            net_solar_kwh += row.solar_kwh
            net_grid_kwh += row.grid_kwh
            total_grid_cost += row.grid_kwh * row.grid_price
        elif row.type == "discharge":
            discharged_kwh = abs(row.total_kwh)
            pool_kwh = net_solar_kwh + net_grid_kwh
            if pool_kwh > METER_EPSILON_KWH:
                solar_ratio = net_solar_kwh / pool_kwh
                grid_ratio = net_grid_kwh / pool_kwh
                avg_cost = total_grid_cost / pool_kwh

                net_solar_kwh = max(0.0, net_solar_kwh - discharged_kwh * solar_ratio)
                net_grid_kwh = max(0.0, net_grid_kwh - discharged_kwh * grid_ratio)
                total_grid_cost = max(0.0, total_grid_cost - discharged_kwh * avg_cost)

    net_total_kwh = net_solar_kwh + net_grid_kwh
    logger.debug(
        f"Battery energy from {len(rows)} log entries: {net_total_kwh:.3f} kWh "
        f"({net_solar_kwh:.3f} solar + {net_grid_kwh:.3f} grid)"
    )

    if net_total_kwh < ENERGY_EPSILON_KWH:
        logger.debug("Battery effectively empty (< 0.01 kWh)")
        return None

    return CostBasis(
        avg_price=total_grid_cost / net_total_kwh,
        total_kwh=net_total_kwh,
        solar_kwh=net_solar_kwh,
        grid_kwh=net_grid_kwh,
        solar_percent=net_solar_kwh / net_total_kwh * 100,
        grid_percent=net_grid_kwh / net_total_kwh * 100,
        total_cost=total_grid_cost,
        grid_only_avg_price=total_grid_cost / net_grid_kwh if net_grid_kwh > 0 else 0.0,
        stored_kwh=net_total_kwh,
        tracked_kwh=net_total_kwh,
    )


def create_charge_entry(
    charged_kwh: float,
    solar_kwh: float = 0.0,
    grid_price: float = 0.0,
    soc: float = 0.0,
    timestamp: datetime | None = None,
) -> ChargeLogEntry:
    """Create a charge row. Solar is clamped to the charged amount, the rest is grid."""
    from_solar = max(0.0, min(charged_kwh, solar_kwh))
    from_grid = max(0.0, charged_kwh - from_solar)
    return ChargeLogEntry(
        type="charge",
        total_kwh=charged_kwh,
        solar_kwh=from_solar,
        grid_kwh=from_grid,
        grid_price=grid_price,
        soc=soc,
        timestamp=timestamp,
    )


def create_discharge_entry(
    discharged_kwh: float,
    grid_price: float = 0.0,
    avg_battery_price: float = 0.0,
    soc: float = 0.0,
    timestamp: datetime | None = None,
) -> ChargeLogEntry:
    """Create a discharge row. ``total_kwh`` is always negative."""
    return ChargeLogEntry(
        type="discharge",
        total_kwh=-abs(discharged_kwh),
        grid_price=grid_price,
        avg_battery_price=avg_battery_price,
        soc=soc,
        timestamp=timestamp,
    )


def should_clear_charge_log(current_soc: float, min_soc_threshold: float, log_length: int) -> bool:
    """True when the battery is at or below the minimum SoC and there is history to drop."""
    return current_soc <= min_soc_threshold and log_length > 0


def trim_charge_log(entries: list, max_entries: int) -> list:
    """Keep only the most recent ``max_entries`` rows."""
    if not entries:
        return []
    if len(entries) <= max_entries:
        return entries
    return entries[-max_entries:]


def calculate_discharge_profit(
    discharged_kwh: float, avg_battery_cost: float, current_grid_price: float
) -> dict:
    """Profit of discharging stored energy instead of importing at the current price.

    Returns:
        Dict with profit, profit_percent, worth_it, cost, revenue and reason
    """
    if discharged_kwh <= 0 or avg_battery_cost < 0 or current_grid_price < 0:
        return {
            "profit": 0.0,
            "profit_percent": 0.0,
            "worth_it": False,
            "cost": 0.0,
            "revenue": 0.0,
            "reason": "Invalid parameters",
        }

    cost = discharged_kwh * avg_battery_cost
    revenue = discharged_kwh * current_grid_price
    profit = revenue - cost

    return {
        "profit": profit,
        "profit_percent": profit / cost * 100 if avg_battery_cost > 0 else 0.0,
        "worth_it": profit > 0,
        "cost": cost,
        "revenue": revenue,
        "reason": "Profitable discharge" if profit > 0 else "Unprofitable discharge",
    }


class ChargeLog:
    """Owned, append-only battery ledger.

    All accounting rules (proportional depletion, clearing when empty,
    trimming) live here so callers only record events and read the result.
    """

    def __init__(self, max_entries: int = MAX_BATTERY_LOG_ENTRIES, entries=None):
        self.max_entries = max_entries
        self._entries: list[ChargeLogEntry] = [
            _coerce_entry(entry) for entry in entries or []
        ]
        self._entries = trim_charge_log(self._entries, max_entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> list[ChargeLogEntry]:
        return list(self._entries)

    def record(self, entry: ChargeLogEntry) -> None:
        """Append an entry and trim to the configured maximum."""
        self._entries.append(entry)
        if len(self._entries) > self.max_entries:
            self._entries = trim_charge_log(self._entries, self.max_entries)
        logger.debug(
            f"Recorded {entry.type} of {abs(entry.total_kwh):.3f} kWh "
            f"({len(self._entries)} entries)"
        )

    def current_cost_basis(self) -> CostBasis | None:
        return calculate_battery_energy_cost(self._entries)

    def should_clear(self, current_soc: float, min_soc_threshold: float) -> bool:
        return should_clear_charge_log(current_soc, min_soc_threshold, len(self._entries))

    def clear(self) -> None:
        count = len(self._entries)
        self._entries = []
        logger.info(f"Cleared battery charge log ({count} entries)")

    def trim(self, max_entries: int | None = None) -> None:
        self._entries = trim_charge_log(self._entries, max_entries or self.max_entries)

    def to_list(self) -> list[dict]:
        return [entry.to_dict() for entry in self._entries]
