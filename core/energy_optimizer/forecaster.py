"""
Per-interval house demand and solar forecasting from rolling history.

House load is reconstructed from the instantaneous power balance at the grid
connection:

    load_w = grid_net_w + solar_w - battery_w

with grid import positive and battery charging positive. The averaged load
and solar power for each interval-of-day are converted to energy and split
into import demand (load not covered by solar) and solar surplus (solar not
consumed by the house). At most one of the two is non-zero per interval.
"""

import logging
import math
from collections.abc import Mapping

import numpy as np

from .history_store import PowerHistory
from .models import HouseSignals, PriceInterval
from .settings import INTERVAL_HOURS

logger = logging.getLogger(__name__)

# Assumed house load when there is no grid history for a time of day
DEFAULT_HOUSE_LOAD_KW = 3.0

__all__ = [
    "DEFAULT_HOUSE_LOAD_KW",
    "average_watts_for_interval",
    "forecast_house_signals",
    "get_percentile",
]


def get_percentile(values: list[float], q: float) -> float:
    """Linear-interpolated order statistic at position (n-1)*q.

    Args:
        values: Ascending-sorted samples
        q: Quantile in [0, 1]

    Returns:
        The interpolated value, or 0 for an empty list
    """
    if len(values) == 0:
        return 0.0
    return float(np.percentile(np.asarray(values, dtype=float), q * 100.0))


def average_watts_for_interval(
    history_by_interval: Mapping | None, interval_of_day: int
) -> float | None:
    """Mean of the samples recorded for one interval-of-day, None when unusable."""
    if not isinstance(history_by_interval, Mapping):
        return None
    samples = history_by_interval.get(interval_of_day)
    if samples is None:
        samples = history_by_interval.get(str(interval_of_day))
    if not samples:
        return None
    try:
        average = float(np.mean(np.asarray(samples, dtype=float)))
    except (TypeError, ValueError):
        return None
    return average if math.isfinite(average) else None


def _signal_history(history, signal: str) -> Mapping:
    if isinstance(history, PowerHistory):
        return history.get_samples(signal)
    if isinstance(history, Mapping):
        samples = history.get(signal)
        return samples if isinstance(samples, Mapping) else {}
    return {}


def forecast_house_signals(
    intervals: list[PriceInterval],
    history: PowerHistory | Mapping | None,
    interval_hours: float = INTERVAL_HOURS,
) -> HouseSignals:
    """Forecast house load, solar, import demand and solar surplus per interval.

    Args:
        intervals: Price intervals to forecast, in working order
        history: PowerHistory or mapping of ``grid``/``solar``/``battery``
            to ``{interval_of_day: [watts, ...]}``. Missing or malformed
            history falls back to the default load and zero solar.
        interval_hours: Interval length in hours

    Returns:
        HouseSignals whose lists are addressed by position in ``intervals``
    """
    signals = HouseSignals()
    if not intervals:
        return signals

    grid_history = _signal_history(history, "grid")
    solar_history = _signal_history(history, "solar")
    battery_history = _signal_history(history, "battery")

    for position, interval in enumerate(intervals):
        signals.position_by_index[interval.index] = position
        interval_of_day = interval.interval_of_day

        if interval_of_day is None:
            load_kwh = DEFAULT_HOUSE_LOAD_KW * interval_hours
            signals.house_load_kwh.append(load_kwh)
            signals.solar_kwh.append(0.0)
            signals.import_demand_kwh.append(load_kwh)
            signals.solar_surplus_kwh.append(0.0)
            continue

        avg_grid_w = average_watts_for_interval(grid_history, interval_of_day)
        avg_solar_w = average_watts_for_interval(solar_history, interval_of_day)
        avg_battery_w = average_watts_for_interval(battery_history, interval_of_day)

        grid_kw = avg_grid_w / 1000 if avg_grid_w is not None else DEFAULT_HOUSE_LOAD_KW
        pv_kw = max(0.0, avg_solar_w / 1000) if avg_solar_w is not None else 0.0
        battery_kw = avg_battery_w / 1000 if avg_battery_w is not None else 0.0

        load_kw = max(0.0, grid_kw + pv_kw - battery_kw)
        load_kwh = load_kw * interval_hours
        pv_kwh = pv_kw * interval_hours

        signals.house_load_kwh.append(load_kwh)
        signals.solar_kwh.append(pv_kwh)
        signals.import_demand_kwh.append(max(0.0, load_kwh - pv_kwh))
        signals.solar_surplus_kwh.append(max(0.0, pv_kwh - load_kwh))

    logger.debug(
        f"Forecast {len(intervals)} intervals: "
        f"import {sum(signals.import_demand_kwh):.2f} kWh, "
        f"surplus {sum(signals.solar_surplus_kwh):.2f} kWh"
    )
    return signals
