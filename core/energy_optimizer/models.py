"""
Data models for the energy optimizer.

This module contains dataclasses representing the price series, forecasts,
ledger rows and scheduler output shared by the optimizer components.

"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

logger = logging.getLogger(__name__)

__all__ = [
    "ChargeInterval",
    "ChargeLogEntry",
    "ChargePart",
    "CostBasis",
    "DischargeInterval",
    "Economics",
    "HouseSignals",
    "PlannedCharging",
    "PriceInterval",
    "Strategy",
]


def _as_float(value, default: float = 0.0) -> float:
    """Coerce a persisted value to float, falling back to default."""
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if result != result:  # NaN
        return default
    return result


@dataclass(frozen=True)
class PriceInterval:
    """One 15-minute spot price interval.

    ``index`` is the chronological position in the series the interval was
    loaded with. After pruning it is unique and increasing but not dense, so
    never use it to address positional arrays.
    """

    starts_at: datetime
    total: float  # €/kWh
    index: int
    interval_of_day: int | None = None


@dataclass
class HouseSignals:
    """Forecast energy per interval, addressed by array position."""

    house_load_kwh: list[float] = field(default_factory=list)
    solar_kwh: list[float] = field(default_factory=list)
    import_demand_kwh: list[float] = field(default_factory=list)
    solar_surplus_kwh: list[float] = field(default_factory=list)
    position_by_index: dict[int, int] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.import_demand_kwh)

    def position_of(self, index: int) -> int | None:
        """Translate a PriceInterval.index into a list position."""
        return self.position_by_index.get(index)


@dataclass
class ChargeLogEntry:
    """A single ledger row. ``total_kwh`` is negative for discharges."""

    type: str  # "charge" or "discharge"
    total_kwh: float
    solar_kwh: float = 0.0
    grid_kwh: float = 0.0
    grid_price: float = 0.0
    avg_battery_price: float = 0.0
    soc: float = 0.0
    timestamp: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "ChargeLogEntry":
        """Create from a persisted dict, defaulting missing or malformed numbers to 0."""
        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            try:
                timestamp = datetime.fromisoformat(timestamp)
            except ValueError:
                timestamp = None
        elif not isinstance(timestamp, datetime):
            timestamp = None

        return cls(
            type=str(data.get("type", "")),
            total_kwh=_as_float(data.get("total_kwh")),
            solar_kwh=_as_float(data.get("solar_kwh")),
            grid_kwh=_as_float(data.get("grid_kwh")),
            grid_price=_as_float(data.get("grid_price")),
            avg_battery_price=_as_float(data.get("avg_battery_price")),
            soc=_as_float(data.get("soc")),
            timestamp=timestamp,
        )

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "total_kwh": self.total_kwh,
            "solar_kwh": self.solar_kwh,
            "grid_kwh": self.grid_kwh,
            "grid_price": self.grid_price,
            "avg_battery_price": self.avg_battery_price,
            "soc": self.soc,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


@dataclass
class CostBasis:
    """Blended purchase price of the energy currently held in the battery."""

    avg_price: float
    total_kwh: float
    solar_kwh: float
    grid_kwh: float
    solar_percent: float
    grid_percent: float
    total_cost: float
    grid_only_avg_price: float | None = None

    # Filled in when live SoC shows more energy than the ledger tracked
    stored_kwh: float | None = None
    tracked_kwh: float | None = None
    unknown_kwh: float = 0.0
    unknown_avg_price: float | None = None
    is_estimated: bool = False


@dataclass
class ChargePart:
    """Source breakdown of a planned charge."""

    source: str  # "grid" or "solar"
    energy_kwh: float
    price: float
    cost: float


@dataclass
class ChargeInterval:
    """A price interval planned for charging."""

    starts_at: datetime
    total: float
    index: int
    interval_of_day: int | None
    planned_energy_kwh: float
    planned_grid_energy_kwh: float = 0.0
    planned_solar_energy_kwh: float = 0.0
    charge_parts: list[ChargePart] = field(default_factory=list)

    @classmethod
    def from_interval(cls, interval: PriceInterval, **planned) -> "ChargeInterval":
        return cls(
            starts_at=interval.starts_at,
            total=interval.total,
            index=interval.index,
            interval_of_day=interval.interval_of_day,
            **planned,
        )

    @property
    def source(self) -> str:
        if self.planned_grid_energy_kwh > 0 and self.planned_solar_energy_kwh > 0:
            return "mixed"
        return "solar" if self.planned_solar_energy_kwh > 0 else "grid"


@dataclass
class DischargeInterval:
    """A price interval planned for discharging into house demand."""

    starts_at: datetime
    total: float
    index: int
    interval_of_day: int | None
    demand_kwh: float
    demand_from_existing_kwh: float = 0.0
    demand_from_new_kwh: float = 0.0

    @classmethod
    def from_interval(
        cls, interval: PriceInterval, **planned
    ) -> "DischargeInterval":
        return cls(
            starts_at=interval.starts_at,
            total=interval.total,
            index=interval.index,
            interval_of_day=interval.interval_of_day,
            **planned,
        )


@dataclass(frozen=True)
class Economics:
    """Cost of the horizon without battery action vs. with the planned schedule."""

    baseline_cost: float = 0.0
    optimized_cost: float = 0.0
    savings: float = 0.0


@dataclass(frozen=True)
class PlannedCharging:
    """Totals of planned charging split by source."""

    total_kwh: float = 0.0
    grid_kwh: float = 0.0
    solar_kwh: float = 0.0
    avg_price: float = 0.0
    grid_cost: float = 0.0
    solar_cost: float = 0.0
    feed_in_tariff: float = 0.0


@dataclass(frozen=True)
class Strategy:
    """Scheduler output. Treated as immutable until replaced by the next run."""

    charge_intervals: list[ChargeInterval] = field(default_factory=list)
    discharge_intervals: list[DischargeInterval] = field(default_factory=list)
    expensive_intervals: list[PriceInterval] = field(default_factory=list)
    avg_price: float = 0.0
    expensive_threshold: float = 0.0
    needed_kwh: float = 0.0
    forecasted_demand: float = 0.0
    savings: float = 0.0
    economics: Economics = field(default_factory=Economics)
    planned_charging: PlannedCharging = field(default_factory=PlannedCharging)
    total_charge_kwh: float = 0.0
    total_discharge_kwh: float = 0.0
    source: str = "heuristic"  # "heuristic" or "lp"
    objective_value: float | None = None
    calculated_at: datetime | None = None

    @property
    def is_empty(self) -> bool:
        return not self.charge_intervals and not self.discharge_intervals
