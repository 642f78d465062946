"""BatteryTracker - turns cumulative meter readings into ledger entries.

Each reading is compared with the previous one. Battery charge and discharge
deltas above the meter tolerance become ledger rows. The solar share of a
charge is the solar produced in the same period minus what was exported.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from .charge_log import ChargeLog, create_charge_entry, create_discharge_entry
from .models import ChargeLogEntry
from .settings import BATTERY_MIN_SOC_THRESHOLD, METER_EPSILON_KWH

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MeterReading:
    """Cumulative meter totals (kWh) and SoC (percent) at one point in time."""

    battery_charged_kwh: float
    battery_discharged_kwh: float
    solar_produced_kwh: float = 0.0
    grid_exported_kwh: float = 0.0
    soc: float = 0.0
    timestamp: datetime | None = None


class BatteryTracker:
    """Records battery charge and discharge events into a ChargeLog."""

    def __init__(
        self, charge_log: ChargeLog, min_soc_threshold: float = BATTERY_MIN_SOC_THRESHOLD
    ):
        """Initialize the tracker.

        Args:
            charge_log: Ledger receiving the entries
            min_soc_threshold: SoC percentage at or below which the battery
                counts as empty and the ledger is cleared
        """
        self.charge_log = charge_log
        self.min_soc_threshold = min_soc_threshold
        self.last_reading: MeterReading | None = None

    def track(self, reading: MeterReading, grid_price: float | None) -> list[ChargeLogEntry]:
        """Process one reading and return the entries recorded for it."""
        if self.charge_log.should_clear(reading.soc, self.min_soc_threshold):
            logger.info(
                f"Battery at {reading.soc:.1f}% (<= {self.min_soc_threshold}%), "
                f"clearing charge log ({len(self.charge_log)} entries)"
            )
            self.charge_log.clear()
            self.last_reading = reading
            return []

        if self.last_reading is None:
            logger.info("Initializing meter baseline")
            self.last_reading = reading
            return []

        last = self.last_reading
        solar_produced = max(0.0, reading.solar_produced_kwh - last.solar_produced_kwh)
        grid_exported = max(0.0, reading.grid_exported_kwh - last.grid_exported_kwh)
        solar_available = max(0.0, solar_produced - grid_exported)
        charged = max(0.0, reading.battery_charged_kwh - last.battery_charged_kwh)
        discharged = max(0.0, reading.battery_discharged_kwh - last.battery_discharged_kwh)

        # Baseline always advances so unrelated deltas are not carried forward
        self.last_reading = reading

        price = grid_price or 0.0
        recorded = []

        if charged > METER_EPSILON_KWH:
            entry = create_charge_entry(
                charged_kwh=charged,
                solar_kwh=solar_available,
                grid_price=price,
                soc=reading.soc,
                timestamp=reading.timestamp,
            )
            self.charge_log.record(entry)
            recorded.append(entry)

        if discharged > METER_EPSILON_KWH:
            cost_before = self.charge_log.current_cost_basis()
            entry = create_discharge_entry(
                discharged_kwh=discharged,
                grid_price=price,
                avg_battery_price=cost_before.avg_price if cost_before else 0.0,
                soc=reading.soc,
                timestamp=reading.timestamp,
            )
            self.charge_log.record(entry)
            recorded.append(entry)

        if recorded:
            logger.debug(
                f"Tracked battery: +{charged:.3f} kWh ({solar_available:.3f} solar), "
                f"-{discharged:.3f} kWh at {price:.4f} €/kWh"
            )
        return recorded
