"""Core configuration values and types for the energy optimizer using dataclasses."""

from dataclasses import dataclass, field
from typing import Any

from .exceptions import SystemConfigurationError

# Interval resolution - NOT configurable
INTERVAL_MINUTES = 15
INTERVAL_HOURS = INTERVAL_MINUTES / 60
INTERVALS_PER_DAY = 96
PRICE_TIMEZONE = "Europe/Berlin"

# Battery settings defaults
BATTERY_CAPACITY_KWH = 9.9
BATTERY_CHARGE_POWER_KW = 6.0
BATTERY_TARGET_SOC = 85  # percentage
BATTERY_MIN_SOC_THRESHOLD = 7  # percentage, ledger is cleared at or below this
BATTERY_EFFICIENCY_LOSS = 10  # percentage, applied to both charge and discharge

# Optimizer settings defaults
EXPENSIVE_PRICE_FACTOR = 1.05
MIN_PROFIT_PER_KWH = 0.06  # €/kWh, expressed in ct in the options file
FORECAST_DAYS = 7
SOLAR_FEED_IN_TARIFF = 0.07  # €/kWh
GRID_IMPORT_THRESHOLD_W = 50
GRID_EXPORT_THRESHOLD_W = -50
MAX_BATTERY_LOG_ENTRIES = 7 * INTERVALS_PER_DAY

# Cost estimation defaults for energy the ledger has no record of
FALLBACK_ENERGY_PRICE = 0.20  # €/kWh
UNKNOWN_ENERGY_GRID_SHARE = 0.7
MIN_SOC_FOR_COST_BASIS = 0.05  # fraction

# Numeric tolerances
ENERGY_EPSILON_KWH = 0.01
METER_EPSILON_KWH = 0.001


@dataclass
class BatteryParams:
    """Battery state and economics handed to a scheduler for one run.

    SoC values are fractions (0..1). ``battery_cost_per_kwh`` is the blended
    cost basis of the energy already stored, ``None`` when unknown.
    """

    capacity: float
    current_soc: float
    target_soc: float
    charge_power_kw: float
    efficiency_loss: float = BATTERY_EFFICIENCY_LOSS / 100.0
    expensive_price_factor: float = EXPENSIVE_PRICE_FACTOR
    min_profit_per_kwh: float = MIN_PROFIT_PER_KWH
    interval_hours: float = INTERVAL_HOURS
    battery_cost_per_kwh: float | None = None
    min_energy_kwh: float = 0.0
    feed_in_tariff: float = SOLAR_FEED_IN_TARIFF

    @property
    def eta_charge(self) -> float:
        return max(0.0, 1.0 - self.efficiency_loss)

    @property
    def eta_discharge(self) -> float:
        return max(0.0, 1.0 - self.efficiency_loss)

    @property
    def current_energy_kwh(self) -> float:
        return max(0.0, self.current_soc) * self.capacity

    @property
    def max_energy_kwh(self) -> float:
        return max(0.0, self.target_soc) * self.capacity

    @property
    def max_interval_energy_kwh(self) -> float:
        return self.charge_power_kw * self.interval_hours


@dataclass
class BatterySettings:
    """Battery settings with canonical snake_case names only."""

    capacity: float = BATTERY_CAPACITY_KWH
    charge_power_kw: float = BATTERY_CHARGE_POWER_KW
    target_soc: float = BATTERY_TARGET_SOC  # percentage
    min_soc_threshold: float = BATTERY_MIN_SOC_THRESHOLD  # percentage
    efficiency_loss: float = BATTERY_EFFICIENCY_LOSS  # percentage
    eta_charge: float = field(init=False)
    eta_discharge: float = field(init=False)
    target_energy_kwh: float = field(init=False)
    min_energy_kwh: float = field(init=False)

    def __post_init__(self):
        self.eta_charge = 1.0 - self.efficiency_loss / 100.0
        self.eta_discharge = self.eta_charge
        self.target_energy_kwh = self.capacity * self.target_soc / 100.0
        self.min_energy_kwh = self.capacity * self.min_soc_threshold / 100.0

    def update(self, **kwargs: Any) -> None:
        """Update settings from dict."""
        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)

        self.__post_init__()

    def validate(self) -> None:
        """Raise SystemConfigurationError when the battery cannot be scheduled."""
        if self.capacity <= 0:
            raise SystemConfigurationError(
                "battery", f"Battery capacity must be positive, got {self.capacity}"
            )
        if self.charge_power_kw <= 0:
            raise SystemConfigurationError(
                "battery",
                f"Charge power must be positive, got {self.charge_power_kw}",
            )
        if not 0 <= self.target_soc <= 100:
            raise SystemConfigurationError(
                "battery", f"Target SoC must be within 0-100%, got {self.target_soc}"
            )
        if not 0 <= self.min_soc_threshold <= self.target_soc:
            raise SystemConfigurationError(
                "battery",
                f"Minimum SoC {self.min_soc_threshold}% must be between 0 and "
                f"target SoC {self.target_soc}%",
            )
        if not 0 <= self.efficiency_loss <= 50:
            raise SystemConfigurationError(
                "battery",
                f"Efficiency loss must be within 0-50%, got {self.efficiency_loss}",
            )

    def from_options(self, options: dict) -> "BatterySettings":
        """Populate from an add-on options mapping (``battery`` section)."""
        if "battery" in options:
            battery_config = options["battery"]
            self.capacity = battery_config.get("capacity", BATTERY_CAPACITY_KWH)
            self.charge_power_kw = battery_config.get(
                "charge_power_kw", BATTERY_CHARGE_POWER_KW
            )
            self.target_soc = battery_config.get("target_soc", BATTERY_TARGET_SOC)
            self.min_soc_threshold = battery_config.get(
                "min_soc_threshold", BATTERY_MIN_SOC_THRESHOLD
            )
            self.efficiency_loss = battery_config.get(
                "efficiency_loss", BATTERY_EFFICIENCY_LOSS
            )
            self.__post_init__()
        return self


@dataclass
class OptimizerSettings:
    """Price thresholds and bookkeeping limits for the schedulers."""

    expensive_price_factor: float = EXPENSIVE_PRICE_FACTOR
    min_profit_per_kwh: float = MIN_PROFIT_PER_KWH
    feed_in_tariff: float = SOLAR_FEED_IN_TARIFF
    forecast_days: int = FORECAST_DAYS
    max_log_entries: int = MAX_BATTERY_LOG_ENTRIES
    grid_import_threshold_w: float = GRID_IMPORT_THRESHOLD_W
    grid_export_threshold_w: float = GRID_EXPORT_THRESHOLD_W
    use_lp: bool = True

    def update(self, **kwargs: Any) -> None:
        """Update settings from dict."""
        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)

    def validate(self) -> None:
        if self.expensive_price_factor <= 0:
            raise SystemConfigurationError(
                "optimizer",
                f"Expensive price factor must be positive, got {self.expensive_price_factor}",
            )
        if self.min_profit_per_kwh < 0:
            raise SystemConfigurationError(
                "optimizer",
                f"Minimum profit cannot be negative, got {self.min_profit_per_kwh}",
            )
        if self.forecast_days < 1:
            raise SystemConfigurationError(
                "optimizer", f"Forecast window must be at least one day, got {self.forecast_days}"
            )

    def from_options(self, options: dict) -> "OptimizerSettings":
        """Populate from an add-on options mapping (``optimizer`` section).

        The minimum profit is configured in cents per kWh, as shown to the user.
        """
        if "optimizer" in options:
            optimizer_config = options["optimizer"]
            self.expensive_price_factor = optimizer_config.get(
                "expensive_price_factor", EXPENSIVE_PRICE_FACTOR
            )
            self.min_profit_per_kwh = (
                optimizer_config.get("min_profit_cent_per_kwh", MIN_PROFIT_PER_KWH * 100)
                / 100.0
            )
            self.feed_in_tariff = optimizer_config.get(
                "feed_in_tariff", SOLAR_FEED_IN_TARIFF
            )
            self.forecast_days = optimizer_config.get("forecast_days", FORECAST_DAYS)
            self.max_log_entries = optimizer_config.get(
                "max_log_entries", MAX_BATTERY_LOG_ENTRIES
            )
            self.use_lp = optimizer_config.get("use_lp", True)
        return self


def to_battery_params(
    battery: BatterySettings,
    optimizer: OptimizerSettings,
    current_soc: float,
    battery_cost_per_kwh: float | None = None,
) -> BatteryParams:
    """Build scheduler input from settings and the live SoC (percentage)."""
    return BatteryParams(
        capacity=battery.capacity,
        current_soc=current_soc / 100.0,
        target_soc=battery.target_soc / 100.0,
        charge_power_kw=battery.charge_power_kw,
        efficiency_loss=battery.efficiency_loss / 100.0,
        expensive_price_factor=optimizer.expensive_price_factor,
        min_profit_per_kwh=optimizer.min_profit_per_kwh,
        interval_hours=INTERVAL_HOURS,
        battery_cost_per_kwh=battery_cost_per_kwh,
        min_energy_kwh=battery.min_energy_kwh,
        feed_in_tariff=optimizer.feed_in_tariff,
    )
