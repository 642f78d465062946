"""
EnergyOptimizer - facade tying prices, history, the cost ledger and both
schedulers together.

Each scheduling tick tries the LP scheduler first and falls back to the
heuristic when the LP cannot produce a strategy. Ticks never overlap: a tick
that starts while another is running is skipped.
"""

import logging
import threading
from dataclasses import asdict, replace
from datetime import datetime
from typing import Any

from .battery_tracker import BatteryTracker, MeterReading
from .charge_log import ChargeLog
from .cost_estimation import combine_battery_cost
from .exceptions import PriceDataUnavailableError
from .heuristic_scheduler import compute_heuristic_strategy
from .history_store import PowerHistory
from .lp_scheduler import LpSolver, PulpLpSolver, optimize_strategy_with_lp
from .models import ChargeLogEntry, CostBasis, PriceInterval, Strategy
from .settings import (
    INTERVALS_PER_DAY,
    MIN_SOC_FOR_COST_BASIS,
    BatterySettings,
    OptimizerSettings,
    to_battery_params,
)
from .strategy_execution import BatteryMode, ModeDecision, decide_battery_mode, has_mode_changed
from .time_utils import (
    TIMEZONE,
    enrich_price_data,
    filter_current_and_future_intervals,
    get_interval_of_day,
    get_price_at_time,
)

logger = logging.getLogger(__name__)

# Keeps the LP tractable for periodic re-solving (~600 variables)
LP_MAX_INTERVALS = INTERVALS_PER_DAY


def format_strategy_table(strategy: Strategy) -> str:
    """Render planned actions as a table for the log."""
    rows = sorted(
        [("CHARGE", c.starts_at, c.total, c.planned_energy_kwh, c.source)
         for c in strategy.charge_intervals]
        + [("DISCHARGE", d.starts_at, d.total, d.demand_kwh,
            "stored" if d.demand_from_existing_kwh > d.demand_from_new_kwh else "new")
           for d in strategy.discharge_intervals],
        key=lambda row: row[1],
    )

    output = [f"\nBattery Strategy ({strategy.source}):"]
    output.append("╔═══════╦══════════╦═══════════╦════════╦════════╗")
    output.append("║ Time  ║  Price   ║ Action    ║ Energy ║ Source ║")
    output.append("║       ║ (€/kWh)  ║           ║ (kWh)  ║        ║")
    output.append("╠═══════╬══════════╬═══════════╬════════╬════════╣")
    for action, starts_at, price, energy, source in rows:
        local = starts_at.astimezone(TIMEZONE)
        output.append(
            f"║ {local:%H:%M} ║ {price:>8.4f} ║ {action:<9} ║ {energy:>6.2f} ║ {source:<6} ║"
        )
    output.append("╠═══════╩══════════╩═══════════╩════════╩════════╣")
    output.append(
        f"║ Avg price {strategy.avg_price:>7.4f}   Threshold {strategy.expensive_threshold:>7.4f}      ║"
    )
    output.append(
        f"║ Baseline {strategy.economics.baseline_cost:>8.2f} € "
        f"Optimized {strategy.economics.optimized_cost:>8.2f} €     ║"
    )
    output.append(f"║ Savings {strategy.savings:>9.2f} €                             ║")
    output.append("╚════════════════════════════════════════════════╝")
    return "\n".join(output)


class EnergyOptimizer:
    """Owns the optimizer state and runs scheduling ticks."""

    def __init__(
        self,
        battery_settings: BatterySettings | None = None,
        optimizer_settings: OptimizerSettings | None = None,
        lp_solver: LpSolver | None = None,
        history: PowerHistory | None = None,
        charge_log: ChargeLog | None = None,
    ):
        """Initialize the optimizer.

        Args:
            battery_settings: Battery configuration, defaults when None
            optimizer_settings: Scheduler configuration, defaults when None
            lp_solver: LP solver port. When None and LP is enabled, PuLP/CBC is used.
            history: Restored power history
            charge_log: Restored cost ledger
        """
        self.battery_settings = battery_settings or BatterySettings()
        self.optimizer_settings = optimizer_settings or OptimizerSettings()

        if lp_solver is None and self.optimizer_settings.use_lp:
            lp_solver = PulpLpSolver()
        self.lp_solver = lp_solver

        self.history = history or PowerHistory(self.optimizer_settings.forecast_days)
        self.charge_log = charge_log or ChargeLog(self.optimizer_settings.max_log_entries)
        self.tracker = BatteryTracker(
            self.charge_log, self.battery_settings.min_soc_threshold
        )

        self.prices: list[PriceInterval] = []
        self.strategy: Strategy | None = None
        self.last_mode: BatteryMode | None = None

        self._last_input_hash: str | None = None
        self._tick_lock = threading.Lock()

        logger.info(
            f"EnergyOptimizer initialized (LP {'enabled' if self.lp_solver else 'disabled'})"
        )

    def update_prices(self, prices: list[PriceInterval] | list[dict]) -> int:
        """Replace the price series. Raw ``starts_at``/``total`` records are enriched."""
        if prices and isinstance(prices[0], dict):
            prices = enrich_price_data(prices)
        if not prices:
            logger.warning("No valid price records, keeping current price data")
            return 0

        self.prices = sorted(prices, key=lambda p: p.starts_at)
        logger.info(f"Updated price data: {len(self.prices)} intervals")
        return len(self.prices)

    def record_power_sample(
        self,
        now: datetime,
        grid_w: float | None = None,
        solar_w: float | None = None,
        battery_w: float | None = None,
    ) -> None:
        self.history.record_sample(get_interval_of_day(now), grid_w, solar_w, battery_w)

    def record_meter_reading(self, reading: MeterReading) -> list[ChargeLogEntry]:
        """Feed a cumulative meter reading to the ledger tracker."""
        price = None
        if reading.timestamp is not None:
            price = get_price_at_time(self.prices, reading.timestamp)
        return self.tracker.track(reading, price)

    def get_battery_cost(self, current_soc: float) -> CostBasis | None:
        """Cost basis of the stored energy, estimating any untracked share.

        Args:
            current_soc: SoC in percent
        """
        stored_kwh = current_soc / 100.0 * self.battery_settings.capacity
        return combine_battery_cost(
            self.charge_log.current_cost_basis(),
            stored_kwh,
            self.battery_settings.capacity,
            self.strategy,
            self.prices,
        )

    def _input_hash(self, current_soc: float) -> str:
        battery = self.battery_settings
        return (
            f"{len(self.prices)}:{round(current_soc)}:{battery.target_soc}:"
            f"{battery.charge_power_kw}:{battery.efficiency_loss}"
        )

    def calculate_strategy(
        self, now: datetime, current_soc: float, force: bool = False
    ) -> Strategy | None:
        """Run one scheduling tick.

        Args:
            now: Current time (timezone-aware)
            current_soc: SoC in percent
            force: Recalculate even if inputs are unchanged

        Returns:
            The active strategy

        Raises:
            PriceDataUnavailableError: If there are no current or future prices
        """
        if not self._tick_lock.acquire(blocking=False):
            logger.warning("Strategy calculation already running, skipping tick")
            return self.strategy

        try:
            input_hash = self._input_hash(current_soc)
            if not force and input_hash == self._last_input_hash and self.strategy:
                logger.debug("Skipping strategy recalculation (no input changes)")
                return self.strategy

            prices = filter_current_and_future_intervals(self.prices, now)
            if not prices:
                raise PriceDataUnavailableError(now.date())

            cost_basis = None
            if current_soc / 100.0 > MIN_SOC_FOR_COST_BASIS:
                battery_cost = self.get_battery_cost(current_soc)
                if battery_cost is not None:
                    cost_basis = battery_cost.avg_price

            params = to_battery_params(
                self.battery_settings, self.optimizer_settings, current_soc, cost_basis
            )

            strategy = None
            if self.optimizer_settings.use_lp and self.lp_solver is not None:
                strategy = optimize_strategy_with_lp(
                    prices[:LP_MAX_INTERVALS], params, self.history, self.lp_solver
                )
                if strategy is None:
                    logger.warning("LP optimization unavailable, using heuristic strategy")

            if strategy is None:
                strategy = compute_heuristic_strategy(prices, params, self.history)

            self.strategy = replace(strategy, calculated_at=now)
            self._last_input_hash = input_hash
            logger.info(format_strategy_table(self.strategy))
            return self.strategy
        finally:
            self._tick_lock.release()

    def decide_mode(
        self,
        now: datetime,
        grid_power_w: float | None = 0.0,
        solar_power_w: float | None = None,
        current_soc: float | None = None,
    ) -> ModeDecision:
        decision = decide_battery_mode(
            now,
            self.prices,
            self.strategy,
            grid_power_w=grid_power_w,
            solar_power_w=solar_power_w,
            last_mode=self.last_mode,
            current_soc=current_soc,
            min_soc_threshold=self.battery_settings.min_soc_threshold,
        )
        if has_mode_changed(decision.mode, self.last_mode):
            logger.info(
                f"Battery mode {self.last_mode.value} → {decision.mode.value}: {decision.reason}"
            )
        if decision.mode != BatteryMode.IDLE:
            self.last_mode = decision.mode
        return decision

    def get_status(self, current_soc: float | None = None) -> dict[str, Any]:
        """Summary for status and telemetry display."""
        status: dict[str, Any] = {
            "price_intervals": len(self.prices),
            "history_samples": self.history.sample_count(),
            "charge_log_entries": len(self.charge_log),
            "last_mode": self.last_mode.value if self.last_mode else None,
            "strategy_source": self.strategy.source if self.strategy else None,
            "planned_charge_intervals": len(self.strategy.charge_intervals) if self.strategy else 0,
            "planned_discharge_intervals": len(self.strategy.discharge_intervals) if self.strategy else 0,
            "savings": self.strategy.savings if self.strategy else 0.0,
        }
        if current_soc is not None:
            battery_cost = self.get_battery_cost(current_soc)
            status["battery_avg_price"] = battery_cost.avg_price if battery_cost else None
        return status

    def get_settings(self) -> dict[str, Any]:
        return {
            "battery": asdict(self.battery_settings),
            "optimizer": asdict(self.optimizer_settings),
        }

    def update_settings(self, settings: dict[str, Any]) -> None:
        """Update settings and force the next tick to recalculate.

        Raises:
            SystemConfigurationError: If the resulting settings are invalid
        """
        # A rejected update leaves the current settings untouched
        if "battery" in settings:
            candidate = replace(self.battery_settings)
            candidate.update(**settings["battery"])
            candidate.validate()
        if "optimizer" in settings:
            candidate = replace(self.optimizer_settings)
            candidate.update(**settings["optimizer"])
            candidate.validate()

        if "battery" in settings:
            self.battery_settings.update(**settings["battery"])
            self.tracker.min_soc_threshold = self.battery_settings.min_soc_threshold

        if "optimizer" in settings:
            self.optimizer_settings.update(**settings["optimizer"])
            self.history.set_forecast_days(self.optimizer_settings.forecast_days)
            self.charge_log.max_entries = self.optimizer_settings.max_log_entries
            if self.optimizer_settings.use_lp and self.lp_solver is None:
                self.lp_solver = PulpLpSolver()

        self._last_input_hash = None
        logger.info("Settings updated successfully")
