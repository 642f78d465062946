"""PowerHistory - Rolling per-time-of-day power samples used for forecasting.

One sample per signal is recorded per interval-of-day, so a window of N
samples covers the same 15-minute slot on the last N days.
"""

import logging
from collections import deque

from .settings import FORECAST_DAYS, INTERVALS_PER_DAY

logger = logging.getLogger(__name__)

SIGNALS = ("grid", "solar", "battery")


class PowerHistory:
    """Stores grid, solar and battery watt samples by interval-of-day.

    Grid power is positive on import, battery power positive while charging.
    """

    def __init__(self, forecast_days: int = FORECAST_DAYS):
        """Initialize the history.

        Args:
            forecast_days: Number of samples kept per interval-of-day and signal
        """
        self.forecast_days = forecast_days
        self._samples: dict[str, dict[int, deque]] = {name: {} for name in SIGNALS}

        logger.debug(f"Initialized PowerHistory with {forecast_days} day window")

    def record_sample(
        self,
        interval_of_day: int,
        grid_w: float | None = None,
        solar_w: float | None = None,
        battery_w: float | None = None,
    ) -> None:
        """Append the current power readings to the bucket for this time of day.

        Signals passed as None are not recorded (meter not configured).

        Raises:
            ValueError: If interval_of_day is outside 0..95
        """
        if not 0 <= interval_of_day < INTERVALS_PER_DAY:
            raise ValueError(
                f"Interval of day {interval_of_day} out of range "
                f"(0-{INTERVALS_PER_DAY - 1})"
            )

        for name, value in zip(SIGNALS, (grid_w, solar_w, battery_w)):
            if value is None:
                continue
            bucket = self._samples[name].setdefault(
                interval_of_day, deque(maxlen=self.forecast_days)
            )
            bucket.append(float(value))

        logger.debug(
            f"Recorded interval {interval_of_day}: grid={grid_w}W "
            f"solar={solar_w}W battery={battery_w}W"
        )

    def get_samples(self, signal: str) -> dict[int, list[float]]:
        """Return the samples of one signal keyed by interval-of-day."""
        return {key: list(values) for key, values in self._samples[signal].items()}

    def sample_count(self, signal: str | None = None) -> int:
        signals = [signal] if signal else SIGNALS
        return sum(
            len(values)
            for name in signals
            for values in self._samples[name].values()
        )

    def set_forecast_days(self, forecast_days: int) -> None:
        """Resize the rolling window, dropping the oldest samples if it shrinks."""
        self.forecast_days = forecast_days
        for buckets in self._samples.values():
            for key, values in buckets.items():
                buckets[key] = deque(values, maxlen=forecast_days)

    def clear(self) -> None:
        self._samples = {name: {} for name in SIGNALS}
        logger.info("Cleared power history")

    def to_dict(self) -> dict:
        """Serialize for persistence. Keys are strings as JSON requires."""
        return {
            name: {str(key): list(values) for key, values in buckets.items()}
            for name, buckets in self._samples.items()
        }

    @classmethod
    def from_dict(cls, data: dict | None, forecast_days: int = FORECAST_DAYS) -> "PowerHistory":
        """Restore from persisted data, skipping malformed buckets."""
        history = cls(forecast_days)
        for name in SIGNALS:
            for key, values in ((data or {}).get(name) or {}).items():
                try:
                    interval = int(key)
                    samples = [float(v) for v in values]
                except (TypeError, ValueError):
                    logger.warning(f"Skipping malformed {name} history bucket {key!r}")
                    continue
                history._samples[name][interval] = deque(
                    samples, maxlen=forecast_days
                )
        return history
