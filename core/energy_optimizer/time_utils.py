"""Time utilities for 15-minute price interval handling.

Price intervals are keyed by their start timestamp. The interval-of-day
(0..95) is the time-of-day bucket used to look up historical averages
independent of the calendar date.
"""

import logging
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from .models import PriceInterval
from .settings import INTERVAL_MINUTES, INTERVALS_PER_DAY, PRICE_TIMEZONE

logger = logging.getLogger(__name__)

TIMEZONE = ZoneInfo(PRICE_TIMEZONE)
INTERVAL_LENGTH = timedelta(minutes=INTERVAL_MINUTES)


def get_interval_of_day(dt: datetime, tz: ZoneInfo = TIMEZONE) -> int:
    """Return the 15-minute bucket (0..95) of a timestamp in the price timezone.

    Naive timestamps are taken as already local.

    Example:
        >>> get_interval_of_day(datetime(2025, 11, 15, 14, 30, tzinfo=TIMEZONE))
        58
    """
    local = dt.astimezone(tz) if dt.tzinfo else dt
    interval = (local.hour * 60 + local.minute) // INTERVAL_MINUTES
    return min(interval, INTERVALS_PER_DAY - 1)


def parse_timestamp(value: str | datetime, tz: ZoneInfo = TIMEZONE) -> datetime:
    """Parse an ISO timestamp, attaching the price timezone when naive.

    Raises:
        ValueError: If the string is not an ISO 8601 timestamp
    """
    dt = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return dt


def enrich_price_data(raw_prices: list[dict], tz: ZoneInfo = TIMEZONE) -> list[PriceInterval]:
    """Turn raw ``{"starts_at", "total"}`` records into indexed PriceIntervals.

    Records with an unparseable timestamp or price are skipped. The result is
    sorted chronologically and indexed 0..N-1.
    """
    parsed: list[tuple[datetime, float]] = []
    for record in raw_prices or []:
        starts_at = record.get("starts_at", record.get("startsAt"))
        total = record.get("total")
        if starts_at is None or total is None:
            logger.debug(f"Skipping incomplete price record: {record}")
            continue
        try:
            parsed.append((parse_timestamp(starts_at, tz), float(total)))
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed price record {record}: {e}")

    parsed.sort(key=lambda item: item[0])

    return [
        PriceInterval(
            starts_at=starts_at,
            total=total,
            index=position,
            interval_of_day=get_interval_of_day(starts_at, tz),
        )
        for position, (starts_at, total) in enumerate(parsed)
    ]


def filter_current_and_future_intervals(
    prices: list[PriceInterval], now: datetime
) -> list[PriceInterval]:
    """Keep the interval covering ``now`` and everything after it.

    Indices are preserved, so the result is no longer dense once the past
    has been pruned.
    """
    cutoff = now - INTERVAL_LENGTH
    current = [p for p in prices if p.starts_at > cutoff]
    return sorted(current, key=lambda p: p.starts_at)


def find_current_interval(
    prices: list[PriceInterval], now: datetime
) -> PriceInterval | None:
    """Return the interval whose 15-minute window contains ``now``."""
    for interval in prices:
        if interval.starts_at <= now < interval.starts_at + INTERVAL_LENGTH:
            return interval
    return None


def get_price_at_time(prices: list[PriceInterval], dt: datetime) -> float | None:
    """Spot price in effect at ``dt``, or None when outside the known series."""
    interval = find_current_interval(prices, dt)
    return interval.total if interval else None


def is_in_interval(starts_at: datetime, now: datetime) -> bool:
    return starts_at <= now < starts_at + INTERVAL_LENGTH


def group_consecutive_intervals(intervals: list) -> list[list]:
    """Group intervals into runs of back-to-back 15-minute slots.

    Works for anything with a ``starts_at`` attribute (price, charge or
    discharge intervals). Input order does not matter.
    """
    groups: list[list] = []
    for interval in sorted(intervals, key=lambda i: i.starts_at):
        if groups and interval.starts_at - groups[-1][-1].starts_at == INTERVAL_LENGTH:
            groups[-1].append(interval)
        else:
            groups.append([interval])
    return groups


def format_interval_range(group: list) -> str:
    """Format a run of intervals as ``HH:MM-HH:MM`` local time."""
    if not group:
        return ""
    start = group[0].starts_at.astimezone(TIMEZONE)
    end = group[-1].starts_at.astimezone(TIMEZONE) + INTERVAL_LENGTH
    return f"{start:%H:%M}-{end:%H:%M}"
