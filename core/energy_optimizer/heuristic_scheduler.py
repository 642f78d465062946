"""
Greedy charge/discharge scheduler.

Pairs cheap charging opportunities (grid intervals below the expensive
threshold, and intervals with forecast solar surplus) with the demand of
expensive intervals, highest price first:

1. Expensive intervals are those priced above
   ``max(avg_price * expensive_price_factor, p70)``.
2. Energy already stored above the reserve floor is used first, when its cost
   basis makes discharging worthwhile.
3. Remaining demand is matched against earlier charge candidates, cheapest
   first, while ``discharge - charge * (1 + loss) > min_profit`` holds and the
   battery has headroom up to the target SoC.
4. A discharge interval is kept only if its whole demand is covered. Partial
   assignments are rolled back so no charge is planned for a discharge that
   will not happen.

The result is deterministic for identical inputs.
"""

import logging
from dataclasses import dataclass, field

from .economics import (
    calculate_baseline_cost,
    calculate_expensive_threshold,
    calculate_trade_profitability,
    is_existing_energy_profitable,
    summarize_economics,
    summarize_planned_charging,
)
from .forecaster import forecast_house_signals
from .models import (
    ChargeInterval,
    ChargePart,
    DischargeInterval,
    Economics,
    HouseSignals,
    PriceInterval,
    Strategy,
)
from .settings import ENERGY_EPSILON_KWH, BatteryParams

logger = logging.getLogger(__name__)


@dataclass
class _ChargeCandidate:
    position: int
    source: str  # "grid" or "solar"
    price: float  # effective price per kWh
    capacity_kwh: float
    assigned_kwh: float = 0.0
    parts: list[ChargePart] = field(default_factory=list)

    @property
    def remaining_kwh(self) -> float:
        return self.capacity_kwh - self.assigned_kwh


def _build_charge_candidates(
    prices: list[PriceInterval],
    signals: HouseSignals,
    params: BatteryParams,
    threshold: float,
    last_expensive_position: int,
) -> list[_ChargeCandidate]:
    """Charge sources strictly before the last expensive interval, cheapest first."""
    candidates = []
    max_interval_kwh = params.max_interval_energy_kwh

    for position in range(last_expensive_position):
        surplus = signals.solar_surplus_kwh[position]
        if surplus > ENERGY_EPSILON_KWH:
            candidates.append(
                _ChargeCandidate(
                    position=position,
                    source="solar",
                    price=params.feed_in_tariff,
                    capacity_kwh=min(surplus, max_interval_kwh),
                )
            )
        elif prices[position].total <= threshold:
            candidates.append(
                _ChargeCandidate(
                    position=position,
                    source="grid",
                    price=prices[position].total,
                    capacity_kwh=max_interval_kwh,
                )
            )

    candidates.sort(key=lambda c: (c.price, c.position))
    return candidates


def compute_heuristic_strategy(
    prices: list[PriceInterval],
    params: BatteryParams,
    history=None,
    signals: HouseSignals | None = None,
) -> Strategy:
    """Plan charge and discharge intervals with the greedy pairing algorithm.

    Args:
        prices: Current and future intervals in chronological order
        params: Battery state and economics
        history: PowerHistory (or mapping) used when ``signals`` is not given
        signals: Precomputed forecast for ``prices``

    Returns:
        Strategy; empty (no actions) for an empty price series or when no
        profitable pairing exists
    """
    if not prices:
        logger.debug("No price intervals, returning empty strategy")
        return Strategy(source="heuristic")

    if signals is None:
        signals = forecast_house_signals(prices, history, params.interval_hours)

    avg_price, threshold = calculate_expensive_threshold(
        prices, params.expensive_price_factor
    )
    expensive_positions = [
        position for position, p in enumerate(prices) if p.total > threshold
    ]
    expensive_intervals = [prices[position] for position in expensive_positions]
    baseline_cost = calculate_baseline_cost(prices, signals, params.feed_in_tariff)

    if not expensive_positions:
        logger.info(
            f"No expensive intervals (avg {avg_price:.4f}, threshold {threshold:.4f})"
        )
        return Strategy(
            avg_price=avg_price,
            expensive_threshold=threshold,
            economics=Economics(baseline_cost, baseline_cost, 0.0),
            source="heuristic",
        )

    candidates = _build_charge_candidates(
        prices, signals, params, threshold, max(expensive_positions)
    )

    eta_discharge = params.eta_discharge
    cost_basis = params.battery_cost_per_kwh
    headroom_kwh = max(0.0, (params.target_soc - params.current_soc) * params.capacity)
    existing_available_kwh = max(0.0, params.current_energy_kwh - params.min_energy_kwh)

    discharges: list[DischargeInterval] = []
    charge_cost = 0.0
    avoided_import_value = 0.0
    existing_energy_cost = 0.0

    for position in sorted(expensive_positions, key=lambda p: (-prices[p].total, p)):
        interval = prices[position]
        demand = signals.import_demand_kwh[position]
        if demand <= ENERGY_EPSILON_KWH:
            continue

        remaining = demand
        from_existing = 0.0
        if existing_available_kwh > 0 and is_existing_energy_profitable(
            interval.total, cost_basis, eta_discharge, params.min_profit_per_kwh
        ):
            from_existing = min(remaining, existing_available_kwh * eta_discharge)
            remaining -= from_existing

        tentative: list[tuple[_ChargeCandidate, float]] = []
        headroom_left = headroom_kwh
        for candidate in candidates:
            if remaining <= ENERGY_EPSILON_KWH or headroom_left <= ENERGY_EPSILON_KWH:
                break
            if candidate.position >= position or candidate.remaining_kwh <= ENERGY_EPSILON_KWH:
                continue
            profitable, _ = calculate_trade_profitability(
                candidate.price,
                interval.total,
                params.efficiency_loss,
                params.min_profit_per_kwh,
            )
            if not profitable:
                break
            amount = min(candidate.remaining_kwh, remaining, headroom_left)
            tentative.append((candidate, amount))
            remaining -= amount
            headroom_left -= amount

        if remaining > ENERGY_EPSILON_KWH:
            logger.debug(
                f"Dropping discharge at index {interval.index}: "
                f"{remaining:.3f} of {demand:.3f} kWh unfunded"
            )
            continue

        # Fully covered: commit
        from_new = 0.0
        for candidate, amount in tentative:
            candidate.assigned_kwh += amount
            candidate.parts.append(
                ChargePart(
                    source=candidate.source,
                    energy_kwh=amount,
                    price=candidate.price,
                    cost=amount * candidate.price,
                )
            )
            charge_cost += amount * candidate.price * (1 + params.efficiency_loss)
            from_new += amount
        headroom_kwh = headroom_left
        if from_existing > 0:
            existing_available_kwh = max(
                0.0, existing_available_kwh - from_existing / eta_discharge
            )
            if cost_basis is not None and cost_basis > 0:
                existing_energy_cost += from_existing * cost_basis / eta_discharge

        avoided_import_value += (from_existing + from_new) * interval.total
        discharges.append(
            DischargeInterval.from_interval(
                interval,
                demand_kwh=from_existing + from_new,
                demand_from_existing_kwh=from_existing,
                demand_from_new_kwh=from_new,
            )
        )

    charge_intervals = []
    for candidate in sorted(candidates, key=lambda c: c.position):
        if candidate.assigned_kwh <= 0:
            continue
        solar_kwh = candidate.assigned_kwh if candidate.source == "solar" else 0.0
        charge_intervals.append(
            ChargeInterval.from_interval(
                prices[candidate.position],
                planned_energy_kwh=candidate.assigned_kwh,
                planned_grid_energy_kwh=candidate.assigned_kwh - solar_kwh,
                planned_solar_energy_kwh=solar_kwh,
                charge_parts=candidate.parts,
            )
        )

    discharges.sort(key=lambda d: d.starts_at)
    economics = summarize_economics(
        baseline_cost, charge_cost, avoided_import_value, existing_energy_cost
    )
    total_charge = sum(c.planned_energy_kwh for c in charge_intervals)
    total_discharge = sum(d.demand_kwh for d in discharges)

    logger.info(
        f"Heuristic strategy: {len(charge_intervals)} charge / "
        f"{len(discharges)} discharge intervals of {len(expensive_positions)} expensive, "
        f"charge {total_charge:.2f} kWh, savings {economics.savings:.4f} €"
    )

    return Strategy(
        charge_intervals=charge_intervals,
        discharge_intervals=discharges,
        expensive_intervals=expensive_intervals,
        avg_price=avg_price,
        expensive_threshold=threshold,
        needed_kwh=total_charge,
        forecasted_demand=total_discharge,
        savings=economics.savings,
        economics=economics,
        planned_charging=summarize_planned_charging(
            charge_intervals, params.feed_in_tariff
        ),
        total_charge_kwh=total_charge,
        total_discharge_kwh=total_discharge,
        source="heuristic",
    )
