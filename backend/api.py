"""
API endpoints for prices, live measurements, the active strategy and settings.

"""

from datetime import datetime

from api_conversion import (
    convert_keys_to_camel_case,
    convert_keys_to_snake_case,
    strategy_to_api,
)
from fastapi import APIRouter, HTTPException, Query
from loguru import logger

from core.energy_optimizer.battery_tracker import MeterReading
from core.energy_optimizer.exceptions import (
    PriceDataUnavailableError,
    SystemConfigurationError,
)
from core.energy_optimizer.time_utils import TIMEZONE, parse_timestamp

router = APIRouter()


def _timestamp_or_now(value) -> datetime:
    if value is None:
        return datetime.now(TIMEZONE)
    try:
        return parse_timestamp(value)
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid timestamp: {value}") from e


@router.get("/api/strategy")
async def get_strategy():
    """Get the active charge/discharge strategy."""
    from app import optimizer_controller

    strategy = optimizer_controller.optimizer.strategy
    if strategy is None:
        raise HTTPException(status_code=404, detail="No strategy calculated yet")

    try:
        return strategy_to_api(strategy)
    except Exception as e:
        logger.error(f"Error converting strategy: {e}")
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.post("/api/strategy/recalculate")
async def recalculate_strategy(body: dict | None = None):
    """Force a scheduling tick, optionally reporting a fresh SoC first."""
    from app import optimizer_controller

    if body and body.get("soc") is not None:
        optimizer_controller.update_soc(float(body["soc"]))

    try:
        strategy = optimizer_controller.run_tick(force=True)
    except PriceDataUnavailableError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e

    if strategy is None:
        raise HTTPException(status_code=409, detail="No battery SoC reported yet")
    return strategy_to_api(strategy)


@router.get("/api/battery-cost")
async def get_battery_cost(soc: float | None = Query(None)):
    """Get the cost basis of the energy currently stored in the battery."""
    from app import optimizer_controller

    current_soc = soc if soc is not None else optimizer_controller.current_soc
    if current_soc is None:
        raise HTTPException(status_code=400, detail="No battery SoC available")

    cost = optimizer_controller.optimizer.get_battery_cost(current_soc)
    return {
        "soc": current_soc,
        "costBasis": convert_keys_to_camel_case(cost) if cost else None,
    }


@router.get("/api/settings")
async def get_settings():
    """Get current battery and optimizer settings."""
    from app import optimizer_controller

    return convert_keys_to_camel_case(optimizer_controller.optimizer.get_settings())


@router.post("/api/settings")
async def update_settings(settings: dict):
    """Update battery and/or optimizer settings from camelCase input."""
    from app import optimizer_controller

    try:
        optimizer_controller.optimizer.update_settings(convert_keys_to_snake_case(settings))
    except SystemConfigurationError as e:
        logger.warning(f"Rejected settings update: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from e

    return {"message": "Settings updated successfully"}


@router.post("/api/prices")
async def update_prices(prices: list[dict]):
    """Replace the price series with ``{startsAt, total}`` records."""
    from app import optimizer_controller

    count = optimizer_controller.optimizer.update_prices(prices)
    if count == 0:
        raise HTTPException(status_code=400, detail="No valid price records")
    return {"intervals": count}


@router.post("/api/samples")
async def record_power_sample(sample: dict):
    """Record one grid/solar/battery power sample (W) for the load forecast."""
    from app import optimizer_controller

    data = convert_keys_to_snake_case(sample)
    timestamp = _timestamp_or_now(data.get("timestamp"))

    try:
        optimizer_controller.optimizer.record_power_sample(
            timestamp,
            grid_w=data.get("grid_w"),
            solar_w=data.get("solar_w"),
            battery_w=data.get("battery_w"),
        )
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return {"message": "Sample recorded"}


@router.post("/api/meter")
async def record_meter_reading(reading: dict):
    """Record cumulative battery/solar meter totals and the current SoC."""
    from app import optimizer_controller

    data = convert_keys_to_snake_case(reading)
    data["timestamp"] = _timestamp_or_now(data.get("timestamp"))

    try:
        for key, value in data.items():
            if key != "timestamp" and value is not None:
                data[key] = float(value)
        meter_reading = MeterReading(**data)
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid meter reading: {e}") from e

    optimizer_controller.update_soc(meter_reading.soc)
    entries = optimizer_controller.optimizer.record_meter_reading(meter_reading)
    return {"entries": convert_keys_to_camel_case(entries)}


@router.get("/api/mode")
async def get_battery_mode(
    grid_power_w: float | None = Query(0.0, alias="gridPowerW"),
    solar_power_w: float | None = Query(None, alias="solarPowerW"),
):
    """Decide the battery mode for the current interval."""
    from app import optimizer_controller

    decision = optimizer_controller.optimizer.decide_mode(
        datetime.now(TIMEZONE),
        grid_power_w=grid_power_w,
        solar_power_w=solar_power_w,
        current_soc=optimizer_controller.current_soc,
    )
    return convert_keys_to_camel_case(decision)


@router.get("/api/status")
async def get_status():
    """Summary of the optimizer state."""
    from app import optimizer_controller

    return convert_keys_to_camel_case(
        optimizer_controller.optimizer.get_status(optimizer_controller.current_soc)
    )
