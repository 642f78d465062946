"""Conversion between engine objects and the camelCase JSON used by the API."""

import re
from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from core.energy_optimizer.models import Strategy
from core.energy_optimizer.time_utils import format_interval_range, group_consecutive_intervals


def snake_to_camel(snake_str: str) -> str:
    """Convert snake_case to camelCase."""
    components = snake_str.split("_")
    return components[0] + "".join(word.capitalize() for word in components[1:])


def camel_to_snake(camel_str: str) -> str:
    """Convert camelCase to snake_case."""
    s1 = re.sub("(.)([A-Z][a-z]+)", r"\1_\2", camel_str)
    return re.sub("([a-z0-9])([A-Z])", r"\1_\2", s1).lower()


def convert_keys_to_camel_case(data: Any) -> Any:
    """Recursively convert dict keys to camelCase and values to JSON types."""
    if isinstance(data, dict):
        return {
            snake_to_camel(str(key)): convert_keys_to_camel_case(value)
            for key, value in data.items()
        }
    if isinstance(data, list | tuple):
        return [convert_keys_to_camel_case(item) for item in data]
    if is_dataclass(data) and not isinstance(data, type):
        return convert_keys_to_camel_case(asdict(data))
    if isinstance(data, datetime):
        return data.isoformat()
    if isinstance(data, Enum):
        return data.value
    return data


def convert_keys_to_snake_case(data: Any) -> Any:
    """Recursively convert incoming camelCase keys to snake_case."""
    if isinstance(data, dict):
        return {
            camel_to_snake(key): convert_keys_to_snake_case(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [convert_keys_to_snake_case(item) for item in data]
    return data


def strategy_to_api(strategy: Strategy) -> dict:
    """Strategy as camelCase JSON with the charge/discharge windows pre-grouped."""
    result = convert_keys_to_camel_case(strategy)
    result["isEmpty"] = strategy.is_empty
    result["chargeWindows"] = [
        format_interval_range(group)
        for group in group_consecutive_intervals(strategy.charge_intervals)
    ]
    result["dischargeWindows"] = [
        format_interval_range(group)
        for group in group_consecutive_intervals(strategy.discharge_intervals)
    ]
    return result
