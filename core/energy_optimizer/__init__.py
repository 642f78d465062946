"""Home battery charge/discharge scheduling package."""

# Define public API - only include what users should directly access
__all__ = [
    "BatterySettings",  # Public settings classes
    "ChargeLog",
    "EnergyOptimizer",  # Main facade
    "OptimizerSettings",
    "PowerHistory",
    "PulpLpSolver",
    "Strategy",
]

# Import settings used by other modules
from .settings import (  # noqa: I001
    BatterySettings,
    OptimizerSettings,
)

from .charge_log import ChargeLog
from .history_store import PowerHistory
from .lp_scheduler import PulpLpSolver
from .models import Strategy

# Import main facade class (the primary entry point to the system)
from .optimizer_manager import EnergyOptimizer
