import json
import os
import threading
from contextlib import asynccontextmanager
from datetime import datetime

import log_config  # noqa: F401
import yaml

# Import endpoints router
from api import router as endpoints_router
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from core.energy_optimizer import BatterySettings, EnergyOptimizer, OptimizerSettings
from core.energy_optimizer.exceptions import (
    EnergyOptimizerError,
    PriceDataUnavailableError,
)
from core.energy_optimizer.time_utils import TIMEZONE

# Get ingress prefix from environment variable
INGRESS_PREFIX = os.environ.get("INGRESS_PREFIX", "")

OPTIONS_JSON = os.environ.get("OPTIONS_JSON", "/data/options.json")
CONFIG_YAML = os.environ.get("CONFIG_YAML", "/app/config.yaml")


class OptimizerController:
    """Owns the EnergyOptimizer, the live battery state and the scheduler."""

    def __init__(self):
        load_dotenv("/data/options.env")

        options = self._load_options()
        if not options:
            logger.warning("No configuration options found, using defaults")
            options = {}

        self.optimizer = self._create_optimizer(options)
        self.current_soc: float | None = None
        self._state_lock = threading.Lock()

        self.scheduler = BackgroundScheduler(
            {
                "apscheduler.job_defaults": {
                    "misfire_grace_time": 30,
                    "max_instances": 1,
                },
            }
        )

        logger.info("Optimizer controller initialized")

    def _load_options(self) -> dict | None:
        """Load options from the add-on options file or a development config.yaml."""
        if os.path.exists(OPTIONS_JSON):
            try:
                with open(OPTIONS_JSON) as f:
                    options = json.load(f)
                    logger.info(f"Loaded options from {OPTIONS_JSON}")
                    return options
            except (OSError, json.JSONDecodeError) as e:
                logger.error(f"Error loading options from {OPTIONS_JSON}: {e!s}")

        if os.path.exists(CONFIG_YAML):
            try:
                with open(CONFIG_YAML) as f:
                    config = yaml.safe_load(f) or {}

                if "options" in config:
                    logger.info(f"Loaded options from {CONFIG_YAML} (options section)")
                    return config["options"]

                logger.warning(
                    f"No 'options' section found in {CONFIG_YAML}, using entire file"
                )
                return config
            except (OSError, yaml.YAMLError) as e:
                logger.error(f"Error loading from {CONFIG_YAML}: {e!s}")

        return None

    @staticmethod
    def _create_optimizer(options: dict) -> EnergyOptimizer:
        """Build the optimizer from options.

        Raises:
            SystemConfigurationError: If the configured settings are invalid
        """
        battery_settings = BatterySettings().from_options(options)
        optimizer_settings = OptimizerSettings().from_options(options)
        battery_settings.validate()
        optimizer_settings.validate()

        logger.info(
            f"Battery {battery_settings.capacity} kWh @ {battery_settings.charge_power_kw} kW, "
            f"target {battery_settings.target_soc}%, min {battery_settings.min_soc_threshold}%, "
            f"LP {'enabled' if optimizer_settings.use_lp else 'disabled'}"
        )
        return EnergyOptimizer(battery_settings, optimizer_settings)

    def update_soc(self, soc: float) -> None:
        with self._state_lock:
            self.current_soc = soc

    def run_tick(self, force: bool = False):
        """Recompute the strategy for the current time and SoC.

        Returns the active strategy, None when no SoC is known yet.

        Raises:
            PriceDataUnavailableError: If there are no current or future prices
        """
        with self._state_lock:
            soc = self.current_soc
        if soc is None:
            logger.warning("No battery SoC reported yet, skipping strategy calculation")
            return None

        return self.optimizer.calculate_strategy(datetime.now(TIMEZONE), soc, force=force)

    def _scheduled_tick(self):
        try:
            self.run_tick()
        except PriceDataUnavailableError as e:
            logger.warning(f"Scheduled strategy calculation skipped: {e}")
        except EnergyOptimizerError as e:
            logger.error(f"Scheduled strategy calculation failed: {e}")

    def start(self):
        """Start the 15-minute scheduling job."""
        self.scheduler.add_job(
            self._scheduled_tick,
            CronTrigger(minute="*/15", second=5, timezone=TIMEZONE),
            id="strategy_tick",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=30,
        )
        self.scheduler.start()
        logger.info("Scheduler started successfully")

    def shutdown(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan manager for FastAPI app."""
    routes = [
        f"{getattr(route, 'path', 'Unknown path')} - {getattr(route, 'methods', None)}"
        for route in app.routes
    ]
    logger.info(f"Registered routes: {routes}")

    optimizer_controller.start()
    yield
    optimizer_controller.shutdown()


# Create FastAPI app with correct root_path
app = FastAPI(root_path=INGRESS_PREFIX, lifespan=lifespan)


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Log unhandled errors and keep the server running."""
    logger.opt(exception=exc).error(
        f"Unhandled exception on {request.url.path}: {exc!s}"
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": str(exc),
            "type": type(exc).__name__,
            "message": "The server encountered an internal error but is still running.",
        },
    )


logger.info(f"Ingress prefix: {INGRESS_PREFIX}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(endpoints_router)

# Global controller instance
optimizer_controller = OptimizerController()
