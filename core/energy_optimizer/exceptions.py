"""Custom exception classes for energy optimizer components.

The scheduling engine signals recoverable conditions (no LP strategy, no
tracked cost basis) by returning None. These exceptions are reserved for
problems a caller has to fix: missing prices and invalid configuration.
"""


class EnergyOptimizerError(Exception):
    """Base exception for all energy optimizer components."""
    pass


class PriceDataUnavailableError(EnergyOptimizerError):
    """Raised when no current or future price intervals are available."""

    def __init__(self, date=None, message=None):
        if message is None:
            if date:
                message = f"No price data available for {date}"
            else:
                message = "Price data is not available"
        super().__init__(message)
        self.date = date


class SystemConfigurationError(EnergyOptimizerError):
    """Raised when there are configuration or system setup issues."""

    def __init__(self, component=None, message=None):
        if message is None:
            if component:
                message = f"Configuration error in {component}"
            else:
                message = "System configuration error"
        super().__init__(message)
        self.component = component
