"""Exception types raised by the experiment and tracking modules."""


class HandMetricsError(Exception):
    """Base class for all hand metrics errors."""


class ConfigurationError(HandMetricsError):
    """Raised when the configuration or a required collaborator is invalid."""


class PersistenceError(HandMetricsError):
    """Raised when the metrics log could not be written."""

    def __init__(self, message: str, path: str = None):
        super().__init__(message)
        self.path = path
