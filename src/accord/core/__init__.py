from accord.core.errors import (
    AccordError,
    BrokerError,
    ConfigurationError,
    ExitCode,
    SpecNotFoundError,
    ValidationError,
)

__all__ = [
    "AccordError",
    "BrokerError",
    "ConfigurationError",
    "ExitCode",
    "SpecNotFoundError",
    "ValidationError",
]
