from accord.clients.base import BaseHTTPClient, PermanentHTTPError, RetryableHTTPError
from accord.clients.broker import BrokerClient, FetchedSpec

__all__ = [
    "BaseHTTPClient",
    "BrokerClient",
    "FetchedSpec",
    "PermanentHTTPError",
    "RetryableHTTPError",
]
