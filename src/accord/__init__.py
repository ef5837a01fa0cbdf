"""
Accord: asynchronous consumer/provider contract testing.

Consumers test against a mock built from the provider's spec and approved
fixtures; the interactions they exercise are recorded and later replayed
against the real provider.
"""

from accord.consumer import ConsumerClient, Mock
from accord.core.errors import AccordError, BrokerError, ConfigurationError, SpecNotFoundError, ValidationError
from accord.models import ClientInteraction, HTTPRequest, HTTPResponse, SpecType
from accord.verification.replay import Provider, VerificationReplayEngine

__version__ = "0.1.0"

__all__ = [
    "AccordError",
    "BrokerError",
    "ClientInteraction",
    "ConfigurationError",
    "ConsumerClient",
    "HTTPRequest",
    "HTTPResponse",
    "Mock",
    "Provider",
    "SpecNotFoundError",
    "SpecType",
    "ValidationError",
    "VerificationReplayEngine",
    "__version__",
]
