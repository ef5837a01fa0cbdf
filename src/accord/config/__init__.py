"""
Accord configuration.

Pydantic-based settings read from ACCORD_* environment variables and .env files.
"""

from accord.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
