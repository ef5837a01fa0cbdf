"""
Unified error handling for Accord.

Construction-time failures (spec lookup, version resolution, configuration)
are raised as AccordError subclasses carrying actionable messages. Per-
interaction failures during replay never surface here; they become
VerificationResult data instead.

Exit Codes:
- 0: Success
- 1: Verification failed (one or more interactions did not match)
- 10: Configuration error
- 11: Broker error (external service failure)
- 12: Validation error
- 127: Unknown/internal error
"""

from __future__ import annotations

import functools
import sys
import traceback
from enum import IntEnum
from typing import Any, Callable, TypeVar

import structlog

logger = structlog.get_logger()


class ExitCode(IntEnum):
    """Standardized exit codes for CLI commands."""

    SUCCESS = 0
    VERIFICATION_FAILED = 1
    CONFIG_ERROR = 10
    PROVIDER_ERROR = 11
    VALIDATION_ERROR = 12
    UNKNOWN_ERROR = 127


class AccordError(Exception):
    """Base exception for Accord errors with exit code support."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    show_traceback: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(AccordError):
    """Raised for configuration-related errors."""

    exit_code = ExitCode.CONFIG_ERROR


class BrokerError(AccordError):
    """Raised when the contract broker fails or rejects a request."""

    exit_code = ExitCode.PROVIDER_ERROR


class SpecNotFoundError(BrokerError):
    """
    Raised when no spec exists for the requested service/version.

    Also covers the ``latest`` alias when nothing is deployed. The broker's
    enumerated versions and suggestion are kept verbatim in the message.
    """

    def __init__(
        self,
        message: str,
        *,
        service: str,
        provider_version: str,
        available_versions: list[str] | None = None,
        suggestion: str | None = None,
    ):
        self.service = service
        self.provider_version = provider_version
        self.available_versions = list(available_versions or [])
        self.suggestion = suggestion or ""

        full_message = message
        if self.available_versions:
            full_message += f"\nAvailable versions: {', '.join(self.available_versions)}"
        if self.suggestion:
            full_message += f"\n{self.suggestion}"

        super().__init__(
            full_message,
            details={
                "service": service,
                "provider_version": provider_version,
                "available_versions": self.available_versions,
            },
        )


class ValidationError(AccordError):
    """Raised for spec or request validation failures."""

    exit_code = ExitCode.VALIDATION_ERROR


# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling(
    *,
    show_traceback: bool = False,
    log_errors: bool = True,
) -> Callable[[F], F]:
    """
    Decorator for CLI main functions that provides unified error handling.

    Args:
        show_traceback: If True, show full traceback for unexpected errors
        log_errors: If True, log errors to structlog

    Exit codes:
        - AccordError subclasses: Uses the error's exit_code
        - KeyboardInterrupt: Returns 130 (standard for SIGINT)
        - Other exceptions: Returns 127 (unknown error)
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except AccordError as e:
                if log_errors:
                    logger.error(
                        "command_error",
                        error_type=type(e).__name__,
                        message=e.message,
                        exit_code=e.exit_code,
                        **e.details,
                    )
                if e.show_traceback or show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return e.exit_code
            except KeyboardInterrupt:
                if log_errors:
                    logger.info("command_interrupted")
                return 130  # Standard exit code for SIGINT
            except Exception as e:
                if log_errors:
                    logger.error(
                        "unexpected_error",
                        error_type=type(e).__name__,
                        message=str(e),
                        exit_code=ExitCode.UNKNOWN_ERROR,
                    )
                if show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return ExitCode.UNKNOWN_ERROR

        return wrapper  # type: ignore[return-value]

    return decorator


def format_error_message(error: AccordError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg
