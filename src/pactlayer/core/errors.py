"""
Unified error handling for pactlayer.

Defines the error taxonomy shared by the matcher, mock service, verifier and
broker client, plus standardized exit codes for CLI commands.

Exit Codes:
- 0: Success
- 1: Verification failed (one or more interactions did not pass)
- 2: Blocked (can-i-deploy answered no)
- 10: Configuration error
- 11: Transport error (provider or broker unreachable)
- 12: Contract validation error
- 13: Publish conflict
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
    BLOCKED = 2
    CONFIG_ERROR = 10
    TRANSPORT_ERROR = 11
    VALIDATION_ERROR = 12
    PUBLISH_CONFLICT = 13
    UNKNOWN_ERROR = 127


class PactLayerError(Exception):
    """Base exception for pactlayer errors with exit code support."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    show_traceback: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(PactLayerError):
    """Raised for configuration-related errors."""

    exit_code = ExitCode.CONFIG_ERROR


class MatchMismatch(PactLayerError):
    """Observed data does not satisfy the expected contract."""

    exit_code = ExitCode.VERIFICATION_FAILED

    def __init__(self, message: str, mismatches: list[Any] | None = None):
        super().__init__(message, {"mismatch_count": len(mismatches or [])})
        self.mismatches = list(mismatches or [])


class StateSetupError(PactLayerError):
    """The provider could not establish a required provider state."""

    exit_code = ExitCode.VERIFICATION_FAILED

    def __init__(self, message: str, state: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message, {**(details or {}), **({"state": state} if state else {})})
        self.state = state


class TransportError(PactLayerError):
    """Network failure or timeout talking to a provider or broker."""

    exit_code = ExitCode.TRANSPORT_ERROR


class ContractValidationError(PactLayerError):
    """Malformed or internally inconsistent contract document."""

    exit_code = ExitCode.VALIDATION_ERROR


class PublishConflictError(PactLayerError):
    """The broker rejected an ambiguous overwrite of a published contract."""

    exit_code = ExitCode.PUBLISH_CONFLICT


class VerificationMismatch(PactLayerError):
    """A mock provider run ended with unexercised interactions or unmatched requests."""

    exit_code = ExitCode.VERIFICATION_FAILED

    def __init__(
        self,
        message: str,
        missing: list[str] | None = None,
        unexpected: list[dict[str, Any]] | None = None,
    ):
        self.missing = list(missing or [])
        self.unexpected = list(unexpected or [])
        super().__init__(
            message,
            {"missing": self.missing, "unexpected_count": len(self.unexpected)},
        )

    def __str__(self) -> str:
        lines = [self.message]
        for description in self.missing:
            lines.append(f"  missing: {description}")
        for request in self.unexpected:
            lines.append(f"  unexpected: {request.get('method')} {request.get('path')}")
        return "\n".join(lines)


# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling(
    *,
    show_traceback: bool = False,
    log_errors: bool = True,
    print_errors: bool = False,
) -> Callable[[F], F]:
    """
    Decorator for CLI main functions that provides unified error handling.

    Catches exceptions and converts them to appropriate exit codes with
    consistent error reporting.

    With ``print_errors``, PactLayerError messages are also shown on the
    console.

    Exit codes:
        - PactLayerError subclasses: Uses the error's exit_code
        - KeyboardInterrupt: Returns 130 (standard for SIGINT)
        - Other exceptions: Returns 127 (unknown error)
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except PactLayerError as e:
                if log_errors:
                    logger.error(
                        "command_error",
                        error_type=type(e).__name__,
                        message=e.message,
                        exit_code=int(e.exit_code),
                        **e.details,
                    )
                if print_errors:
                    report_error(e)
                if e.show_traceback or show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return e.exit_code
            except KeyboardInterrupt:
                if log_errors:
                    logger.info("command_interrupted")
                return 130
            except Exception as e:
                if log_errors:
                    logger.error(
                        "unexpected_error",
                        error_type=type(e).__name__,
                        message=str(e),
                        exit_code=int(ExitCode.UNKNOWN_ERROR),
                    )
                if show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return ExitCode.UNKNOWN_ERROR

        return wrapper  # type: ignore[return-value]

    return decorator


def format_error_message(error: PactLayerError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg


def report_error(error: PactLayerError) -> None:
    """Print an error for the user."""
    from rich.markup import escape

    from pactlayer.cli.ux import error as print_error

    print_error(escape(format_error_message(error)))
