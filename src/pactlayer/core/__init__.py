"""Core modules for pactlayer - centralized definitions and utilities."""

from pactlayer.core.errors import (
    ConfigurationError,
    ContractValidationError,
    ExitCode,
    MatchMismatch,
    PactLayerError,
    PublishConflictError,
    StateSetupError,
    TransportError,
    VerificationMismatch,
    format_error_message,
    main_with_error_handling,
)

__all__ = [
    "ExitCode",
    "PactLayerError",
    "ConfigurationError",
    "MatchMismatch",
    "StateSetupError",
    "TransportError",
    "ContractValidationError",
    "PublishConflictError",
    "VerificationMismatch",
    "main_with_error_handling",
    "format_error_message",
]
