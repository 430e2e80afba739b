"""
Provider verification.

Replays recorded interactions against the real provider:
- provider states are set up through an explicit handler registry
- each interaction is isolated; failures are collected, never fatal
- the aggregate result gates the provider's pipeline
"""

from .models import InteractionResult, Outcome, VerificationResult
from .states import ProviderStatesEndpoint, StateHandlerRegistry
from .verifier import ContractVerifier, verify, verify_all

__all__ = [
    "ContractVerifier",
    "InteractionResult",
    "Outcome",
    "ProviderStatesEndpoint",
    "StateHandlerRegistry",
    "VerificationResult",
    "verify",
    "verify_all",
]
