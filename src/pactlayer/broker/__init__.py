"""
Contract broker.

Stores published contracts per consumer version, serves provider
verification work, records results and deployments, and answers
can-i-deploy.
"""

from .client import PactBrokerClient
from .models import (
    CanIDeployResult,
    MatrixRow,
    PactForVerification,
    PactPublication,
    VerificationRecord,
)
from .server import create_broker_app
from .store import BrokerStore

__all__ = [
    "BrokerStore",
    "CanIDeployResult",
    "MatrixRow",
    "PactBrokerClient",
    "PactForVerification",
    "PactPublication",
    "VerificationRecord",
    "create_broker_app",
]
