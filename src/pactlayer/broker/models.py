"""
Broker records: published pacts, verification results, deployments and
the can-i-deploy matrix derived from them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional

from pactlayer.contract.models import Contract


@dataclass(frozen=True)
class PactPublication:
    """A contract published for one consumer version."""

    consumer: str
    provider: str
    consumer_version: str
    pact_version: str  # content hash shared by identical contracts
    contract: Contract
    published_at: datetime
    sequence: int


@dataclass(frozen=True)
class VerificationRecord:
    """A provider version's verification of one pact version."""

    provider: str
    consumer: str
    pact_version: str
    provider_version: str
    success: bool
    verified_at: datetime
    sequence: int
    payload: dict[str, Any] = field(default_factory=dict, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "consumer": self.consumer,
            "pactVersion": self.pact_version,
            "providerApplicationVersion": self.provider_version,
            "success": self.success,
            "verifiedAt": self.verified_at.isoformat(),
        }


@dataclass(frozen=True)
class PactForVerification:
    """A pact fetched from the broker for a provider to verify."""

    contract: Contract
    pact_version: str
    href: Optional[str] = None
    verification_results_href: Optional[str] = None


@dataclass
class MatrixRow:
    """One consumer/provider pairing considered by can-i-deploy."""

    consumer: str
    consumer_version: str
    provider: str
    provider_version: Optional[str]
    pact_version: Optional[str]
    success: Optional[bool]  # None = no verification recorded
    reason: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "consumer": {"name": self.consumer, "version": self.consumer_version},
            "provider": {"name": self.provider, "version": self.provider_version},
            "pactVersion": self.pact_version,
            "verificationResult": None if self.success is None else {"success": self.success},
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MatrixRow:
        consumer = data.get("consumer") or {}
        provider = data.get("provider") or {}
        verification = data.get("verificationResult")
        return cls(
            consumer=consumer.get("name", ""),
            consumer_version=consumer.get("version", ""),
            provider=provider.get("name", ""),
            provider_version=provider.get("version"),
            pact_version=data.get("pactVersion"),
            success=None if verification is None else bool(verification.get("success")),
            reason=data.get("reason", ""),
        )


@dataclass
class CanIDeployResult:
    """Answer to "can this pacticipant version be deployed to this environment?"."""

    pacticipant: str
    version: str
    environment: str
    deployable: bool
    reason: str
    matrix: List[MatrixRow] = field(default_factory=list)

    @property
    def failed(self) -> List[MatrixRow]:
        return [r for r in self.matrix if r.success is False]

    @property
    def unknown(self) -> List[MatrixRow]:
        return [r for r in self.matrix if r.success is None]

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": {
                "deployable": self.deployable,
                "reason": self.reason,
                "success": sum(1 for r in self.matrix if r.success is True),
                "failed": len(self.failed),
                "unknown": len(self.unknown),
            },
            "pacticipant": self.pacticipant,
            "version": self.version,
            "environment": self.environment,
            "matrix": [r.to_dict() for r in self.matrix],
        }

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        pacticipant: str,
        version: str,
        environment: str,
    ) -> CanIDeployResult:
        summary = data.get("summary") or {}
        return cls(
            pacticipant=data.get("pacticipant", pacticipant),
            version=data.get("version", version),
            environment=data.get("environment", environment),
            deployable=summary.get("deployable") is True,
            reason=summary.get("reason", ""),
            matrix=[MatrixRow.from_dict(row) for row in data.get("matrix", [])],
        )
