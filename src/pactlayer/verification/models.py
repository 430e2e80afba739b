"""
Models for provider verification results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

from pactlayer.core.errors import ExitCode
from pactlayer.matching.engine import Mismatch


class Outcome(Enum):
    """Outcome of replaying one interaction."""

    PASS = "pass"
    FAIL = "fail"  # Provider answered, but not as the contract expects
    ERROR = "error"  # State setup or transport failed before a comparison


@dataclass
class InteractionResult:
    """Result of verifying a single interaction."""

    description: str
    outcome: Outcome
    mismatches: List[Mismatch] = field(default_factory=list)
    error_type: Optional[str] = None  # e.g. "StateSetupError", "TransportError"
    error: Optional[str] = None
    duration_ms: float = 0.0

    @property
    def passed(self) -> bool:
        return self.outcome is Outcome.PASS

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "description": self.description,
            "outcome": self.outcome.value,
            "success": self.passed,
            "duration_ms": round(self.duration_ms, 3),
        }
        if self.mismatches:
            data["mismatches"] = [m.to_dict() for m in self.mismatches]
        if self.error is not None:
            data["error"] = {"type": self.error_type, "message": self.error}
        return data


@dataclass
class VerificationResult:
    """Result of verifying every interaction of a contract."""

    consumer: str
    provider: str
    provider_base_url: str
    results: List[InteractionResult] = field(default_factory=list)
    provider_version: Optional[str] = None

    @property
    def passed(self) -> bool:
        """True only if every interaction passed."""
        return all(r.passed for r in self.results)

    @property
    def failures(self) -> List[InteractionResult]:
        return [r for r in self.results if not r.passed]

    @property
    def passed_count(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @property
    def exit_code(self) -> int:
        """
        Exit code for CI/CD pipelines.

        0 = All interactions verified
        1 = At least one interaction failed or errored
        """
        return ExitCode.SUCCESS if self.passed else ExitCode.VERIFICATION_FAILED

    def to_dict(self) -> dict[str, Any]:
        return {
            "consumer": self.consumer,
            "provider": self.provider,
            "provider_base_url": self.provider_base_url,
            "provider_version": self.provider_version,
            "success": self.passed,
            "summary": {
                "total": len(self.results),
                "passed": self.passed_count,
                "failed": len(self.failures),
            },
            "interactions": [r.to_dict() for r in self.results],
        }

    def to_broker_payload(self, provider_version: str | None = None) -> dict[str, Any]:
        """Body of a broker verification-results publication."""
        return {
            "success": self.passed,
            "providerApplicationVersion": provider_version or self.provider_version,
            "testResults": [
                {
                    "interactionDescription": r.description,
                    "success": r.passed,
                    **({"mismatches": [m.to_dict() for m in r.mismatches]} if r.mismatches else {}),
                    **({"exceptions": [{"message": r.error, "type": r.error_type}]} if r.error else {}),
                }
                for r in self.results
            ],
        }
