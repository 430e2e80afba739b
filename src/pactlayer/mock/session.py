"""
Match/record bookkeeping for one mock provider run.

Every inbound request is matched and recorded under a single lock so that
concurrent requests cannot interleave updates to the exercised set and the
unmatched-request log.
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from typing import Any, Iterable

import structlog

from pactlayer.contract.models import DEFAULT_SPECIFICATION_VERSION, Contract, Interaction, Request
from pactlayer.core.errors import VerificationMismatch
from pactlayer.matching.http import match_request

logger = structlog.get_logger()


@dataclass
class MockResponse:
    """Concrete HTTP response served by the mock."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes = b""

    @classmethod
    def from_interaction(cls, interaction: Interaction) -> MockResponse:
        response = interaction.response
        headers = dict(response.headers or {})
        has_content_type = any(k.lower() == "content-type" for k in headers)

        if response.body is None:
            content = b""
        elif isinstance(response.body, str) and not has_content_type:
            content = response.body.encode("utf-8")
            headers["Content-Type"] = "text/plain; charset=utf-8"
        elif isinstance(response.body, str):
            content = response.body.encode("utf-8")
        else:
            content = json.dumps(response.body).encode("utf-8")
            if not has_content_type:
                headers["Content-Type"] = "application/json"
        return cls(status=response.status, headers=headers, content=content)

    @classmethod
    def diagnostic(cls, payload: dict[str, Any]) -> MockResponse:
        return cls(
            status=500,
            headers={"Content-Type": "application/json", "X-Pact-Unmatched": "true"},
            content=json.dumps(payload, indent=2, default=str).encode("utf-8"),
        )


def describe_request(request: Request) -> dict[str, Any]:
    data: dict[str, Any] = {"method": request.method, "path": request.path}
    if request.query:
        data["query"] = request.query
    if request.headers:
        data["headers"] = request.headers
    if request.body is not None:
        data["body"] = request.body
    return data


class MockSession:
    """
    Configured interactions plus what the consumer actually did with them.

    Args:
        consumer: Consumer name
        provider: Provider name
        interactions: Interactions the consumer test expects to exercise
    """

    def __init__(
        self,
        consumer: str,
        provider: str,
        interactions: Iterable[Interaction],
        specification_version: str = DEFAULT_SPECIFICATION_VERSION,
    ) -> None:
        # Building the contract up front rejects conflicting descriptions.
        self.contract = Contract(
            consumer=consumer,
            provider=provider,
            interactions=tuple(interactions),
            specification_version=specification_version,
        )
        self._lock = threading.Lock()
        self._exercised: set[str] = set()
        self._unmatched: list[dict[str, Any]] = []
        self._request_count = 0

    @property
    def interactions(self) -> tuple[Interaction, ...]:
        return self.contract.interactions

    def handle(self, request: Request) -> MockResponse:
        """Match ``request`` against the configured interactions and record the outcome."""
        with self._lock:
            self._request_count += 1
            candidates = []
            for interaction in self.interactions:
                result = match_request(interaction.request, request)
                if result.ok:
                    self._exercised.add(interaction.description)
                    logger.debug(
                        "mock_request_matched",
                        description=interaction.description,
                        method=request.method,
                        path=request.path,
                    )
                    return MockResponse.from_interaction(interaction)
                candidates.append((interaction, result))

            observed = describe_request(request)
            self._unmatched.append(observed)
            logger.warning("mock_request_unmatched", method=request.method, path=request.path)
            return MockResponse.diagnostic(
                {
                    "error": "No interaction matched the request",
                    "request": observed,
                    "interactions": [
                        {
                            "description": interaction.description,
                            "mismatches": [m.to_dict() for m in result.mismatches],
                        }
                        for interaction, result in candidates
                    ],
                }
            )

    @property
    def request_count(self) -> int:
        with self._lock:
            return self._request_count

    @property
    def missing(self) -> list[str]:
        """Configured interactions that no request exercised."""
        with self._lock:
            return [i.description for i in self.interactions if i.description not in self._exercised]

    @property
    def unexpected(self) -> list[dict[str, Any]]:
        """Requests that matched no configured interaction."""
        with self._lock:
            return list(self._unmatched)

    def finish(self) -> Contract:
        """
        Produce the contract for this run.

        Raises:
            VerificationMismatch: if an interaction was never exercised or a
                request matched nothing
        """
        missing, unexpected = self.missing, self.unexpected
        if missing or unexpected:
            raise VerificationMismatch(
                f"Mock provider for {self.contract.provider} was not used as expected",
                missing=missing,
                unexpected=unexpected,
            )
        return self.contract
