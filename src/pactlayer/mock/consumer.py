"""
Fluent API for declaring interactions in consumer tests.

    pact = Consumer("web").has_pact_with(Provider("orders"), pact_dir="pacts")

    (
        pact.given("order 42 exists")
        .upon_receiving("a request for order 42")
        .with_request("GET", "/orders/42")
        .will_respond_with(200, body={"id": Like(42), "state": Term("open|closed", "open")})
    )

    with pact:
        assert OrdersClient(pact.uri).get(42).id == 42

Leaving the ``with`` block verifies that every declared interaction was
exercised and that no unexpected request arrived, then writes the pact file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

from pactlayer.contract.models import (
    DEFAULT_SPECIFICATION_VERSION,
    Contract,
    Interaction,
    ProviderState,
    Request,
    Response,
)
from pactlayer.core.errors import ContractValidationError
from pactlayer.matching.matchers import extract_example, extract_rules
from pactlayer.matching.rules import MatchingRule, join_path
from pactlayer.mock.server import MockHandle, MockProviderService


class Provider:
    def __init__(self, name: str) -> None:
        self.name = name


class Consumer:
    def __init__(self, name: str) -> None:
        self.name = name

    def has_pact_with(
        self,
        provider: Provider,
        *,
        host: str = "127.0.0.1",
        port: int = 0,
        pact_dir: str | Path | None = None,
        specification_version: str = DEFAULT_SPECIFICATION_VERSION,
    ) -> Pact:
        return Pact(
            self,
            provider,
            host=host,
            port=port,
            pact_dir=pact_dir,
            specification_version=specification_version,
        )


class Pact:
    """Interactions being declared for one consumer/provider pair."""

    def __init__(
        self,
        consumer: Consumer,
        provider: Provider,
        *,
        host: str = "127.0.0.1",
        port: int = 0,
        pact_dir: str | Path | None = None,
        specification_version: str = DEFAULT_SPECIFICATION_VERSION,
    ) -> None:
        self.consumer = consumer
        self.provider = provider
        self.service = MockProviderService(
            consumer.name,
            provider.name,
            host=host,
            port=port,
            pact_dir=pact_dir,
            specification_version=specification_version,
        )
        self._interactions: list[Interaction] = []
        self._states: list[ProviderState] = []
        self._description: str | None = None
        self._request: Request | None = None
        self._handle: MockHandle | None = None

    @property
    def uri(self) -> str:
        if self._handle is None:
            raise RuntimeError("Mock provider is not running; use 'with pact:' first")
        return self._handle.url

    @property
    def interactions(self) -> list[Interaction]:
        return list(self._interactions)

    def given(self, state: str, **params: Any) -> Pact:
        self._states.append(ProviderState(state, params))
        return self

    def upon_receiving(self, description: str) -> Pact:
        self._description = description
        return self

    def with_request(
        self,
        method: str,
        path: Any,
        query: Mapping[str, Any] | None = None,
        headers: Mapping[str, Any] | None = None,
        body: Any = None,
    ) -> Pact:
        rules: dict[str, MatchingRule] = {}
        rules.update(extract_rules(path, "$.path"))
        rules.update(_section_rules(query, "$.query"))
        rules.update(_section_rules(headers, "$.headers"))
        rules.update(extract_rules(body, "$.body"))

        example_query = None
        if query is not None:
            example_query = {}
            for key, value in extract_example(dict(query)).items():
                values = value if isinstance(value, list) else [value]
                example_query[key] = [str(v) for v in values]

        self._request = Request(
            method=method,
            path=extract_example(path),
            query=example_query,
            headers=_example_headers(headers),
            body=extract_example(body),
            matching_rules=rules,
        )
        return self

    def will_respond_with(
        self,
        status: int = 200,
        headers: Mapping[str, Any] | None = None,
        body: Any = None,
    ) -> Pact:
        if self._description is None or self._request is None:
            raise ContractValidationError(
                "Interaction needs upon_receiving() and with_request() before will_respond_with()"
            )

        rules: dict[str, MatchingRule] = {}
        rules.update(_section_rules(headers, "$.headers"))
        rules.update(extract_rules(body, "$.body"))
        response = Response(
            status=status,
            headers=_example_headers(headers),
            body=extract_example(body),
            matching_rules=rules,
        )
        self._interactions.append(
            Interaction(
                description=self._description,
                request=self._request,
                response=response,
                provider_states=tuple(self._states),
            )
        )
        self._states, self._description, self._request = [], None, None
        return self

    def setup(self) -> MockHandle:
        """Start the mock provider with the interactions declared so far."""
        self._handle = self.service.configure(self._interactions)
        return self._handle

    def verify(self) -> Contract:
        """Stop the mock provider and check it was used exactly as declared."""
        if self._handle is None:
            raise RuntimeError("Mock provider was never started")
        try:
            return self._handle.finish()
        finally:
            self._reset()

    def __enter__(self) -> Pact:
        self.setup()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            if self._handle is not None:
                self._handle.stop()
            self._reset()
            return False
        self.verify()
        return False

    def _reset(self) -> None:
        self._interactions = []
        self._handle = None


def _section_rules(values: Mapping[str, Any] | None, root: str) -> dict[str, MatchingRule]:
    rules: dict[str, MatchingRule] = {}
    for key, value in (values or {}).items():
        rules.update(extract_rules(value, join_path(root, key)))
    return rules


def _example_headers(headers: Mapping[str, Any] | None) -> dict[str, str] | None:
    if headers is None:
        return None
    return {k: str(v) for k, v in extract_example(dict(headers)).items()}
