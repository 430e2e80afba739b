"""Tests for mock/consumer.py.

Tests for the fluent interaction DSL used in consumer tests.
"""

import httpx
import pytest

from pactlayer.contract.document import load_contract
from pactlayer.core.errors import ContractValidationError, VerificationMismatch
from pactlayer.matching.matchers import EachLike, Like, Term
from pactlayer.matching.rules import RuleKind
from pactlayer.mock.consumer import Consumer, Provider


@pytest.fixture
def pact(tmp_path):
    return Consumer("web").has_pact_with(Provider("orders"), pact_dir=tmp_path)


class TestPactDeclaration:
    """Tests for building interactions."""

    def test_builds_interaction_with_rules(self, pact):
        (
            pact.given("order 42 exists", id=42)
            .upon_receiving("a request for order 42")
            .with_request("GET", Term(r"/orders/\d+", "/orders/42"), query={"expand": Like("items")})
            .will_respond_with(
                200,
                headers={"Content-Type": Term(r"application/json.*", "application/json")},
                body={"id": Like(42), "items": EachLike({"sku": Like("A-1")})},
            )
        )

        (interaction,) = pact.interactions
        assert interaction.provider_state.name == "order 42 exists"
        assert interaction.provider_state.params == {"id": 42}
        assert interaction.request.path == "/orders/42"
        assert interaction.request.query == {"expand": ["items"]}
        assert interaction.request.matching_rules.get("$.path").kind is RuleKind.REGEX
        assert interaction.request.matching_rules.get("$.query.expand").kind is RuleKind.TYPE
        assert interaction.response.headers == {"Content-Type": "application/json"}
        assert interaction.response.body == {"id": 42, "items": [{"sku": "A-1"}]}
        assert set(interaction.response.matching_rules) == {
            "$.headers.Content-Type",
            "$.body.id",
            "$.body.items",
            "$.body.items[*].sku",
        }

    def test_incomplete_interaction_rejected(self, pact):
        with pytest.raises(ContractValidationError):
            pact.will_respond_with(200)

    def test_uri_requires_running_mock(self, pact):
        with pytest.raises(RuntimeError):
            pact.uri


class TestPactLifecycle:
    """Tests for running a consumer test against the mock provider."""

    def test_exercised_interactions_written(self, pact, tmp_path):
        pact.upon_receiving("a health check").with_request("GET", "/health").will_respond_with(
            200, body={"status": "ok"}
        )

        with pact:
            assert httpx.get(f"{pact.uri}/health").json() == {"status": "ok"}

        contract = load_contract(tmp_path / "web-orders.json")
        assert contract.descriptions == ["a health check"]
        assert pact.interactions == []

    def test_unexercised_interaction_fails(self, pact, tmp_path):
        pact.upon_receiving("a health check").with_request("GET", "/health").will_respond_with(200)

        with pytest.raises(VerificationMismatch):
            with pact:
                pass

        assert not (tmp_path / "web-orders.json").exists()

    def test_test_failure_propagates_without_verification(self, pact):
        pact.upon_receiving("a health check").with_request("GET", "/health").will_respond_with(200)

        with pytest.raises(AssertionError):
            with pact:
                raise AssertionError("consumer bug")
        assert pact.interactions == []
