"""Tests for verification/verifier.py.

Tests for replaying contracts against a provider mocked with respx.
"""

import json
import threading
import time

import httpx
import pytest
import respx
from httpx import Response

from pactlayer.contract.models import Contract, Interaction, Request
from pactlayer.contract.models import Response as ExpectedResponse
from pactlayer.core.errors import ExitCode
from pactlayer.verification import (
    ContractVerifier,
    Outcome,
    StateHandlerRegistry,
    verify,
    verify_all,
)

BASE_URL = "http://provider.test"


@pytest.fixture
def states():
    registry = StateHandlerRegistry()
    registry.register("order 42 exists", lambda params: None)
    return registry


class TestContractVerifier:
    """Tests for contract verification."""

    @pytest.mark.asyncio
    async def test_all_interactions_pass(self, orders_contract, states):
        verifier = ContractVerifier(BASE_URL, states, provider_version="1.0.0")

        with respx.mock:
            respx.get(f"{BASE_URL}/orders/42").mock(
                return_value=Response(
                    200,
                    json={"id": 7, "state": "closed", "items": [{"sku": "B-2", "qty": 3}], "extra": 1},
                )
            )
            respx.get(f"{BASE_URL}/health").mock(return_value=Response(200, json={"status": "ok"}))

            result = await verifier.verify_contract(orders_contract)

        assert result.passed
        assert result.passed_count == 2
        assert result.exit_code == ExitCode.SUCCESS
        assert result.provider_version == "1.0.0"

    @pytest.mark.asyncio
    async def test_mismatch_reported_with_path(self, orders_contract, states):
        verifier = ContractVerifier(BASE_URL, states)

        with respx.mock:
            respx.get(f"{BASE_URL}/orders/42").mock(
                return_value=Response(200, json={"id": "42", "state": "open", "items": [{"sku": "A", "qty": 1}]})
            )
            respx.get(f"{BASE_URL}/health").mock(return_value=Response(200, json={"status": "ok"}))

            result = await verifier.verify_contract(orders_contract)

        assert not result.passed
        assert result.exit_code == ExitCode.VERIFICATION_FAILED
        (failure,) = result.failures
        assert failure.outcome is Outcome.FAIL
        assert [m.path for m in failure.mismatches] == ["$.body.id"]

    @pytest.mark.asyncio
    async def test_missing_state_handler_does_not_stop_run(self, orders_contract):
        """Test that a state without a handler errors one interaction only."""
        verifier = ContractVerifier(BASE_URL, StateHandlerRegistry())

        with respx.mock:
            orders = respx.get(f"{BASE_URL}/orders/42").mock(return_value=Response(200, json={}))
            respx.get(f"{BASE_URL}/health").mock(return_value=Response(200, json={"status": "ok"}))

            result = await verifier.verify_contract(orders_contract)

        order_result, health_result = result.results
        assert order_result.outcome is Outcome.ERROR
        assert order_result.error_type == "StateSetupError"
        assert not orders.called
        assert health_result.passed

    @pytest.mark.asyncio
    async def test_provider_timeout_is_an_error(self, orders_contract, states):
        verifier = ContractVerifier(BASE_URL, states, timeout=0.1)

        with respx.mock:
            respx.get(f"{BASE_URL}/orders/42").mock(side_effect=httpx.ReadTimeout("slow"))
            respx.get(f"{BASE_URL}/health").mock(return_value=Response(200, json={"status": "ok"}))

            result = await verifier.verify_contract(orders_contract)

        order_result = result.results[0]
        assert order_result.outcome is Outcome.ERROR
        assert order_result.error_type == "TransportError"
        assert result.results[1].passed

    @pytest.mark.asyncio
    async def test_states_set_up_before_request_and_torn_down_after(self, orders_contract):
        events = []
        registry = StateHandlerRegistry()
        registry.register(
            "order 42 exists",
            lambda params: events.append(("setup", params["id"])),
            teardown=lambda: events.append(("teardown", None)),
        )
        verifier = ContractVerifier(BASE_URL, registry)

        def respond(request):
            events.append(("request", request.url.path))
            return Response(200, json={"id": 1, "state": "open", "items": [{"sku": "x", "qty": 1}]})

        with respx.mock:
            respx.get(f"{BASE_URL}/orders/42").mock(side_effect=respond)
            respx.get(f"{BASE_URL}/health").mock(return_value=Response(200, json={"status": "ok"}))
            await verifier.verify_contract(orders_contract)

        assert events == [("setup", 42), ("request", "/orders/42"), ("teardown", None)]

    @pytest.mark.asyncio
    async def test_request_details_sent(self):
        interaction = Interaction(
            "create order",
            Request(
                "POST",
                "/orders",
                query={"dry_run": ["true"]},
                headers={"Content-Type": "application/json"},
                body={"sku": "A-1"},
            ),
            ExpectedResponse(status=201),
        )
        contract = Contract("web", "orders", (interaction,))
        verifier = ContractVerifier(BASE_URL, custom_headers={"Authorization": "Bearer t"})

        with respx.mock:
            route = respx.post(f"{BASE_URL}/orders").mock(return_value=Response(201))
            result = await verifier.verify_contract(contract)

        assert result.passed
        sent = route.calls.last.request
        assert sent.url.params["dry_run"] == "true"
        assert sent.headers["Authorization"] == "Bearer t"
        assert json.loads(sent.content) == {"sku": "A-1"}


class TestVerifyEntryPoints:
    @pytest.mark.asyncio
    async def test_verify_all_runs_each_contract(self, orders_contract, health_interaction, states):
        mobile = Contract("mobile", "orders", (health_interaction,))

        with respx.mock:
            respx.get(f"{BASE_URL}/orders/42").mock(
                return_value=Response(200, json={"id": 1, "state": "open", "items": [{"sku": "x", "qty": 1}]})
            )
            respx.get(f"{BASE_URL}/health").mock(return_value=Response(200, json={"status": "ok"}))
            results = await verify_all([orders_contract, mobile], BASE_URL, states)

        assert [r.consumer for r in results] == ["web", "mobile"]
        assert all(r.passed for r in results)

    def test_sync_verify(self, health_interaction):
        contract = Contract("web", "orders", (health_interaction,))

        with respx.mock:
            respx.get(f"{BASE_URL}/health").mock(return_value=Response(503, json={"status": "down"}))
            result = verify(contract, BASE_URL)

        assert not result.passed
        paths = [m.path for m in result.failures[0].mismatches]
        assert paths == ["$.status", "$.body.status"]

    def test_sync_verify_returns_when_state_handler_times_out(self, orders_contract):
        """Test that a blocked sync handler does not hold up the caller."""
        release = threading.Event()
        registry = StateHandlerRegistry()
        registry.register("order 42 exists", lambda: release.wait(10))

        started = time.monotonic()
        try:
            with respx.mock:
                respx.get(f"{BASE_URL}/health").mock(return_value=Response(200, json={"status": "ok"}))
                result = verify(orders_contract, BASE_URL, registry, timeout=0.2)
            elapsed = time.monotonic() - started
        finally:
            release.set()

        assert elapsed < 2
        order_result, health_result = result.results
        assert order_result.outcome is Outcome.ERROR
        assert "timed out" in order_result.error
        assert health_result.passed

    def test_broker_payload(self, health_interaction):
        contract = Contract("web", "orders", (health_interaction.with_provider_state("up"),))
        result = verify(contract, BASE_URL)

        payload = result.to_broker_payload("2.0.0")
        assert payload["success"] is False
        assert payload["providerApplicationVersion"] == "2.0.0"
        assert payload["testResults"][0]["exceptions"][0]["type"] == "StateSetupError"
