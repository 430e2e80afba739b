"""Tests for broker/client.py.

Tests for the broker API client using respx to mock HTTP calls.
"""

import json

import pytest
import respx
from httpx import Response

from pactlayer.broker.client import PactBrokerClient
from pactlayer.broker.models import PactForVerification
from pactlayer.clients.base import RetryableHTTPError
from pactlayer.contract.document import content_hash, contract_to_dict
from pactlayer.core.errors import PublishConflictError
from pactlayer.verification.models import InteractionResult, Outcome, VerificationResult

BROKER = "http://broker.test"
PACT_PATH = "/pacts/provider/orders/consumer/web"


@pytest.fixture
def client():
    return PactBrokerClient(BROKER, max_retries=3, backoff_factor=0)


def _pact_document(contract, sha="abc123", version="1.0.0"):
    document = contract_to_dict(contract)
    href = f"{BROKER}{PACT_PATH}/pact-version/{sha}"
    document["_links"] = {
        "self": {"href": href, "name": version},
        "pb:publish-verification-results": {"href": f"{href}/verification-results"},
    }
    return document


class TestPublish:
    """Tests for publishing pacts."""

    @pytest.mark.asyncio
    async def test_publish_returns_pact_version(self, client, orders_contract):
        with respx.mock:
            route = respx.put(f"{BROKER}{PACT_PATH}/version/1.0.0").mock(
                return_value=Response(200, json=_pact_document(orders_contract))
            )
            tag = respx.put(f"{BROKER}/pacticipants/web/versions/1.0.0/tags/main").mock(
                return_value=Response(201, json={})
            )

            sha = await client.publish(orders_contract, "1.0.0", tags=["main"])

        assert sha == "abc123"
        assert json.loads(route.calls.last.request.content)["consumer"] == {"name": "web"}
        assert tag.called

    @pytest.mark.asyncio
    async def test_publish_falls_back_to_content_hash(self, client, orders_contract):
        with respx.mock:
            respx.put(f"{BROKER}{PACT_PATH}/version/1.0.0").mock(return_value=Response(200))
            sha = await client.publish(orders_contract, "1.0.0")

        assert sha == content_hash(orders_contract)

    @pytest.mark.asyncio
    async def test_conflict(self, client, orders_contract):
        with respx.mock:
            respx.put(f"{BROKER}{PACT_PATH}/version/1.0.0").mock(
                return_value=Response(409, json={"detail": "conflict"})
            )
            with pytest.raises(PublishConflictError):
                await client.publish(orders_contract, "1.0.0")

    @pytest.mark.asyncio
    async def test_publish_not_retried(self, client, orders_contract):
        """Test that a failed publish is sent exactly once."""
        with respx.mock:
            route = respx.put(f"{BROKER}{PACT_PATH}/version/1.0.0").mock(return_value=Response(503))
            with pytest.raises(RetryableHTTPError):
                await client.publish(orders_contract, "1.0.0")

        assert route.call_count == 1

    @pytest.mark.asyncio
    async def test_bearer_token(self, orders_contract):
        client = PactBrokerClient(BROKER, token="s3cret")
        with respx.mock:
            route = respx.put(f"{BROKER}{PACT_PATH}/version/1.0.0").mock(return_value=Response(200))
            await client.publish(orders_contract, "1.0.0")

        assert route.calls.last.request.headers["Authorization"] == "Bearer s3cret"

    @pytest.mark.asyncio
    async def test_basic_auth(self, orders_contract):
        client = PactBrokerClient(BROKER, username="ci", password="pw")
        with respx.mock:
            route = respx.put(f"{BROKER}{PACT_PATH}/version/1.0.0").mock(return_value=Response(200))
            await client.publish(orders_contract, "1.0.0")

        assert route.calls.last.request.headers["Authorization"].startswith("Basic ")


class TestFetchPending:
    """Tests for discovering pacts to verify."""

    @pytest.mark.asyncio
    async def test_fetches_latest_and_tagged(self, client, orders_contract):
        href = f"{BROKER}{PACT_PATH}/pact-version/abc123"
        listing = {"_links": {"pacts": [{"href": href, "name": "web"}]}}

        with respx.mock:
            respx.get(f"{BROKER}/pacts/provider/orders/latest").mock(return_value=Response(200, json=listing))
            respx.get(f"{BROKER}/pacts/provider/orders/latest/main").mock(
                return_value=Response(200, json=listing)
            )
            document = respx.get(href).mock(return_value=Response(200, json=_pact_document(orders_contract)))

            pacts = await client.fetch_pending("orders")

        assert document.call_count == 1
        (pact,) = pacts
        assert pact.contract == orders_contract
        assert pact.pact_version == "abc123"
        assert pact.verification_results_href == f"{href}/verification-results"

    @pytest.mark.asyncio
    async def test_unknown_provider_yields_nothing(self, client):
        with respx.mock:
            respx.get(f"{BROKER}/pacts/provider/orders/latest").mock(return_value=Response(404))
            respx.get(f"{BROKER}/pacts/provider/orders/latest/main").mock(return_value=Response(404))

            assert await client.fetch_pending("orders") == []

    @pytest.mark.asyncio
    async def test_reads_retried(self, client):
        with respx.mock:
            route = respx.get(f"{BROKER}/pacts/provider/orders/latest").mock(
                side_effect=[Response(503), Response(200, json={"_links": {"pacts": []}})]
            )
            assert await client.fetch_pending("orders", tags=()) == []

        assert route.call_count == 2


class TestVerificationResults:
    @pytest.mark.asyncio
    async def test_publish_result_to_linked_href(self, client, orders_contract):
        href = f"{BROKER}{PACT_PATH}/pact-version/abc123/verification-results"
        pact = PactForVerification(orders_contract, "abc123", verification_results_href=href)
        result = VerificationResult(
            "web",
            "orders",
            "http://provider.test",
            [InteractionResult("a health check", Outcome.PASS)],
        )

        with respx.mock:
            route = respx.post(href).mock(return_value=Response(201, json={"success": True}))
            await client.publish_verification_result(pact, result, "2.0.0")

        body = json.loads(route.calls.last.request.content)
        assert body["success"] is True
        assert body["providerApplicationVersion"] == "2.0.0"

    @pytest.mark.asyncio
    async def test_publish_result_requires_version(self, client, orders_contract):
        pact = PactForVerification(orders_contract, "abc123")
        result = VerificationResult("web", "orders", "http://provider.test")
        with pytest.raises(ValueError):
            await client.publish_verification_result(pact, result)

    @pytest.mark.asyncio
    async def test_publish_result_builds_path(self, client, orders_contract):
        pact = PactForVerification(orders_contract, "abc123")
        result = VerificationResult("web", "orders", "http://provider.test", provider_version="2.0.0")

        with respx.mock:
            route = respx.post(f"{BROKER}{PACT_PATH}/pact-version/abc123/verification-results").mock(
                return_value=Response(201, json={})
            )
            await client.publish_verification_result(pact, result)

        assert route.called


class TestDeployment:
    @pytest.mark.asyncio
    async def test_record_deployment(self, client):
        with respx.mock:
            route = respx.post(f"{BROKER}/pacticipants/web/versions/1.0.0/deployments/prod").mock(
                return_value=Response(201, json={})
            )
            await client.record_deployment("web", "1.0.0", "prod")

        assert route.called

    @pytest.mark.asyncio
    async def test_can_i_deploy(self, client):
        answer = {
            "summary": {"deployable": False, "reason": "No version of orders is deployed to prod"},
            "matrix": [
                {
                    "consumer": {"name": "web", "version": "1.0.0"},
                    "provider": {"name": "orders", "version": None},
                    "pactVersion": "abc123",
                    "verificationResult": None,
                    "reason": "No version of orders is deployed to prod",
                }
            ],
        }
        with respx.mock:
            route = respx.get(f"{BROKER}/can-i-deploy").mock(return_value=Response(200, json=answer))
            result = await client.can_i_deploy("web", "1.0.0", "prod")

        assert route.calls.last.request.url.params["environment"] == "prod"
        assert not result.deployable
        assert result.pacticipant == "web"
        assert len(result.unknown) == 1
