"""Tests for mock/session.py and mock/server.py.

Tests for request matching, bookkeeping under concurrency, and the HTTP
surface of the mock provider.
"""

import json
import threading

import httpx
import pytest
from fastapi.testclient import TestClient

from pactlayer.contract.document import load_contract
from pactlayer.contract.models import Interaction, Request, Response
from pactlayer.core.errors import VerificationMismatch
from pactlayer.mock.server import MockHandle, MockProviderService, create_mock_app
from pactlayer.mock.session import MockResponse, MockSession


@pytest.fixture
def session(order_interaction, health_interaction):
    return MockSession("web", "orders", [order_interaction, health_interaction])


class TestMockResponse:
    def test_json_body(self, order_interaction):
        response = MockResponse.from_interaction(order_interaction)
        assert response.status == 200
        assert response.headers["Content-Type"] == "application/json"
        assert json.loads(response.content)["id"] == 42

    def test_text_body(self):
        interaction = Interaction("text", Request("GET", "/t"), Response(body="hello"))
        response = MockResponse.from_interaction(interaction)
        assert response.content == b"hello"
        assert response.headers["Content-Type"].startswith("text/plain")

    def test_no_body(self):
        interaction = Interaction("empty", Request("DELETE", "/t"), Response(status=204))
        assert MockResponse.from_interaction(interaction).content == b""


class TestMockSession:
    """Tests for match and record bookkeeping."""

    def test_matching_request_served(self, session):
        response = session.handle(Request("GET", "/health"))
        assert response.status == 200
        assert json.loads(response.content) == {"status": "ok"}
        assert session.missing == ["a request for order 42"]

    def test_unmatched_request_gets_diagnostic(self, session):
        response = session.handle(Request("GET", "/unknown"))
        assert response.status == 500
        assert response.headers["X-Pact-Unmatched"] == "true"
        payload = json.loads(response.content)
        assert payload["request"] == {"method": "GET", "path": "/unknown"}
        assert {i["description"] for i in payload["interactions"]} == {
            "a request for order 42",
            "a health check",
        }
        assert session.unexpected == [{"method": "GET", "path": "/unknown"}]

    def test_finish_names_unexercised_interaction(self, session):
        session.handle(Request("GET", "/orders/42"))
        with pytest.raises(VerificationMismatch) as exc_info:
            session.finish()
        assert exc_info.value.missing == ["a health check"]
        assert exc_info.value.unexpected == []
        assert "missing: a health check" in str(exc_info.value)

    def test_finish_returns_contract(self, session):
        session.handle(Request("GET", "/orders/42"))
        session.handle(Request("GET", "/health"))
        contract = session.finish()
        assert contract.descriptions == ["a request for order 42", "a health check"]

    def test_unexpected_request_fails_finish(self, session):
        session.handle(Request("GET", "/orders/42"))
        session.handle(Request("GET", "/health"))
        session.handle(Request("POST", "/health"))
        with pytest.raises(VerificationMismatch) as exc_info:
            session.finish()
        assert exc_info.value.missing == []
        assert exc_info.value.unexpected[0]["method"] == "POST"

    def test_concurrent_requests_all_recorded(self, session):
        """Test that concurrent handling loses no bookkeeping."""
        barrier = threading.Barrier(20)

        def worker(i):
            barrier.wait()
            path = "/health" if i % 2 else f"/nowhere/{i}"
            session.handle(Request("GET", path))

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert session.request_count == 20
        assert len(session.unexpected) == 10
        assert session.missing == ["a request for order 42"]


class TestMockApp:
    """Tests for the ASGI app in front of a session."""

    def test_serves_interaction(self, session):
        client = TestClient(create_mock_app(session))
        response = client.get("/orders/42")
        assert response.status_code == 200
        assert response.json()["items"] == [{"sku": "A-1", "qty": 1}]

    def test_query_and_headers_observed(self):
        interaction = Interaction(
            "search",
            Request("GET", "/search", query={"q": ["shoes"]}, headers={"Accept": "application/json"}),
            Response(status=200, body=[]),
        )
        session = MockSession("web", "catalog", [interaction])
        client = TestClient(create_mock_app(session))

        assert client.get("/search", params={"q": "shoes"}, headers={"Accept": "application/json"}).status_code == 200
        assert client.get("/search", params={"q": "hats"}, headers={"Accept": "application/json"}).status_code == 500

    def test_json_body_observed(self):
        interaction = Interaction(
            "create order",
            Request("POST", "/orders", headers={"Content-Type": "application/json"}, body={"sku": "A-1"}),
            Response(status=201, body={"id": 1}),
        )
        session = MockSession("web", "orders", [interaction])
        client = TestClient(create_mock_app(session))

        response = client.post("/orders", json={"sku": "A-1"})
        assert response.status_code == 201
        session.finish()


class TestMockHandle:
    """Tests for the live uvicorn-backed mock provider."""

    def test_serves_on_random_port_and_writes_pact(self, tmp_path, order_interaction, health_interaction):
        service = MockProviderService("web", "orders", pact_dir=tmp_path)
        with service.configure([order_interaction, health_interaction]) as mock:
            assert mock.port != 0
            assert httpx.get(f"{mock.url}/orders/42").status_code == 200
            assert httpx.get(f"{mock.url}/health").json() == {"status": "ok"}

        assert not mock.running
        contract = load_contract(tmp_path / "web-orders.json")
        assert contract.descriptions == ["a request for order 42", "a health check"]

    def test_finish_raises_for_missing_interaction(self, tmp_path, order_interaction, health_interaction):
        handle = MockHandle(MockSession("web", "orders", [order_interaction, health_interaction]), pact_dir=tmp_path)
        handle.start()
        httpx.get(f"{handle.url}/orders/42")

        with pytest.raises(VerificationMismatch) as exc_info:
            handle.finish()
        assert exc_info.value.missing == ["a health check"]
        assert not (tmp_path / "web-orders.json").exists()
