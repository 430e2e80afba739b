"""Root test configuration."""

import logging
import os

import pytest
import structlog

from pactlayer.config import get_settings
from pactlayer.contract.models import Contract, Interaction, ProviderState, Request, Response
from pactlayer.matching.rules import MatchingRule


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Keep tests away from real PACTLAYER_ variables and config files."""
    for key in list(os.environ):
        if key.startswith("PACTLAYER_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def order_interaction():
    """A GET for order 42 that needs provider state and matches by type."""
    return Interaction(
        description="a request for order 42",
        request=Request(method="GET", path="/orders/42"),
        response=Response(
            status=200,
            headers={"Content-Type": "application/json"},
            body={"id": 42, "state": "open", "items": [{"sku": "A-1", "qty": 1}]},
            matching_rules={
                "$.body.id": MatchingRule.type(),
                "$.body.state": MatchingRule.pattern("open|closed"),
                "$.body.items": MatchingRule.min_array_like(1),
            },
        ),
        provider_states=(ProviderState("order 42 exists", {"id": 42}),),
    )


@pytest.fixture
def health_interaction():
    return Interaction(
        description="a health check",
        request=Request(method="GET", path="/health"),
        response=Response(status=200, body={"status": "ok"}),
    )


@pytest.fixture
def orders_contract(order_interaction, health_interaction):
    return Contract(
        consumer="web",
        provider="orders",
        interactions=(order_interaction, health_interaction),
    )
