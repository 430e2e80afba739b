"""
Mock provider service.

Serves configured interactions to a consumer under test and turns the
interactions it actually exercised into a contract.
"""

from .consumer import Consumer, Pact, Provider
from .server import MockHandle, MockProviderService, create_mock_app
from .session import MockResponse, MockSession

__all__ = [
    "Consumer",
    "Provider",
    "Pact",
    "MockHandle",
    "MockProviderService",
    "MockResponse",
    "MockSession",
    "create_mock_app",
]
