"""
HTTP surface of the mock provider service.

A FastAPI app answers any method and path from a MockSession; uvicorn serves
it on a background thread for the lifetime of a consumer test.
"""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Iterable

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi import Request as HTTPRequest
from fastapi import Response as HTTPResponse

from pactlayer.contract.document import pact_file_name, write_pact
from pactlayer.contract.models import DEFAULT_SPECIFICATION_VERSION, Contract, Interaction, Request
from pactlayer.core.errors import TransportError
from pactlayer.matching.http import decode_body, normalize_headers, normalize_query
from pactlayer.mock.session import MockSession

logger = structlog.get_logger()

HTTP_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]

# Pact files written by this process; the first write replaces stale content
# from earlier runs, later writes merge.
_written_pacts: set[str] = set()
_written_lock = threading.Lock()


def create_mock_app(session: MockSession) -> FastAPI:
    """Build the ASGI app that serves ``session``'s interactions."""
    app = FastAPI(
        title=f"Mock {session.contract.provider}",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.api_route("/{path:path}", methods=HTTP_METHODS)
    async def dispatch(request: HTTPRequest) -> HTTPResponse:
        raw = await request.body()
        headers = normalize_headers(request.headers)
        query = normalize_query(request.query_params)
        observed = Request(
            method=request.method,
            path=request.url.path,
            query=query or None,
            headers=headers,
            body=decode_body(raw, headers.get("content-type")),
        )
        response = session.handle(observed)
        return HTTPResponse(
            content=response.content,
            status_code=response.status,
            headers=response.headers,
        )

    return app


class MockHandle:
    """A running mock provider; ``finish()`` stops it and yields the contract."""

    def __init__(
        self,
        session: MockSession,
        *,
        host: str = "127.0.0.1",
        port: int = 0,
        pact_dir: str | Path | None = None,
        startup_timeout: float = 10.0,
    ) -> None:
        self.session = session
        self.host = host
        self.port = port
        self.pact_dir = Path(pact_dir) if pact_dir else None
        self.startup_timeout = startup_timeout
        self.app = create_mock_app(session)
        self._server: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None
        self._finished = False

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> MockHandle:
        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level="warning",
            access_log=False,
            lifespan="off",
        )
        self._server = uvicorn.Server(config)
        self._thread = threading.Thread(
            target=self._server.run,
            name=f"pact-mock-{self.session.contract.provider}",
            daemon=True,
        )
        self._thread.start()

        deadline = time.monotonic() + self.startup_timeout
        while not self._server.started:
            if not self._thread.is_alive():
                raise TransportError(
                    f"Mock provider failed to bind {self.host}:{self.port}",
                    {"host": self.host, "port": self.port},
                )
            if time.monotonic() > deadline:
                self.stop()
                raise TransportError("Timed out starting mock provider", {"host": self.host})
            time.sleep(0.01)

        sockets = self._server.servers[0].sockets if self._server.servers else []
        if sockets:
            self.port = sockets[0].getsockname()[1]
        logger.info(
            "mock_provider_started",
            provider=self.session.contract.provider,
            url=self.url,
            interactions=len(self.session.interactions),
        )
        return self

    def stop(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout=5.0)
        self._thread = None

    def finish(self) -> Contract:
        """
        Stop serving and return the contract of the configured interactions.

        Raises:
            VerificationMismatch: if the consumer left interactions unexercised
                or sent requests nothing matched
        """
        self.stop()
        contract = self.session.finish()
        if self.pact_dir is not None and not self._finished:
            _write(contract, self.pact_dir)
        self._finished = True
        logger.info(
            "mock_provider_finished",
            provider=contract.provider,
            interactions=len(contract),
        )
        return contract

    def __enter__(self) -> MockHandle:
        if not self.running:
            self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            self.stop()
            return False
        self.finish()
        return False


class MockProviderService:
    """
    Consumer-side stand-in for a provider.

    Example:
        service = MockProviderService("web", "orders", pact_dir="pacts")
        with service.configure([interaction]) as mock:
            client = OrdersClient(mock.url)
            client.get_order(42)
    """

    def __init__(
        self,
        consumer: str,
        provider: str,
        *,
        host: str = "127.0.0.1",
        port: int = 0,
        pact_dir: str | Path | None = None,
        specification_version: str = DEFAULT_SPECIFICATION_VERSION,
        startup_timeout: float = 10.0,
    ) -> None:
        self.consumer = consumer
        self.provider = provider
        self.host = host
        self.port = port
        self.pact_dir = pact_dir
        self.specification_version = specification_version
        self.startup_timeout = startup_timeout

    def session(self, interactions: Iterable[Interaction]) -> MockSession:
        return MockSession(
            self.consumer,
            self.provider,
            interactions,
            specification_version=self.specification_version,
        )

    def configure(self, interactions: Iterable[Interaction]) -> MockHandle:
        """Start serving ``interactions`` and return the running handle."""
        handle = MockHandle(
            self.session(interactions),
            host=self.host,
            port=self.port,
            pact_dir=self.pact_dir,
            startup_timeout=self.startup_timeout,
        )
        return handle.start()


def _write(contract: Contract, pact_dir: Path) -> Path:
    key = str((pact_dir / pact_file_name(contract.consumer, contract.provider)).resolve())
    with _written_lock:
        merge = key in _written_pacts
        path = write_pact(contract, pact_dir, merge=merge)
        _written_pacts.add(key)
    return path
