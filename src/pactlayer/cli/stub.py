"""
Serve pact files as a stub provider.

Consumers (or people) can develop against the stub without the real
provider running. Nothing is verified or written when it stops.
"""

from __future__ import annotations

import argparse
import time
from typing import Sequence

from pactlayer.cli.ux import console, header, info
from pactlayer.config import get_settings
from pactlayer.contract.document import load_contract
from pactlayer.contract.models import Contract
from pactlayer.core.errors import ConfigurationError, ExitCode
from pactlayer.mock.server import MockHandle
from pactlayer.mock.session import MockSession


def build_stub(
    pact_files: Sequence[str],
    host: str = "127.0.0.1",
    port: int = 0,
) -> MockHandle:
    """Create an unstarted stub serving the interactions of ``pact_files``."""
    if not pact_files:
        raise ConfigurationError("No pact files given")

    contract: Contract | None = None
    for path in pact_files:
        loaded = load_contract(path)
        contract = loaded if contract is None else contract.merge(loaded)
    assert contract is not None

    session = MockSession(
        contract.consumer,
        contract.provider,
        contract.interactions,
        specification_version=contract.specification_version,
    )
    return MockHandle(session, host=host, port=port)


def stub_command(
    pact_files: Sequence[str],
    host: str | None = None,
    port: int | None = None,
) -> int:
    """Serve ``pact_files`` until interrupted."""
    settings = get_settings()
    handle = build_stub(
        pact_files,
        host=host or settings.mock_host,
        port=port if port is not None else settings.mock_port,
    )
    handle.start()

    contract = handle.session.contract
    header(f"Stub {contract.provider} for {contract.consumer}")
    console.print(f"[cyan]Listening:[/cyan] {handle.url}")
    for description in contract.descriptions:
        console.print(f"  [muted]{description}[/muted]")

    try:
        while handle.running:
            time.sleep(0.5)
    except KeyboardInterrupt:
        info("Stopping stub")
    finally:
        handle.stop()
    return ExitCode.SUCCESS


def register_stub_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register stub subcommand parser."""
    parser = subparsers.add_parser("stub", help="Serve pact files as a stub provider")
    parser.add_argument("pact_files", nargs="+", help="Pact files to serve")
    parser.add_argument("--host", help="Bind address (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, help="Port (default: random free port)")


def handle_stub_command(args: argparse.Namespace) -> int:
    """Handle stub command from CLI args."""
    return stub_command(
        pact_files=args.pact_files,
        host=getattr(args, "host", None),
        port=getattr(args, "port", None),
    )
