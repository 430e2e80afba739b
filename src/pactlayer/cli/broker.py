"""
Run the broker as a standalone HTTP service.
"""

from __future__ import annotations

import argparse

import uvicorn

from pactlayer.broker.server import create_broker_app
from pactlayer.broker.store import BrokerStore
from pactlayer.cli.ux import info
from pactlayer.config import get_settings
from pactlayer.core.errors import ExitCode


def broker_serve_command(
    host: str = "127.0.0.1",
    port: int = 9292,
    token: str | None = None,
    allow_overwrite: bool = False,
) -> int:
    """Serve an in-memory broker until interrupted."""
    settings = get_settings()
    app = create_broker_app(
        BrokerStore(allow_overwrite=allow_overwrite),
        token=token or settings.broker_token,
    )
    info(f"Broker listening on http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower())
    return ExitCode.SUCCESS


def register_broker_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register broker subcommand parser."""
    parser = subparsers.add_parser("broker", help="Broker service commands")
    broker_subparsers = parser.add_subparsers(dest="broker_command")

    serve_parser = broker_subparsers.add_parser("serve", help="Run an in-memory broker")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=9292, help="Port (default: 9292)")
    serve_parser.add_argument("--token", help="Require this bearer token (or set PACTLAYER_BROKER_TOKEN)")
    serve_parser.add_argument(
        "--allow-overwrite",
        action="store_true",
        help="Accept different content for an already-published consumer version",
    )


def handle_broker_command(args: argparse.Namespace) -> int:
    """Handle broker command from CLI args."""
    if getattr(args, "broker_command", None) == "serve":
        return broker_serve_command(
            host=args.host,
            port=args.port,
            token=getattr(args, "token", None),
            allow_overwrite=getattr(args, "allow_overwrite", False),
        )
    print("Usage: pactlayer broker serve [--host HOST] [--port PORT]")
    return ExitCode.CONFIG_ERROR
