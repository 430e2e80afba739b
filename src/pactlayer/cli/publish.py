"""
CLI command for publishing consumer contracts to the broker.
"""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Optional, Sequence

from pactlayer.broker.client import PactBrokerClient
from pactlayer.cli.ux import console, header, success
from pactlayer.config import get_settings, load_config
from pactlayer.contract.document import load_contract
from pactlayer.core.errors import ConfigurationError, ExitCode


def publish_command(
    pact_files: Sequence[str],
    consumer_version: str,
    tags: Optional[Sequence[str]] = None,
    broker_url: Optional[str] = None,
    config_path: Optional[str] = None,
) -> int:
    """
    Publish pact files for ``consumer_version``.

    With no files, every ``*.json`` in the configured pact directory is
    published. Each publish is a single request; a conflicting version
    stops the command with exit code 13.
    """
    config = load_config(config_path).resolve(get_settings())
    url = broker_url or config.broker.url
    if not url:
        raise ConfigurationError("No broker URL provided (use --broker-url or PACTLAYER_BROKER_URL)")

    paths = [Path(p) for p in pact_files]
    if not paths:
        pact_dir = Path(config.pact_dir or "pacts")
        paths = sorted(pact_dir.glob("*.json"))
    if not paths:
        raise ConfigurationError("No pact files to publish")

    contracts = [load_contract(path) for path in paths]
    client = PactBrokerClient(
        url,
        token=config.broker.token,
        username=config.broker.username,
        password=config.broker.password,
        timeout=config.timeout or 30.0,
        max_retries=config.max_retries or 0,
        backoff_factor=config.backoff_factor or 0.0,
    )

    header(f"Publishing {len(contracts)} pact(s) to {url}")
    for contract in contracts:
        pact_version = asyncio.run(client.publish(contract, consumer_version, tags or ()))
        success(f"{contract.consumer} -> {contract.provider} ({consumer_version})")
        console.print(f"  [muted]pact version {pact_version}[/muted]")

    return ExitCode.SUCCESS


def register_publish_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register publish subcommand parser."""
    parser = subparsers.add_parser("publish", help="Publish pact files to the broker")
    parser.add_argument("pact_files", nargs="*", help="Pact files (default: all files in the pact dir)")
    parser.add_argument("--consumer-version", required=True, help="Consumer application version")
    parser.add_argument("--tag", dest="tags", action="append", help="Tag the consumer version (repeatable)")
    parser.add_argument("--broker-url", help="Broker URL (or set PACTLAYER_BROKER_URL)")
    parser.add_argument("--config", dest="config_path", help="Path to config file")


def handle_publish_command(args: argparse.Namespace) -> int:
    """Handle publish command from CLI args."""
    return publish_command(
        pact_files=args.pact_files,
        consumer_version=args.consumer_version,
        tags=getattr(args, "tags", None),
        broker_url=getattr(args, "broker_url", None),
        config_path=getattr(args, "config_path", None),
    )
