"""
Deployment gate commands.

``can-i-deploy`` asks the broker whether a pacticipant version is compatible
with everything currently deployed to an environment; ``record-deployment``
tells the broker a version has been deployed.
"""

from __future__ import annotations

import argparse
import asyncio
import json
from typing import Optional

from pactlayer.broker.client import PactBrokerClient
from pactlayer.broker.models import CanIDeployResult
from pactlayer.cli.ux import console, error, header, print_table, success
from pactlayer.config import ProjectConfig, get_settings, load_config
from pactlayer.core.errors import ConfigurationError, ExitCode


def _client(config: ProjectConfig, broker_url: Optional[str]) -> PactBrokerClient:
    url = broker_url or config.broker.url
    if not url:
        raise ConfigurationError("No broker URL provided (use --broker-url or PACTLAYER_BROKER_URL)")
    return PactBrokerClient(
        url,
        token=config.broker.token,
        username=config.broker.username,
        password=config.broker.password,
        timeout=config.timeout or 30.0,
        max_retries=config.max_retries or 0,
        backoff_factor=config.backoff_factor or 0.0,
    )


def can_i_deploy_command(
    pacticipant: str,
    version: str,
    environment: str,
    broker_url: Optional[str] = None,
    output_format: str = "table",
    config_path: Optional[str] = None,
) -> int:
    """
    Check whether ``pacticipant`` at ``version`` may be deployed.

    Exit codes: 0 = Deployable, 2 = Blocked
    """
    config = load_config(config_path).resolve(get_settings())
    client = _client(config, broker_url)
    result = asyncio.run(client.can_i_deploy(pacticipant, version, environment))

    if output_format == "json":
        print(json.dumps(result.to_dict(), indent=2))
    else:
        _display_result(result)

    return ExitCode.SUCCESS if result.deployable else ExitCode.BLOCKED


def _display_result(result: CanIDeployResult) -> None:
    header(f"Can I Deploy: {result.pacticipant} {result.version} to {result.environment}")

    if result.matrix:
        rows = []
        for row in result.matrix:
            if row.success is True:
                status = "[success]✓[/success]"
            elif row.success is False:
                status = "[error]✗[/error]"
            else:
                status = "[warning]?[/warning]"
            rows.append(
                [
                    f"{row.consumer} {row.consumer_version}",
                    f"{row.provider} {row.provider_version or '-'}",
                    status,
                ]
            )
        print_table("Compatibility matrix", ["Consumer", "Provider", "Verified"], rows)

    console.print(f"[muted]{result.reason}[/muted]")
    if result.deployable:
        success("Computer says yes")
    else:
        error("Computer says no")


def record_deployment_command(
    pacticipant: str,
    version: str,
    environment: str,
    broker_url: Optional[str] = None,
    config_path: Optional[str] = None,
) -> int:
    """Record that ``pacticipant`` at ``version`` is deployed to ``environment``."""
    config = load_config(config_path).resolve(get_settings())
    client = _client(config, broker_url)
    asyncio.run(client.record_deployment(pacticipant, version, environment))
    success(f"Recorded {pacticipant} {version} in {environment}")
    return ExitCode.SUCCESS


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--pacticipant", required=True, help="Consumer or provider name")
    parser.add_argument("--version", required=True, help="Application version")
    parser.add_argument("--environment", "--to", dest="environment", required=True, help="Environment")
    parser.add_argument("--broker-url", help="Broker URL (or set PACTLAYER_BROKER_URL)")
    parser.add_argument("--config", dest="config_path", help="Path to config file")


def register_deploy_parsers(subparsers: argparse._SubParsersAction) -> None:
    """Register can-i-deploy and record-deployment subcommand parsers."""
    check_parser = subparsers.add_parser(
        "can-i-deploy",
        help="Check whether a version is compatible with an environment",
    )
    _add_common_arguments(check_parser)
    check_parser.add_argument(
        "--output",
        "-o",
        dest="output_format",
        choices=["table", "json"],
        default="table",
        help="Output format (default: table)",
    )

    record_parser = subparsers.add_parser(
        "record-deployment",
        help="Record that a version was deployed to an environment",
    )
    _add_common_arguments(record_parser)


def handle_can_i_deploy_command(args: argparse.Namespace) -> int:
    """Handle can-i-deploy command from CLI args."""
    return can_i_deploy_command(
        pacticipant=args.pacticipant,
        version=args.version,
        environment=args.environment,
        broker_url=getattr(args, "broker_url", None),
        output_format=getattr(args, "output_format", "table"),
        config_path=getattr(args, "config_path", None),
    )


def handle_record_deployment_command(args: argparse.Namespace) -> int:
    """Handle record-deployment command from CLI args."""
    return record_deployment_command(
        pacticipant=args.pacticipant,
        version=args.version,
        environment=args.environment,
        broker_url=getattr(args, "broker_url", None),
        config_path=getattr(args, "config_path", None),
    )
