"""
CLI command for provider verification.

Replays contracts, read from pact files or fetched from the broker, against
a running provider and optionally publishes the results back to the broker.
"""

from __future__ import annotations

import argparse
import asyncio
import json
from typing import Optional, Sequence

from pactlayer.broker.client import PactBrokerClient
from pactlayer.broker.models import PactForVerification
from pactlayer.cli.ux import console, error, header, info, print_table, success, warning
from pactlayer.config import ProjectConfig, get_settings, load_config
from pactlayer.contract.document import load_contract
from pactlayer.core.errors import ConfigurationError, ExitCode
from pactlayer.verification import (
    ContractVerifier,
    ProviderStatesEndpoint,
    StateHandlerRegistry,
    VerificationResult,
)


def verify_command(
    pact_files: Sequence[str] = (),
    provider: Optional[str] = None,
    provider_base_url: Optional[str] = None,
    provider_states_setup_url: Optional[str] = None,
    provider_version: Optional[str] = None,
    broker_url: Optional[str] = None,
    consumer_version_tags: Optional[Sequence[str]] = None,
    publish: bool = False,
    timeout: Optional[float] = None,
    output_format: str = "table",
    config_path: Optional[str] = None,
) -> int:
    """
    Verify a provider against its consumers' contracts.

    Exit codes:
        0 = Every interaction of every contract passed
        1 = At least one interaction failed or errored
        10 = Missing provider URL or contract source

    Args:
        pact_files: Local pact files to verify (takes precedence over the broker)
        provider: Provider name, used to fetch pacts from the broker
        provider_base_url: Base URL of the running provider
        provider_states_setup_url: Endpoint used for states without a handler
        provider_version: Provider version recorded with published results
        broker_url: Broker base URL
        consumer_version_tags: Consumer tags whose latest pacts are verified
        publish: Publish results to the broker
        timeout: Per-request timeout in seconds
        output_format: "table" or "json"
        config_path: Explicit config file path
    """
    config = load_config(config_path).resolve(get_settings())

    base_url = provider_base_url or config.provider.base_url
    if not base_url:
        raise ConfigurationError(
            "No provider URL provided (use --provider-base-url or PACTLAYER_PROVIDER_BASE_URL)"
        )

    states_url = provider_states_setup_url or config.provider.states_setup_url
    registry = StateHandlerRegistry(fallback=ProviderStatesEndpoint(states_url) if states_url else None)
    version = provider_version or config.provider.version
    request_timeout = timeout if timeout is not None else (config.timeout or 30.0)

    if publish and pact_files:
        raise ConfigurationError("--publish only applies to contracts fetched from the broker")
    if publish and not version:
        raise ConfigurationError("--provider-version is required to publish verification results")

    results = asyncio.run(
        _run(
            config,
            pact_files=list(pact_files),
            provider=provider or config.provider.name,
            base_url=base_url,
            registry=registry,
            version=version,
            broker_url=broker_url,
            tags=list(consumer_version_tags or config.consumer_version_tags),
            publish=publish,
            timeout=request_timeout,
        )
    )

    if output_format == "json":
        print(json.dumps([r.to_dict() for r in results], indent=2))
    else:
        _display_results(results, base_url)

    if not results:
        return ExitCode.SUCCESS
    return max(r.exit_code for r in results)


async def _run(
    config: ProjectConfig,
    *,
    pact_files: list[str],
    provider: Optional[str],
    base_url: str,
    registry: StateHandlerRegistry,
    version: Optional[str],
    broker_url: Optional[str],
    tags: list[str],
    publish: bool,
    timeout: float,
) -> list[VerificationResult]:
    verifier = ContractVerifier(base_url, registry, timeout=timeout, provider_version=version)

    if pact_files:
        contracts = [load_contract(path) for path in pact_files]
        return list(await asyncio.gather(*(verifier.verify_contract(c) for c in contracts)))

    url = broker_url or config.broker.url
    if not url or not provider:
        raise ConfigurationError("Provide pact files, or a broker URL and --provider name")

    client = PactBrokerClient(
        url,
        token=config.broker.token,
        username=config.broker.username,
        password=config.broker.password,
        timeout=timeout,
        max_retries=config.max_retries or 0,
        backoff_factor=config.backoff_factor or 0.0,
    )
    pacts = await client.fetch_pending(provider, tags)
    results = list(await asyncio.gather(*(verifier.verify_contract(p.contract) for p in pacts)))

    if publish:
        await _publish_results(client, pacts, results, version)
    return results


async def _publish_results(
    client: PactBrokerClient,
    pacts: list[PactForVerification],
    results: list[VerificationResult],
    version: Optional[str],
) -> None:
    for pact, result in zip(pacts, results):
        await client.publish_verification_result(pact, result, version)


def _display_results(results: list[VerificationResult], base_url: str) -> None:
    if not results:
        warning("No contracts to verify")
        return

    for result in results:
        header(f"Verifying {result.consumer} -> {result.provider}")
        console.print(f"[cyan]Provider:[/cyan] {base_url}")
        console.print()

        rows = []
        for item in result.results:
            if item.passed:
                status = "[success]PASS[/success]"
            elif item.error:
                status = "[error]ERROR[/error]"
            else:
                status = "[error]FAIL[/error]"
            rows.append([item.description, status, f"{item.duration_ms:.0f}ms"])
        print_table("Interactions", ["Interaction", "Result", "Duration"], rows)

        for item in result.failures:
            console.print(f"[bold]{item.description}[/bold]")
            if item.error:
                console.print(f"  [error]{item.error_type}:[/error] {item.error}")
            for mismatch in item.mismatches:
                console.print(f"  [muted]{mismatch.path}[/muted] {mismatch.message}")
        console.print()

        if result.passed:
            success(f"{result.passed_count}/{len(result.results)} interactions verified")
        else:
            error(f"{len(result.failures)}/{len(result.results)} interactions failed")

    if any(r.provider_version for r in results):
        info(f"Provider version: {results[0].provider_version}")


def register_verify_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register verify subcommand parser."""
    parser = subparsers.add_parser("verify", help="Verify a provider against consumer contracts")
    parser.add_argument("pact_files", nargs="*", help="Pact files to verify (default: fetch from broker)")
    parser.add_argument("--provider", help="Provider name (required with the broker)")
    parser.add_argument(
        "--provider-base-url",
        help="Base URL of the running provider (or set PACTLAYER_PROVIDER_BASE_URL)",
    )
    parser.add_argument(
        "--provider-states-setup-url",
        help="Endpoint that sets up provider states (or set PACTLAYER_PROVIDER_STATES_SETUP_URL)",
    )
    parser.add_argument("--provider-version", help="Provider version for published results")
    parser.add_argument("--broker-url", help="Broker URL (or set PACTLAYER_BROKER_URL)")
    parser.add_argument(
        "--consumer-version-tag",
        dest="consumer_version_tags",
        action="append",
        help="Verify the latest pact for this consumer tag (repeatable)",
    )
    parser.add_argument("--publish", action="store_true", help="Publish results to the broker")
    parser.add_argument("--timeout", type=float, help="Per-request timeout in seconds")
    parser.add_argument(
        "--output",
        "-o",
        dest="output_format",
        choices=["table", "json"],
        default="table",
        help="Output format (default: table)",
    )
    parser.add_argument("--config", dest="config_path", help="Path to config file")


def handle_verify_command(args: argparse.Namespace) -> int:
    """Handle verify command from CLI args."""
    return verify_command(
        pact_files=args.pact_files,
        provider=getattr(args, "provider", None),
        provider_base_url=getattr(args, "provider_base_url", None),
        provider_states_setup_url=getattr(args, "provider_states_setup_url", None),
        provider_version=getattr(args, "provider_version", None),
        broker_url=getattr(args, "broker_url", None),
        consumer_version_tags=getattr(args, "consumer_version_tags", None),
        publish=getattr(args, "publish", False),
        timeout=getattr(args, "timeout", None),
        output_format=getattr(args, "output_format", "table"),
        config_path=getattr(args, "config_path", None),
    )
