"""
CLI commands for pactlayer.
"""

from __future__ import annotations

import argparse
from typing import Sequence

import pactlayer
from pactlayer.cli.broker import handle_broker_command, register_broker_parser
from pactlayer.cli.deploy import (
    handle_can_i_deploy_command,
    handle_record_deployment_command,
    register_deploy_parsers,
)
from pactlayer.cli.publish import handle_publish_command, register_publish_parser
from pactlayer.cli.stub import handle_stub_command, register_stub_parser
from pactlayer.cli.verify import handle_verify_command, register_verify_parser
from pactlayer.config import get_settings
from pactlayer.core.errors import ExitCode, main_with_error_handling
from pactlayer.logging import configure_logging

HANDLERS = {
    "verify": handle_verify_command,
    "publish": handle_publish_command,
    "can-i-deploy": handle_can_i_deploy_command,
    "record-deployment": handle_record_deployment_command,
    "stub": handle_stub_command,
    "broker": handle_broker_command,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pactlayer", description="Consumer-driven contract testing")
    parser.add_argument("--version", action="version", version=f"pactlayer {pactlayer.__version__}")
    parser.add_argument("--log-level", help="Log level (default: WARNING, or PACTLAYER_LOG_LEVEL)")
    parser.add_argument("--debug", action="store_true", help="Show tracebacks for errors")
    subparsers = parser.add_subparsers(dest="command")

    register_verify_parser(subparsers)
    register_publish_parser(subparsers)
    register_deploy_parsers(subparsers)
    register_stub_parser(subparsers)
    register_broker_parser(subparsers)
    return parser


@main_with_error_handling(print_errors=True)
def run(args: argparse.Namespace) -> int:
    return HANDLERS[args.command](args)


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return ExitCode.CONFIG_ERROR

    settings = get_settings()
    configure_logging(args.log_level or settings.log_level, json_output=settings.log_json)

    if args.debug:
        handler = HANDLERS[args.command]
        return main_with_error_handling(show_traceback=True, print_errors=True)(handler)(args)
    return run(args)


__all__ = ["build_parser", "main"]
