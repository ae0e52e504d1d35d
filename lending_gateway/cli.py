"""Command-line interface for the lending gateway."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .config import load_config
from .errors import CompositionError, UpstreamUnavailable
from .logging_setup import configure_logging
from .services import Gateway

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="lending-gateway",
        description="GraphQL gateway adding derived lending fields to a subgraph",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    serve_parser = sub.add_parser("serve", help="Compose the schema and start the server")
    serve_parser.add_argument("--host", default=None, help="Bind address (overrides config)")
    serve_parser.add_argument(
        "--port", type=int, default=None, help="Listen port (overrides config)"
    )

    sub.add_parser("schema", help="Print the composed schema SDL")

    return parser


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    gateway = Gateway(config)

    if args.command == "serve":
        await gateway.serve(args.host, args.port)
    elif args.command == "schema":
        print(await gateway.print_schema())
    else:
        build_parser().print_help()
        sys.exit(1)


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        asyncio.run(_run(args))
    except (CompositionError, UpstreamUnavailable, ValueError) as e:
        logger.error("Gateway failed to start: %s", e)
        sys.exit(1)
    except KeyboardInterrupt:
        pass
