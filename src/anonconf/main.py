#!/usr/bin/env python3
"""
Anonymous Conference Client Application

Client application for the anonymous conferencing service. Provides a
terminal-based user interface using the Textual framework, or a plain
line-based interface with --cli.

Usage:
    anonconf --server-address localhost:7667
    anonconf --cli --log-level INFO
"""

import argparse
import asyncio
import dataclasses
import logging
import sys
from typing import List, Optional

from .config import ClientConfig, ServerAddress
from .errors import ConfigError

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Anonymous conference client",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--server-address",
        help="host:port of the server (default: $ANONCONF_SERVER_ADDRESS "
        "or localhost:7667)",
    )
    parser.add_argument(
        "--cli",
        action="store_true",
        help="Use the line-based interface instead of the terminal UI",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: $ANONCONF_LOG_LEVEL or WARNING)",
    )
    parser.add_argument(
        "--log-file",
        help="Log file path (default: $ANONCONF_LOG_FILE or anonconf.log)",
    )
    parser.add_argument(
        "--request-timeout",
        type=float,
        help="Seconds to wait for create/join replies",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ClientConfig:
    """
    Combine environment settings with command line overrides.

    Raises:
        ConfigError: If any value is invalid
    """
    config = ClientConfig.from_env()
    overrides = {}
    if args.server_address:
        overrides["server_address"] = ServerAddress.parse(args.server_address)
    if args.cli:
        overrides["frontend"] = "cli"
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.log_file:
        overrides["log_file"] = args.log_file
    if args.request_timeout is not None:
        overrides["request_timeout"] = args.request_timeout
    return dataclasses.replace(config, **overrides)


def configure_logging(config: ClientConfig) -> None:
    """Send log records to a file so they do not interfere with the UI."""
    handler = logging.NullHandler()
    if config.log_file:
        handler = logging.FileHandler(config.log_file, mode="a")
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[handler],
    )


def run_cli(config: ClientConfig) -> None:
    """Run the line-based front end until /exit or EOF."""
    from .cli import ConferenceCli
    from .client import ConferenceClient

    cli = ConferenceCli(ConferenceClient(config))
    asyncio.run(cli.run())


def run_tui(config: ClientConfig) -> None:
    """Run the Textual front end."""
    from .ui import ConferenceApp

    app = ConferenceApp(config)
    app.run()


def main(argv: Optional[List[str]] = None):
    """Main entry point for the conference client."""
    args = parse_args(argv)
    try:
        config = build_config(args)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    configure_logging(config)
    logger.info(
        "Starting conference client (%s) for %s",
        config.frontend,
        config.server_address,
    )

    try:
        if config.frontend == "cli":
            run_cli(config)
        else:
            run_tui(config)
    except KeyboardInterrupt:
        print("\nExiting...")
        sys.exit(0)


if __name__ == "__main__":
    main()
