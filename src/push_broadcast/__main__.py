"""Command-line entry point for push-broadcast.

The auth system is external: the principal given on the command line is
taken as already authenticated. Responses are printed to stdout as JSON;
logs and errors go to stderr.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Final, NoReturn

from pydantic import BaseModel

from push_broadcast.core.config import ConfigurationError, MainConfig, load_main_config
from push_broadcast.core.errors import BroadcastError
from push_broadcast.service import open_service
from push_broadcast.types.models import Principal, PrincipalClass
from push_broadcast.utils.logging import configure_logging

__all__ = ["main"]

# Exit codes
EXIT_SUCCESS: Final[int] = 0
EXIT_FAILURE: Final[int] = 1
EXIT_USAGE_ERROR: Final[int] = 2

# Error codes reported as caller mistakes rather than service failures
_USAGE_ERROR_CODES: Final[frozenset[str]] = frozenset(
    {"unauthenticated", "permission-denied", "invalid-argument"}
)

_ROLES: Final[dict[str, PrincipalClass]] = {
    "user": PrincipalClass.USER,
    "agent": PrincipalClass.AGENT,
    "admin": PrincipalClass.ADMINISTRATOR,
}


def parse_arguments(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list, defaults to ``sys.argv[1:]``

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="push-broadcast",
        description="Register device push tokens and broadcast notifications",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  push-broadcast -c config.yaml register --principal u1 --token tok-A
  push-broadcast -c config.yaml broadcast --principal root --admin \\
      --title "Maintenance" --message "Back at 10:00" --audience users
  push-broadcast --dry-run broadcast --principal root --admin --title T --message M
        """,
    )

    _ = parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=None,
        help="Path to configuration file (default: built-in defaults)",
        metavar="PATH",
    )
    _ = parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log notifications instead of sending them (overrides config)",
    )
    _ = parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override log level from configuration",
        metavar="LEVEL",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    register = subparsers.add_parser("register", help="Store a principal's push token")
    _ = register.add_argument("--principal", required=True, help="Authenticated principal ID")
    _ = register.add_argument(
        "--role",
        choices=sorted(_ROLES),
        default="user",
        help="Principal class (default: user)",
    )
    _ = register.add_argument("--token", required=True, help="Device push token")

    broadcast = subparsers.add_parser("broadcast", help="Send a notification to an audience")
    _ = broadcast.add_argument("--principal", required=True, help="Authenticated principal ID")
    _ = broadcast.add_argument(
        "--admin",
        action="store_true",
        help="The principal holds the administrator claim",
    )
    _ = broadcast.add_argument("--title", required=True, help="Notification title")
    _ = broadcast.add_argument("--message", required=True, help="Notification body")
    _ = broadcast.add_argument(
        "--audience",
        default="all",
        help="Target audience: all, users or agents (default: all)",
    )

    return parser.parse_args(argv)


def load_config(config_path: Path | None) -> MainConfig:
    """Load the configuration file, or the defaults when no path is given."""
    if config_path is None:
        return MainConfig()
    return load_main_config(config_path)


async def async_main(args: argparse.Namespace, config: MainConfig) -> BaseModel:
    """Run the selected subcommand and return its response model.

    Raises:
        BroadcastError: If the request is rejected or the store fails
    """
    dry_run: bool = args.dry_run  # pyright: ignore[reportAny]  # argparse boundary
    command: str = args.command  # pyright: ignore[reportAny]  # argparse boundary
    principal_id: str = args.principal  # pyright: ignore[reportAny]  # argparse boundary

    async with open_service(config, dry_run=dry_run) as service:
        if command == "register":
            role: str = args.role  # pyright: ignore[reportAny]  # argparse boundary
            principal = Principal(principal_id=principal_id, principal_class=_ROLES[role])
            token: str = args.token  # pyright: ignore[reportAny]  # argparse boundary
            return await service.register_token(principal, token)

        is_admin: bool = args.admin  # pyright: ignore[reportAny]  # argparse boundary
        principal = Principal(
            principal_id=principal_id,
            principal_class=PrincipalClass.ADMINISTRATOR if is_admin else PrincipalClass.USER,
            is_admin=is_admin,
        )
        title: str = args.title  # pyright: ignore[reportAny]  # argparse boundary
        message: str = args.message  # pyright: ignore[reportAny]  # argparse boundary
        audience: str = args.audience  # pyright: ignore[reportAny]  # argparse boundary
        return await service.send_broadcast(principal, title, message, audience)


def main(argv: Sequence[str] | None = None) -> NoReturn:
    """Main entry point for push-broadcast.

    Exit Codes:
        0: Request succeeded
        1: Configuration error, store unavailable or unexpected failure
        2: Unauthenticated, permission denied or invalid argument
    """
    args = parse_arguments(argv)
    config_path: Path | None = args.config  # pyright: ignore[reportAny]  # argparse boundary
    log_level: str | None = args.log_level  # pyright: ignore[reportAny]  # argparse boundary

    try:
        config = load_config(config_path)
    except ConfigurationError as exc:
        print(f"Configuration error:\n{exc}", file=sys.stderr)
        sys.exit(EXIT_FAILURE)

    if log_level is not None:
        config.application.log_level = log_level

    configure_logging(
        log_level=config.application.log_level,
        enable_syslog=config.application.syslog_enabled,
        enable_console=True,
    )

    try:
        response = asyncio.run(async_main(args, config))
    except BroadcastError as exc:
        print(f"Error [{exc.code}]: {exc}", file=sys.stderr)
        sys.exit(EXIT_USAGE_ERROR if exc.code in _USAGE_ERROR_CODES else EXIT_FAILURE)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(EXIT_FAILURE)
    except Exception as exc:
        print(f"Unexpected error: {exc}", file=sys.stderr)
        logging.exception("Unexpected error during command execution")
        sys.exit(EXIT_FAILURE)

    print(response.model_dump_json(indent=2))
    sys.exit(EXIT_SUCCESS)


if __name__ == "__main__":
    main()
