"""
Hermes CLI — Server bootstrap and admin commands.

Commands:
- hermes serve            — Start the webhook relay
- hermes validate-config  — Same as hermes-admin validate-config
- hermes test-template    — Same as hermes-admin test-template
- hermes list-endpoints   — Same as hermes-admin list-endpoints

Every ``serve`` flag falls back to a HERMES_* environment variable, then to
its built-in default.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional

from hermes import __version__
from hermes.admin import add_admin_commands

logger = logging.getLogger("hermes.cli")


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise argparse.ArgumentTypeError(f"expected true/false, got '{value}'")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hermes",
        description="Hermes — configuration-driven webhook relay",
    )
    parser.add_argument("--version", action="version", version=f"hermes {__version__}")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # hermes serve: flags default to None so the environment can fill them
    serve_parser = subparsers.add_parser("serve", help="Start the webhook relay")
    serve_parser.add_argument("-c", "--config", dest="config_path", help="Configuration file [HERMES_CONFIG_PATH]")
    serve_parser.add_argument("--bind-address", help="Server bind address [HERMES_BIND_ADDRESS]")
    serve_parser.add_argument("-p", "--port", type=int, help="Server port [HERMES_PORT]")
    serve_parser.add_argument("--log-level", help="Log level [HERMES_LOG_LEVEL]")
    serve_parser.add_argument("--log-format", choices=["json", "pretty"], help="Log format [HERMES_LOG_FORMAT]")
    serve_parser.add_argument(
        "--request-timeout", type=int, help="Outbound request timeout in seconds [HERMES_REQUEST_TIMEOUT]"
    )
    serve_parser.add_argument(
        "--max-concurrent-requests", type=int, help="Maximum concurrent requests [HERMES_MAX_CONCURRENT_REQUESTS]"
    )
    serve_parser.add_argument(
        "--health-check-enabled", type=_parse_bool, help="Serve /health and /ready [HERMES_HEALTH_CHECK_ENABLED]"
    )
    serve_parser.set_defaults(func=cmd_serve)

    add_admin_commands(subparsers)
    return parser


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    return args.func(args)


def cmd_serve(args: argparse.Namespace) -> int:
    """
    Start the relay:
    1. Resolve settings (flags > environment > defaults)
    2. Load and validate the configuration
    3. Compile every template; any failure aborts startup
    4. Serve until SIGINT/SIGTERM
    """
    from hermes.engine.config import ServerSettings
    from hermes.engine.errors import HermesError
    from hermes.server import serve

    try:
        settings = ServerSettings.from_env(
            config_path=args.config_path,
            bind_address=args.bind_address,
            port=args.port,
            log_level=args.log_level,
            log_format=args.log_format,
            request_timeout=args.request_timeout,
            max_concurrent_requests=args.max_concurrent_requests,
            health_check_enabled=args.health_check_enabled,
        )
    except HermesError as e:
        print(f"[ERROR] {e.message}", file=sys.stderr)
        return 1

    try:
        serve(settings)
    except FileNotFoundError as e:
        logger.error(f"Startup failed: {e}")
        return 1
    except HermesError as e:
        logger.error(f"Startup failed: {e.message}", extra={"event_data": e.to_dict()})
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
