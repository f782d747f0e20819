"""
Hermes Admin — Offline tools over the relay configuration.

Commands:
- hermes-admin validate-config  — Check endpoints, methods, URLs, templates
- hermes-admin test-template    — Render one endpoint's template against a payload
- hermes-admin list-endpoints   — Tabular listing of every register

None of these start a server or contact a target.
"""

from __future__ import annotations

import argparse
from typing import Any, List, Optional, Tuple

from hermes.engine.config import (
    SUPPORTED_METHODS,
    RelayConfig,
    find_duplicate_endpoints,
    load_config,
)
from hermes.engine.dispatcher import loads_strict
from hermes.engine.errors import (
    EndpointNotFoundError,
    HermesConfigError,
    HermesError,
    InvalidPayloadError,
    RenderedPayloadError,
)
from hermes.engine.templates import TemplateRenderer, to_template_data

DEFAULT_CONFIG = "config.yml"


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

def validate_config(config: RelayConfig) -> List[str]:
    """
    Return every problem found in *config*; an empty list means valid.

    Schema-level checks (endpoint prefix, empty URL) already ran when the
    file was loaded; this adds the checks that need the whole config.
    """
    problems: List[str] = []
    renderer = TemplateRenderer()

    for i, register in enumerate(config.registers):
        if register.method.upper() not in SUPPORTED_METHODS:
            problems.append(f"Register {i}: invalid HTTP method '{register.method}'")
        if register.target.method.upper() not in SUPPORTED_METHODS:
            problems.append(f"Register {i}: invalid target method '{register.target.method}'")
        for name in register.target.headers:
            if not name or any(c in name for c in " :\r\n"):
                problems.append(f"Register {i}: invalid header name '{name}'")
        try:
            renderer.compile(register.template, name=register.endpoint)
        except HermesError as e:
            problems.append(f"Register {i}: template error: {e.message}")

    for endpoint in find_duplicate_endpoints(config.registers):
        problems.append(f"Duplicate endpoint '{endpoint}'")

    return problems


def render_template(config: RelayConfig, endpoint: str, payload: str) -> Tuple[str, Any]:
    """
    Render *endpoint*'s template against a JSON *payload* string.

    Returns:
        (rendered text, parsed JSON value)

    Raises:
        EndpointNotFoundError, InvalidPayloadError, TemplateCompileError,
        TemplateRenderError, RenderedPayloadError.
    """
    register = config.find(endpoint)
    if register is None:
        raise EndpointNotFoundError(f"Endpoint '{endpoint}' not found", endpoint=endpoint)

    try:
        payload_json = loads_strict(payload)
    except ValueError as e:
        raise InvalidPayloadError(f"Invalid JSON payload: {e}", endpoint=endpoint) from e

    renderer = TemplateRenderer()
    handle = renderer.compile(register.template, name=endpoint)
    rendered = renderer.render(handle, to_template_data(payload_json))

    try:
        parsed = loads_strict(rendered)
    except ValueError as e:
        raise RenderedPayloadError(
            f"Rendered template is not valid JSON: {e}",
            endpoint=endpoint,
            rendered=rendered,
        ) from e
    return rendered, parsed


def format_endpoints(config: RelayConfig) -> List[str]:
    """Header, rule and one row per register."""
    lines = [
        f"{'METHOD':<8} {'ENDPOINT':<30} {'TARGET':<8} URL",
        "-" * 80,
    ]
    for register in config.registers:
        lines.append(
            f"{register.method:<8} {register.endpoint:<30} "
            f"{register.target.method:<8} {register.target.url}"
        )
    return lines


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------

def _load(path: str) -> Optional[RelayConfig]:
    try:
        return load_config(path)
    except FileNotFoundError:
        print(f"[ERROR] Config file not found: {path}")
    except HermesConfigError as e:
        print(f"[ERROR] {e.message}")
    return None


def cmd_validate_config(args: argparse.Namespace) -> int:
    """Validate configuration file."""
    config = _load(args.config)
    if config is None:
        return 1

    print(f"Validating {len(config.registers)} webhook register(s) in {args.config}")
    problems = validate_config(config)
    for problem in problems:
        print(f"[ERROR] {problem}")

    if problems:
        print(f"\n{len(problems)} error(s) found.")
        return 1
    print(f"[OK] Configuration is valid ({len(config.registers)} register(s))")
    return 0


def cmd_test_template(args: argparse.Namespace) -> int:
    """Test webhook template rendering."""
    config = _load(args.config)
    if config is None:
        return 1

    try:
        rendered, _ = render_template(config, args.endpoint, args.payload)
    except RenderedPayloadError as e:
        print("Template rendered:")
        print(e.rendered)
        print(f"[ERROR] {e.message}")
        return 1
    except HermesError as e:
        print(f"[ERROR] {e.message}")
        return 1

    print("Template rendered successfully:")
    print(rendered)
    print("[OK] Rendered output is valid JSON")
    return 0


def cmd_list_endpoints(args: argparse.Namespace) -> int:
    """List all registered endpoints."""
    config = _load(args.config)
    if config is None:
        return 1

    print("Registered webhook endpoints:")
    for line in format_endpoints(config):
        print(line)
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

def add_admin_commands(subparsers: "argparse._SubParsersAction") -> None:
    """Register the admin subcommands on an existing subparser set."""
    validate_parser = subparsers.add_parser("validate-config", help="Validate configuration file")
    validate_parser.add_argument(
        "-c", "--config", default=DEFAULT_CONFIG, help=f"Path to config file (default: {DEFAULT_CONFIG})"
    )
    validate_parser.set_defaults(func=cmd_validate_config)

    template_parser = subparsers.add_parser("test-template", help="Test webhook template rendering")
    template_parser.add_argument(
        "-c", "--config", default=DEFAULT_CONFIG, help=f"Path to config file (default: {DEFAULT_CONFIG})"
    )
    template_parser.add_argument("-e", "--endpoint", required=True, help="Endpoint to test")
    template_parser.add_argument("-p", "--payload", required=True, help="JSON payload to test with")
    template_parser.set_defaults(func=cmd_test_template)

    list_parser = subparsers.add_parser("list-endpoints", help="List all registered endpoints")
    list_parser.add_argument(
        "-c", "--config", default=DEFAULT_CONFIG, help=f"Path to config file (default: {DEFAULT_CONFIG})"
    )
    list_parser.set_defaults(func=cmd_list_endpoints)


def main(argv: Optional[list] = None) -> int:
    """hermes-admin entry point."""
    parser = argparse.ArgumentParser(
        prog="hermes-admin",
        description="Administrative tools for Hermes",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")
    add_admin_commands(subparsers)

    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    return args.func(args)
