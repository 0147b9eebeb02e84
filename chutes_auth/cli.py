"""Command-line interface for chutes-auth."""

from __future__ import annotations

import argparse
import sys

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from .config import _REDACTED, _SENSITIVE_FIELDS, ENV_PREFIX, build_redirect_uri, load_settings
from .exceptions import ConfigurationError


if TYPE_CHECKING:
    from .config import AuthSettings


def main(argv: list[str] | None = None) -> int:
    """Run the main CLI entry point.

    Parameters
    ----------
    argv : list[str], optional
        Arguments to parse (default: ``sys.argv[1:]``).

    Returns
    -------
    int
        Exit code.
    """
    parser = argparse.ArgumentParser(
        prog="chutes-auth",
        description="Sign in with Chutes: demo server and configuration tools",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Show or export configuration",
    )
    config_group = config_parser.add_mutually_exclusive_group()
    config_group.add_argument(
        "--show",
        action="store_true",
        help="Show current configuration with secrets redacted",
    )
    config_group.add_argument(
        "--env",
        action="store_true",
        help="Export configuration as environment variables",
    )
    config_parser.add_argument(
        "--output",
        "-o",
        type=str,
        help="Output file path (default: stdout)",
    )

    # check command
    subparsers.add_parser(
        "check",
        help="Verify the OAuth client configuration",
    )

    # serve command
    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the demo app with the sign-in routes",
    )
    serve_parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind (default: 127.0.0.1)",
    )
    serve_parser.add_argument(
        "--port",
        "-p",
        type=int,
        default=3000,
        help="Port to bind (default: 3000)",
    )
    serve_parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)

    if args.command == "config":
        return handle_config(args)
    if args.command == "check":
        return handle_check(args)
    if args.command == "serve":
        return handle_serve(args)
    parser.print_help()
    return 0


def handle_config(args: argparse.Namespace) -> int:
    """Handle the config command.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments.

    Returns
    -------
    int
        Exit code.
    """
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1

    output = format_config_env(settings) if args.env else format_config_show(settings)

    if args.output:
        Path(args.output).write_text(output + "\n", encoding="utf-8")
        print(f"Configuration written to {args.output}")
    else:
        print(output)

    return 0


def format_config_show(settings: AuthSettings) -> str:
    """Format configuration for display.

    Parameters
    ----------
    settings : AuthSettings
        The settings object to format.

    Returns
    -------
    str
        Formatted configuration string.
    """
    lines = ["chutes-auth Configuration\n" + "=" * 40 + "\n"]
    for field, value in settings.to_display_dict().items():
        lines.append(f"  {field} = {value!r}")
    lines.append("")
    lines.append(f"  (effective redirect_uri = {build_redirect_uri(settings)!r})")
    return "\n".join(lines)


def format_config_env(settings: AuthSettings) -> str:
    """Format configuration as ``CHUTES_AUTH__*`` assignments.

    Sensitive values are redacted, so the output is safe to share but
    must be completed by hand before use.
    """
    lines = []
    for field, value in settings.model_dump().items():
        if field in _SENSITIVE_FIELDS and value:
            value = _REDACTED
        if isinstance(value, bool):
            value = str(value).lower()
        lines.append(f"{ENV_PREFIX}{field.upper()}={value}")
    return "\n".join(lines)


@dataclass
class CheckResult:
    """Outcome of one configuration check."""

    name: str
    status: str  # "pass", "warn" or "fail"
    message: str


def verify_settings(settings: AuthSettings) -> list[CheckResult]:
    """Run offline sanity checks over the OAuth client settings.

    Client credentials issued by Chutes start with ``cid_`` and
    ``csc_``; other values are flagged as suspicious, not rejected.
    """
    results: list[CheckResult] = []

    for name, prefix in (("client_id", "cid_"), ("client_secret", "csc_")):
        env_name = f"{ENV_PREFIX}{name.upper()}"
        value = getattr(settings, name).strip()
        if not value:
            results.append(CheckResult(env_name, "fail", "Not set (required)"))
        elif not value.startswith(prefix):
            results.append(
                CheckResult(env_name, "warn", f"Value doesn't start with {prefix!r}, may be invalid")
            )
        else:
            results.append(CheckResult(env_name, "pass", "Set"))

    if settings.redirect_uri or settings.public_app_url:
        results.append(CheckResult("Redirect URI", "pass", build_redirect_uri(settings)))
    else:
        results.append(
            CheckResult("Redirect URI", "warn", "Not explicitly set, derived from request origin")
        )

    if settings.store_backend == "memory":
        results.append(
            CheckResult("Session store", "warn", "memory backend only works with a single process")
        )
    else:
        results.append(CheckResult("Session store", "pass", settings.store_backend))

    if not settings.cookie_secure:
        results.append(CheckResult("Cookies", "warn", "Secure attribute is off"))

    return results


def handle_check(args: argparse.Namespace) -> int:  # pylint: disable=unused-argument
    """Handle the check command.

    Returns
    -------
    int
        1 if any check failed, else 0.
    """
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        print(f"[fail] Settings: {exc.message}")
        return 1

    results = verify_settings(settings)
    for result in results:
        print(f"[{result.status}] {result.name}: {result.message}")
    return 1 if any(r.status == "fail" for r in results) else 0


def handle_serve(args: argparse.Namespace) -> int:
    """Handle the serve command.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments.

    Returns
    -------
    int
        Exit code.
    """
    import uvicorn

    from .app import create_app

    try:
        settings = load_settings()
    except ConfigurationError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1

    if args.debug:
        settings = settings.model_copy(update={"log_level": "DEBUG"})
    if not settings.public_app_url and not settings.redirect_uri:
        settings = settings.model_copy(
            update={"dev_base_url": f"http://{args.host}:{args.port}"}
        )

    app = create_app(settings)
    uvicorn.run(app, host=args.host, port=args.port, log_level="info")
    return 0
