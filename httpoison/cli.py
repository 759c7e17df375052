"""CLI entry point for httpoison.

Sends one JSON request from the command line and prints the response.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

from httpoison.config_loader import ConfigError, load_config_or_default
from httpoison.executor import ExecutorError, RequestExecutor
from httpoison.logging_config import configure_logging, get_logger
from httpoison.models import RequestDescription, ResponseDescription


def positive_float(value: str) -> float:
    """Parse and validate a positive float value.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive number.
    """
    try:
        result = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number '{value}'.")
    if result <= 0:
        raise argparse.ArgumentTypeError(f"Value must be positive, got {result}.")
    return result


def non_negative_int(value: str) -> int:
    """Parse and validate a non-negative integer value.

    Raises:
        argparse.ArgumentTypeError: If value is not an integer >= 0.
    """
    try:
        result = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid integer '{value}'.")
    if result < 0:
        raise argparse.ArgumentTypeError(f"Value must be non-negative, got {result}.")
    return result


def parse_header(value: str) -> tuple[str, str]:
    """Parse NAME:VALUE format. Whitespace around the value is stripped.

    Raises:
        argparse.ArgumentTypeError: If format is invalid.
    """
    if ":" not in value:
        raise argparse.ArgumentTypeError(
            f"Invalid header '{value}'. Expected NAME:VALUE (e.g., 'Authorization: Bearer token')"
        )
    name, header_value = value.split(":", 1)
    name = name.strip()
    if not name:
        raise argparse.ArgumentTypeError(f"Invalid header '{value}'. Header name cannot be empty.")
    return (name, header_value.strip())


def parse_param(value: str) -> tuple[str, str]:
    """Parse NAME=VALUE format. The value may be empty.

    Raises:
        argparse.ArgumentTypeError: If format is invalid.
    """
    if "=" not in value:
        raise argparse.ArgumentTypeError(
            f"Invalid query parameter '{value}'. Expected NAME=VALUE (e.g., 'page=2')"
        )
    name, param_value = value.split("=", 1)
    if not name:
        raise argparse.ArgumentTypeError(
            f"Invalid query parameter '{value}'. Parameter name cannot be empty."
        )
    return (name, param_value)


def json_value(value: str) -> Any:
    """Parse a JSON document given on the command line.

    Raises:
        argparse.ArgumentTypeError: If value is not valid JSON.
    """
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise argparse.ArgumentTypeError(f"Invalid JSON body: {e}")


@dataclass
class RequestArgs:
    """Parsed arguments for request mode."""

    url: str
    method: str
    body: Any
    headers: dict[str, list[str]]
    params: dict[str, list[str]]
    log_request_body: bool
    log_response_body: bool
    max_log_chars: int | None
    timeout: float | None
    config: Path | None
    verbose: bool


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with the request subcommand."""
    parser = argparse.ArgumentParser(
        prog="httpoison",
        description="Send a JSON HTTP request and print the response.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True, help="Command")

    request_parser = subparsers.add_parser(
        "request",
        help="Send one request",
    )
    request_parser.add_argument(
        "--url",
        required=True,
        help="Absolute http(s) URL",
    )
    request_parser.add_argument(
        "--method",
        default="GET",
        help="HTTP method (default: GET)",
    )
    request_parser.add_argument(
        "--body",
        type=json_value,
        default=None,
        help="Request body as a JSON document",
    )
    request_parser.add_argument(
        "--header",
        type=parse_header,
        action="append",
        default=None,
        metavar="NAME:VALUE",
        help="Request header, repeatable. Replaces the default header set.",
    )
    request_parser.add_argument(
        "--param",
        type=parse_param,
        action="append",
        default=None,
        metavar="NAME=VALUE",
        help="Query parameter, repeatable",
    )
    request_parser.add_argument(
        "--log-request-body",
        action="store_true",
        help="Include the request body in the debug log",
    )
    request_parser.add_argument(
        "--log-response-body",
        action="store_true",
        help="Include the response body in the debug log",
    )
    request_parser.add_argument(
        "--max-log-chars",
        type=non_negative_int,
        default=None,
        help="Maximum body characters per log record (overrides config)",
    )
    request_parser.add_argument(
        "--timeout",
        type=positive_float,
        default=None,
        help="Request timeout in seconds (overrides config)",
    )
    request_parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to YAML config file",
    )
    request_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log at DEBUG level",
    )

    return parser


def _group_pairs(pairs: list[tuple[str, str]]) -> dict[str, list[str]]:
    """Group repeated NAME/VALUE pairs into NAME -> [VALUE, ...]."""
    result: dict[str, list[str]] = {}
    for name, value in pairs:
        result.setdefault(name, []).append(value)
    return result


def parse_request_args(namespace: argparse.Namespace) -> RequestArgs:
    """Convert parsed namespace to RequestArgs dataclass."""
    return RequestArgs(
        url=namespace.url,
        method=namespace.method,
        body=namespace.body,
        headers=_group_pairs(namespace.header or []),
        params=_group_pairs(namespace.param or []),
        log_request_body=namespace.log_request_body,
        log_response_body=namespace.log_response_body,
        max_log_chars=namespace.max_log_chars,
        timeout=namespace.timeout,
        config=namespace.config,
        verbose=namespace.verbose,
    )


def parse_args(args: list[str] | None = None) -> RequestArgs:
    """Parse command-line arguments and return typed args dataclass.

    Args:
        args: Command-line arguments to parse. If None, uses sys.argv[1:].

    Raises:
        SystemExit: If arguments are invalid (argparse behavior).
    """
    parser = build_parser()
    namespace = parser.parse_args(args)

    if namespace.command == "request":
        return parse_request_args(namespace)
    # Should not happen with required=True on subparsers
    parser.error(f"Unknown command: {namespace.command}")


def format_response(response: ResponseDescription) -> str:
    """Render status line, headers and body for terminal output."""
    lines = [f"HTTP {response.status_code}"]
    for name, values in response.headers.items():
        for value in values:
            lines.append(f"{name}: {value}")
    lines.append("")
    lines.append(response.body.decode("utf-8", errors="replace"))
    return "\n".join(lines)


def run_request(args: RequestArgs, client: httpx.Client | None = None) -> int:
    """Run request mode.

    Args:
        args: Parsed request arguments.
        client: Optional HTTP client, passed through to the executor.

    Returns:
        0 when a response was received (whatever its status), 1 on error.
    """
    try:
        config = load_config_or_default(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    configure_logging(logging.DEBUG if args.verbose else config.log_level)
    logger = get_logger("cli")

    updates: dict[str, Any] = {}
    if args.max_log_chars is not None:
        updates["max_log_chars"] = args.max_log_chars
    if args.timeout is not None:
        updates["timeout"] = args.timeout
    config = config.model_copy(update=updates)

    executor = RequestExecutor.from_config(
        config, logger=get_logger("executor"), client=client
    )
    request = RequestDescription(
        method=args.method,
        url=args.url,
        body=args.body,
        headers=args.headers,
        query_params=args.params,
        log_request_body=args.log_request_body,
        log_response_body=args.log_response_body,
    )

    try:
        response = executor.execute(request)
    except ExecutorError as e:
        logger.debug("Request failed: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(format_response(response))
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    try:
        parsed = parse_args(argv)
        return run_request(parsed)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
