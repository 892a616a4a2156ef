"""Command-line interface for xhttp."""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Any, Iterable, Optional

from rich.console import Console

from . import __version__
from .body import only_ok, to_string
from .client import Client
from .config import TRANSPORT_KINDS, ClientSettings, load_environment
from .errors import ResponseError, XhttpError
from .headers import parse_headers
from .logging_utils import configure_logging
from .params import Params, params_to_json
from .response import Reason, Response


def _query_pair(value: str) -> tuple[str, str]:
    key, sep, item = value.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError("Query parameters must look like key=value")
    return key, item


def _credentials(value: str) -> tuple[str, str]:
    username, sep, password = value.partition(":")
    if not sep:
        raise argparse.ArgumentTypeError("Credentials must look like user:password")
    return username, password


def _timeout(value: str) -> int:
    timeout = int(value)
    if timeout < 0:
        raise argparse.ArgumentTypeError("Timeout must not be negative")
    return timeout


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="xhttp",
        description="Send one HTTP request and print the normalized response.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("url", help="Absolute URL, or a path joined onto XHTTP_BASE_URL")
    parser.add_argument("-X", "--method", default="GET", help="HTTP method, sent with the given casing")
    parser.add_argument(
        "-q",
        "--query",
        action="append",
        type=_query_pair,
        default=[],
        metavar="KEY=VALUE",
        help="Query parameter; repeat a key to send a list",
    )
    parser.add_argument(
        "-H",
        "--header",
        action="append",
        default=[],
        metavar="'NAME: VALUE'",
        help="Request header; repeat a name to send several values",
    )
    body = parser.add_mutually_exclusive_group()
    body.add_argument("--data", help="Raw request body")
    body.add_argument("--json", dest="json_body", help="JSON request body, sent as application/json")
    parser.add_argument("--timeout", type=_timeout, help="Timeout in milliseconds")
    parser.add_argument("--user", type=_credentials, metavar="USER:PASSWORD", help="Basic auth credentials")
    parser.add_argument("--transport", choices=TRANSPORT_KINDS, help="Transport used to send the request")
    parser.add_argument("--only-ok", action="store_true", help="Exit with status 1 unless the response is 2xx")
    parser.add_argument("-i", "--include", action="store_true", help="Print response headers")
    parser.add_argument("--log-json", action="store_true", help="Emit structured JSON logs to the log file")
    parser.add_argument("--log-file", type=Path, help="Write logs to the specified path")

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("--verbose", action="store_true", help="Enable debug logging")
    verbosity.add_argument("--quiet", action="store_true", help="Reduce logging output")
    return parser


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(None if argv is None else list(argv))


def configure_cli_logging(args: argparse.Namespace) -> None:
    level = logging.INFO
    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.WARNING
    configure_logging(level=level, json_logs=args.log_json, logfile=args.log_file)


def build_params(args: argparse.Namespace) -> dict[str, Any] | Params:
    query: dict[str, Any] = {}
    for key, value in args.query:
        previous = query.get(key)
        if previous is None:
            query[key] = value
        elif isinstance(previous, list):
            previous.append(value)
        else:
            query[key] = [previous, value]

    raw: dict[str, Any] = {
        "method": args.method,
        "url": args.url,
        "query": query or None,
        "headers": parse_headers("\n".join(args.header)),
        "timeout": args.timeout,
    }
    if args.user:
        raw["username"], raw["password"] = args.user
    if args.json_body is not None:
        try:
            raw["body"] = json.loads(args.json_body)
        except ValueError as exc:
            raise XhttpError(f"--json is not valid JSON: {exc}") from exc
        return params_to_json(raw)
    if args.data is not None:
        raw["body"] = args.data
    return raw


def render_response(console: Console, response: Response, *, include_headers: bool) -> None:
    if response.reason is Reason.LOAD:
        console.print(f"{response.status} {response.status_text}", markup=False, highlight=False)
    else:
        console.print(f"[{response.reason.value}] {response.status_text}", markup=False, highlight=False)
    if include_headers:
        for key, value in response.headers.items():
            for item in value if isinstance(value, list) else [value]:
                console.print(f"{key}: {item}", markup=False, highlight=False)
        console.print()
    if response.body:
        console.print(response.body, markup=False, highlight=False, soft_wrap=True)


def main(argv: Optional[Iterable[str]] = None) -> int:
    load_environment()
    args = parse_args(argv)

    configure_cli_logging(args)
    logger = logging.getLogger("xhttp.cli")
    console = Console(highlight=False)

    try:
        settings = ClientSettings.from_env()
        if args.transport:
            settings = dataclasses.replace(settings, transport=args.transport)
        raw = build_params(args)
        with Client(settings) as client:
            response = to_string(client.request(raw))
    except XhttpError as exc:
        logger.error("Request failed: %s", exc)
        return 1

    render_response(console, response, include_headers=args.include)

    if args.only_ok:
        try:
            only_ok(response)
        except ResponseError as exc:
            logger.error("%s", exc)
            return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
