"""Command-line interface for rtls-ctl."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import aiohttp

from . import constants
from .config import RtlsConfig, load_config
from .errors import RtlsCtlError
from .logging import configure_logging, level_for_verbosity
from .mg3 import Mg3Client, config_differences
from .ranges import resolve_range
from .scanner import Scanner

LOGGER = logging.getLogger(__name__)


def json_object(value: str) -> Dict[str, Any]:
    """Argparse type accepting a JSON object inline or from a file path."""

    text = value
    candidate = Path(value).expanduser()
    if not value.lstrip().startswith("{") and candidate.is_file():
        text = candidate.read_text(encoding="utf-8")

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise argparse.ArgumentTypeError(f"invalid JSON ({exc.msg}): {value}") from exc

    if not isinstance(payload, dict):
        raise argparse.ArgumentTypeError(f"expected a JSON object: {value}")
    return payload


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not an integer: {value}") from exc
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1: {value}")
    return number


def positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not a number: {value}") from exc
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=constants.APP_NAME,
        description="Discover and provision G1/MG3 BLE gateways",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (-v info, -vv debug, -vvv network internals)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    scan_parser = subparsers.add_parser("scan", help="Scan an address range for gateways")
    scan_parser.add_argument(
        "range",
        nargs="?",
        help=(
            "Ip range to scan (e.g. 192.168.1.1..192.168.1.20). "
            "Default will be chosen based on local ip."
        ),
    )
    scan_parser.add_argument(
        "--concurrency",
        type=positive_int,
        default=None,
        help=f"Probes in flight (default: {constants.DEFAULT_SCAN_CONCURRENCY})",
    )
    scan_parser.add_argument(
        "--timeout",
        type=positive_float,
        default=None,
        help=f"Per-address timeout in seconds (default: {constants.DEFAULT_SCAN_TIMEOUT_SECONDS})",
    )

    mg3_parser = subparsers.add_parser("mg3", help="Configure an MG3 gateway")
    mg3_subparsers = mg3_parser.add_subparsers(dest="mg3_command", required=True)

    set_parser = mg3_subparsers.add_parser("set-config", help="Apply configuration overrides")
    set_parser.add_argument("host", help="Gateway address")
    for section in ("mqtt", "common", "other"):
        set_parser.add_argument(
            f"--{section}",
            type=json_object,
            default=None,
            help=f"JSON object (inline or file) for the '{section}' section",
        )

    reboot_parser = mg3_subparsers.add_parser("reboot", help="Reboot the gateway")
    reboot_parser.add_argument("host", help="Gateway address")

    get_parser = mg3_subparsers.add_parser("get-config", help="Print the gateway configuration")
    get_parser.add_argument("host", help="Gateway address")

    verify_parser = mg3_subparsers.add_parser(
        "verify", help="Check that the gateway configuration contains EXPECTED"
    )
    verify_parser.add_argument("host", help="Gateway address")
    verify_parser.add_argument(
        "expected", type=json_object, help="Expected JSON object (inline or file)"
    )

    subparsers.add_parser("show-config", help="Print the resolved configuration and exit")

    return parser


async def run_scan(args: argparse.Namespace, config: RtlsConfig) -> int:
    start, end = resolve_range(args.range)
    concurrency = args.concurrency or config.scan.concurrency
    timeout = args.timeout or config.scan.timeout_seconds

    async with Scanner(
        concurrency=concurrency, timeout=timeout, port=config.scan.port
    ) as scanner:
        detections = await scanner.scan(start, end)

    print(json.dumps([item.as_dict() for item in detections], indent=2))
    return 0


async def run_mg3(args: argparse.Namespace, config: RtlsConfig) -> int:
    async with Mg3Client(args.host, timeout=config.mg3.timeout_seconds) as client:
        if args.mg3_command == "set-config":
            if args.mqtt is None and args.common is None and args.other is None:
                LOGGER.error("set-config needs at least one of --mqtt, --common, --other")
                return 1
            await client.set_config(mqtt=args.mqtt, common=args.common, other=args.other)
            return 0

        if args.mg3_command == "reboot":
            await client.reboot()
            return 0

        if args.mg3_command == "get-config":
            response = await client.get_config()
            print(json.dumps(response.as_dict(), indent=2))
            return 0

        if args.mg3_command == "verify":
            response = await client.get_config()
            differences = config_differences(args.expected, response.as_dict())
            if differences:
                for path in differences:
                    print(f"mismatch: {path}")
                return 1
            print("configuration matches")
            return 0

    LOGGER.error("Unknown mg3 command: %s", args.mg3_command)
    return 1


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)
    configure_logging(
        level_for_verbosity(args.verbose, config.logging.level),
        log_path=config.logging.path,
        log_network=args.verbose >= 3,
    )

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                print(f"{key} = {value}")
            print()
        return 0

    try:
        if args.command == "scan":
            return asyncio.run(run_scan(args, config))
        if args.command == "mg3":
            return asyncio.run(run_mg3(args, config))
    except RtlsCtlError as exc:
        LOGGER.error("%s", exc)
        return 1
    except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as exc:
        LOGGER.error("Network error: %s", exc)
        return 1

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
