"""Command-line entry point for the XL2 station."""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

from xl2_station.core.config import StationConfig, load_config
from xl2_station.core.devices.serial_ports import list_serial_ports
from xl2_station.core.errors import ConfigError
from xl2_station.core.logging_config import configure_logging
from xl2_station.core.logging_utils import get_module_logger
from xl2_station.core.platform_profile import get_platform_profile
from xl2_station.core.station import StationSystem

logger = get_module_logger("Main")

DEFAULT_CONFIG_PATH = Path("config.txt")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="xl2_station",
        description="XL2 station - acoustic measurement device orchestrator and health monitor",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Path to the key = value config file (default: config.txt)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        default=None,
        help="Logging level (default: from config, else info)",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write logs to this rotating file",
    )

    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Run the station (default)")
    run_parser.add_argument("--host", default=None, help="Observer server bind address")
    run_parser.add_argument("--port", type=int, default=None, help="Observer server port")
    run_parser.add_argument(
        "--auto-connect",
        action="store_true",
        default=None,
        help="Connect both devices on startup",
    )

    subparsers.add_parser("ports", help="List serial ports in probe order")
    subparsers.add_parser("profile", help="Print the detected platform profile")

    args = parser.parse_args(argv)
    if args.command is None:
        args.command = "run"
        args.host = None
        args.port = None
        args.auto_connect = None
    return args


def _apply_cli_overrides(config: StationConfig, args: argparse.Namespace) -> StationConfig:
    changes = {}
    if args.log_level:
        changes["log_level"] = args.log_level
    if args.log_file:
        changes["log_file"] = str(args.log_file)
    if getattr(args, "host", None):
        changes["host"] = args.host
    if getattr(args, "port", None):
        changes["port"] = args.port
    if getattr(args, "auto_connect", None):
        changes["auto_connect_on_start"] = True
    return config.with_overrides(**changes) if changes else config


async def _list_ports(config: StationConfig) -> int:
    for label, preferred in (
        ("measurement", config.measurement_ports),
        ("position", config.position_ports),
    ):
        print(f"{label} probe order:")
        for info in await list_serial_ports(preferred):
            details = ", ".join(part for part in (info.description, info.usb_id) if part)
            print(f"  {info.device}" + (f"  ({details})" if details else ""))
    return 0


async def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)

    try:
        config = _apply_cli_overrides(await load_config(args.config), args)
    except ConfigError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2

    configure_logging(config.log_level, log_file=config.log_file, force=True)

    if args.command == "ports":
        return await _list_ports(config)

    try:
        profile = get_platform_profile(config.profile_overrides())
    except ConfigError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2

    if args.command == "profile":
        print(json.dumps(profile.to_dict(), indent=2))
        return 0

    logger.info("=" * 60)
    logger.info("XL2 station starting")
    logger.info("=" * 60)
    station = StationSystem(config, profile=profile)
    exit_code = await station.run()
    logger.info("XL2 station stopped (exit code %d)", exit_code)
    return exit_code


def run(argv: Optional[list[str]] = None) -> int:
    try:
        return asyncio.run(main(argv))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130
    except Exception as exc:  # pragma: no cover - fatal guard
        print(f"Fatal error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(run())
