#!/usr/bin/env python3
"""
Erie Septic Tank Bridge - Main Entry Point

Loads the configuration and reset history, then runs the bridge.

Usage:
    erie-bridge                              # CONFIG_FILE / HISTORY_FILE env, else ./config.yaml, ./history.json
    erie-bridge --config options.json        # Use custom config file
    erie-bridge --dry-run                    # Print config and exit

The bridge will:
1. Poll Erie Connect for total water usage every `interval` seconds
2. Publish remaining septic tank space to MQTT
3. Announce itself to Home Assistant via MQTT discovery
4. Record a new baseline whenever a reset command arrives
"""

import argparse
import asyncio
import os
import sys

from erie_bridge import __version__
from erie_bridge.common.config import BridgeConfig, read_config_file
from erie_bridge.common.exceptions import ConfigError, PersistenceError
from erie_bridge.common.logging_setup import get_service_logger, set_log_level
from erie_bridge.supervisor import Supervisor

logger = get_service_logger("main")

DEFAULT_CONFIG_PATH = "config.yaml"
DEFAULT_HISTORY_PATH = "history.json"


def print_config_summary(config: BridgeConfig, history_path: str) -> None:
    """Print a summary of the configuration."""
    summary = config.summary()

    print("\n" + "=" * 60)
    print(f"  ERIE SEPTIC TANK BRIDGE {__version__}")
    print("=" * 60)

    print("\n  Tank:")
    print(f"    - Size: {summary['tank_size']} L")
    print(f"    - Last reset: {summary['last_reset']} L")
    print(f"    - Interval: {summary['interval_s']}s")
    print(f"    - History file: {history_path}")

    print("\n  Erie Connect:")
    print(f"    - Account: {summary['erie_email']}")
    print(f"    - API: {summary['erie_base_url']}")
    print(f"    - Request timeout: {summary['request_timeout_s']}s")

    print("\n  MQTT:")
    print(f"    - Server: {summary['mqtt_server']} (user {summary['mqtt_username']})")
    print(f"    - Sensor: {summary['sensor_name']}")
    print(f"    - Discovery topic: {summary['discovery_topic']}")
    print(f"    - State topic: {summary['state_topic']}")
    print(f"    - Reset topic: {summary['reset_topic']}")
    print(f"    - HA status topic: {summary['status_topic']}")

    if summary["health_port"]:
        print(f"\n  Health: http://127.0.0.1:{summary['health_port']}/health")

    print("=" * 60 + "\n")


async def main_async(config: BridgeConfig, history_path: str) -> None:
    """
    Async main function.

    Args:
        config: Validated bridge configuration
        history_path: Reset history file
    """
    supervisor = Supervisor(config, history_path)

    try:
        await supervisor.start()
    except asyncio.CancelledError:
        # start() has already stopped every component
        logger.info("Bridge cancelled")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Erie Connect septic tank to MQTT bridge"
    )
    parser.add_argument(
        "--config", "-c",
        type=str,
        default=os.environ.get("CONFIG_FILE", DEFAULT_CONFIG_PATH),
        help="Path to configuration file (default: $CONFIG_FILE or config.yaml)"
    )
    parser.add_argument(
        "--history",
        type=str,
        default=os.environ.get("HISTORY_FILE", DEFAULT_HISTORY_PATH),
        help="Path to reset history file (default: $HISTORY_FILE or history.json)"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print configuration and exit without starting the bridge"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (debug) logging"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    if args.verbose:
        set_log_level("DEBUG")

    try:
        config = read_config_file(args.config)
    except ConfigError as e:
        for error in e.errors or [e.message]:
            logger.error(f"Configuration error: {error}")
        return 1

    logger.info(f"config file loaded: {args.config}")

    if args.dry_run:
        print_config_summary(config, args.history)
        print("Dry run mode - exiting without starting the bridge")
        return 0

    try:
        asyncio.run(main_async(config, args.history))
    except KeyboardInterrupt:
        logger.info("Stopped by user")
    except (PersistenceError, ConfigError) as e:
        logger.critical(f"Bridge failed to start: {e}")
        return 1
    except OSError as e:
        # e.g. health port already in use
        logger.critical(f"Bridge failed to start: {e}", exc_info=True)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
