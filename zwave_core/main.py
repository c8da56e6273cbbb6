"""Process entry point for the zwave2mqtt bridge."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from .addon_config import ConfigError, load_settings
from .bridge_controller import start_bridge_controller
from .logging_setup import _flush_all_log_handlers, logger, setup_logging


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="zwave2mqtt",
        description="Bridge configured Z-Wave values to MQTT topics.",
    )
    parser.add_argument("--config", type=Path, help="YAML configuration file")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING, ERROR")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    setup_logging(args.log_level)
    logger.info({"event": "main_started", "pid": os.getpid()})
    try:
        settings = load_settings(yaml_paths=[args.config] if args.config else None)
    except ConfigError as exc:
        logger.error({"event": "config_invalid", "error": str(exc)})
        _flush_all_log_handlers()
        return 1
    setup_logging(args.log_level or settings.log_level, settings.log_path)

    try:
        start_bridge_controller(settings)
    except Exception:  # noqa: BLE001 - report transport failures and exit non-zero
        logger.exception({"event": "main_fatal"})
        _flush_all_log_handlers()
        return 1
    logger.info({"event": "main_exited"})
    _flush_all_log_handlers()
    return 0


if __name__ == "__main__":
    sys.exit(main())
