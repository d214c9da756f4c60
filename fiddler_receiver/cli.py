"""
Fiddler Receiver - CLI.

============================================================
USAGE
============================================================
fiddler-receiver --config fiddler.yaml
fiddler-receiver --once --log-format text
FIDDLER_ENDPOINT=... FIDDLER_TOKEN=... fiddler-receiver

Without --config, settings are read from FIDDLER_* variables
(and a .env file).

============================================================
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from fiddler_receiver.config import ReceiverConfig
from fiddler_receiver.exceptions import ConfigValidationError
from fiddler_receiver.receiver import create_receiver
from fiddler_receiver.sink import LoggingConsumer
from fiddler_receiver.types import CycleStatus


EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CONFIG = 2


# ============================================================
# LOGGING SETUP
# ============================================================

def setup_logging(level: str = "INFO", log_format: str = "json") -> logging.Logger:
    """
    Set up root logging.

    Args:
        level: Log level
        log_format: Output format (json or text)

    Returns:
        The receiver's logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
            })
        )
    else:
        formatter = logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    return logging.getLogger("fiddler_receiver")


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="fiddler-receiver",
        description="Poll Fiddler monitoring metrics and emit them as gauge batches",
    )

    parser.add_argument(
        "--config", "-c",
        type=Path,
        metavar="PATH",
        help="YAML config file (default: FIDDLER_* environment variables)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle over the default window and exit",
    )
    parser.add_argument(
        "--verbose-output",
        action="store_true",
        help="Log every emitted data point",
    )

    logging_group = parser.add_argument_group("Logging Options")
    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
        help="Logging level (default: INFO)",
    )
    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        default="json",
        help="Logging format (default: json)",
    )

    return parser


def load_config(args: argparse.Namespace) -> ReceiverConfig:
    if args.config:
        return ReceiverConfig.from_yaml(args.config)
    return ReceiverConfig.from_env()


# ============================================================
# RUNTIME
# ============================================================

async def run(args: argparse.Namespace) -> int:
    logger = logging.getLogger("fiddler_receiver.cli")

    try:
        config = load_config(args)
        receiver = create_receiver(config, LoggingConsumer(verbose=args.verbose_output))
    except ConfigValidationError as e:
        for error in e.errors:
            logger.error(f"Config error: {error}")
        return EXIT_CONFIG

    logger.info(f"Loaded config: {config.to_dict()}")

    if args.once:
        scheduler = receiver.create_scheduler()
        try:
            result = await scheduler.run_cycle()
        finally:
            await receiver.client.close()
        return EXIT_ERROR if result.status == CycleStatus.FAILED else EXIT_OK

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops
            pass

    await receiver.start()
    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down receiver")
        await receiver.shutdown()

    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level, args.log_format)

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
