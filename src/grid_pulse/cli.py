"""Command-line interface for grid-pulse"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from grid_pulse import __version__
from grid_pulse.log_handler import StructuredFormatter

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def setup_logging(level: str, log_file: Optional[str]) -> None:
    """Configure logging handlers"""
    log_level = getattr(logging, level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    # Add file handler if log file is specified and writable
    if log_file:
        try:
            handlers.append(logging.FileHandler(log_file))
        except PermissionError:
            print(
                f"Warning: Cannot write to {log_file}, logging to stderr only",
                file=sys.stderr,
            )

    formatter = StructuredFormatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="grid-pulse",
        description="Log inverter, smart plug, power sensor and weather readings to CSV",
    )
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=str,
        help="Path to config file (default: $GRID_PULSE_CONFIG or auto-detect)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Sample every source once, write one row and exit",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


async def async_main(argv: Optional[list[str]] = None) -> int:
    """Async main entry point"""
    args = build_parser().parse_args(argv)

    # Deferred so --version and --help work without the I2C/HTTP stack
    from grid_pulse.aggregator import build_header
    from grid_pulse.config import load_config
    from grid_pulse.datasources import SourceRegistry, build_loops
    from grid_pulse.errors import ConfigError
    from grid_pulse.scheduler import DualCadenceScheduler
    from grid_pulse.sink import CsvLogSink

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    log_level = "DEBUG" if args.verbose else config.logging.level
    setup_logging(log_level, config.logging.file)

    logger = logging.getLogger(__name__)
    logger.info("Starting grid-pulse %s", __version__)

    registry = SourceRegistry()
    sink: Optional[CsvLogSink] = None
    try:
        try:
            loops = build_loops(config, registry)
        except (ConfigError, ValueError) as e:
            logger.error(f"Invalid source configuration: {e}")
            return 1

        sink = CsvLogSink(config.general.filename, build_header(loops.fast, loops.slow))
        scheduler = DualCadenceScheduler(
            loops.fast,
            loops.slow,
            tick_interval=config.general.timeout,
            slow_period=config.general.slow_loop_delay,
            sink=sink,
        )

        def signal_handler(sig: signal.Signals) -> None:
            logger.info(f"Received signal {sig.name}, stopping after the current tick...")
            scheduler.stop()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, signal_handler, sig)

        sink.ensure_header()
        await scheduler.run(max_ticks=1 if args.once else None)
        return 0
    except OSError as e:
        logger.error(f"Fatal error: {e}")
        return 1
    finally:
        logger.info("Shutting down...")
        await registry.shutdown_all()
        if sink is not None:
            logger.info("Cleanup complete (%d rows written)", sink.row_count)


def main() -> int:
    """Main entry point - wraps async_main()"""
    return asyncio.run(async_main())


if __name__ == "__main__":
    sys.exit(main())
