"""Main entry point for the EBS volume tagger.

The process runs in the foreground until it receives SIGTERM/SIGINT or the
reconciliation keeps failing past the fatal threshold.

Exit codes:
    0: Shutdown requested by a signal
    1: Configuration error, fatal exhaustion, or unexpected error
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import signal
import sys
from datetime import UTC, datetime

from .config import Config, ConfigurationError
from .reconciler import TagReconciler
from .supervisor import FatalExhaustionError, Supervisor
from .volume_directory import Ec2VolumeDirectory

# Attributes every LogRecord carries; anything else came in through `extra`
_RESERVED_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.NOTSET, "", 0, "", (), None))
) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(level: str | None = None) -> None:
    """Configure structured logging with JSON output on stdout."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel((level or os.environ.get("LOG_LEVEL", "INFO")).upper())

    # Reduce noise from the AWS SDK
    for noisy in ("boto3", "botocore", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def build_supervisor(config: Config) -> Supervisor:
    """Wire the EC2 directory, reconciler and supervisor for ``config``."""
    directory = Ec2VolumeDirectory.for_region(config.region)
    reconciler = TagReconciler(config, directory)
    return Supervisor(reconciler, config)


async def main(log_level: str | None = None) -> int:
    """Run the tagger.

    Args:
        log_level: Root log level. Falls back to LOG_LEVEL, then INFO.

    Returns:
        Exit code (0 for a requested shutdown, non-zero for failure).
    """
    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    try:
        config = Config.from_env()
    except ConfigurationError as e:
        logger.error("Configuration error", extra={"error": str(e)})
        return 1

    logger.info(
        "Starting EBS volume tagger",
        extra={"cluster_name": config.cluster_name, "region": config.region},
    )
    config.log_summary()

    return await run_supervisor(config, logger)


async def run_supervisor(config: Config, logger: logging.Logger) -> int:
    """Run the supervisor loop with signal handling until it stops."""
    try:
        supervisor = build_supervisor(config)
    except Exception as e:
        logger.error(
            "Failed to initialize tagger",
            extra={"error": str(e), "error_type": type(e).__name__},
        )
        return 1

    # Set up signal handlers for graceful shutdown
    loop = asyncio.get_event_loop()

    def signal_handler(sig: signal.Signals) -> None:
        logger.info("Received signal", extra={"signal": sig.name})
        supervisor.shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))

    try:
        await supervisor.run()
    except FatalExhaustionError as e:
        logger.critical(
            "Giving up after repeated reconciliation failures",
            extra={"failures": e.failures, "last_error": str(e.last_error)},
        )
        print(f"fatal: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.exception("Unhandled exception", extra={"error": str(e)})
        return 1

    logger.info("Tagger stopped")
    return 0


def run() -> None:
    """Entry point for the tagger process."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
