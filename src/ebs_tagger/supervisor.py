"""Supervising loop that drives the reconciler on a fixed interval.

The first pass starts immediately. After every pass the loop waits for the
configured interval; the wait is not shortened by the time the pass took.
Failed passes are counted, and the process gives up once the count exceeds
the fatal threshold. A successful pass resets the count.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from .config import MAX_FAILED_PASSES, Config
from .reconciler import PassResult, TagReconciler
from .volume_directory import ReconcileError

logger = logging.getLogger(__name__)


class FatalExhaustionError(Exception):
    """Raised when failed passes exceed the fatal threshold."""

    def __init__(self, failures: int, last_error: BaseException) -> None:
        super().__init__(f"Reconciliation failed {failures} times: {last_error}")
        self.failures = failures
        self.last_error = last_error


@dataclass
class FailureCounter:
    """Failed-pass bookkeeping owned by the supervisor.

    The count only goes back to zero on a successful pass.
    """

    threshold: int = MAX_FAILED_PASSES
    count: int = 0

    def record_failure(self) -> int:
        self.count += 1
        return self.count

    def record_success(self) -> int:
        """Reset the count, returning the value it had before."""
        previous = self.count
        self.count = 0
        return previous

    @property
    def exhausted(self) -> bool:
        return self.count > self.threshold


class Supervisor:
    """Runs reconciliation passes forever, one at a time."""

    def __init__(
        self,
        reconciler: TagReconciler,
        config: Config,
        counter: FailureCounter | None = None,
    ) -> None:
        self._reconciler = reconciler
        self._config = config
        self._counter = counter or FailureCounter(threshold=config.max_failures)
        self._shutdown_event = asyncio.Event()

    @property
    def counter(self) -> FailureCounter:
        return self._counter

    async def run(self) -> None:
        """Run reconciliation passes until shutdown.

        Raises:
            FatalExhaustionError: When the failure count exceeds the threshold.
        """
        logger.info(
            "Starting supervisor",
            extra={
                "cluster_name": self._config.cluster_name,
                "region": self._config.region,
                "interval_seconds": self._config.interval_seconds,
                "tagging_enabled": self._config.tagging_enabled,
                "overwrite_if_different": self._config.overwrite_if_different,
            },
        )

        while not self._shutdown_event.is_set():
            start = time.monotonic()
            await self.run_pass()
            elapsed_ms = int((time.monotonic() - start) * 1000)

            logger.info(
                "Pass finished, sleeping until next pass",
                extra={
                    "elapsed_ms": elapsed_ms,
                    "sleep_seconds": self._config.interval_seconds,
                },
            )

            # Wait for next pass or shutdown
            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=self._config.interval_seconds,
                )
            except TimeoutError:
                pass

        logger.info(
            "Supervisor shutdown complete", extra={"cluster_name": self._config.cluster_name}
        )

    async def run_pass(self) -> PassResult | None:
        """Run one pass and update the failure count.

        Returns:
            The pass result, or None if the pass failed.

        Raises:
            FatalExhaustionError: When this failure pushes the count over the threshold.
        """
        try:
            result = await self._reconciler.reconcile_once()
        except ReconcileError as e:
            self._record_failure(e)
            return None
        except Exception as e:
            logger.exception("Unexpected error during reconciliation")
            self._record_failure(e)
            return None

        previous = self._counter.record_success()
        if previous > 0:
            logger.info(
                "Pass succeeded after failed attempts, resetting failure count",
                extra={"previous_failures": previous},
            )
        return result

    def _record_failure(self, error: Exception) -> None:
        failures = self._counter.record_failure()
        logger.error(
            "Reconciliation pass failed",
            extra={
                "error": str(error),
                "error_type": type(error).__name__,
                "failures": failures,
                "threshold": self._counter.threshold,
            },
        )
        if self._counter.exhausted:
            raise FatalExhaustionError(failures, error) from error

    def shutdown(self) -> None:
        """Signal the supervisor to stop after the current pass."""
        logger.info("Shutdown requested", extra={"cluster_name": self._config.cluster_name})
        self._shutdown_event.set()
