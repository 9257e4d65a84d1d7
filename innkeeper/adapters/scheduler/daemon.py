"""Sweep scheduler adapter.

Implements a long-running asyncio daemon that drives the caller-less parts of
the booking lifecycle at fixed intervals, independently of request traffic:

- expiry sweep: cancels pending bookings past their payment deadline
- completion sweep: completes confirmed bookings past check-out
- cache recovery: recounts available units, once at startup and periodically

Each job runs in its own task so a slow sweep never delays the others.

Deadline bound: a pending booking is only cancelled when the expiry sweep
next runs, so it may keep its unit for up to one expiry interval past its
payment deadline.
"""

import asyncio
import logging
import signal
from collections.abc import Awaitable, Callable
from typing import Any, cast

from innkeeper.core.ports import CacheRecoveryPort, SweepPort

logger = logging.getLogger(__name__)

# Consecutive failures of one job before the log escalates to CRITICAL
FAILURE_ALERT_THRESHOLD = 5


class SweepScheduler:
    """Asyncio-based daemon scheduler for periodic sweeps."""

    def __init__(
        self,
        sweep_port: SweepPort | None = None,
        recovery_port: CacheRecoveryPort | None = None,
        expiry_interval_seconds: float = 60,
        completion_interval_seconds: float = 60,
        cache_recovery_interval_seconds: float = 300,
    ):
        """Initialize sweep scheduler.

        Args:
            sweep_port: SweepPort implementation to drive (can be set later).
            recovery_port: CacheRecoveryPort implementation (optional).
            expiry_interval_seconds: Interval between expiry sweeps.
            completion_interval_seconds: Interval between completion sweeps.
            cache_recovery_interval_seconds: Interval between cache recoveries.
        """
        self.sweep_port = sweep_port
        self.recovery_port = recovery_port
        self.expiry_interval_seconds = expiry_interval_seconds
        self.completion_interval_seconds = completion_interval_seconds
        self.cache_recovery_interval_seconds = cache_recovery_interval_seconds
        self.running = False
        self._tasks: list[asyncio.Task[None]] = []
        self._failure_counts: dict[str, int] = {}

    async def start(self) -> None:
        """Start the scheduler and block until it is stopped.

        Raises:
            ValueError: If sweep_port is not set.
        """
        if self.sweep_port is None:
            raise ValueError("sweep_port must be set before starting the scheduler")

        if self.running:
            logger.warning("Sweep scheduler already running")
            return

        self.running = True
        logger.info(
            f"Starting sweep scheduler: expiry every {self.expiry_interval_seconds}s, "
            f"completion every {self.completion_interval_seconds}s, "
            f"cache recovery every {self.cache_recovery_interval_seconds}s"
        )

        # Set up signal handlers for graceful shutdown
        self._setup_signal_handlers()

        sweep_port = cast(SweepPort, self.sweep_port)
        self._tasks = [
            asyncio.create_task(
                self._run_job(
                    "expiry",
                    self.expiry_interval_seconds,
                    sweep_port.process_expired_bookings,
                )
            ),
            asyncio.create_task(
                self._run_job(
                    "completion",
                    self.completion_interval_seconds,
                    sweep_port.process_completed_bookings,
                )
            ),
        ]
        if self.recovery_port is not None:
            # First run happens immediately, which is the startup recovery
            self._tasks.append(
                asyncio.create_task(
                    self._run_job(
                        "cache-recovery",
                        self.cache_recovery_interval_seconds,
                        self.recovery_port.recover_cache,
                    )
                )
            )

        try:
            await asyncio.gather(*self._tasks)
        except asyncio.CancelledError:
            logger.info("Sweep scheduler cancelled")
        except Exception as e:
            logger.error(f"Sweep scheduler error: {e}", exc_info=True)
        finally:
            self.running = False
            logger.info("Sweep scheduler stopped")

    async def stop(self) -> None:
        """Stop all scheduled jobs."""
        if not self.running:
            return

        logger.info("Stopping sweep scheduler...")
        self.running = False

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

    def _setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown."""
        try:
            loop = asyncio.get_running_loop()

            def _handle_signal(sig: int) -> None:
                logger.info(f"Received signal {sig}, initiating graceful shutdown...")
                asyncio.create_task(self.stop())

            loop.add_signal_handler(signal.SIGTERM, _handle_signal, signal.SIGTERM)
            loop.add_signal_handler(signal.SIGINT, _handle_signal, signal.SIGINT)
        except NotImplementedError:
            # Signal handlers not available on Windows
            logger.debug("Signal handlers not available on this platform")
        except Exception as e:
            logger.warning(f"Failed to set up signal handlers: {e}")

    async def _run_job(
        self,
        name: str,
        interval_seconds: float,
        action: Callable[[], Awaitable[Any]],
    ) -> None:
        """Run one job forever at a fixed interval."""
        cycle_number = 0
        loop = asyncio.get_running_loop()

        while self.running:
            cycle_number += 1

            try:
                logger.debug(f"Starting {name} cycle #{cycle_number}")
                start_time = loop.time()

                result = await action()

                elapsed = loop.time() - start_time
                self._failure_counts[name] = 0
                logger.info(
                    f"{name} cycle #{cycle_number} completed in {elapsed:.2f}s: {result}"
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                failures = self._failure_counts.get(name, 0) + 1
                self._failure_counts[name] = failures
                logger.error(
                    f"Error in {name} cycle #{cycle_number}: {e} "
                    f"(consecutive failures: {failures})",
                    exc_info=True,
                )
                if failures >= FAILURE_ALERT_THRESHOLD:
                    logger.critical(
                        f"{name} has failed {failures} consecutive times. "
                        f"Manual intervention may be required."
                    )

            # Wait before next cycle
            if self.running:
                await asyncio.sleep(interval_seconds)

    async def run_once(self) -> dict[str, Any]:
        """Run every job a single time (non-daemon mode).

        Returns:
            Results keyed by job name.

        Raises:
            ValueError: If sweep_port is not set.
        """
        if self.sweep_port is None:
            raise ValueError("sweep_port must be set to run sweeps")

        logger.info("Running single sweep pass")
        results: dict[str, Any] = {
            "expiry": await self.sweep_port.process_expired_bookings(),
            "completion": await self.sweep_port.process_completed_bookings(),
        }
        if self.recovery_port is not None:
            results["cache_recovery"] = await self.recovery_port.recover_cache()
        return results
