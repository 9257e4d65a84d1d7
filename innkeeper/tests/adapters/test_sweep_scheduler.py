"""Tests for SweepScheduler job loops."""

import asyncio
import logging

import pytest

from innkeeper.adapters.scheduler.daemon import FAILURE_ALERT_THRESHOLD, SweepScheduler
from innkeeper.tests.fakes import FakeCacheRecoveryPort, FakeSweepPort


@pytest.fixture
def sweep_port() -> FakeSweepPort:
    """Create a fake sweep port."""
    return FakeSweepPort()


@pytest.fixture
def recovery_port() -> FakeCacheRecoveryPort:
    return FakeCacheRecoveryPort(count=3)


def fast_scheduler(
    sweep_port: FakeSweepPort | None, recovery_port: FakeCacheRecoveryPort | None = None
) -> SweepScheduler:
    return SweepScheduler(
        sweep_port=sweep_port,
        recovery_port=recovery_port,
        expiry_interval_seconds=0.01,
        completion_interval_seconds=0.01,
        cache_recovery_interval_seconds=0.01,
    )


async def run_briefly(scheduler: SweepScheduler, seconds: float = 0.1) -> None:
    task = asyncio.create_task(scheduler.start())
    await asyncio.sleep(seconds)
    await scheduler.stop()
    await asyncio.wait_for(task, timeout=1)


@pytest.mark.asyncio
async def test_start_requires_sweep_port() -> None:
    """The scheduler refuses to start without something to drive."""
    scheduler = fast_scheduler(None)
    with pytest.raises(ValueError, match="sweep_port"):
        await scheduler.start()


@pytest.mark.asyncio
async def test_run_once_requires_sweep_port() -> None:
    with pytest.raises(ValueError):
        await fast_scheduler(None).run_once()


@pytest.mark.asyncio
async def test_run_once_runs_every_job(
    sweep_port: FakeSweepPort, recovery_port: FakeCacheRecoveryPort
) -> None:
    results = await fast_scheduler(sweep_port, recovery_port).run_once()

    assert results["expiry"].sweep == "expiry"
    assert results["completion"].sweep == "completion"
    assert results["cache_recovery"] == 3
    assert sweep_port.expiry_call_count == 1
    assert sweep_port.completion_call_count == 1
    assert recovery_port.call_count == 1


@pytest.mark.asyncio
async def test_run_once_without_recovery_port(sweep_port: FakeSweepPort) -> None:
    results = await fast_scheduler(sweep_port).run_once()
    assert "cache_recovery" not in results


@pytest.mark.asyncio
async def test_jobs_repeat_on_their_intervals(
    sweep_port: FakeSweepPort, recovery_port: FakeCacheRecoveryPort
) -> None:
    scheduler = fast_scheduler(sweep_port, recovery_port)

    await run_briefly(scheduler)

    assert sweep_port.expiry_call_count >= 2
    assert sweep_port.completion_call_count >= 2
    assert recovery_port.call_count >= 2
    assert scheduler.running is False


@pytest.mark.asyncio
async def test_cache_recovery_runs_at_startup(
    sweep_port: FakeSweepPort, recovery_port: FakeCacheRecoveryPort
) -> None:
    scheduler = SweepScheduler(
        sweep_port=sweep_port,
        recovery_port=recovery_port,
        expiry_interval_seconds=60,
        completion_interval_seconds=60,
        cache_recovery_interval_seconds=60,
    )

    await run_briefly(scheduler, seconds=0.05)

    assert recovery_port.call_count == 1
    assert sweep_port.expiry_call_count == 1


@pytest.mark.asyncio
async def test_failures_do_not_stop_the_loop(
    sweep_port: FakeSweepPort, caplog: pytest.LogCaptureFixture
) -> None:
    sweep_port.should_fail = True
    scheduler = fast_scheduler(sweep_port)

    with caplog.at_level(logging.ERROR):
        await run_briefly(scheduler, seconds=0.15)

    assert sweep_port.expiry_call_count >= FAILURE_ALERT_THRESHOLD
    assert scheduler._failure_counts["expiry"] >= FAILURE_ALERT_THRESHOLD
    assert any(r.levelno == logging.CRITICAL for r in caplog.records)


@pytest.mark.asyncio
async def test_success_resets_failure_count(sweep_port: FakeSweepPort) -> None:
    sweep_port.should_fail = True
    scheduler = fast_scheduler(sweep_port)
    task = asyncio.create_task(scheduler.start())
    await asyncio.sleep(0.05)

    sweep_port.should_fail = False
    await asyncio.sleep(0.05)
    await scheduler.stop()
    await asyncio.wait_for(task, timeout=1)

    assert scheduler._failure_counts["expiry"] == 0


@pytest.mark.asyncio
async def test_stop_when_not_running_is_a_no_op(sweep_port: FakeSweepPort) -> None:
    scheduler = fast_scheduler(sweep_port)
    await scheduler.stop()
    assert scheduler.running is False
