"""Fake/mock implementations of core ports for testing.

These in-memory implementations allow core domain logic to be tested
without external dependencies:

- FakeUnitOfWork: In-memory stores with snapshot rollback
- FakeAvailabilityCache: Recorded cache calls with failure toggles
- FakeSweepPort: Counted sweep invocations
- FakeCacheRecoveryPort: Counted recovery invocations
- FakeClock: Controllable time source
"""

from .cache import FakeAvailabilityCache
from .clock import FakeClock
from .store import FakeUnitOfWork
from .sweep import FakeCacheRecoveryPort, FakeSweepPort

__all__ = [
    "FakeAvailabilityCache",
    "FakeCacheRecoveryPort",
    "FakeClock",
    "FakeSweepPort",
    "FakeUnitOfWork",
]
