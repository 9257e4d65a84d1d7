"""Availability cache contract and recovery.

The cached count of available units is derived state. Every unit mutation
invalidates it, reads fall back to the Unit Store on a miss, and a periodic
recovery task overwrites it from the store to heal missed invalidations or a
restarted cache backend.
"""

import logging

from .ports import AvailabilityCachePort, CacheRecoveryPort, UnitOfWorkPort

logger = logging.getLogger(__name__)

AVAILABLE_COUNT_KEY = "available_units:count"


async def invalidate_available_count(cache: AvailabilityCachePort) -> None:
    """Drop the cached count after a unit mutation.

    Failures are logged only; the next recovery cycle overwrites the value.
    """
    try:
        await cache.invalidate(AVAILABLE_COUNT_KEY)
    except Exception as e:
        logger.warning(
            f"Failed to invalidate available units cache, "
            f"recovery cycle will overwrite it: {e}"
        )


async def read_available_count(
    uow: UnitOfWorkPort, cache: AvailabilityCachePort
) -> int:
    """Read-through lookup of the available-unit count."""
    try:
        cached = await cache.get(AVAILABLE_COUNT_KEY)
    except Exception as e:
        logger.warning(f"Available units cache read failed: {e}")
        cached = None

    if cached is not None:
        return cached

    logger.info("Cache miss - counting available units in store")
    async with uow.transaction(read_only=True) as session:
        count = await session.units.count_available()

    try:
        await cache.put(AVAILABLE_COUNT_KEY, count)
    except Exception as e:
        logger.warning(f"Failed to populate available units cache: {e}")
    return count


class CacheRecoveryService(CacheRecoveryPort):
    """Recomputes the authoritative count and overwrites the cache.

    Runs at startup and on a fixed interval. Tolerates an unreachable cache
    by skipping the cycle; never raises to the scheduler.
    """

    def __init__(self, uow: UnitOfWorkPort, cache: AvailabilityCachePort):
        self.uow = uow
        self.cache = cache

    async def recover_cache(self) -> int | None:
        logger.info("Starting cache recovery process")

        if not await self.cache.ping():
            logger.warning("Cache backend is not available, skipping cache recovery")
            return None

        try:
            async with self.uow.transaction(read_only=True) as session:
                actual = await session.units.count_available()
            logger.info(f"Actual available units count from store: {actual}")

            cached = await self.cache.get(AVAILABLE_COUNT_KEY)
            if cached is not None and cached != actual:
                logger.warning(
                    f"Available units cache drifted: cached={cached}, actual={actual}"
                )

            await self.cache.put(AVAILABLE_COUNT_KEY, actual)
            logger.info(f"Cache recovered successfully with count: {actual}")
            return actual
        except Exception as e:
            logger.error(f"Error during cache recovery: {e}", exc_info=True)
            return None
