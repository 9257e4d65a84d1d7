"""Best-effort audit recording.

Event writes happen inside the caller's transaction, but a failed write must
never make an otherwise successful state transition look failed.
"""

import logging

from .models import EventType
from .ports import StoreSession

logger = logging.getLogger(__name__)


async def record_event(
    session: StoreSession,
    event_type: EventType,
    user_id: str,
    entity_id: str,
    description: str,
) -> bool:
    """Append an event, logging instead of raising on failure.

    Returns:
        True if the event was written.
    """
    try:
        await session.events.record(event_type, user_id, entity_id, description)
        return True
    except Exception as e:
        logger.error(
            f"Failed to record {event_type.value} event for {entity_id}: {e}",
            exc_info=True,
        )
        return False
