import logging
from datetime import datetime

logger = logging.getLogger(__name__)


async def record_order_event(
    db,
    *,
    order_id,
    event: str,
    actor_role: str,
    actor_id=None,
    metadata: dict | None = None,
):
    """
    Append an order timeline event. Failures are logged, never raised:
    the timeline must not break the action it describes.
    """
    try:
        await db.order_timeline.insert_one({
            "order_id": order_id,
            "event": event,
            "actor_role": actor_role,
            "actor_id": actor_id,
            "metadata": metadata or {},
            "created_at": datetime.utcnow(),
        })
    except Exception:
        logger.exception("TIMELINE_ERROR order=%s event=%s", order_id, event)
