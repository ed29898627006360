import asyncio
import logging
from datetime import datetime, timedelta

from config.env import COD_CONFIRMATION_CHECK_SECONDS
from database import get_db
from utils.cod_security import CODSettingsCache, cod_settings_cache, get_confirmation_deadline
from utils.order_timeline import record_order_event

logger = logging.getLogger(__name__)


async def _cancel_unconfirmed(db, order: dict, deadline: datetime, now: datetime) -> bool:
    res = await db.orders.update_one(
        {"_id": order["_id"], "status": "pending_confirmation"},
        {
            "$set": {
                "status": "cancelled",
                "cancel_reason": "COD_CONFIRMATION_TIMEOUT",
                "updated_at": now,
            }
        }
    )

    # Only log timeline if DB update actually happened
    if res.modified_count != 1:
        return False

    await record_order_event(
        db=db,
        order_id=order["_id"],
        event="COD_CONFIRMATION_TIMEOUT",
        actor_role="system",
        metadata={"deadline": deadline.isoformat()},
    )
    return True


async def expire_unconfirmed_cod_orders(
    db,
    now: datetime | None = None,
    cache: CODSettingsCache = cod_settings_cache,
) -> int:
    """
    Cancel COD orders whose buyer never confirmed before the deadline.

    Orders without a stored confirmation_deadline expire at
    created_at + confirmation_timeout_minutes, the same deadline the
    confirmation endpoint reports. Returns the number of orders cancelled.
    Timeouts do not touch trust.
    """
    now = now or datetime.utcnow()
    settings = await cache.get(db)
    timeout = settings.confirmation_timeout_minutes
    expired = 0

    pending = {"payment_method": "COD", "status": "pending_confirmation"}
    cursors = (
        db.orders.find({**pending, "confirmation_deadline": {"$lt": now}}),
        # null or missing deadline
        db.orders.find({
            **pending,
            "confirmation_deadline": None,
            "created_at": {"$lt": now - timedelta(minutes=timeout)},
        }),
    )

    for cursor in cursors:
        async for order in cursor:
            deadline = order.get("confirmation_deadline") or get_confirmation_deadline(
                order["created_at"], timeout
            )
            try:
                if await _cancel_unconfirmed(db, order, deadline, now):
                    expired += 1
            except Exception:
                # Never crash the worker for one bad order
                logger.exception("COD_CONFIRMATION_EXPIRY_ERROR order=%s", order.get("_id"))

    return expired


async def cod_confirmation_worker():
    db = get_db()

    while True:
        try:
            count = await expire_unconfirmed_cod_orders(db)
            if count:
                logger.info("COD_CONFIRMATION_EXPIRED count=%s", count)
        except Exception:
            logger.exception("COD_CONFIRMATION_WORKER_ERROR")

        await asyncio.sleep(COD_CONFIRMATION_CHECK_SECONDS)
