from datetime import datetime, timedelta
from fastapi import HTTPException

async def rate_limit(
    db,
    key: str,
    max_requests: int,
    window_seconds: int,
):
    """
    Fixed window counter stored in Mongo.
    The window resets once its first hit is older than window_seconds.
    """
    now = datetime.utcnow()
    window_start = now - timedelta(seconds=window_seconds)

    record = await db.rate_limits.find_one({"key": key})

    if record and record.get("window_started_at", now) < window_start:
        await db.rate_limits.update_one(
            {"key": key},
            {"$set": {"count": 0, "window_started_at": now}},
        )
        record = None

    if record and record.get("count", 0) >= max_requests:
        raise HTTPException(
            status_code=429,
            detail="Too many requests. Please try again later.",
        )

    await db.rate_limits.update_one(
        {"key": key},
        {
            "$inc": {"count": 1},
            "$setOnInsert": {"window_started_at": now},
        },
        upsert=True,
    )
