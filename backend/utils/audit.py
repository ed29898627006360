from datetime import datetime
from enum import Enum

from utils.serializers import serialize_object_id


async def log_audit(
    db,
    *,
    actor_id,
    actor_role: str,
    action: str,
    metadata: dict | None = None
):
    """
    Append an admin-visible audit entry. ObjectIds in metadata are stored
    as strings so the log can be exported as plain JSON.
    """
    if isinstance(actor_role, Enum):
        actor_role = actor_role.value

    await db.audit_logs.insert_one({
        "actor_id": serialize_object_id(actor_id),
        "actor_role": actor_role,
        "action": action,
        "metadata": {k: serialize_object_id(v) for k, v in (metadata or {}).items()},
        "created_at": datetime.utcnow(),
    })
