from fastapi import APIRouter, Depends, HTTPException
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from database import get_db
from models.auth import AppRole
from models.cod import CODSettings
from models.quota import QuotaTierInput
from utils.audit import log_audit
from utils.cod_security import get_cod_settings_cache, save_cod_settings
from utils.guards import parse_object_id
from utils.quota import replace_quota_tiers
from utils.security import require_roles


router = APIRouter(prefix="/admin", tags=["Admin"])


# =====================================================
# SCHEMAS
# =====================================================

class QuotaTiersPayload(BaseModel):
    tiers: List[QuotaTierInput]


class CODResetPayload(BaseModel):
    trust_score: Optional[int] = Field(None, ge=0, le=100)
    reason: Optional[str] = None


# =====================================================
# COD SETTINGS
# =====================================================

@router.put("/cod-settings")
async def update_cod_settings(
    data: CODSettings,
    admin=Depends(require_roles(AppRole.ADMIN)),
    db=Depends(get_db),
    cache=Depends(get_cod_settings_cache),
):
    await save_cod_settings(db, cache, data)

    await log_audit(
        db,
        actor_id=admin["_id"],
        actor_role="admin",
        action="COD_SETTINGS_UPDATED",
        metadata=data.model_dump(),
    )

    return {"message": "COD settings updated", "settings": data.model_dump()}


# =====================================================
# QUOTA TIERS
# =====================================================

@router.put("/quota-tiers")
async def update_quota_tiers(
    data: QuotaTiersPayload,
    admin=Depends(require_roles(AppRole.ADMIN)),
    db=Depends(get_db),
):
    tiers = await replace_quota_tiers(db, data.tiers)

    await log_audit(
        db,
        actor_id=admin["_id"],
        actor_role="admin",
        action="QUOTA_TIERS_REPLACED",
        metadata={"count": len(data.tiers)},
    )

    return {"tiers": [t.model_dump() for t in tiers]}


# =====================================================
# BUYER COD RESET
# =====================================================

@router.post("/buyers/{user_id}/cod-reset")
async def reset_buyer_cod(
    user_id: str,
    data: CODResetPayload,
    admin=Depends(require_roles(AppRole.ADMIN)),
    db=Depends(get_db),
):
    oid = parse_object_id(user_id, "user_id")

    buyer = await db.users.find_one({"_id": oid}, {"roles": 1, "trust_score": 1})
    if not buyer:
        raise HTTPException(404, "Buyer not found")

    now = datetime.utcnow()
    updates = {
        "cod_enabled": True,
        "cod_reenabled_at": now,
        "updated_at": now,
    }
    if data.trust_score is not None:
        updates["trust_score"] = data.trust_score

    await db.users.update_one({"_id": oid}, {"$set": updates})

    await log_audit(
        db,
        actor_id=admin["_id"],
        actor_role="admin",
        action="BUYER_COD_REENABLED",
        metadata={
            "buyer_id": user_id,
            "previous_trust_score": buyer.get("trust_score"),
            "trust_score": data.trust_score,
            "reason": data.reason,
        },
    )

    return {
        "buyer_id": user_id,
        "cod_enabled": True,
        "trust_score": updates.get("trust_score", buyer.get("trust_score")),
    }
