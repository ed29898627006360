from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from typing import List

from database import get_db
from models.auth import AppRole
from models.quota import OrderItem
from utils.audit import log_audit
from utils.merchants import get_merchant_for_user
from utils.quota import (
    calculate_order_credit_cost,
    read_quota_tiers,
    use_merchant_quota_credits,
)
from utils.security import get_current_user, require_roles

router = APIRouter(prefix="/quota", tags=["Quota"])


class CreditCostRequest(BaseModel):
    items: List[OrderItem] = Field(..., min_length=1)


class ConsumeRequest(BaseModel):
    credits: int = Field(..., ge=0)


# ======================================================
# TIERS
# ======================================================

@router.get("/tiers")
async def quota_tiers(
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    read = await read_quota_tiers(db)
    return {
        "tiers": [t.model_dump() for t in read.tiers],
        "used_defaults": read.used_defaults,
    }


# ======================================================
# ORDER CREDIT COST
# ======================================================

@router.post("/credit-cost")
async def credit_cost(
    data: CreditCostRequest,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    credits = await calculate_order_credit_cost(db, data.items)
    return {"credits": credits}


# ======================================================
# CONSUME CREDITS (MERCHANT)
# ======================================================

@router.post("/consume")
async def consume_credits(
    data: ConsumeRequest,
    user=Depends(require_roles(AppRole.MERCHANT)),
    db=Depends(get_db),
):
    merchant = await get_merchant_for_user(db, user)

    ok = await use_merchant_quota_credits(db, merchant["_id"], data.credits)
    if not ok:
        raise HTTPException(402, "Insufficient quota balance")

    await log_audit(
        db,
        actor_id=user["_id"],
        actor_role="merchant",
        action="QUOTA_CONSUMED",
        metadata={"merchant_id": str(merchant["_id"]), "credits": data.credits},
    )

    return {"consumed": data.credits}
