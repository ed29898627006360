import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from pymongo.errors import PyMongoError
from typing import Optional

from config.env import COD_ELIGIBILITY_MAX_REQUESTS, COD_ELIGIBILITY_WINDOW_SECONDS
from database import get_db
from models.auth import AppRole
from utils.cod_security import (
    calculate_distance,
    check_cod_eligibility,
    get_buyer_cod_status,
    get_cod_settings_cache,
    quick_cod_check,
)
from utils.guards import parse_object_id
from utils.rate_limit import rate_limit
from utils.security import get_current_user, require_roles

router = APIRouter(prefix="/cod", tags=["COD"])
logger = logging.getLogger(__name__)


# =====================================================
# SCHEMAS
# =====================================================

class QuickCheckRequest(BaseModel):
    total_amount: float = Field(..., ge=0)
    distance_km: Optional[float] = Field(None, ge=0)


class EligibilityRequest(BaseModel):
    merchant_id: str
    total_amount: float = Field(..., ge=0)
    distance_km: Optional[float] = Field(None, ge=0)

    # used when distance_km is not supplied
    buyer_lat: Optional[float] = Field(None, ge=-90, le=90)
    buyer_lng: Optional[float] = Field(None, ge=-180, le=180)


# =====================================================
# SETTINGS (READ ONLY)
# =====================================================

@router.get("/settings")
async def cod_settings(
    user=Depends(get_current_user),
    db=Depends(get_db),
    cache=Depends(get_cod_settings_cache),
):
    read = await cache.load(db)
    return {
        "settings": read.settings.model_dump(),
        "used_defaults": read.used_defaults,
    }


# =====================================================
# QUICK CHECK (AMOUNT / DISTANCE ONLY)
# =====================================================

@router.post("/quick-check")
async def quick_check(
    data: QuickCheckRequest,
    user=Depends(get_current_user),
    db=Depends(get_db),
    cache=Depends(get_cod_settings_cache),
):
    settings = await cache.get(db)
    result = quick_cod_check(data.total_amount, data.distance_km, settings)
    return result.model_dump()


# =====================================================
# AUTHORITATIVE ELIGIBILITY (BUYER)
# =====================================================

@router.post("/eligibility")
async def eligibility(
    data: EligibilityRequest,
    buyer=Depends(require_roles(AppRole.BUYER)),
    db=Depends(get_db),
    cache=Depends(get_cod_settings_cache),
):
    await rate_limit(
        db=db,
        key=f"cod_eligibility:{buyer['_id']}",
        max_requests=COD_ELIGIBILITY_MAX_REQUESTS,
        window_seconds=COD_ELIGIBILITY_WINDOW_SECONDS,
    )

    merchant_id = parse_object_id(data.merchant_id, "merchant_id")
    distance_km = data.distance_km

    if distance_km is None and data.buyer_lat is not None and data.buyer_lng is not None:
        try:
            merchant = await db.merchants.find_one(
                {"_id": merchant_id},
                {"latitude": 1, "longitude": 1},
            )
        except PyMongoError:
            # eligibility below reports the storage failure
            logger.exception("COD_MERCHANT_LOCATION_READ_ERROR merchant=%s", merchant_id)
            merchant = None

        if merchant and merchant.get("latitude") is not None and merchant.get("longitude") is not None:
            distance_km = calculate_distance(
                data.buyer_lat,
                data.buyer_lng,
                merchant["latitude"],
                merchant["longitude"],
            )

    result = await check_cod_eligibility(
        db,
        cache,
        buyer_id=buyer["_id"],
        merchant_id=merchant_id,
        total_amount=data.total_amount,
        distance_km=distance_km,
    )

    return {
        **result.model_dump(),
        "distance_km": round(distance_km, 2) if distance_km is not None else None,
    }


# =====================================================
# BUYER COD STATUS
# =====================================================

@router.get("/status")
async def cod_status(
    buyer=Depends(require_roles(AppRole.BUYER)),
    db=Depends(get_db),
):
    status = await get_buyer_cod_status(db, buyer["_id"])
    return status.model_dump()


# =====================================================
# DISTANCE
# =====================================================

@router.get("/distance")
async def distance(
    lat1: float = Query(..., ge=-90, le=90),
    lng1: float = Query(..., ge=-180, le=180),
    lat2: float = Query(..., ge=-90, le=90),
    lng2: float = Query(..., ge=-180, le=180),
    user=Depends(get_current_user),
):
    return {"distance_km": calculate_distance(lat1, lng1, lat2, lng2)}
