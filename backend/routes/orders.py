from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Form
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from config.constants import DEFAULT_FLASH_SALE_DISCOUNT, MAX_REFUND_EVIDENCE_IMAGES
from config.env import REFUND_REQUEST_MAX_REQUESTS, REFUND_REQUEST_WINDOW_SECONDS
from database import get_db
from models.auth import AppRole
from utils.access import has_any_role
from utils.audit import log_audit
from utils.cloudinary import delete_evidence_images, upload_evidence_image
from utils.cod_security import (
    create_flash_sale,
    get_cod_settings_cache,
    get_cod_whatsapp_link,
    get_confirmation_deadline,
    is_confirmation_expired,
    update_buyer_trust_score,
)
from utils.guards import parse_object_id, assert_order_party
from utils.merchants import get_merchant_for_user
from utils.order_timeline import record_order_event
from utils.rate_limit import rate_limit
from utils.security import require_roles
from utils.serializers import serialize_refund_request


router = APIRouter(
    prefix="/orders",
    tags=["Orders"]
)

PAYMENT_COD = "COD"
COD_REPORTABLE_STATUSES = ("confirmed", "shipped", "out_for_delivery")


class CODResultPayload(BaseModel):
    success: bool
    reason: Optional[str] = None
    create_flash_sale: bool = False
    discount_percent: int = Field(DEFAULT_FLASH_SALE_DISCOUNT, gt=0, le=100)


class FlashSalePayload(BaseModel):
    discount_percent: int = Field(DEFAULT_FLASH_SALE_DISCOUNT, gt=0, le=100)


async def _get_order(db, order_id: str) -> dict:
    order = await db.orders.find_one({"_id": parse_object_id(order_id, "order_id")})
    if not order:
        raise HTTPException(404, "Order not found")
    return order


def _require_cod(order: dict):
    if order.get("payment_method") != PAYMENT_COD:
        raise HTTPException(400, "Order is not a COD order")


# ======================================================
# COD CONFIRMATION (BUYER)
# ======================================================

@router.get("/{order_id}/cod-confirmation")
async def cod_confirmation(
    order_id: str,
    buyer=Depends(require_roles(AppRole.BUYER)),
    db=Depends(get_db),
    cache=Depends(get_cod_settings_cache),
):
    order = await _get_order(db, order_id)
    assert_order_party(order, buyer, "buyer_id")
    _require_cod(order)

    deadline = order.get("confirmation_deadline")
    if deadline is None:
        settings = await cache.get(db)
        deadline = get_confirmation_deadline(
            order["created_at"],
            settings.confirmation_timeout_minutes,
        )

    merchant = await db.merchants.find_one({"_id": order["merchant_id"]}, {"phone": 1})
    whatsapp_link = None
    if merchant and merchant.get("phone"):
        whatsapp_link = get_cod_whatsapp_link(
            merchant["phone"],
            str(order["_id"]),
            buyer.get("full_name") or "Pembeli",
            order["total_amount"],
        )

    return {
        "order_id": str(order["_id"]),
        "status": order.get("status"),
        "confirmation_deadline": deadline.isoformat(),
        "expired": is_confirmation_expired(deadline),
        "whatsapp_link": whatsapp_link,
    }


# ======================================================
# COD RESULT (COURIER / ADMIN)
# ======================================================

@router.post("/{order_id}/cod-result")
async def cod_result(
    order_id: str,
    data: CODResultPayload,
    user=Depends(require_roles(AppRole.COURIER, AppRole.ADMIN)),
    db=Depends(get_db),
    cache=Depends(get_cod_settings_cache),
):
    order = await _get_order(db, order_id)
    _require_cod(order)

    # Idempotency guard
    if order.get("cod_result"):
        return {"ignored": True}

    if order.get("status") not in COD_REPORTABLE_STATUSES:
        raise HTTPException(400, "Invalid COD order state")

    now = datetime.utcnow()
    new_status = "delivered" if data.success else "cod_failed"

    update_res = await db.orders.update_one(
        {"_id": order["_id"], "cod_result": None},
        {
            "$set": {
                "status": new_status,
                "cod_result": {
                    "success": data.success,
                    "reason": data.reason,
                    "reported_by": user["_id"],
                    "reported_at": now,
                },
                "updated_at": now,
            }
        },
    )

    # Concurrent report won the race
    if update_res.modified_count != 1:
        return {"ignored": True}

    trust_update = await update_buyer_trust_score(db, cache, order["buyer_id"], data.success)

    flash_sale = False
    if not data.success and data.create_flash_sale:
        flash_sale = await create_flash_sale(db, order["_id"], data.discount_percent)

    await record_order_event(
        db=db,
        order_id=order["_id"],
        event="COD_DELIVERED" if data.success else "COD_FAILED",
        actor_role="admin" if has_any_role(user.get("roles", []), [AppRole.ADMIN]) else "courier",
        actor_id=user["_id"],
        metadata={
            "reason": data.reason,
            "trust_update": trust_update,
            "flash_sale": flash_sale,
        },
    )

    return {
        "order_id": str(order["_id"]),
        "status": new_status,
        "trust_update": trust_update,
        "flash_sale": flash_sale,
    }


# ======================================================
# FLASH SALE (MERCHANT / ADMIN)
# ======================================================

@router.post("/{order_id}/flash-sale")
async def flash_sale(
    order_id: str,
    data: FlashSalePayload,
    user=Depends(require_roles(AppRole.MERCHANT, AppRole.ADMIN)),
    db=Depends(get_db),
):
    order = await _get_order(db, order_id)

    is_admin = has_any_role(user.get("roles", []), [AppRole.ADMIN])
    if not is_admin:
        merchant = await get_merchant_for_user(db, user)
        if order.get("merchant_id") != merchant["_id"]:
            raise HTTPException(403, "Order does not belong to this merchant")

    created = await create_flash_sale(db, order["_id"], data.discount_percent)
    if not created:
        raise HTTPException(500, "Flash sale could not be created")

    await record_order_event(
        db=db,
        order_id=order["_id"],
        event="FLASH_SALE_CREATED",
        actor_role="admin" if is_admin else "merchant",
        actor_id=user["_id"],
        metadata={"discount_percent": data.discount_percent},
    )

    return {
        "order_id": str(order["_id"]),
        "is_flash_sale": True,
        "flash_sale_discount": data.discount_percent,
    }


# ======================================================
# REFUND REQUEST (BUYER)
# ======================================================

@router.post("/{order_id}/refund-request")
async def refund_request(
    order_id: str,
    reason: str = Form(...),
    amount: int = Form(..., gt=0),
    evidence: Optional[List[UploadFile]] = File(None),
    buyer=Depends(require_roles(AppRole.BUYER)),
    db=Depends(get_db),
):
    await rate_limit(
        db=db,
        key=f"refund_request:{buyer['_id']}",
        max_requests=REFUND_REQUEST_MAX_REQUESTS,
        window_seconds=REFUND_REQUEST_WINDOW_SECONDS,
    )

    evidence = evidence or []

    order = await _get_order(db, order_id)
    assert_order_party(order, buyer, "buyer_id")

    reason = reason.strip()
    if not reason:
        raise HTTPException(400, "Refund reason is required")

    order_total = order["total_amount"]
    if amount > order_total:
        raise HTTPException(400, "Refund amount exceeds order total")

    if len(evidence) > MAX_REFUND_EVIDENCE_IMAGES:
        raise HTTPException(400, f"At most {MAX_REFUND_EVIDENCE_IMAGES} evidence images allowed")

    existing = await db.refund_requests.find_one({
        "order_id": order["_id"],
        "status": "PENDING",
    })
    if existing:
        raise HTTPException(400, "A refund request is already pending for this order")

    # validate every file before anything reaches storage
    for file in evidence:
        if not file.content_type or not file.content_type.startswith("image/"):
            raise HTTPException(400, "Only image files are allowed")

    uploaded = []
    for file in evidence:
        image = upload_evidence_image(file.file, str(order["_id"]))
        if not image or not image.get("url"):
            delete_evidence_images([u["public_id"] for u in uploaded if u.get("public_id")])
            raise HTTPException(500, "Evidence upload failed")
        uploaded.append(image)
    evidence_urls = [u["url"] for u in uploaded]

    doc = {
        "order_id": order["_id"],
        "buyer_id": buyer["_id"],
        "merchant_id": order["merchant_id"],
        "amount": amount,
        "reason": reason,
        "status": "PENDING",
        "evidence_urls": evidence_urls,
        "refund_type": "FULL" if amount == order_total else "PARTIAL",
        "created_at": datetime.utcnow(),
    }
    result = await db.refund_requests.insert_one(doc)
    doc["_id"] = result.inserted_id

    await log_audit(
        db,
        actor_id=buyer["_id"],
        actor_role="buyer",
        action="REFUND_REQUESTED",
        metadata={"order_id": str(order["_id"]), "amount": amount},
    )

    return serialize_refund_request(doc)
