import logging
from datetime import datetime
from typing import Iterable, List

from config.constants import DEFAULT_QUOTA_TIER_LADDER, FALLBACK_CREDIT_COST
from models.quota import OrderItem, QuotaTier, QuotaTierInput, TierRead

logger = logging.getLogger(__name__)


def get_default_tiers() -> List[QuotaTier]:
    return [
        QuotaTier(
            id=str(index),
            min_price=min_price,
            max_price=max_price,
            credit_cost=credit_cost,
            sort_order=index,
        )
        for index, (min_price, max_price, credit_cost) in enumerate(DEFAULT_QUOTA_TIER_LADDER, start=1)
    ]


def _tier_from_doc(doc: dict) -> QuotaTier:
    data = dict(doc)
    oid = data.pop("_id", None)
    if oid is not None:
        data["id"] = str(oid)
    return QuotaTier(**data)


# ==============================
# Tier lookup
# ==============================

async def read_quota_tiers(db) -> TierRead:
    try:
        cursor = db.quota_tiers.find({"is_active": True}).sort("sort_order", 1)
        docs = await cursor.to_list(None)
        tiers = [_tier_from_doc(d) for d in docs]
    except Exception:
        logger.exception("QUOTA_TIERS_READ_ERROR")
        return TierRead(tiers=get_default_tiers(), used_defaults=True)

    if not tiers:
        return TierRead(tiers=get_default_tiers(), used_defaults=True)

    return TierRead(tiers=tiers)


async def fetch_quota_tiers(db) -> List[QuotaTier]:
    return (await read_quota_tiers(db)).tiers


# ==============================
# Pricing (pure)
# ==============================

def calculate_credit_cost(price: float, tiers: Iterable[QuotaTier]) -> int:
    sorted_tiers = sorted(tiers, key=lambda t: t.min_price)

    for tier in sorted_tiers:
        if tier.contains(price):
            return tier.credit_cost

    # Price above every bounded tier: charge the top tier
    if sorted_tiers and sorted_tiers[-1].credit_cost:
        return sorted_tiers[-1].credit_cost

    return FALLBACK_CREDIT_COST


async def calculate_order_credit_cost(db, items: Iterable[OrderItem]) -> int:
    tiers = await fetch_quota_tiers(db)
    return sum(
        calculate_credit_cost(item.price, tiers) * item.quantity
        for item in items
    )


# ==============================
# Merchant balance
# ==============================

async def use_merchant_quota_credits(db, merchant_id, credits: int) -> bool:
    """
    Debit merchant quota in one conditional update.
    No deduplication: a retried call debits again.
    """
    if credits < 0:
        return False
    if credits == 0:
        return True

    try:
        result = await db.merchants.update_one(
            {
                "_id": merchant_id,
                "quota_balance": {"$gte": credits},
            },
            {
                "$inc": {
                    "quota_balance": -credits,
                    "quota_used": credits,
                },
                "$set": {"quota_updated_at": datetime.utcnow()},
            },
        )
    except Exception:
        logger.exception("QUOTA_DEBIT_ERROR merchant=%s credits=%s", merchant_id, credits)
        return False

    if result.modified_count != 1:
        logger.info("QUOTA_DEBIT_REJECTED merchant=%s credits=%s", merchant_id, credits)
        return False

    return True


# ==============================
# Admin: replace tier set
# ==============================

async def replace_quota_tiers(db, tiers: List[QuotaTierInput]) -> List[QuotaTier]:
    now = datetime.utcnow()

    await db.quota_tiers.delete_many({})

    docs = [
        {
            **tier.model_dump(),
            "is_active": True,
            "sort_order": index,
            "created_at": now,
        }
        for index, tier in enumerate(tiers)
    ]

    if docs:
        await db.quota_tiers.insert_many(docs)

    return await fetch_quota_tiers(db)
