from fastapi import HTTPException


async def get_merchant_for_user(db, user: dict) -> dict:
    merchant = await db.merchants.find_one({"user_id": user["_id"]})
    if not merchant:
        raise HTTPException(404, "Merchant profile not found")
    return merchant
