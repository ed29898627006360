from fastapi import HTTPException
from bson import ObjectId
from bson.errors import InvalidId

# -------------------------------
# ObjectId Guard
# -------------------------------

def parse_object_id(value: str, name: str = "id") -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail=f"Invalid {name}")


# -------------------------------
# Order Ownership Guard
# -------------------------------

def assert_order_party(order: dict, user: dict, field: str):
    if order.get(field) != user["_id"]:
        raise HTTPException(
            status_code=403,
            detail="Order does not belong to this account",
        )
