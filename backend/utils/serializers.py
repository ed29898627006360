from bson import ObjectId
from datetime import datetime


def serialize_object_id(value):
    return str(value) if isinstance(value, ObjectId) else value


def _isoformat(value):
    return value.isoformat() if isinstance(value, datetime) else None


def serialize_user(user: dict) -> dict:
    return {
        "id": str(user["_id"]),
        "email": user.get("email"),
        "full_name": user.get("full_name"),
        "roles": list(user.get("roles", [])),
    }


def serialize_refund_request(doc: dict) -> dict:
    return {
        "id": str(doc["_id"]),
        "order_id": serialize_object_id(doc["order_id"]),
        "buyer_id": serialize_object_id(doc["buyer_id"]),
        "merchant_id": serialize_object_id(doc["merchant_id"]),

        "amount": doc["amount"],
        "refund_type": doc["refund_type"],
        "reason": doc["reason"],
        "evidence_urls": doc.get("evidence_urls", []),

        "status": doc["status"],

        "created_at": _isoformat(doc.get("created_at")),
    }
