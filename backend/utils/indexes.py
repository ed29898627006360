from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure


def _normalize_key_pairs(keys):
    return [(k, v) for k, v in keys]


async def _create_index_safe(collection, keys, **kwargs):
    """
    Create index safely.
    If Mongo reports IndexOptionsConflict/IndexKeySpecsConflict for same key pattern,
    drop the conflicting index and recreate with desired options.
    """
    desired_key = _normalize_key_pairs(keys)
    desired_name = kwargs.get("name")
    try:
        await collection.create_index(keys, **kwargs)
        return
    except OperationFailure as e:
        if getattr(e, "code", None) not in {85, 86}:
            raise

        conflicting_names = []
        async for idx in collection.list_indexes():
            idx_key = _normalize_key_pairs(list(idx.get("key", {}).items()))
            if idx_key == desired_key:
                idx_name = idx.get("name")
                if idx_name and idx_name != desired_name:
                    conflicting_names.append(idx_name)

        for idx_name in conflicting_names:
            await collection.drop_index(idx_name)

        await collection.create_index(keys, **kwargs)


async def ensure_indexes(db):
    # Settings
    await _create_index_safe(
        db.app_settings,
        [("key", ASCENDING)],
        name="app_settings_key_unique_idx",
        unique=True,
    )

    # Users
    await _create_index_safe(
        db.users,
        [("email", ASCENDING)],
        name="users_email_unique_idx",
        unique=True,
        sparse=True,
    )
    await _create_index_safe(
        db.users,
        [("roles", ASCENDING)],
        name="users_roles_idx",
    )

    # Merchants
    await _create_index_safe(
        db.merchants,
        [("user_id", ASCENDING)],
        name="merchants_user_unique_idx",
        unique=True,
    )

    # Quota tiers
    await _create_index_safe(
        db.quota_tiers,
        [("is_active", ASCENDING), ("sort_order", ASCENDING)],
        name="quota_tiers_active_sort_idx",
    )

    # Orders
    await _create_index_safe(
        db.orders,
        [("buyer_id", ASCENDING), ("created_at", DESCENDING)],
        name="orders_buyer_created_at_idx",
    )
    await _create_index_safe(
        db.orders,
        [("payment_method", ASCENDING), ("status", ASCENDING), ("confirmation_deadline", ASCENDING)],
        name="orders_cod_confirmation_idx",
    )

    # Order timeline
    await _create_index_safe(
        db.order_timeline,
        [("order_id", ASCENDING), ("created_at", ASCENDING)],
        name="order_timeline_order_created_idx",
    )

    # Refund requests
    await _create_index_safe(
        db.refund_requests,
        [("order_id", ASCENDING), ("status", ASCENDING)],
        name="refund_requests_order_status_idx",
    )

    # Rate limits
    await _create_index_safe(
        db.rate_limits,
        [("key", ASCENDING)],
        name="rate_limits_key_unique_idx",
        unique=True,
    )
