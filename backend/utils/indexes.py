from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure

from utils.idempotency import IDEMPOTENCY_TTL_SECONDS


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
        [("role", ASCENDING)],
        name="users_role_idx",
    )

    # Products
    await _create_index_safe(
        db.products,
        [("status", ASCENDING), ("is_available", ASCENDING), ("created_at", DESCENDING)],
        name="products_status_available_created_idx",
    )
    await _create_index_safe(
        db.products,
        [("seller_id", ASCENDING), ("created_at", DESCENDING)],
        name="products_seller_created_idx",
    )
    await _create_index_safe(
        db.products,
        [("reservation.reserved_at", ASCENDING)],
        name="products_reservation_reserved_at_idx",
        sparse=True,
    )

    # Orders
    await _create_index_safe(
        db.orders,
        [("buyer_id", ASCENDING), ("created_at", DESCENDING)],
        name="orders_buyer_created_at_idx",
    )
    await _create_index_safe(
        db.orders,
        [("seller_id", ASCENDING), ("created_at", DESCENDING)],
        name="orders_seller_created_at_idx",
    )
    await _create_index_safe(
        db.orders,
        [("product_id", ASCENDING), ("status", ASCENDING)],
        name="orders_product_status_idx",
    )
    await _create_index_safe(
        db.orders,
        [("status", ASCENDING), ("payment_status", ASCENDING), ("created_at", DESCENDING)],
        name="orders_status_payment_created_idx",
    )

    # Order timeline
    await _create_index_safe(
        db.order_timeline,
        [("order_id", ASCENDING), ("created_at", ASCENDING)],
        name="order_timeline_order_created_idx",
    )

    # Reports
    await _create_index_safe(
        db.reports,
        [("status", ASCENDING), ("created_at", DESCENDING)],
        name="reports_status_created_idx",
    )
    await _create_index_safe(
        db.reports,
        [("reporter_id", ASCENDING), ("created_at", DESCENDING)],
        name="reports_reporter_created_idx",
    )
    await _create_index_safe(
        db.reports,
        [("target_type", ASCENDING), ("target_id", ASCENDING)],
        name="reports_target_idx",
    )

    # Idempotency
    await _create_index_safe(
        db.idempotency_keys,
        [("key", ASCENDING), ("scope", ASCENDING)],
        name="idempotency_key_scope_unique",
        unique=True,
    )
    await _create_index_safe(
        db.idempotency_keys,
        [("created_at", ASCENDING)],
        name="idempotency_ttl_idx",
        expireAfterSeconds=IDEMPOTENCY_TTL_SECONDS,
    )

    # Audit
    await _create_index_safe(
        db.audit_logs,
        [("target_type", ASCENDING), ("target_id", ASCENDING), ("created_at", DESCENDING)],
        name="audit_logs_target_created_idx",
    )
