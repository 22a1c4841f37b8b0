from datetime import datetime

from utils.guards import parse_object_id
from utils.store import guarded

ORDER_CREATED = "ORDER_CREATED"
ORDER_STATUS_SET = "ORDER_STATUS_SET"
PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
TRACKING_ADDED = "TRACKING_ADDED"

ORDER_EVENTS = {ORDER_CREATED, ORDER_STATUS_SET, PAYMENT_CONFIRMED, TRACKING_ADDED}


async def record_order_event(
    db,
    *,
    order_id,
    event: str,
    actor_role: str,
    actor_id=None,
    metadata: dict | None = None,
) -> dict:
    """
    Append one entry to an order's history. Entries are never updated or
    removed, so the timeline reads as the order's audit trail.
    """
    if event not in ORDER_EVENTS:
        raise ValueError(f"Unknown order event: {event}")

    entry = {
        "order_id": parse_object_id(order_id, "order_id"),
        "event": event,
        "actor_role": actor_role,
        "actor_id": parse_object_id(actor_id, "actor_id") if actor_id else None,
        "metadata": metadata or {},
        "created_at": datetime.utcnow(),
    }
    await guarded(db.order_timeline.insert_one(entry), "record order event")
    return entry


async def list_order_events(db, order_id) -> list[dict]:
    query = {"order_id": parse_object_id(order_id, "order_id")}
    return await guarded(
        db.order_timeline.find(query).sort("created_at", 1).to_list(length=None),
        "list order events",
    )
