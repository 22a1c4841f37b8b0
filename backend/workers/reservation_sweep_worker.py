import asyncio
import logging
from datetime import datetime, timedelta

from config.env import RESERVATION_STALE_MINUTES, RESERVATION_SWEEP_SECONDS
from database import get_db
from utils.errors import MarketplaceError
from utils.store import guarded, update_if

logger = logging.getLogger(__name__)


async def release_orphaned_reservations(db, now: datetime | None = None) -> dict:
    """
    One sweep pass. A reservation older than the stale window either has its
    order (mark it confirmed) or lost it to a crash or timeout mid-purchase
    (make the product available again).
    """
    now = now or datetime.utcnow()
    cutoff = now - timedelta(minutes=RESERVATION_STALE_MINUTES)

    cursor = db.products.find({
        "is_available": False,
        "reservation.reserved_at": {"$lte": cutoff},
        "reservation.confirmed": {"$ne": True},
    })
    candidates = await guarded(cursor.to_list(length=None), "find stale reservations")

    released = 0
    confirmed = 0

    for product in candidates:
        reservation = product["reservation"]
        try:
            order = await guarded(
                db.orders.find_one({"_id": reservation["order_id"]}, {"_id": 1}),
                "order lookup",
            )

            if order:
                await update_if(
                    db.products,
                    product["_id"],
                    {"reservation.token": reservation["token"]},
                    {"reservation.confirmed": True},
                    operation="confirm reservation",
                )
                confirmed += 1
                continue

            restored = await update_if(
                db.products,
                product["_id"],
                {"reservation.token": reservation["token"]},
                {"is_available": True, "updated_at": now},
                unset={"reservation": ""},
                operation="release reservation",
            )
            if restored is not None:
                released += 1
                logger.warning(
                    "ORPHANED_RESERVATION_RELEASED product=%s order=%s",
                    product["_id"], reservation["order_id"],
                )

        except MarketplaceError:
            # Never crash worker for one bad product
            logger.exception("RESERVATION_SWEEP_ERROR product=%s", product.get("_id"))

    return {"released": released, "confirmed": confirmed}


async def reservation_sweep_worker():
    db = get_db()

    while True:
        try:
            await release_orphaned_reservations(db)
        except MarketplaceError:
            logger.exception("RESERVATION_SWEEP_ERROR")

        await asyncio.sleep(RESERVATION_SWEEP_SECONDS)
