import asyncio
import logging
import secrets
from datetime import datetime
from uuid import uuid4

from bson import ObjectId

from config.constants import (
    PRODUCT_ACTIVE,
    PAYMENT_METHODS,
    PAYMENT_COD,
    PAYMENT_CREDIT_CARD,
    PAYMENT_BANK_TRANSFER,
    PAYMENT_PENDING,
    ORDER_PENDING_PAYMENT,
    ORDER_SHIPPED,
    ADDRESS_PLACEHOLDER,
)
from utils.errors import (
    MarketplaceError,
    ValidationError,
    InvalidOperation,
    NotFound,
    Forbidden,
    Conflict,
)
from utils.guards import parse_object_id, is_admin, ensure_admin, same_id
from utils.idempotency import (
    reserve_idempotency_key,
    complete_idempotency_key,
    fail_idempotency_key,
    clear_idempotency_key,
)
from utils.order_timeline import (
    ORDER_CREATED,
    TRACKING_ADDED,
    record_order_event,
    list_order_events,
)
from utils.pagination import normalize_page, page_envelope
from utils.pricing import price_breakdown
from utils.store import guarded, update_if

logger = logging.getLogger(__name__)

PLACE_ORDER_SCOPE = "place_order"


def _unavailable(product_id) -> Conflict:
    return Conflict(
        "Product is already sold or unavailable",
        {"reason": "product_unavailable", "product_id": str(product_id)},
    )


# ======================================================
# INPUT NORMALIZATION
# ======================================================

def normalize_payment_method(payment_method: str) -> str:
    method = (payment_method or "").strip().lower()
    if method not in PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method. Allowed: {', '.join(sorted(PAYMENT_METHODS))}",
            {"field": "payment_method"},
        )
    return method


def format_profile_address(user: dict) -> str | None:
    address = user.get("address")
    if isinstance(address, str):
        return address.strip() or None
    if not isinstance(address, dict):
        return None

    parts = [address.get(k) for k in ("street", "city", "state", "zip_code", "country")]
    text = ", ".join(p.strip() for p in parts if isinstance(p, str) and p.strip())
    return text or None


def resolve_shipping_address(buyer: dict, payment_method: str, shipping_address: str | None) -> str:
    provided = shipping_address.strip() if isinstance(shipping_address, str) else ""

    if payment_method == PAYMENT_COD:
        if not provided:
            raise ValidationError(
                "A shipping address is required for cash on delivery",
                {"field": "shipping_address"},
            )
        return provided

    return provided or format_profile_address(buyer) or ADDRESS_PLACEHOLDER


def sanitize_payment_details(payment_method: str, details: dict | None, shipping_address: str) -> dict:
    """Keep only what may be stored; card numbers are reduced to the last four digits."""
    details = details or {}

    if payment_method == PAYMENT_CREDIT_CARD:
        digits = "".join(ch for ch in str(details.get("card_number") or "") if ch.isdigit())
        return {
            "card_last4": digits[-4:] if len(digits) >= 4 else None,
            "card_holder": details.get("card_holder"),
        }

    if payment_method == PAYMENT_COD:
        return {"cod_address": shipping_address}

    if payment_method == PAYMENT_BANK_TRANSFER:
        return {"reference_id": "REF_" + secrets.token_hex(4).upper()}

    return {}


# ======================================================
# RESERVATION
# ======================================================

async def reserve_product(db, product_id, *, order_id, token, now) -> dict | None:
    """
    Compare-and-swap on is_available: only one caller can flip it from True
    to False. Returns the product as of the reservation, or None if it lost.
    """
    return await update_if(
        db.products,
        product_id,
        {"is_available": True, "status": PRODUCT_ACTIVE},
        {
            "is_available": False,
            "reservation": {
                "token": token,
                "order_id": order_id,
                "reserved_at": now,
                "confirmed": False,
            },
            "updated_at": now,
        },
        operation="reserve product",
    )


async def compensate_reservation(db, product_id, *, order_id, token) -> bool:
    """
    Undo a reservation whose order never got written.
    Failures are logged and left to the reservation sweep worker.
    """
    try:
        # the insert may have reached the store even though the call failed
        existing = await guarded(db.orders.find_one({"_id": order_id}, {"_id": 1}), "order lookup")
        if existing:
            return False

        restored = await update_if(
            db.products,
            product_id,
            {"reservation.token": token},
            {"is_available": True, "updated_at": datetime.utcnow()},
            unset={"reservation": ""},
            operation="release reservation",
        )
    except MarketplaceError:
        logger.exception("RESERVATION_COMPENSATION_ERROR product=%s order=%s", product_id, order_id)
        return False

    if restored is not None:
        logger.warning("RESERVATION_COMPENSATED product=%s order=%s", product_id, order_id)
    return restored is not None


async def release_order_reservation(db, order: dict) -> bool:
    """Make the product purchasable again after its order was cancelled."""
    released = await update_if(
        db.products,
        order["product_id"],
        {"reservation.order_id": order["_id"], "is_available": False},
        {"is_available": True, "updated_at": datetime.utcnow()},
        unset={"reservation": ""},
        operation="release cancelled reservation",
    )
    if released is not None:
        logger.info("RESERVATION_RELEASED product=%s order=%s", order["product_id"], order["_id"])
    return released is not None


# ======================================================
# PLACE ORDER
# ======================================================

async def place_order(
    db,
    actor: dict,
    product_id,
    payment_method: str,
    shipping_address: str | None = None,
    payment_details: dict | None = None,
    idempotency_key: str | None = None,
) -> dict:
    buyer_id = actor["_id"]
    method = normalize_payment_method(payment_method)
    product_oid = parse_object_id(product_id, "product_id")
    scope = f"{PLACE_ORDER_SCOPE}:{buyer_id}"

    if idempotency_key:
        previous = await reserve_idempotency_key(db=db, key=idempotency_key, scope=scope)
        if previous:
            return await _load_order(db, previous["order_id"])

    product = None
    order_id = ObjectId()
    token = uuid4().hex
    reserved = False
    insert_sent = False
    order_inserted = False

    try:
        product = await guarded(db.products.find_one({"_id": product_oid}), "get product")
        if not product:
            raise NotFound("Product", product_id)

        if same_id(product["seller_id"], buyer_id):
            raise InvalidOperation("You cannot purchase your own listing", {"reason": "self_purchase"})

        if not product.get("is_available") or product.get("status") != PRODUCT_ACTIVE:
            raise _unavailable(product_oid)

        address = resolve_shipping_address(actor, method, shipping_address)
        now = datetime.utcnow()

        snapshot = await reserve_product(db, product_oid, order_id=order_id, token=token, now=now)
        if snapshot is None:
            raise _unavailable(product_oid)
        reserved = True

        # price and title come from the reserved document, not a live join
        pricing = price_breakdown(snapshot["price"])
        seller = await guarded(
            db.users.find_one({"_id": snapshot["seller_id"]}, {"name": 1, "email": 1}),
            "get seller",
        ) or {}

        order = {
            "_id": order_id,
            "product_id": snapshot["_id"],
            "buyer_id": buyer_id,
            "seller_id": snapshot["seller_id"],
            **pricing,
            "product_snapshot": {
                "title": snapshot.get("title"),
                "price": pricing["price"],
                "images": list(snapshot.get("images") or []),
                "category": snapshot.get("category"),
                "condition": snapshot.get("condition"),
            },
            "seller_snapshot": {
                "id": str(snapshot["seller_id"]),
                "name": seller.get("name"),
                "email": seller.get("email"),
            },
            "payment_method": method,
            # every method starts pending; cod is paid on delivery, bank transfer on admin confirmation
            "payment_status": PAYMENT_PENDING,
            "payment_details": sanitize_payment_details(method, payment_details, address),
            "status": ORDER_PENDING_PAYMENT,
            "shipping_address": address,
            "tracking": None,
            "notes": None,
            "paid_at": None,
            "delivered_at": None,
            "cancelled_at": None,
            "created_at": now,
            "updated_at": now,
        }

        # from here on the write may land even if this call fails
        insert_sent = True
        await guarded(db.orders.insert_one(order), "insert order")
        order_inserted = True

        await _after_order_created(db, order, actor, idempotency_key=idempotency_key, scope=scope)
        return order

    except MarketplaceError:
        if reserved and not order_inserted:
            await _settle_reservation(db, product_oid, order_id=order_id, token=token, insert_sent=insert_sent)
        if idempotency_key and not order_inserted:
            await clear_idempotency_key(db=db, key=idempotency_key, scope=scope)
        raise
    except (Exception, asyncio.CancelledError) as e:
        if reserved and not order_inserted:
            await _settle_reservation(db, product_oid, order_id=order_id, token=token, insert_sent=insert_sent)
        if idempotency_key and not order_inserted:
            await fail_idempotency_key(db=db, key=idempotency_key, scope=scope, error=repr(e))
        raise


async def _settle_reservation(db, product_id, *, order_id, token, insert_sent: bool) -> None:
    if not insert_sent:
        await compensate_reservation(db, product_id, order_id=order_id, token=token)
        return

    # the insert may still land; releasing now could sell the product twice
    logger.warning(
        "RESERVATION_LEFT_FOR_SWEEP product=%s order=%s",
        product_id, order_id,
    )


async def _after_order_created(
    db,
    order: dict,
    actor: dict,
    *,
    idempotency_key: str | None = None,
    scope: str | None = None,
) -> None:
    # bookkeeping after the durable insert; the order stands even if these fail
    try:
        await update_if(
            db.products,
            order["product_id"],
            {"reservation.order_id": order["_id"]},
            {"reservation.confirmed": True},
            operation="confirm reservation",
        )
        await record_order_event(
            db,
            order_id=order["_id"],
            event=ORDER_CREATED,
            actor_role=actor.get("role"),
            actor_id=actor["_id"],
            metadata={"payment_method": order["payment_method"], "total": order["total"]},
        )
    except MarketplaceError:
        logger.exception("ORDER_BOOKKEEPING_ERROR order=%s", order["_id"])

    if idempotency_key:
        try:
            await complete_idempotency_key(
                db=db,
                key=idempotency_key,
                scope=scope,
                result={"order_id": str(order["_id"])},
            )
        except MarketplaceError:
            logger.exception("IDEMPOTENCY_COMPLETE_ERROR order=%s key=%s", order["_id"], idempotency_key)

    logger.info(
        "ORDER_PLACED order=%s product=%s buyer=%s total=%s",
        order["_id"], order["product_id"], order["buyer_id"], order["total"],
    )


# ======================================================
# READS
# ======================================================

async def _load_order(db, order_id) -> dict:
    order_oid = parse_object_id(order_id, "order_id")
    order = await guarded(db.orders.find_one({"_id": order_oid}), "get order")
    if not order:
        raise NotFound("Order", order_id)
    return order


async def get_order(db, actor: dict, order_id) -> dict:
    """
    Order with buyer and seller contacts and its timeline attached.
    Visible to the buyer, the seller and admins only.
    """
    order = await _load_order(db, order_id)

    caller_id = actor.get("_id")
    if not (same_id(order["buyer_id"], caller_id) or same_id(order["seller_id"], caller_id) or is_admin(actor)):
        raise Forbidden("Not authorized to view this order")

    contact_fields = {"name": 1, "email": 1, "phone": 1}
    order["buyer_contact"] = await guarded(
        db.users.find_one({"_id": order["buyer_id"]}, contact_fields), "get buyer"
    )
    order["seller_contact"] = await guarded(
        db.users.find_one({"_id": order["seller_id"]}, contact_fields), "get seller"
    )
    order["timeline"] = await list_order_events(db, order["_id"])
    return order


async def list_orders_for_user(db, user_id) -> list[dict]:
    cursor = db.orders.find({"buyer_id": parse_object_id(user_id, "user_id")}).sort("created_at", -1)
    return await guarded(cursor.to_list(length=None), "list buyer orders")


async def list_sales_for_seller(db, seller_id) -> list[dict]:
    cursor = db.orders.find({"seller_id": parse_object_id(seller_id, "seller_id")}).sort("created_at", -1)
    return await guarded(cursor.to_list(length=None), "list seller orders")


async def list_orders(
    db,
    actor: dict,
    status: str | None = None,
    payment_status: str | None = None,
    page: int = 1,
    limit: int | None = None,
) -> dict:
    ensure_admin(actor)
    page, limit, skip = normalize_page(page, limit)

    query = {}
    if status:
        query["status"] = status
    if payment_status:
        query["payment_status"] = payment_status

    cursor = db.orders.find(query).sort("created_at", -1).skip(skip).limit(limit)
    orders = await guarded(cursor.to_list(length=limit), "list orders")
    total = await guarded(db.orders.count_documents(query), "count orders")

    return page_envelope("orders", orders, total, page, limit)


# ======================================================
# TRACKING
# ======================================================

async def add_tracking(
    db,
    actor: dict,
    order_id,
    carrier: str,
    tracking_number: str,
    tracking_url: str | None = None,
) -> dict:
    order = await _load_order(db, order_id)

    if not (same_id(order["seller_id"], actor.get("_id")) or is_admin(actor)):
        raise Forbidden("Only the seller or an admin can add tracking")

    carrier = (carrier or "").strip()
    tracking_number = (tracking_number or "").strip()
    if not carrier or not tracking_number:
        raise ValidationError("carrier and tracking_number are required", {"fields": ["carrier", "tracking_number"]})

    if order["status"] != ORDER_SHIPPED:
        raise Conflict(
            "Tracking can only be added while the order is shipped",
            {"reason": "invalid_state", "status": order["status"]},
        )

    tracking = {
        "carrier": carrier,
        "tracking_number": tracking_number,
        "tracking_url": (tracking_url or "").strip() or None,
    }
    updated = await update_if(
        db.orders,
        order["_id"],
        {"status": ORDER_SHIPPED},
        {"tracking": tracking, "updated_at": datetime.utcnow()},
        operation="add tracking",
    )
    if updated is None:
        raise Conflict("Order changed while adding tracking", {"reason": "concurrent_update"})

    await record_order_event(
        db,
        order_id=order["_id"],
        event=TRACKING_ADDED,
        actor_role=actor.get("role"),
        actor_id=actor["_id"],
        metadata={"carrier": carrier, "tracking_number": tracking_number},
    )
    return updated
