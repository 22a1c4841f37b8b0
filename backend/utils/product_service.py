import logging
from datetime import datetime

from config.constants import (
    ROLE_SELLER,
    PRODUCT_ACTIVE,
    PRODUCT_REMOVED,
    PRODUCT_CATEGORIES,
    PRODUCT_CONDITIONS,
    LIVE_ORDER_STATUSES,
)
from utils.errors import ValidationError, Forbidden, NotFound, Conflict
from utils.guards import parse_object_id, is_admin, same_id
from utils.pricing import to_money
from utils.store import guarded, update_if

logger = logging.getLogger(__name__)

PRODUCT_EDITABLE_FIELDS = (
    "title",
    "description",
    "price",
    "category",
    "condition",
    "tags",
    "images",
    "location",
)
PRODUCT_REQUIRED_FIELDS = ("title", "description", "price", "category")


# ==============================
# Field validation
# ==============================

def _clean_text(field: str, value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", {"field": field})
    return value.strip()


def _clean_str_list(field: str, value) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ValidationError(f"{field} must be a list", {"field": field})

    cleaned = []
    for item in value:
        if not isinstance(item, str):
            raise ValidationError(f"{field} must contain strings", {"field": field})
        item = item.strip()
        if item and item not in cleaned:
            cleaned.append(item)
    return cleaned


def validate_product_fields(data: dict) -> dict:
    unknown = set(data) - set(PRODUCT_EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(
            f"Fields cannot be edited: {', '.join(sorted(unknown))}",
            {"fields": sorted(unknown)},
        )

    fields = {}
    for key, value in data.items():
        if key in ("title", "description"):
            fields[key] = _clean_text(key, value)
        elif key == "price":
            price = to_money(value)
            if price <= 0:
                raise ValidationError("price must be positive", {"field": "price"})
            fields[key] = float(price)
        elif key == "category":
            if value not in PRODUCT_CATEGORIES:
                raise ValidationError("Invalid category", {"field": "category"})
            fields[key] = value
        elif key == "condition":
            if value not in PRODUCT_CONDITIONS:
                raise ValidationError("Invalid condition", {"field": "condition"})
            fields[key] = value
        elif key == "tags":
            # tags behave as a set
            fields[key] = _clean_str_list(key, value)
        elif key == "images":
            fields[key] = _clean_str_list(key, value)
        elif key == "location":
            fields[key] = value.strip() if isinstance(value, str) else None

    return fields


# ==============================
# Reads
# ==============================

async def get_product(db, product_id) -> dict:
    product_oid = parse_object_id(product_id, "product_id")
    product = await guarded(db.products.find_one({"_id": product_oid}), "get product")
    if not product:
        raise NotFound("Product", product_id)
    return product


async def has_live_order(db, product_id) -> bool:
    live = await guarded(
        db.orders.find_one(
            {"product_id": product_id, "status": {"$in": sorted(LIVE_ORDER_STATUSES)}},
            {"_id": 1},
        ),
        "live order lookup",
    )
    return live is not None


# ==============================
# Seller writes
# ==============================

async def create_product(db, actor: dict, data: dict) -> dict:
    if actor.get("role") != ROLE_SELLER:
        raise Forbidden("Only sellers can create product listings")

    missing = [f for f in PRODUCT_REQUIRED_FIELDS if data.get(f) is None]
    if missing:
        raise ValidationError(f"Missing fields: {', '.join(missing)}", {"fields": missing})

    fields = validate_product_fields(data)
    now = datetime.utcnow()

    product = {
        "seller_id": actor["_id"],
        "title": fields["title"],
        "description": fields["description"],
        "price": fields["price"],
        "category": fields["category"],
        "condition": fields.get("condition", "good"),
        "tags": fields.get("tags", []),
        "images": fields.get("images", []),
        "location": fields.get("location"),
        "status": PRODUCT_ACTIVE,
        "is_available": True,
        "created_at": now,
        "updated_at": now,
    }

    await guarded(db.products.insert_one(product), "insert product")
    return product


async def update_product(db, actor: dict, product_id, changes: dict) -> dict:
    product = await get_product(db, product_id)

    if not same_id(product["seller_id"], actor.get("_id")):
        raise Forbidden("You can only update your own product listings")

    if product.get("status") == PRODUCT_REMOVED:
        raise Forbidden("Removed listings cannot be edited")

    fields = validate_product_fields(changes)
    if not fields:
        return product

    fields["updated_at"] = datetime.utcnow()
    updated = await update_if(
        db.products,
        product["_id"],
        {"seller_id": product["seller_id"]},
        fields,
        operation="update product",
    )
    if updated is None:
        raise NotFound("Product", product_id)
    return updated


async def set_product_availability(db, actor: dict, product_id, is_available: bool) -> dict:
    """
    Owner or admin toggle. The purchase flow never calls this; it reserves
    through place_order instead.
    """
    product = await get_product(db, product_id)

    if not (same_id(product["seller_id"], actor.get("_id")) or is_admin(actor)):
        raise Forbidden("Only the seller or an admin can change availability")

    now = datetime.utcnow()

    if not is_available:
        return await update_if(
            db.products,
            product["_id"],
            {},
            {"is_available": False, "updated_at": now},
            operation="mark unavailable",
        )

    if product.get("status") == PRODUCT_REMOVED:
        raise Conflict("Removed listings cannot be made available", {"reason": "product_removed"})

    if await has_live_order(db, product["_id"]):
        raise Conflict(
            "Product has an open order and cannot be relisted",
            {"reason": "live_order_exists"},
        )

    updated = await update_if(
        db.products,
        product["_id"],
        {"is_available": False},
        {"is_available": True, "updated_at": now},
        unset={"reservation": ""},
        operation="relist product",
    )
    if updated is None:
        # already available
        return await get_product(db, product["_id"])

    logger.info("PRODUCT_RELISTED product=%s by=%s", product["_id"], actor.get("_id"))
    return updated
