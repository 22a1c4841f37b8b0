import logging
from datetime import datetime

from config.constants import (
    ROLE_ADMIN,
    ROLE_SELLER,
    ASSIGNABLE_ROLES,
    PRODUCT_STATUSES,
    PRODUCT_REMOVED,
    ORDER_DELIVERED,
    ORDER_CANCELLED,
    PAYMENT_COD,
    PAYMENT_PAID,
    PAYMENT_REFUNDED,
    MANUAL_PAYMENT_METHODS,
)
from utils.audit import log_audit
from utils.errors import ValidationError, NotFound, Forbidden, Conflict
from utils.guards import parse_object_id, ensure_admin
from utils.order_service import release_order_reservation
from utils.order_state import (
    validate_order_status,
    validate_payment_status,
    ensure_mutable,
    check_status_transition,
)
from utils.order_timeline import ORDER_STATUS_SET, PAYMENT_CONFIRMED, record_order_event
from utils.store import guarded, update_if

logger = logging.getLogger(__name__)


def _concurrent_update(entity: str) -> Conflict:
    return Conflict(f"{entity} changed concurrently, reload and retry", {"reason": "concurrent_update"})


# =========================================================
# PRODUCT STATUS
# =========================================================

async def set_product_status(db, actor: dict, product_id, status: str) -> dict:
    """
    Any status may follow any other. Availability is left untouched; buyers
    are kept out by the status check in place_order.
    """
    ensure_admin(actor)

    if status not in PRODUCT_STATUSES:
        raise ValidationError("Invalid status value", {"field": "status", "allowed": sorted(PRODUCT_STATUSES)})

    product_oid = parse_object_id(product_id, "product_id")
    now = datetime.utcnow()

    patch = {"status": status, "updated_at": now}
    unset = None
    if status == PRODUCT_REMOVED:
        patch["removed_at"] = now
        patch["removed_by"] = actor["_id"]
    else:
        unset = {"removed_at": "", "removed_by": ""}

    product = await update_if(db.products, product_oid, {}, patch, unset=unset, operation="set product status")
    if product is None:
        raise NotFound("Product", product_id)

    await log_audit(
        db,
        actor_id=actor["_id"],
        actor_role=ROLE_ADMIN,
        action="PRODUCT_STATUS_SET",
        target_type="product",
        target_id=product_oid,
        metadata={"status": status},
    )
    return product


# =========================================================
# ORDER STATUS
# =========================================================

async def _load_order(db, order_id) -> dict:
    order_oid = parse_object_id(order_id, "order_id")
    order = await guarded(db.orders.find_one({"_id": order_oid}), "get order")
    if not order:
        raise NotFound("Order", order_id)
    return order


async def set_order_status(
    db,
    actor: dict,
    order_id,
    status: str | None = None,
    payment_status: str | None = None,
) -> dict:
    ensure_admin(actor)

    if status is None and payment_status is None:
        raise ValidationError("status or payment_status is required", {"fields": ["status", "payment_status"]})
    if status is not None:
        validate_order_status(status)
    if payment_status is not None:
        validate_payment_status(payment_status)

    order = await _load_order(db, order_id)
    ensure_mutable(order)
    if status is not None:
        check_status_transition(order["status"], status)

    now = datetime.utcnow()
    patch = {"updated_at": now}

    if status is not None and status != order["status"]:
        patch["status"] = status
        if status == ORDER_DELIVERED:
            patch["delivered_at"] = now
        elif status == ORDER_CANCELLED:
            patch["cancelled_at"] = now

    # cod is settled on delivery unless the admin says otherwise
    if (
        payment_status is None
        and status == ORDER_DELIVERED
        and order["payment_method"] == PAYMENT_COD
        and order["payment_status"] != PAYMENT_PAID
    ):
        payment_status = PAYMENT_PAID

    if payment_status is not None and payment_status != order["payment_status"]:
        patch["payment_status"] = payment_status
        if payment_status == PAYMENT_PAID:
            patch["paid_at"] = now

    updated = await update_if(
        db.orders,
        order["_id"],
        {"status": order["status"], "payment_status": order["payment_status"]},
        patch,
        operation="set order status",
    )
    if updated is None:
        raise _concurrent_update("Order")

    if patch.get("status") == ORDER_CANCELLED:
        await release_order_reservation(db, updated)

    changes = {k: v for k, v in patch.items() if k in ("status", "payment_status")}
    if changes:
        await record_order_event(
            db,
            order_id=order["_id"],
            event=ORDER_STATUS_SET,
            actor_role=ROLE_ADMIN,
            actor_id=actor["_id"],
            metadata={
                "from": {"status": order["status"], "payment_status": order["payment_status"]},
                "to": changes,
            },
        )
        await log_audit(
            db,
            actor_id=actor["_id"],
            actor_role=ROLE_ADMIN,
            action="ORDER_STATUS_SET",
            target_type="order",
            target_id=order["_id"],
            metadata=changes,
        )
        logger.info("ORDER_STATUS_SET order=%s changes=%s by=%s", order["_id"], changes, actor["_id"])

    return updated


async def confirm_payment(db, actor: dict, order_id) -> dict:
    """
    Manual payment confirmation for cod and bank transfer orders.
    Confirming an order that is already paid succeeds without changes.
    """
    ensure_admin(actor)
    order = await _load_order(db, order_id)

    if order["payment_method"] not in MANUAL_PAYMENT_METHODS:
        raise ValidationError(
            "Invalid payment method for manual confirmation",
            {"payment_method": order["payment_method"]},
        )

    if order["payment_status"] == PAYMENT_PAID:
        return order

    ensure_mutable(order)
    if order["payment_status"] == PAYMENT_REFUNDED:
        raise Conflict("Refunded orders cannot be confirmed as paid", {"reason": "payment_refunded"})

    now = datetime.utcnow()
    updated = await update_if(
        db.orders,
        order["_id"],
        {"payment_status": order["payment_status"], "status": order["status"]},
        {"payment_status": PAYMENT_PAID, "paid_at": now, "updated_at": now},
        operation="confirm payment",
    )
    if updated is None:
        current = await _load_order(db, order["_id"])
        if current["payment_status"] == PAYMENT_PAID:
            return current
        raise _concurrent_update("Order")

    await record_order_event(
        db,
        order_id=order["_id"],
        event=PAYMENT_CONFIRMED,
        actor_role=ROLE_ADMIN,
        actor_id=actor["_id"],
        metadata={"payment_method": order["payment_method"]},
    )
    await log_audit(
        db,
        actor_id=actor["_id"],
        actor_role=ROLE_ADMIN,
        action="PAYMENT_CONFIRMED",
        target_type="order",
        target_id=order["_id"],
    )
    return updated


# =========================================================
# USER ROLE
# =========================================================

async def set_user_role(db, actor: dict, user_id, role: str) -> dict:
    ensure_admin(actor)

    if role not in ASSIGNABLE_ROLES:
        raise ValidationError("Invalid role. Must be buyer or seller.", {"field": "role"})

    user_oid = parse_object_id(user_id, "user_id")
    user = await guarded(db.users.find_one({"_id": user_oid}, {"password": 0}), "get user")
    if not user:
        raise NotFound("User", user_id)

    if user.get("role") == ROLE_ADMIN:
        raise Forbidden("Admin roles cannot be modified", {"reason": "protected_resource"})

    now = datetime.utcnow()
    patch = {"role": role, "updated_at": now}
    if role == ROLE_SELLER and not user.get("became_seller_at"):
        patch["became_seller_at"] = now

    # the admin check is repeated in the write so a concurrent promotion cannot be overwritten
    updated = await update_if(
        db.users,
        user_oid,
        {"role": {"$ne": ROLE_ADMIN}},
        patch,
        operation="set user role",
    )
    if updated is None:
        raise Forbidden("Admin roles cannot be modified", {"reason": "protected_resource"})

    await log_audit(
        db,
        actor_id=actor["_id"],
        actor_role=ROLE_ADMIN,
        action="USER_ROLE_SET",
        target_type="user",
        target_id=user_oid,
        metadata={"from": user.get("role"), "to": role},
    )
    logger.info("USER_ROLE_SET user=%s role=%s by=%s", user_oid, role, actor["_id"])

    updated.pop("password", None)
    return updated


async def set_user_active(db, actor: dict, user_id, is_active: bool) -> dict:
    """
    Deactivated accounts keep their data but can no longer authenticate.
    Admin accounts are never deactivated here.
    """
    ensure_admin(actor)

    if not isinstance(is_active, bool):
        raise ValidationError("is_active must be true or false", {"field": "is_active"})

    user_oid = parse_object_id(user_id, "user_id")
    user = await guarded(db.users.find_one({"_id": user_oid}, {"password": 0}), "get user")
    if not user:
        raise NotFound("User", user_id)

    if user.get("role") == ROLE_ADMIN:
        raise Forbidden("Admin accounts cannot be deactivated", {"reason": "protected_resource"})

    now = datetime.utcnow()
    patch = {"is_active": is_active, "updated_at": now}
    unset = None
    if is_active:
        unset = {"deactivated_at": "", "deactivated_by": ""}
    else:
        patch["deactivated_at"] = now
        patch["deactivated_by"] = actor["_id"]

    updated = await update_if(
        db.users,
        user_oid,
        {"role": {"$ne": ROLE_ADMIN}},
        patch,
        unset=unset,
        operation="set user active",
    )
    if updated is None:
        raise Forbidden("Admin accounts cannot be deactivated", {"reason": "protected_resource"})

    await log_audit(
        db,
        actor_id=actor["_id"],
        actor_role=ROLE_ADMIN,
        action="USER_ACTIVATED" if is_active else "USER_DEACTIVATED",
        target_type="user",
        target_id=user_oid,
    )
    logger.info("USER_ACTIVE_SET user=%s is_active=%s by=%s", user_oid, is_active, actor["_id"])

    updated.pop("password", None)
    return updated
