"""
Order status rules.

Admins may move an order freely along the main chain
(pending_payment -> pending_delivery -> shipped -> delivered), backwards
included, so mistakes can be corrected. The side exits are narrower:
``cancelled`` only before shipping, ``returned`` only after delivery.

An order is locked once it is cancelled, returned, or delivered and
refunded. Locked orders reject every status and payment change.
"""

from config.constants import (
    ORDER_PENDING_PAYMENT,
    ORDER_PENDING_DELIVERY,
    ORDER_SHIPPED,
    ORDER_DELIVERED,
    ORDER_CANCELLED,
    ORDER_RETURNED,
    ORDER_STATUSES,
    PAYMENT_STATUSES,
    PAYMENT_REFUNDED,
)
from utils.errors import Conflict, ValidationError

MAIN_CHAIN = (
    ORDER_PENDING_PAYMENT,
    ORDER_PENDING_DELIVERY,
    ORDER_SHIPPED,
    ORDER_DELIVERED,
)

SIDE_EXITS = {
    ORDER_CANCELLED: {ORDER_PENDING_PAYMENT, ORDER_PENDING_DELIVERY},
    ORDER_RETURNED: {ORDER_DELIVERED},
}

TERMINAL_STATUSES = {ORDER_CANCELLED, ORDER_RETURNED}


def validate_order_status(status: str) -> str:
    if status not in ORDER_STATUSES:
        raise ValidationError("Invalid status value", {"field": "status", "allowed": sorted(ORDER_STATUSES)})
    return status


def validate_payment_status(payment_status: str) -> str:
    if payment_status not in PAYMENT_STATUSES:
        raise ValidationError(
            "Invalid payment status value",
            {"field": "payment_status", "allowed": sorted(PAYMENT_STATUSES)},
        )
    return payment_status


def is_locked(order: dict) -> bool:
    status = order.get("status")
    if status in TERMINAL_STATUSES:
        return True
    return status == ORDER_DELIVERED and order.get("payment_status") == PAYMENT_REFUNDED


def ensure_mutable(order: dict) -> None:
    if is_locked(order):
        raise Conflict(
            f"Order is {order.get('status')} and can no longer change",
            {"reason": "order_locked", "status": order.get("status"), "payment_status": order.get("payment_status")},
        )


def check_status_transition(current: str, target: str) -> None:
    if current == target:
        return

    allowed_from = SIDE_EXITS.get(target)
    if allowed_from is not None and current not in allowed_from:
        raise Conflict(
            f"Cannot move order from {current} to {target}",
            {"reason": "invalid_transition", "from": current, "to": target},
        )

    if current not in MAIN_CHAIN:
        raise Conflict(
            f"Cannot move order from {current} to {target}",
            {"reason": "invalid_transition", "from": current, "to": target},
        )
