from bson import ObjectId
from datetime import datetime


def serialize_object_id(value):
    return str(value) if isinstance(value, ObjectId) else value


def _iso(value):
    return value.isoformat() if isinstance(value, datetime) else None


def serialize_product(product: dict) -> dict:
    return {
        "id": str(product["_id"]),
        "seller_id": serialize_object_id(product["seller_id"]),
        "title": product.get("title"),
        "description": product.get("description"),
        "price": product.get("price"),
        "category": product.get("category"),
        "condition": product.get("condition"),
        "tags": product.get("tags", []),
        "images": product.get("images", []),
        "location": product.get("location"),
        "status": product.get("status"),
        "is_available": product.get("is_available", False),
        "created_at": _iso(product.get("created_at")),
        "updated_at": _iso(product.get("updated_at")),
    }


def serialize_order(order: dict) -> dict:
    return {
        "id": str(order["_id"]),
        "buyer_id": serialize_object_id(order["buyer_id"]),
        "seller_id": serialize_object_id(order["seller_id"]),
        "product_id": serialize_object_id(order["product_id"]),

        "price": order["price"],
        "shipping_fee": order["shipping_fee"],
        "tax": order["tax"],
        "total": order["total"],

        "product": order.get("product_snapshot", {}),
        "seller": order.get("seller_snapshot", {}),

        "payment_method": order["payment_method"],
        "payment_status": order["payment_status"],
        "payment_details": order.get("payment_details", {}),

        "status": order["status"],
        "shipping_address": order.get("shipping_address"),
        "tracking": order.get("tracking"),
        "notes": order.get("notes"),

        "paid_at": _iso(order.get("paid_at")),
        "delivered_at": _iso(order.get("delivered_at")),
        "cancelled_at": _iso(order.get("cancelled_at")),
        "created_at": _iso(order.get("created_at")),
        "updated_at": _iso(order.get("updated_at")),
    }


def serialize_report(report: dict) -> dict:
    return {
        "id": str(report["_id"]),
        "reporter_id": serialize_object_id(report.get("reporter_id")),
        "target_type": report["target_type"],
        "target_id": serialize_object_id(report.get("target_id")),
        "reason": report["reason"],
        "description": report["description"],
        "status": report["status"],
        "admin_notes": report.get("admin_notes"),
        "reviewed_by": serialize_object_id(report.get("reviewed_by")),
        "resolved_at": _iso(report.get("resolved_at")),
        "created_at": _iso(report.get("created_at")),
        "updated_at": _iso(report.get("updated_at")),
    }


def serialize_contact(user: dict | None) -> dict | None:
    if not user:
        return None
    return {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "email": user.get("email"),
        "phone": user.get("phone"),
    }


def serialize_timeline_event(event: dict) -> dict:
    return {
        "event": event["event"],
        "actor_role": event.get("actor_role"),
        "actor_id": serialize_object_id(event.get("actor_id")),
        "metadata": event.get("metadata", {}),
        "created_at": _iso(event.get("created_at")),
    }


def serialize_order_detail(order: dict) -> dict:
    detail = serialize_order(order)
    detail["buyer_contact"] = serialize_contact(order.get("buyer_contact"))
    detail["seller_contact"] = serialize_contact(order.get("seller_contact"))
    detail["timeline"] = [serialize_timeline_event(e) for e in order.get("timeline", [])]
    return detail


def serialize_user_summary(user: dict) -> dict:
    return {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "email": user.get("email"),
        "role": user.get("role"),
        "is_active": user.get("is_active", True),
    }
