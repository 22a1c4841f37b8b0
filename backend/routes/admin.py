from fastapi import APIRouter, Depends
from typing import Optional

from database import get_db
from config.constants import ROLE_ADMIN
from models.order import OrderStatusUpdate
from models.product import ProductStatusUpdate
from models.report import ReportReview
from models.user import RoleUpdate, UserStatusUpdate
from utils.security import require_role
from utils.order_service import list_orders
from utils.moderation_service import (
    set_product_status,
    set_order_status,
    confirm_payment,
    set_user_role,
    set_user_active,
)
from utils.report_service import list_reports, review_report
from utils.serializers import (
    serialize_order,
    serialize_product,
    serialize_report,
    serialize_user_summary,
)


router = APIRouter(prefix="/admin", tags=["Admin"])


# =========================================================
# ORDERS
# =========================================================

@router.get("/orders")
async def admin_list_orders(
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    admin=Depends(require_role(ROLE_ADMIN)),
    db=Depends(get_db),
):
    result = await list_orders(
        db,
        admin,
        status=status,
        payment_status=payment_status,
        page=page,
        limit=limit,
    )
    result["orders"] = [serialize_order(o) for o in result["orders"]]
    return result


@router.patch("/orders/{order_id}/status")
async def admin_set_order_status(
    order_id: str,
    data: OrderStatusUpdate,
    admin=Depends(require_role(ROLE_ADMIN)),
    db=Depends(get_db),
):
    order = await set_order_status(
        db,
        admin,
        order_id,
        status=data.status,
        payment_status=data.payment_status,
    )
    return serialize_order(order)


@router.post("/orders/{order_id}/confirm-payment")
async def admin_confirm_payment(
    order_id: str,
    admin=Depends(require_role(ROLE_ADMIN)),
    db=Depends(get_db),
):
    order = await confirm_payment(db, admin, order_id)
    return serialize_order(order)


# =========================================================
# PRODUCTS
# =========================================================

@router.patch("/products/{product_id}/status")
async def admin_set_product_status(
    product_id: str,
    data: ProductStatusUpdate,
    admin=Depends(require_role(ROLE_ADMIN)),
    db=Depends(get_db),
):
    product = await set_product_status(db, admin, product_id, data.status)
    return serialize_product(product)


# =========================================================
# USERS
# =========================================================

@router.patch("/users/{user_id}/role")
async def admin_set_user_role(
    user_id: str,
    data: RoleUpdate,
    admin=Depends(require_role(ROLE_ADMIN)),
    db=Depends(get_db),
):
    user = await set_user_role(db, admin, user_id, data.role)
    return {
        "message": "User role updated successfully",
        "user": serialize_user_summary(user),
    }


@router.patch("/users/{user_id}/status")
async def admin_set_user_status(
    user_id: str,
    data: UserStatusUpdate,
    admin=Depends(require_role(ROLE_ADMIN)),
    db=Depends(get_db),
):
    user = await set_user_active(db, admin, user_id, data.is_active)
    return {
        "message": "User activated" if data.is_active else "User deactivated",
        "user": serialize_user_summary(user),
    }


# =========================================================
# REPORTS
# =========================================================

@router.get("/reports")
async def admin_list_reports(
    status: Optional[str] = None,
    reason: Optional[str] = None,
    target_type: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    admin=Depends(require_role(ROLE_ADMIN)),
    db=Depends(get_db),
):
    result = await list_reports(
        db,
        admin,
        status=status,
        reason=reason,
        target_type=target_type,
        page=page,
        limit=limit,
    )
    result["reports"] = [serialize_report(r) for r in result["reports"]]
    return result


@router.patch("/reports/{report_id}")
async def admin_review_report(
    report_id: str,
    data: ReportReview,
    admin=Depends(require_role(ROLE_ADMIN)),
    db=Depends(get_db),
):
    report = await review_report(db, admin, report_id, data.status, admin_notes=data.admin_notes)
    return serialize_report(report)
