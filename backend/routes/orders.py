from fastapi import APIRouter, Depends

from database import get_db
from models.order import OrderCreate, TrackingUpdate
from config.constants import ROLE_SELLER
from utils.security import get_current_user, require_role
from utils.order_service import (
    place_order,
    get_order,
    list_orders_for_user,
    list_sales_for_seller,
    add_tracking,
)
from utils.serializers import serialize_order, serialize_order_detail

router = APIRouter(
    prefix="/orders",
    tags=["Orders"]
)


# ======================================================
# PLACE ORDER (ANY AUTHENTICATED USER)
# ======================================================

@router.post("", status_code=201)
async def create_order(
    data: OrderCreate,
    buyer=Depends(get_current_user),
    db=Depends(get_db),
):
    order = await place_order(
        db,
        buyer,
        data.product_id,
        data.payment_method,
        shipping_address=data.shipping_address,
        payment_details=data.payment_details,
        idempotency_key=data.idempotency_key,
    )
    return serialize_order(order)


# ======================================================
# BUYER / SELLER HISTORY
# ======================================================

@router.get("/mine")
async def my_orders(
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    orders = await list_orders_for_user(db, user["_id"])
    return {"count": len(orders), "orders": [serialize_order(o) for o in orders]}


@router.get("/sales")
async def my_sales(
    seller=Depends(require_role(ROLE_SELLER)),
    db=Depends(get_db),
):
    orders = await list_sales_for_seller(db, seller["_id"])
    return {"count": len(orders), "orders": [serialize_order(o) for o in orders]}


# ======================================================
# ORDER DETAIL (BUYER, SELLER OR ADMIN)
# ======================================================

@router.get("/{order_id}")
async def order_detail(
    order_id: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    order = await get_order(db, user, order_id)
    return serialize_order_detail(order)


# ======================================================
# TRACKING (SELLER OR ADMIN, WHILE SHIPPED)
# ======================================================

@router.post("/{order_id}/tracking")
async def order_tracking(
    order_id: str,
    data: TrackingUpdate,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    order = await add_tracking(
        db,
        user,
        order_id,
        data.carrier,
        data.tracking_number,
        tracking_url=data.tracking_url,
    )
    return serialize_order(order)
