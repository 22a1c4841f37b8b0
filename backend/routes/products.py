from fastapi import APIRouter, Depends

from database import get_db
from config.constants import ROLE_SELLER
from models.product import ProductCreate, ProductUpdate, AvailabilityUpdate
from utils.security import get_current_user, require_role
from utils.product_service import (
    create_product,
    get_product,
    update_product,
    set_product_availability,
)
from utils.serializers import serialize_product

router = APIRouter(prefix="/products", tags=["Products"])


# =========================
# CREATE LISTING (SELLER)
# =========================

@router.post("", status_code=201)
async def create_listing(
    data: ProductCreate,
    seller=Depends(require_role(ROLE_SELLER)),
    db=Depends(get_db),
):
    product = await create_product(db, seller, data.model_dump())
    return serialize_product(product)


@router.get("/{product_id}")
async def product_detail(product_id: str, db=Depends(get_db)):
    product = await get_product(db, product_id)
    return serialize_product(product)


# =========================
# EDIT LISTING (OWNER)
# =========================

@router.patch("/{product_id}")
async def edit_listing(
    product_id: str,
    data: ProductUpdate,
    seller=Depends(get_current_user),
    db=Depends(get_db),
):
    product = await update_product(db, seller, product_id, data.model_dump(exclude_unset=True))
    return serialize_product(product)


# =========================
# AVAILABILITY (OWNER OR ADMIN)
# =========================

@router.patch("/{product_id}/availability")
async def toggle_availability(
    product_id: str,
    data: AvailabilityUpdate,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    product = await set_product_availability(db, user, product_id, data.is_available)
    return serialize_product(product)
