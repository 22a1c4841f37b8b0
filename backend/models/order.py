from pydantic import BaseModel
from typing import Optional


class OrderCreate(BaseModel):
    product_id: str
    payment_method: str
    shipping_address: Optional[str] = None
    payment_details: Optional[dict] = None
    idempotency_key: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    status: Optional[str] = None
    payment_status: Optional[str] = None


class TrackingUpdate(BaseModel):
    carrier: str
    tracking_number: str
    tracking_url: Optional[str] = None
