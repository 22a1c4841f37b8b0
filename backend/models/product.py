from pydantic import BaseModel, Field
from typing import List, Optional


class ProductCreate(BaseModel):
    title: str
    description: str
    price: float = Field(..., gt=0)
    category: str
    condition: str = "good"
    tags: List[str] = []
    images: List[str] = []
    location: Optional[str] = None


class ProductUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, gt=0)
    category: Optional[str] = None
    condition: Optional[str] = None
    tags: Optional[List[str]] = None
    images: Optional[List[str]] = None
    location: Optional[str] = None


class AvailabilityUpdate(BaseModel):
    is_available: bool


class ProductStatusUpdate(BaseModel):
    status: str
