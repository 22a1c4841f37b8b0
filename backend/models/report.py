from pydantic import BaseModel
from typing import Optional


class ReportCreate(BaseModel):
    target_type: str
    target_id: Optional[str] = None
    reason: str
    description: str
    anonymous: bool = False


class ReportReview(BaseModel):
    status: str
    admin_notes: Optional[str] = None
