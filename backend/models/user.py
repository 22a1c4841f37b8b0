from pydantic import BaseModel


class RoleUpdate(BaseModel):
    role: str


class UserStatusUpdate(BaseModel):
    is_active: bool
