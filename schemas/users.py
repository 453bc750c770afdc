from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr


class UserOut(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: EmailStr
    phone: Optional[str] = None
    role: str
    is_verified: bool
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class AdminUserUpdate(BaseModel):
    role: Optional[Literal["CUSTOMER", "VENDOR", "ADMIN"]] = None
    is_active: Optional[bool] = None


class UserListOut(BaseModel):
    items: List[UserOut]
    total: int
    page: int
    limit: int
