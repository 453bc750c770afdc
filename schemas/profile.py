from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime

from core.sanitize import clean_text


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, pattern=r"^\+?[0-9]{10,15}$")

    @field_validator("first_name", "last_name")
    @classmethod
    def _clean(cls, v):
        return clean_text(v)


class ProfileResponse(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    role: str
    profile_picture: Optional[str] = None
    is_verified: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProfilePictureUpload(BaseModel):
    success: bool
    url: Optional[str] = None
    message: str


class ProfilePictureDelete(BaseModel):
    success: bool
    message: str
