from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from core.sanitize import clean_text

_TEXT_FIELDS = ("name", "address", "city", "district", "postal_code")


class AddressCreate(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    phone: str = Field(min_length=10, max_length=20)
    address: str = Field(min_length=10, max_length=500)
    city: str = Field(min_length=2, max_length=100)
    district: str = Field(min_length=2, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=20)
    type: Literal["HOME", "OFFICE"] = "HOME"
    is_default: bool = False

    @field_validator(*_TEXT_FIELDS)
    @classmethod
    def _clean(cls, v):
        return clean_text(v)


class AddressUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    phone: Optional[str] = Field(None, min_length=10, max_length=20)
    address: Optional[str] = Field(None, min_length=10, max_length=500)
    city: Optional[str] = Field(None, min_length=2, max_length=100)
    district: Optional[str] = Field(None, min_length=2, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=20)
    type: Optional[Literal["HOME", "OFFICE"]] = None
    is_default: Optional[bool] = None

    @field_validator(*_TEXT_FIELDS)
    @classmethod
    def _clean(cls, v):
        return clean_text(v)


class AddressOut(BaseModel):
    id: int
    name: str
    phone: str
    address: str
    city: str
    district: str
    postal_code: Optional[str] = None
    type: str
    is_default: bool
    created_at: datetime

    class Config:
        from_attributes = True
