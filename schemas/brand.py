from pydantic import BaseModel, Field, field_validator
from typing import Optional

from core.sanitize import clean_text


class BrandUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=150)
    description: Optional[str] = Field(None, max_length=2000)
    logo_url: Optional[str] = Field(None, max_length=500)
    country: Optional[str] = Field(None, max_length=100)

    @field_validator("name", "description", "country")
    @classmethod
    def _clean(cls, v):
        return clean_text(v)


class BrandOut(BaseModel):
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    logo_url: Optional[str] = None
    country: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True
