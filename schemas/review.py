from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from core.sanitize import clean_text


class ReviewCreate(BaseModel):
    product_id: int
    rating: int = Field(ge=1, le=5)
    title: Optional[str] = Field(None, max_length=100)
    content: Optional[str] = Field(None, max_length=2000)

    @field_validator("title", "content")
    @classmethod
    def _clean(cls, v):
        return clean_text(v)


class ReviewAuthor(BaseModel):
    id: int
    first_name: str

    class Config:
        from_attributes = True


class ReviewOut(BaseModel):
    id: int
    product_id: int
    rating: int
    title: Optional[str] = None
    content: Optional[str] = None
    is_verified: bool
    user: Optional[ReviewAuthor] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AdminReviewOut(ReviewOut):
    user_id: int
    is_approved: bool
    rejection_reason: Optional[str] = None
    moderated_at: Optional[datetime] = None


class ReviewListOut(BaseModel):
    items: List[ReviewOut]
    total: int
    page: int
    limit: int
    stats: dict


class AdminReviewListOut(BaseModel):
    items: List[AdminReviewOut]
    total: int
    page: int
    limit: int


class ReviewModeration(BaseModel):
    action: Literal["approve", "reject", "pending"]
    rejection_reason: Optional[str] = Field(None, max_length=500)

    @field_validator("rejection_reason")
    @classmethod
    def _clean(cls, v):
        return clean_text(v)
