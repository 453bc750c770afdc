from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from core.sanitize import clean_text
from schemas.brand import BrandOut

ProductType = Literal["BOTTLE", "JAR", "CAN", "GLASS"]


class ProductCreate(BaseModel):
    brand_id: int
    name: str = Field(min_length=2, max_length=200)
    slug: str = Field(min_length=2, max_length=220, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    sku: Optional[str] = Field(None, max_length=64)
    description: Optional[str] = Field(None, max_length=5000)
    type: ProductType = "BOTTLE"
    category: Optional[str] = Field(None, max_length=50)
    volume_ml: Optional[int] = Field(None, gt=0)
    price: float = Field(gt=0)
    compare_price: Optional[float] = Field(None, gt=0)
    deposit: float = Field(0, ge=0)
    stock: int = Field(0, ge=0)
    featured: bool = False
    free_shipping: bool = False

    @field_validator("name", "description", "category")
    @classmethod
    def _clean(cls, v):
        return clean_text(v)

    @model_validator(mode="after")
    def _deposit_only_for_jars(self):
        if self.deposit and self.type != "JAR":
            raise ValueError("Deposit applies only to JAR products")
        return self


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=200)
    sku: Optional[str] = Field(None, max_length=64)
    description: Optional[str] = Field(None, max_length=5000)
    type: Optional[ProductType] = None
    category: Optional[str] = Field(None, max_length=50)
    volume_ml: Optional[int] = Field(None, gt=0)
    price: Optional[float] = Field(None, gt=0)
    compare_price: Optional[float] = Field(None, gt=0)
    deposit: Optional[float] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    featured: Optional[bool] = None
    free_shipping: Optional[bool] = None
    is_active: Optional[bool] = None

    @field_validator("name", "description", "category")
    @classmethod
    def _clean(cls, v):
        return clean_text(v)


class AdminProductUpdate(BaseModel):
    is_active: Optional[bool] = None
    featured: Optional[bool] = None


class ProductOut(BaseModel):
    id: int
    brand_id: int
    name: str
    slug: str
    sku: Optional[str] = None
    description: Optional[str] = None
    type: str
    category: Optional[str] = None
    volume_ml: Optional[int] = None
    price: float
    compare_price: Optional[float] = None
    deposit: float
    stock: int
    in_stock: bool
    discount_percent: int
    is_active: bool
    featured: bool
    free_shipping: bool
    images: Optional[List[str]] = None
    avg_rating: float
    review_count: int
    sold_count: int
    brand: Optional[BrandOut] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ProductListOut(BaseModel):
    items: List[ProductOut]
    total: int
    page: int
    limit: int
    pages: int


class RatingStats(BaseModel):
    average: float
    total: int
    distribution: dict


class ProductDetailOut(ProductOut):
    rating_stats: RatingStats
