from typing import List

from pydantic import BaseModel, Field


class CartItemAdd(BaseModel):
    product_id: int
    quantity: int = Field(1, ge=1, le=100)
    exchange_jars: int = Field(0, ge=0)


class CartItemUpdate(BaseModel):
    quantity: int = Field(le=100)
    exchange_jars: int | None = Field(None, ge=0)


class CartItemOut(BaseModel):
    id: int
    product_id: int
    name: str
    slug: str
    brand_name: str
    type: str
    image: str | None = None
    unit_price: float
    quantity: int
    exchange_jars: int
    new_jars: int
    deposit: float
    line_total: float
    stock: int


class CartOut(BaseModel):
    items: List[CartItemOut]
    item_count: int
    subtotal: float
    deposit_total: float
    vat: float
    delivery_fee: float
    total: float
