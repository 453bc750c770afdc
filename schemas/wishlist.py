from datetime import datetime

from pydantic import BaseModel

from schemas.product import ProductOut


class WishlistAdd(BaseModel):
    product_id: int


class WishlistItemOut(BaseModel):
    id: int
    product: ProductOut
    available: bool
    created_at: datetime
