from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from core.sanitize import clean_text

OrderStatusLiteral = Literal["PENDING", "PAID", "PROCESSING", "SHIPPED", "DELIVERED", "CANCELLED"]
ItemStatusLiteral = Literal["PENDING", "CONFIRMED", "PROCESSING", "SHIPPED", "DELIVERED", "CANCELLED", "RETURNED"]
PaymentStatusLiteral = Literal["PENDING", "PAID", "FAILED", "REFUNDED"]


class CheckoutRequest(BaseModel):
    address_id: int
    payment_method: Literal["COD", "ONLINE"] = "COD"
    delivery_slot: Optional[str] = Field(None, max_length=50)
    customer_note: Optional[str] = Field(None, max_length=500)
    promo_code: Optional[str] = Field(None, min_length=3, max_length=20)

    @field_validator("delivery_slot", "customer_note")
    @classmethod
    def _clean(cls, v):
        return clean_text(v)


class OrderItemOut(BaseModel):
    id: int
    product_id: Optional[int] = None
    vendor_id: Optional[int] = None
    product_name: str
    brand_name: str
    quantity: int
    exchange_jars: int
    unit_price: float
    deposit: float
    total: float
    status: str
    commission_amount: Optional[float] = None
    vendor_amount: Optional[float] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StatusHistoryOut(BaseModel):
    status: str
    note: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class OrderOut(BaseModel):
    id: int
    order_number: str
    email: str
    status: str
    payment_status: str
    payment_method: str
    currency: str
    subtotal: float
    discount: float
    vat: float
    deposit_total: float
    delivery_fee: float
    total: float
    shipping_name: str
    shipping_phone: str
    shipping_address: str
    shipping_city: str
    shipping_district: str
    delivery_slot: Optional[str] = None
    customer_note: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    paid_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    items: List[OrderItemOut]
    history: List[StatusHistoryOut] = []

    class Config:
        from_attributes = True


class AdminOrderOut(OrderOut):
    user_id: Optional[int] = None
    admin_notes: Optional[str] = None


class CheckoutResponse(BaseModel):
    order: OrderOut
    payment_url: Optional[str] = None


class OrderListOut(BaseModel):
    items: List[OrderOut]
    total: int
    page: int
    limit: int


class AdminOrderListOut(BaseModel):
    items: List[AdminOrderOut]
    total: int
    page: int
    limit: int
    status_counts: dict
    stats: dict


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator("reason")
    @classmethod
    def _clean(cls, v):
        return clean_text(v)


class ItemStatusUpdate(BaseModel):
    item_id: int
    status: ItemStatusLiteral


class AdminOrderUpdate(BaseModel):
    status: Optional[OrderStatusLiteral] = None
    payment_status: Optional[PaymentStatusLiteral] = None
    tracking_number: Optional[str] = Field(None, max_length=100)
    tracking_url: Optional[str] = Field(None, max_length=500)
    admin_notes: Optional[str] = Field(None, max_length=2000)
    note: Optional[str] = Field(None, max_length=500)
    item: Optional[ItemStatusUpdate] = None

    @field_validator("tracking_number", "admin_notes", "note")
    @classmethod
    def _clean(cls, v):
        return clean_text(v)


class VendorOrderOut(BaseModel):
    id: int
    order_number: str
    status: str
    payment_status: str
    payment_method: str
    shipping_name: str
    shipping_phone: str
    shipping_address: str
    shipping_city: str
    shipping_district: str
    delivery_slot: Optional[str] = None
    created_at: datetime
    items: List[OrderItemOut]
    vendor_subtotal: float
    vendor_item_count: int


class VendorOrderListOut(BaseModel):
    items: List[VendorOrderOut]
    total: int
    page: int
    limit: int
    status_counts: dict


class VendorItemUpdate(BaseModel):
    status: ItemStatusLiteral
