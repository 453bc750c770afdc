from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

Frequency = Literal["DAILY", "ALTERNATE", "TWICE_WEEKLY", "WEEKLY", "BIWEEKLY", "MONTHLY"]


class SubscriptionItemIn(BaseModel):
    product_id: int
    quantity: int = Field(1, ge=1, le=50)


class SubscriptionCreate(BaseModel):
    items: List[SubscriptionItemIn] = Field(min_length=1)
    address_id: int
    frequency: Frequency = "WEEKLY"
    preferred_slot: str = Field("9am-12pm", max_length=50)


class SubscriptionAction(BaseModel):
    action: Literal["pause", "resume", "cancel"]


class SubscriptionItemOut(BaseModel):
    product_id: int
    quantity: int

    class Config:
        from_attributes = True


class SubscriptionOut(BaseModel):
    id: int
    address_id: Optional[int] = None
    frequency: str
    preferred_slot: str
    status: str
    payment_method: str
    next_delivery: datetime
    items: List[SubscriptionItemOut]
    created_at: datetime

    class Config:
        from_attributes = True
