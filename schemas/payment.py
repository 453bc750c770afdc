from pydantic import BaseModel
from typing import Optional


class PaymentInitRequest(BaseModel):
    order_id: int


class PaymentInitResponse(BaseModel):
    gateway_url: str
    tran_id: str


class PaymentOut(BaseModel):
    id: int
    order_id: int
    provider: str
    reference: str
    val_id: Optional[str] = None
    amount: float
    currency: str
    status: str

    class Config:
        from_attributes = True


class PaymentRedirect(BaseModel):
    status: str
    order_id: Optional[int] = None
    redirect_url: str
