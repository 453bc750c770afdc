from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from core.sanitize import clean_text

MOBILE_WALLET_PATTERN = r"^01[3-9]\d{8}$"


class VendorApply(BaseModel):
    business_name: str = Field(min_length=2, max_length=200)
    contact_email: Optional[EmailStr] = None
    contact_phone: str = Field(min_length=10, max_length=20)
    address: Optional[str] = Field(None, max_length=500)
    trade_license: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    brand_name: Optional[str] = Field(None, min_length=2, max_length=150)

    @field_validator("business_name", "address", "trade_license", "description", "brand_name")
    @classmethod
    def _clean(cls, v):
        return clean_text(v)


class VendorSettingsUpdate(BaseModel):
    business_name: Optional[str] = Field(None, min_length=2, max_length=200)
    trade_license: Optional[str] = Field(None, max_length=100)
    tax_id: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = Field(None, min_length=10, max_length=20)
    address: Optional[str] = Field(None, max_length=500)
    bank_name: Optional[str] = Field(None, max_length=150)
    bank_account_name: Optional[str] = Field(None, max_length=150)
    bank_account_number: Optional[str] = Field(None, max_length=50)
    bank_routing_number: Optional[str] = Field(None, max_length=50)
    bkash_number: Optional[str] = Field(None, pattern=MOBILE_WALLET_PATTERN)
    nagad_number: Optional[str] = Field(None, pattern=MOBILE_WALLET_PATTERN)

    @field_validator(
        "business_name", "trade_license", "tax_id", "description", "address",
        "bank_name", "bank_account_name", "bank_account_number", "bank_routing_number",
    )
    @classmethod
    def _clean(cls, v):
        return clean_text(v)


class VendorOut(BaseModel):
    id: int
    user_id: int
    business_name: str
    trade_license: Optional[str] = None
    tax_id: Optional[str] = None
    description: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    address: Optional[str] = None
    status: str
    commission_rate: float
    balance: float
    bank_name: Optional[str] = None
    bank_account_name: Optional[str] = None
    bank_account_number: Optional[str] = None
    bank_routing_number: Optional[str] = None
    bkash_number: Optional[str] = None
    nagad_number: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AdminVendorUpdate(BaseModel):
    status: Optional[Literal["PENDING", "APPROVED", "SUSPENDED", "REJECTED"]] = None
    commission_rate: Optional[float] = Field(None, ge=0, le=100)


class VendorListOut(BaseModel):
    items: List[VendorOut]
    total: int
    page: int
    limit: int


class PayoutCreate(BaseModel):
    amount: float = Field(gt=0)
    method: Literal["BANK_TRANSFER", "BKASH", "NAGAD"]
    note: Optional[str] = Field(None, max_length=500)

    @field_validator("note")
    @classmethod
    def _clean(cls, v):
        return clean_text(v)


class PayoutOut(BaseModel):
    id: int
    vendor_id: int
    amount: float
    method: str
    status: str
    account_details: str
    reference: Optional[str] = None
    note: Optional[str] = None
    admin_note: Optional[str] = None
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PayoutListOut(BaseModel):
    items: List[PayoutOut]
    total: int
    page: int
    limit: int
    stats: dict
    balance: float
    minimum_payout: float


class PayoutProcess(BaseModel):
    status: Literal["PROCESSING", "COMPLETED", "FAILED", "CANCELLED"]
    reference: Optional[str] = Field(None, max_length=100)
    admin_note: Optional[str] = Field(None, max_length=1000)

    @field_validator("reference", "admin_note")
    @classmethod
    def _clean(cls, v):
        return clean_text(v)
