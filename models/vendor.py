from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Numeric, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base


VENDOR_PENDING = "PENDING"
VENDOR_APPROVED = "APPROVED"
VENDOR_SUSPENDED = "SUSPENDED"
VENDOR_REJECTED = "REJECTED"
VENDOR_STATUSES = (VENDOR_PENDING, VENDOR_APPROVED, VENDOR_SUSPENDED, VENDOR_REJECTED)


class Vendor(Base):
    __tablename__ = "vendors"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True, index=True)
    business_name: Mapped[str] = mapped_column(String(200))
    trade_license: Mapped[str | None] = mapped_column(String(100), nullable=True)
    tax_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contact_phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=VENDOR_PENDING, index=True)
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("10.00"))
    balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"))

    bank_name: Mapped[str | None] = mapped_column(String(150), nullable=True)
    bank_account_name: Mapped[str | None] = mapped_column(String(150), nullable=True)
    bank_account_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    bank_routing_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    bkash_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    nagad_number: Mapped[str | None] = mapped_column(String(20), nullable=True)

    approved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="vendor")
    brands = relationship("Brand", back_populates="vendor")
    payouts = relationship("Payout", back_populates="vendor", order_by="Payout.created_at.desc()")
