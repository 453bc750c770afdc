from datetime import datetime

from sqlalchemy import String, DateTime, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base


FREQUENCIES = ("DAILY", "ALTERNATE", "TWICE_WEEKLY", "WEEKLY", "BIWEEKLY", "MONTHLY")
SUBSCRIPTION_STATUSES = ("ACTIVE", "PAUSED", "CANCELLED")


class Subscription(Base):
    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    address_id: Mapped[int | None] = mapped_column(ForeignKey("addresses.id", ondelete="SET NULL"), nullable=True)
    frequency: Mapped[str] = mapped_column(String(20), default="WEEKLY")
    preferred_slot: Mapped[str] = mapped_column(String(50), default="9am-12pm")
    status: Mapped[str] = mapped_column(String(20), default="ACTIVE", index=True)
    payment_method: Mapped[str] = mapped_column(String(10), default="COD")
    next_delivery: Mapped[datetime] = mapped_column(DateTime)
    paused_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = relationship("SubscriptionItem", cascade="all, delete-orphan", back_populates="subscription")
    address = relationship("Address")


class SubscriptionItem(Base):
    __tablename__ = "subscription_items"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    subscription_id: Mapped[int] = mapped_column(ForeignKey("subscriptions.id", ondelete="CASCADE"), index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), index=True)
    quantity: Mapped[int] = mapped_column(Integer, default=1)

    subscription = relationship("Subscription", back_populates="items")
    product = relationship("Product")
