from datetime import datetime

from sqlalchemy import String, DateTime, ForeignKey, Boolean, Text, JSON
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base


class NotificationType:
    ORDER_PAID = "order_paid"
    PAYMENT_FAILED = "order_payment_failed"
    VENDOR_NEW_ORDER = "vendor_new_order"
    LOW_STOCK = "low_stock"

    ALL = (ORDER_PAID, PAYMENT_FAILED, VENDOR_NEW_ORDER, LOW_STOCK)


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    type: Mapped[str] = mapped_column(String(40))
    title: Mapped[str] = mapped_column(String(200))
    message: Mapped[str] = mapped_column(Text)
    data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
