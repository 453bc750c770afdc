"""In-app notifications shown in the customer and vendor dashboards."""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from models.notification import Notification, NotificationType
from models.order import Order
from models.product import Product
from models.vendor import Vendor
from services import site_settings
from services.exceptions import NotFoundError

logger = logging.getLogger(__name__)

READ_RETENTION_DAYS = 30


def notify(db: Session, user_id: int, type: str, title: str, message: str, data: Optional[dict] = None) -> Notification:
    notification = Notification(user_id=user_id, type=type, title=title, message=message, data=data or {})
    db.add(notification)
    return notification


def payment_succeeded(db: Session, order: Order, amount: Decimal) -> Notification:
    return notify(
        db,
        order.user_id,
        NotificationType.ORDER_PAID,
        "Payment Successful",
        f"Your payment of BDT {amount} for order #{order.order_number} was successful.",
        {"order_id": order.id},
    )


def payment_failed(db: Session, order: Order) -> Notification:
    return notify(
        db,
        order.user_id,
        NotificationType.PAYMENT_FAILED,
        "Payment Failed",
        f"Payment for order #{order.order_number} failed. Please try again.",
        {"order_id": order.id},
    )


def alert_vendors(db: Session, order: Order, products: Iterable[Product]) -> int:
    """New-order and low-stock alerts for the vendors whose items an order holds.

    Each alert kind follows its own platform setting. Returns the number created.
    """
    created = 0
    vendor_ids = {item.vendor_id for item in order.items if item.vendor_id}
    vendors = {v.id: v for v in db.query(Vendor).filter(Vendor.id.in_(vendor_ids))} if vendor_ids else {}

    if site_settings.get_bool(db, "notifications.newOrderAlert"):
        for vendor in vendors.values():
            count = sum(item.quantity for item in order.items if item.vendor_id == vendor.id)
            notify(
                db,
                vendor.user_id,
                NotificationType.VENDOR_NEW_ORDER,
                "New Order",
                f"Order #{order.order_number} includes {count} unit(s) of your products.",
                {"order_id": order.id},
            )
            created += 1

    if site_settings.get_bool(db, "notifications.lowStockAlert"):
        threshold = site_settings.get_int(db, "notifications.lowStockThreshold")
        for product in products:
            vendor = vendors.get(product.brand.vendor_id) if product.brand else None
            if vendor is None or product.stock > threshold:
                continue
            notify(
                db,
                vendor.user_id,
                NotificationType.LOW_STOCK,
                "Low Stock",
                f"{product.name} has {product.stock} unit(s) left.",
                {"product_id": product.id, "stock": product.stock},
            )
            created += 1
    return created


def list_for_user(db: Session, user_id: int, unread_only: bool = False, page: int = 1, limit: int = 20) -> dict:
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    total = query.count()
    items = (
        query.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    unread = (
        db.query(Notification)
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .count()
    )
    return {"items": items, "total": total, "unread": unread, "page": page, "limit": limit}


def get_for_user(db: Session, user_id: int, notification_id: int) -> Notification:
    notification = db.get(Notification, notification_id)
    if not notification or notification.user_id != user_id:
        raise NotFoundError("Notification not found")
    return notification


def mark_all_read(db: Session, user_id: int) -> int:
    count = (
        db.query(Notification)
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .update({Notification.is_read: True}, synchronize_session="fetch")
    )
    db.flush()
    return count


def purge_read(db: Session, now: datetime) -> int:
    cutoff = now - timedelta(days=READ_RETENTION_DAYS)
    rows = (
        db.query(Notification)
        .filter(Notification.is_read.is_(True), Notification.created_at < cutoff)
        .all()
    )
    for row in rows:
        db.delete(row)
    if rows:
        logger.info("Purged %s read notification(s) older than %s days", len(rows), READ_RETENTION_DAYS)
    return len(rows)
