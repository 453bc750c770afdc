"""Periodic housekeeping run from the cron endpoint and the Celery beat task."""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from models.cart import Cart
from models.order import Order, OrderStatus, PaymentStatus
from models.subscription import Subscription
from models.user import User
from services import notifications, site_settings
from services.order_lifecycle import cancel_order

logger = logging.getLogger(__name__)

ABANDONED_CART_DAYS = 7
LOCKOUT_GRACE_MINUTES = 15
AUTO_CANCEL_BATCH = 100


def purge_abandoned_carts(db: Session, now: datetime) -> int:
    cutoff = now - timedelta(days=ABANDONED_CART_DAYS)
    carts = db.query(Cart).filter(Cart.updated_at < cutoff).all()
    for cart in carts:
        db.delete(cart)
    return len(carts)


def unlock_accounts(db: Session, now: datetime) -> int:
    cutoff = now - timedelta(minutes=LOCKOUT_GRACE_MINUTES)
    users = (
        db.query(User)
        .filter(User.locked_until.is_not(None), User.locked_until < cutoff, User.failed_attempts > 0)
        .all()
    )
    for user in users:
        user.failed_attempts = 0
        user.locked_until = None
    return len(users)


def auto_cancel_unpaid_orders(db: Session, now: datetime) -> int:
    hours = site_settings.get_int(db, "order.autoCancelHours")
    cutoff = now - timedelta(hours=hours)
    orders = (
        db.query(Order)
        .filter(
            Order.status == OrderStatus.PENDING,
            Order.payment_status.in_((PaymentStatus.PENDING, PaymentStatus.FAILED)),
            Order.created_at < cutoff,
        )
        .order_by(Order.created_at)
        .limit(AUTO_CANCEL_BATCH)
        .all()
    )
    for order in orders:
        cancel_order(db, order, reason=f"Auto-cancelled: Payment not received within {hours} hours")
    return len(orders)


def deactivate_orphaned_subscriptions(db: Session, now: datetime) -> int:
    subscriptions = (
        db.query(Subscription)
        .filter(Subscription.status == "ACTIVE", Subscription.address_id.is_(None))
        .all()
    )
    for subscription in subscriptions:
        subscription.status = "PAUSED"
        subscription.paused_at = now
    return len(subscriptions)


def run_cleanup(db: Session, now: Optional[datetime] = None) -> dict:
    now = now or datetime.utcnow()
    results = {
        "abandoned_carts_deleted": purge_abandoned_carts(db, now),
        "accounts_unlocked": unlock_accounts(db, now),
        "orders_auto_cancelled": auto_cancel_unpaid_orders(db, now),
        "subscriptions_paused": deactivate_orphaned_subscriptions(db, now),
        "old_notifications_deleted": notifications.purge_read(db, now),
    }
    db.flush()
    logger.info("Cleanup finished: %s", results)
    return results
