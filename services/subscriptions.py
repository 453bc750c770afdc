import logging
from datetime import datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from models.address import Address
from models.product import Product
from models.subscription import Subscription, SubscriptionItem
from services.exceptions import InvalidTransitionError, NotFoundError, ValidationFailed

logger = logging.getLogger(__name__)

FREQUENCY_STEPS = {
    "DAILY": timedelta(days=1),
    "ALTERNATE": timedelta(days=2),
    "TWICE_WEEKLY": timedelta(days=3),
    "WEEKLY": timedelta(days=7),
    "BIWEEKLY": timedelta(days=14),
    "MONTHLY": relativedelta(months=1),
}


def next_delivery_date(frequency: str, start: Optional[datetime] = None) -> datetime:
    start = start or datetime.utcnow()
    return start + FREQUENCY_STEPS.get(frequency, FREQUENCY_STEPS["WEEKLY"])


def create_subscription(
    db: Session,
    user_id: int,
    items: list[dict],
    address_id: int,
    frequency: str = "WEEKLY",
    preferred_slot: str = "9am-12pm",
) -> Subscription:
    address = db.query(Address).filter(Address.id == address_id, Address.user_id == user_id).one_or_none()
    if not address:
        raise ValidationFailed("Invalid address")

    product_ids = [i["product_id"] for i in items]
    products = {p.id: p for p in db.query(Product).filter(Product.id.in_(product_ids)).all()}
    for pid in product_ids:
        product = products.get(pid)
        if not product or not product.is_active:
            raise NotFoundError(f"Product {pid} not found")

    subscription = Subscription(
        user_id=user_id,
        address_id=address.id,
        frequency=frequency,
        preferred_slot=preferred_slot,
        status="ACTIVE",
        payment_method="COD",
        next_delivery=next_delivery_date(frequency),
        items=[SubscriptionItem(product_id=i["product_id"], quantity=i["quantity"]) for i in items],
    )
    db.add(subscription)
    db.flush()
    logger.info("Subscription %s created for user %s (%s)", subscription.id, user_id, frequency)
    return subscription


def change_status(db: Session, subscription: Subscription, action: str) -> Subscription:
    now = datetime.utcnow()
    if subscription.status == "CANCELLED":
        raise InvalidTransitionError("Subscription has been cancelled")
    if action == "pause":
        if subscription.status != "ACTIVE":
            raise InvalidTransitionError("Only active subscriptions can be paused")
        subscription.status = "PAUSED"
        subscription.paused_at = now
    elif action == "resume":
        if subscription.status != "PAUSED":
            raise InvalidTransitionError("Only paused subscriptions can be resumed")
        if subscription.address_id is None:
            raise ValidationFailed("Subscription needs a delivery address")
        subscription.status = "ACTIVE"
        subscription.paused_at = None
        subscription.next_delivery = next_delivery_date(subscription.frequency, now)
    elif action == "cancel":
        subscription.status = "CANCELLED"
        subscription.cancelled_at = now
    else:
        raise ValidationFailed(f"Unknown action: {action}")
    db.flush()
    return subscription
