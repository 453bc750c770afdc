"""
Order and order-item state machine.

An order holds items from several vendors. Each vendor moves its own items
through ``ITEM_TRANSITIONS``; the parent order's status is then derived from
its items by ``derive_order_status``. Side effects hang off item transitions:

* SHIPPED stamps ``shipped_at``
* DELIVERED stamps ``delivered_at`` and settles commission into the vendor balance
* CANCELLED / RETURNED put the quantity back into product stock

All functions mutate ORM objects in the caller's session and never commit.
"""
import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy.orm import Session

from models.order import Order, OrderStatus, PaymentStatus, OrderStatusHistory, JarDeposit
from models.order_item import OrderItem, ItemStatus
from services import site_settings
from services.email import send_templated_email
from services.exceptions import InvalidTransitionError

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

ITEM_TRANSITIONS = {
    ItemStatus.PENDING: (ItemStatus.CONFIRMED, ItemStatus.PROCESSING, ItemStatus.CANCELLED),
    ItemStatus.CONFIRMED: (ItemStatus.PROCESSING, ItemStatus.CANCELLED),
    ItemStatus.PROCESSING: (ItemStatus.SHIPPED, ItemStatus.CANCELLED),
    ItemStatus.SHIPPED: (ItemStatus.DELIVERED, ItemStatus.RETURNED),
    ItemStatus.DELIVERED: (),
    ItemStatus.CANCELLED: (),
    ItemStatus.RETURNED: (),
}

ORDER_TRANSITIONS = {
    OrderStatus.PENDING: (OrderStatus.PAID, OrderStatus.PROCESSING, OrderStatus.CANCELLED),
    OrderStatus.PAID: (OrderStatus.PROCESSING, OrderStatus.CANCELLED),
    OrderStatus.PROCESSING: (OrderStatus.SHIPPED, OrderStatus.CANCELLED),
    OrderStatus.SHIPPED: (OrderStatus.DELIVERED,),
    OrderStatus.DELIVERED: (),
    OrderStatus.CANCELLED: (),
}

# Order statuses from which a plain cancel request is honoured
CANCELLABLE = (OrderStatus.PENDING, OrderStatus.PAID)

# Order status -> the item status it cascades to
_CASCADE = {
    OrderStatus.PROCESSING: ItemStatus.PROCESSING,
    OrderStatus.SHIPPED: ItemStatus.SHIPPED,
    OrderStatus.DELIVERED: ItemStatus.DELIVERED,
}

_RANK = {
    ItemStatus.PENDING: 0,
    ItemStatus.CONFIRMED: 1,
    ItemStatus.PROCESSING: 2,
    ItemStatus.SHIPPED: 3,
    ItemStatus.DELIVERED: 4,
}

_NEXT_STEP = {
    ItemStatus.PENDING: ItemStatus.PROCESSING,
    ItemStatus.CONFIRMED: ItemStatus.PROCESSING,
    ItemStatus.PROCESSING: ItemStatus.SHIPPED,
    ItemStatus.SHIPPED: ItemStatus.DELIVERED,
}

_CUSTOMER_EMAIL_STATUSES = (OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED)


def _to_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def can_transition_item(current: str, target: str) -> bool:
    return target in ITEM_TRANSITIONS.get(current, ())


def can_transition_order(current: str, target: str) -> bool:
    return target in ORDER_TRANSITIONS.get(current, ())


def derive_order_status(order: Order) -> str:
    """Aggregate item statuses into the parent order status."""
    if not order.items:
        return order.status
    live = {item.status for item in order.items if item.status not in ItemStatus.INACTIVE}
    if not live:
        return OrderStatus.CANCELLED
    if live == {ItemStatus.DELIVERED}:
        return OrderStatus.DELIVERED
    if live & {ItemStatus.SHIPPED, ItemStatus.DELIVERED}:
        return OrderStatus.SHIPPED
    if live & {ItemStatus.CONFIRMED, ItemStatus.PROCESSING}:
        return OrderStatus.PROCESSING
    return order.status


def settle_item(item: OrderItem) -> Decimal:
    """Split a delivered item's total into platform commission and vendor share."""
    total = _to_decimal(item.total)
    vendor = item.vendor
    if vendor is None:
        item.commission_amount = total
        item.vendor_amount = Decimal("0.00")
        return item.vendor_amount

    rate = _to_decimal(vendor.commission_rate)
    commission = (total * rate / Decimal("100")).quantize(CENT, rounding=ROUND_HALF_UP)
    vendor_amount = total - commission
    item.commission_amount = commission
    item.vendor_amount = vendor_amount
    vendor.balance = _to_decimal(vendor.balance) + vendor_amount
    logger.info(
        "Settled order item %s: commission=%s vendor_amount=%s vendor=%s",
        item.id, commission, vendor_amount, vendor.id,
    )
    return vendor_amount


def restore_stock(item: OrderItem) -> None:
    product = item.product
    if product is None:
        return
    product.stock = (product.stock or 0) + item.quantity
    product.sold_count = max((product.sold_count or 0) - item.quantity, 0)


def transition_item(item: OrderItem, target: str, now: Optional[datetime] = None) -> OrderItem:
    if not can_transition_item(item.status, target):
        raise InvalidTransitionError(f"Cannot transition from {item.status} to {target}")
    now = now or datetime.utcnow()
    item.status = target
    if target == ItemStatus.SHIPPED:
        item.shipped_at = now
    elif target == ItemStatus.DELIVERED:
        item.delivered_at = now
        settle_item(item)
    elif target in ItemStatus.INACTIVE:
        restore_stock(item)
    return item


def _record(order: Order, status: str, note: Optional[str], actor_id: Optional[int]) -> None:
    order.history.append(OrderStatusHistory(status=status, note=note, created_by=actor_id))


def _notify_customer(db: Session, order: Order, status: str) -> None:
    if status not in _CUSTOMER_EMAIL_STATUSES:
        return
    if not site_settings.get_bool(db, "email.shippingUpdates"):
        return
    send_templated_email(
        order.email,
        f"Order {order.order_number} {status.lower()}",
        "emails/order_status.txt",
        {
            "order_number": order.order_number,
            "status": status,
            "tracking_number": order.tracking_number,
            "tracking_url": order.tracking_url,
        },
    )


def _apply_order_status(
    db: Session, order: Order, status: str, note: Optional[str] = None, actor_id: Optional[int] = None
) -> None:
    now = datetime.utcnow()
    previous = order.status
    order.status = status
    if status == OrderStatus.SHIPPED and order.shipped_at is None:
        order.shipped_at = now
    elif status == OrderStatus.DELIVERED:
        if order.delivered_at is None:
            order.delivered_at = now
        # cash is collected at the door
        if order.payment_method == "COD" and order.payment_status != PaymentStatus.PAID:
            order.payment_status = PaymentStatus.PAID
            order.paid_at = now
    elif status == OrderStatus.CANCELLED and order.cancelled_at is None:
        order.cancelled_at = now
    _record(order, status, note, actor_id)
    logger.info("Order %s status %s -> %s", order.order_number, previous, status)
    _notify_customer(db, order, status)


def sync_order_status(
    db: Session, order: Order, note: Optional[str] = None, actor_id: Optional[int] = None
) -> bool:
    """Recompute the order status from its items. Returns True when it changed."""
    derived = derive_order_status(order)
    if derived == order.status:
        return False
    _apply_order_status(db, order, derived, note, actor_id)
    return True


def _guard_item_change(order: Order, target: str) -> None:
    if order.status == OrderStatus.CANCELLED:
        raise InvalidTransitionError("Order has been cancelled")
    if (
        order.payment_method == "ONLINE"
        and order.payment_status != PaymentStatus.PAID
        and target != ItemStatus.CANCELLED
    ):
        raise InvalidTransitionError("Order is awaiting payment")


def update_item_status(
    db: Session, item: OrderItem, target: str, actor_id: Optional[int] = None
) -> OrderItem:
    """Move one item and re-aggregate its order."""
    order = item.order
    _guard_item_change(order, target)
    transition_item(item, target)
    sync_order_status(db, order, note=f"Item #{item.id} {target.lower()}", actor_id=actor_id)
    return item


def _advance_item(item: OrderItem, target: str, now: datetime) -> None:
    """Walk an item forward through intermediate statuses until it reaches target."""
    while item.status not in ItemStatus.FINAL and _RANK[item.status] < _RANK[target]:
        if can_transition_item(item.status, target):
            transition_item(item, target, now)
        else:
            transition_item(item, _NEXT_STEP[item.status], now)


def mark_order_paid(
    db: Session, order: Order, note: Optional[str] = None, actor_id: Optional[int] = None
) -> bool:
    """Record payment. Returns False when the order was already paid."""
    if order.payment_status == PaymentStatus.PAID:
        return False
    order.payment_status = PaymentStatus.PAID
    order.paid_at = datetime.utcnow()
    if order.status == OrderStatus.PENDING:
        _apply_order_status(db, order, OrderStatus.PAID, note or "Payment received", actor_id)
    elif order.status == OrderStatus.CANCELLED:
        logger.warning("Payment received for cancelled order %s; refund required", order.order_number)
    return True


def cancel_order(
    db: Session,
    order: Order,
    reason: Optional[str] = None,
    actor_id: Optional[int] = None,
    allowed_statuses: tuple = CANCELLABLE,
) -> Order:
    """Cancel every open item, restore stock and close the order."""
    if order.status not in allowed_statuses:
        raise InvalidTransitionError("Cannot cancel order that is already being processed")
    now = datetime.utcnow()
    for item in order.items:
        if can_transition_item(item.status, ItemStatus.CANCELLED):
            transition_item(item, ItemStatus.CANCELLED, now)
    for deposit in db.query(JarDeposit).filter(JarDeposit.order_id == order.id, JarDeposit.status == "HELD"):
        deposit.status = "CANCELLED"
    _apply_order_status(db, order, OrderStatus.CANCELLED, reason or "Order cancelled", actor_id)
    if order.payment_status == PaymentStatus.PAID:
        logger.warning("Order %s cancelled after payment; refund required", order.order_number)
    return order


def set_order_status(
    db: Session, order: Order, target: str, actor_id: Optional[int] = None, note: Optional[str] = None
) -> Order:
    """Admin override of the order status, cascading to the items."""
    if target == order.status:
        return order
    if not can_transition_order(order.status, target):
        raise InvalidTransitionError(f"Cannot transition from {order.status} to {target}")

    if target == OrderStatus.CANCELLED:
        return cancel_order(
            db, order, note, actor_id,
            allowed_statuses=(OrderStatus.PENDING, OrderStatus.PAID, OrderStatus.PROCESSING),
        )
    if target == OrderStatus.PAID:
        mark_order_paid(db, order, note, actor_id)
        return order

    item_target = _CASCADE[target]
    _guard_item_change(order, item_target)
    now = datetime.utcnow()
    for item in order.items:
        _advance_item(item, item_target, now)
    sync_order_status(db, order, note=note or f"Status set to {target}", actor_id=actor_id)
    return order
