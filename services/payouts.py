"""
Vendor balance bookkeeping: payout requests, admin processing and earnings.

A vendor's ``balance`` grows when its items are delivered (see
``services.order_lifecycle.settle_item``) and shrinks the moment a payout is
requested. Failed or cancelled payouts give the amount back.
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from models.order import Order, PaymentStatus
from models.order_item import OrderItem, ItemStatus
from models.payout import Payout, PayoutStatus, PAYOUT_METHODS
from models.vendor import Vendor
from services import site_settings
from services.email import send_templated_email
from services.exceptions import InvalidTransitionError, NotFoundError, ValidationFailed

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

PAYOUT_TRANSITIONS = {
    PayoutStatus.PENDING: (PayoutStatus.PROCESSING, PayoutStatus.COMPLETED, PayoutStatus.FAILED, PayoutStatus.CANCELLED),
    PayoutStatus.PROCESSING: (PayoutStatus.COMPLETED, PayoutStatus.FAILED),
    PayoutStatus.COMPLETED: (),
    PayoutStatus.FAILED: (),
    PayoutStatus.CANCELLED: (),
}

_REFUNDED = (PayoutStatus.FAILED, PayoutStatus.CANCELLED)


def _to_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def minimum_payout(db: Session) -> Decimal:
    return site_settings.get_decimal(db, "commission.minimumPayout")


def vendor_email(vendor: Vendor) -> str:
    return vendor.contact_email or vendor.user.email


def destination_details(vendor: Vendor, method: str) -> str:
    """Snapshot of where the money goes; raises when the vendor has not filled it in."""
    if method == "BANK_TRANSFER":
        if not vendor.bank_name or not vendor.bank_account_number:
            raise ValidationFailed("Bank details are required for bank transfer")
        holder = vendor.bank_account_name or vendor.business_name
        routing = f" (routing {vendor.bank_routing_number})" if vendor.bank_routing_number else ""
        return f"{vendor.bank_name} / {holder} / {vendor.bank_account_number}{routing}"
    if method == "BKASH":
        if not vendor.bkash_number:
            raise ValidationFailed("bKash number is required")
        return f"bKash {vendor.bkash_number}"
    if method == "NAGAD":
        if not vendor.nagad_number:
            raise ValidationFailed("Nagad number is required")
        return f"Nagad {vendor.nagad_number}"
    raise ValidationFailed(f"Unsupported payout method: {method}")


def request_payout(
    db: Session, vendor: Vendor, amount: Decimal, method: str, note: Optional[str] = None
) -> Payout:
    amount = _to_decimal(amount)
    balance = _to_decimal(vendor.balance)
    minimum = minimum_payout(db)

    if method not in PAYOUT_METHODS:
        raise ValidationFailed(f"Unsupported payout method: {method}")
    if amount < minimum:
        raise ValidationFailed(f"Minimum payout amount is ৳{minimum}")
    if balance < minimum:
        raise ValidationFailed(f"Minimum balance of ৳{minimum} required for payout")
    if amount > balance:
        raise ValidationFailed("Insufficient balance")

    open_payout = (
        db.query(Payout)
        .filter(Payout.vendor_id == vendor.id, Payout.status.in_(PayoutStatus.OPEN))
        .first()
    )
    if open_payout:
        raise ValidationFailed("You already have a pending payout request")

    details = destination_details(vendor, method)

    payout = Payout(
        vendor_id=vendor.id,
        amount=amount,
        method=method,
        status=PayoutStatus.PENDING,
        account_details=details,
        note=note,
    )
    vendor.balance = balance - amount
    db.add(payout)
    db.flush()
    logger.info("Payout %s requested by vendor %s amount=%s method=%s", payout.id, vendor.id, amount, method)

    send_templated_email(
        vendor_email(vendor),
        "Payout request received",
        "emails/payout_requested.txt",
        {"business_name": vendor.business_name, "payout": payout},
    )
    return payout


def cancel_payout(db: Session, vendor: Vendor, payout_id: int) -> Payout:
    payout = db.query(Payout).filter(Payout.id == payout_id, Payout.vendor_id == vendor.id).one_or_none()
    if not payout:
        raise NotFoundError("Payout not found")
    if payout.status != PayoutStatus.PENDING:
        raise InvalidTransitionError("Only pending payouts can be cancelled")
    payout.status = PayoutStatus.CANCELLED
    vendor.balance = _to_decimal(vendor.balance) + _to_decimal(payout.amount)
    db.flush()
    logger.info("Payout %s cancelled by vendor %s", payout.id, vendor.id)
    return payout


def process_payout(
    db: Session,
    payout: Payout,
    target: str,
    reference: Optional[str] = None,
    admin_note: Optional[str] = None,
) -> Payout:
    if target not in PAYOUT_TRANSITIONS.get(payout.status, ()):
        raise InvalidTransitionError(f"Cannot transition from {payout.status} to {target}")

    now = datetime.utcnow()
    vendor = payout.vendor
    payout.status = target
    if admin_note is not None:
        payout.admin_note = admin_note
    if target == PayoutStatus.PROCESSING:
        payout.processed_at = now
    elif target == PayoutStatus.COMPLETED:
        payout.processed_at = payout.processed_at or now
        payout.completed_at = now
        if reference:
            payout.reference = reference
    elif target in _REFUNDED:
        vendor.balance = _to_decimal(vendor.balance) + _to_decimal(payout.amount)
    db.flush()
    logger.info("Payout %s moved to %s", payout.id, target)

    send_templated_email(
        vendor_email(vendor),
        f"Payout {target.lower()}",
        "emails/payout_processed.txt",
        {"business_name": vendor.business_name, "payout": payout},
    )
    return payout


def payout_stats(db: Session, vendor_id: int) -> dict:
    rows = (
        db.query(Payout.status, func.count(Payout.id), func.coalesce(func.sum(Payout.amount), 0))
        .filter(Payout.vendor_id == vendor_id)
        .group_by(Payout.status)
        .all()
    )
    stats = {s.lower(): {"count": 0, "amount": ZERO} for s in PayoutStatus.ALL}
    for status, count, amount in rows:
        stats[status.lower()] = {"count": count, "amount": _to_decimal(amount)}
    return stats


def earnings_report(db: Session, vendor: Vendor, period_days: int = 30, now: Optional[datetime] = None) -> dict:
    """Delivered and in-flight revenue for a vendor over the last ``period_days``."""
    now = now or datetime.utcnow()
    start = now - timedelta(days=period_days)
    rate = _to_decimal(vendor.commission_rate)

    delivered_items = (
        db.query(OrderItem)
        .filter(OrderItem.vendor_id == vendor.id, OrderItem.status == ItemStatus.DELIVERED)
        .all()
    )
    in_period = [i for i in delivered_items if i.delivered_at and i.delivered_at >= start]

    revenue = sum((_to_decimal(i.total) for i in in_period), ZERO)
    commission = sum((_to_decimal(i.commission_amount) for i in in_period), ZERO)

    pending_items = (
        db.query(OrderItem)
        .join(Order, Order.id == OrderItem.order_id)
        .filter(
            OrderItem.vendor_id == vendor.id,
            OrderItem.status.in_((ItemStatus.PENDING, ItemStatus.CONFIRMED, ItemStatus.PROCESSING, ItemStatus.SHIPPED)),
            Order.created_at >= start,
            (Order.payment_method == "COD") | (Order.payment_status == PaymentStatus.PAID),
        )
        .all()
    )
    pending_revenue = sum((_to_decimal(i.total) for i in pending_items), ZERO)
    pending_commission = (pending_revenue * rate / Decimal("100")).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    all_revenue = sum((_to_decimal(i.total) for i in delivered_items), ZERO)
    all_commission = sum((_to_decimal(i.commission_amount) for i in delivered_items), ZERO)

    chart = {}
    for offset in range(period_days - 1, -1, -1):
        day = (now - timedelta(days=offset)).date()
        chart[day] = {"date": day.isoformat(), "revenue": ZERO, "orders": set()}
    for item in in_period:
        bucket = chart.get(item.delivered_at.date())
        if bucket is not None:
            bucket["revenue"] += _to_decimal(item.total)
            bucket["orders"].add(item.order_id)

    stats = payout_stats(db, vendor.id)
    recent = (
        db.query(Payout)
        .filter(Payout.vendor_id == vendor.id)
        .order_by(Payout.created_at.desc(), Payout.id.desc())
        .limit(20)
        .all()
    )

    return {
        "period_days": period_days,
        "commission_rate": rate,
        "period": {
            "revenue": revenue,
            "commission": commission,
            "net": revenue - commission,
            "orders": len({i.order_id for i in in_period}),
            "units": sum(i.quantity for i in in_period),
        },
        "pending": {
            "revenue": pending_revenue,
            "commission": pending_commission,
            "net": pending_revenue - pending_commission,
        },
        "all_time": {
            "revenue": all_revenue,
            "commission": all_commission,
            "net": all_revenue - all_commission,
            "orders": len({i.order_id for i in delivered_items}),
            "units": sum(i.quantity for i in delivered_items),
        },
        "payouts": {
            "paid_out": stats["completed"]["amount"],
            "pending": stats["pending"]["amount"] + stats["processing"]["amount"],
            "available": _to_decimal(vendor.balance),
        },
        "chart": [
            {"date": b["date"], "revenue": b["revenue"], "orders": len(b["orders"])} for b in chart.values()
        ],
        "recent_payouts": recent,
    }
