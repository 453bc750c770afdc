"""Reporting queries for the vendor and admin dashboards."""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from models.order import Order, OrderStatus, PaymentStatus
from models.order_item import OrderItem, ItemStatus
from models.user import User
from models.vendor import Vendor

ZERO = Decimal("0.00")


def _dec(value) -> Decimal:
    return ZERO if value is None else Decimal(str(value))


def _day_series(now: datetime, days: int) -> dict:
    series = {}
    for offset in range(days - 1, -1, -1):
        day = (now - timedelta(days=offset)).date()
        series[day] = {"date": day.isoformat(), "revenue": ZERO, "orders": 0}
    return series


def order_stats(db: Session, now: Optional[datetime] = None) -> dict:
    """Headline numbers for the admin order list."""
    now = now or datetime.utcnow()
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    today_count = db.query(func.count(Order.id)).filter(Order.created_at >= start_of_day).scalar()
    today_revenue = (
        db.query(func.sum(Order.total))
        .filter(Order.created_at >= start_of_day, Order.payment_status == PaymentStatus.PAID)
        .scalar()
    )
    total_revenue = db.query(func.sum(Order.total)).filter(Order.payment_status == PaymentStatus.PAID).scalar()
    return {
        "today_orders": today_count or 0,
        "today_revenue": _dec(today_revenue),
        "total_revenue": _dec(total_revenue),
    }


def status_counts(db: Session, query=None) -> dict:
    q = query if query is not None else db.query(Order)
    rows = q.with_entities(Order.status, func.count(Order.id)).group_by(Order.status).all()
    counts = {status: 0 for status in OrderStatus.ALL}
    for status, count in rows:
        counts[status] = count
    counts["all"] = sum(counts.values())
    return counts


def vendor_analytics(db: Session, vendor: Vendor, period_days: int = 30, now: Optional[datetime] = None) -> dict:
    now = now or datetime.utcnow()
    start = now - timedelta(days=period_days)
    items = (
        db.query(OrderItem)
        .join(Order, Order.id == OrderItem.order_id)
        .filter(
            OrderItem.vendor_id == vendor.id,
            Order.created_at >= start,
            OrderItem.status.notin_(ItemStatus.INACTIVE),
        )
        .all()
    )

    revenue = sum((_dec(i.total) for i in items), ZERO)
    series = _day_series(now, period_days)
    orders_by_day = {}
    products = {}
    for item in items:
        day = item.order.created_at.date()
        if day in series:
            series[day]["revenue"] += _dec(item.total)
            orders_by_day.setdefault(day, set()).add(item.order_id)
        entry = products.setdefault(item.product_id, {
            "product_id": item.product_id,
            "name": item.product_name,
            "units": 0,
            "revenue": ZERO,
        })
        entry["units"] += item.quantity
        entry["revenue"] += _dec(item.total)
    for day, ids in orders_by_day.items():
        series[day]["orders"] = len(ids)

    top = sorted(products.values(), key=lambda p: (-p["units"], -p["revenue"]))[:5]
    return {
        "period_days": period_days,
        "revenue": revenue,
        "units": sum(i.quantity for i in items),
        "orders": len({i.order_id for i in items}),
        "delivered_units": sum(i.quantity for i in items if i.status == ItemStatus.DELIVERED),
        "top_products": top,
        "daily": list(series.values()),
    }


def platform_analytics(db: Session, period_days: int = 30, now: Optional[datetime] = None) -> dict:
    now = now or datetime.utcnow()
    start = now - timedelta(days=period_days)

    orders = db.query(Order).filter(Order.created_at >= start).all()
    paid = [o for o in orders if o.payment_status == PaymentStatus.PAID]
    revenue = sum((_dec(o.total) for o in paid), ZERO)

    by_status = {status: 0 for status in OrderStatus.ALL}
    for order in orders:
        by_status[order.status] = by_status.get(order.status, 0) + 1

    series = _day_series(now, period_days)
    for order in paid:
        bucket = series.get(order.created_at.date())
        if bucket is not None:
            bucket["revenue"] += _dec(order.total)
            bucket["orders"] += 1

    top_products = (
        db.query(
            OrderItem.product_id,
            OrderItem.product_name,
            func.sum(OrderItem.quantity).label("units"),
            func.sum(OrderItem.total).label("revenue"),
        )
        .join(Order, Order.id == OrderItem.order_id)
        .filter(Order.created_at >= start, OrderItem.status.notin_(ItemStatus.INACTIVE))
        .group_by(OrderItem.product_id, OrderItem.product_name)
        .order_by(func.sum(OrderItem.quantity).desc())
        .limit(10)
        .all()
    )

    top_vendors = (
        db.query(
            Vendor.id,
            Vendor.business_name,
            func.sum(OrderItem.total).label("revenue"),
            func.sum(OrderItem.commission_amount).label("commission"),
        )
        .join(OrderItem, OrderItem.vendor_id == Vendor.id)
        .filter(OrderItem.status == ItemStatus.DELIVERED, OrderItem.delivered_at >= start)
        .group_by(Vendor.id, Vendor.business_name)
        .order_by(func.sum(OrderItem.total).desc())
        .limit(10)
        .all()
    )

    new_users = db.query(func.count(User.id)).filter(User.created_at >= start).scalar() or 0

    return {
        "period_days": period_days,
        "revenue": revenue,
        "orders": len(orders),
        "average_order_value": (revenue / len(paid)).quantize(Decimal("0.01")) if paid else ZERO,
        "new_users": new_users,
        "orders_by_status": by_status,
        "top_products": [
            {"product_id": r.product_id, "name": r.product_name, "units": int(r.units or 0), "revenue": _dec(r.revenue)}
            for r in top_products
        ],
        "top_vendors": [
            {"vendor_id": r.id, "business_name": r.business_name, "revenue": _dec(r.revenue), "commission": _dec(r.commission)}
            for r in top_vendors
        ],
        "daily": list(series.values()),
    }
