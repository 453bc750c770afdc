import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session

from core.db import get_db
from core.permissions import require_admin
from core.rate_limit import rate_limit
from models.order import Order, PaymentStatus
from models.user import User
from schemas.order import AdminOrderListOut, AdminOrderOut, AdminOrderUpdate, CancelRequest
from services import analytics
from services.order_lifecycle import cancel_order, mark_order_paid, set_order_status, update_item_status

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/orders", tags=["admin"], dependencies=[Depends(rate_limit("admin"))])


def _get_order(db: Session, order_id: int) -> Order:
    order = db.get(Order, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.get("/", response_model=AdminOrderListOut)
def list_orders(
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    search: Optional[str] = Query(None, max_length=100),
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    base = db.query(Order)
    if payment_status:
        base = base.filter(Order.payment_status == payment_status.upper())
    if search:
        term = f"%{search.strip()}%"
        base = base.filter(
            or_(
                Order.order_number.ilike(term),
                Order.email.ilike(term),
                Order.shipping_name.ilike(term),
                Order.shipping_phone.ilike(term),
            )
        )
    if date_from:
        base = base.filter(Order.created_at >= date_from)
    if date_to:
        base = base.filter(Order.created_at <= date_to)

    counts = analytics.status_counts(db, base)
    q = base.filter(Order.status == status.upper()) if status else base
    total = q.count()
    orders = q.order_by(Order.created_at.desc(), Order.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "items": orders,
        "total": total,
        "page": page,
        "limit": limit,
        "status_counts": counts,
        "stats": analytics.order_stats(db),
    }


@router.get("/{order_id}", response_model=AdminOrderOut)
def get_order(order_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return _get_order(db, order_id)


@router.patch("/{order_id}", response_model=AdminOrderOut)
def update_order(
    order_id: int, data: AdminOrderUpdate, admin: User = Depends(require_admin), db: Session = Depends(get_db)
):
    order = _get_order(db, order_id)

    if data.item is not None:
        item = next((i for i in order.items if i.id == data.item.item_id), None)
        if not item:
            raise HTTPException(status_code=404, detail="Order item not found")
        update_item_status(db, item, data.item.status, actor_id=admin.id)

    if data.status is not None:
        set_order_status(db, order, data.status, actor_id=admin.id, note=data.note)

    if data.payment_status is not None and data.payment_status != order.payment_status:
        if data.payment_status == PaymentStatus.PAID:
            mark_order_paid(db, order, note=data.note or "Payment confirmed by admin", actor_id=admin.id)
        else:
            logger.info("Order %s payment status %s -> %s by admin %s",
                        order.order_number, order.payment_status, data.payment_status, admin.id)
            order.payment_status = data.payment_status

    if data.tracking_number is not None:
        order.tracking_number = data.tracking_number
    if data.tracking_url is not None:
        order.tracking_url = data.tracking_url
    if data.admin_notes is not None:
        order.admin_notes = data.admin_notes

    db.commit()
    db.refresh(order)
    return order


@router.delete("/{order_id}", response_model=AdminOrderOut)
def delete_order(
    order_id: int,
    data: Optional[CancelRequest] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    order = _get_order(db, order_id)
    reason = data.reason if data and data.reason else "Cancelled by admin"
    cancel_order(db, order, reason, actor_id=admin.id)
    db.commit()
    db.refresh(order)
    return order
