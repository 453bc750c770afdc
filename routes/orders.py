import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from core.db import get_db
from core.features import block_during_maintenance
from core.permissions import get_current_user
from models.order import Order, OrderStatus
from models.user import User
from schemas.order import CancelRequest, CheckoutRequest, CheckoutResponse, OrderListOut, OrderOut, OrderStatusLiteral
from services import payments
from services.checkout import place_order
from services.exceptions import ServiceError
from services.order_lifecycle import cancel_order

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


def _own_order(db: Session, user: User, order_id: int) -> Order:
    order = db.query(Order).filter(Order.id == order_id, Order.user_id == user.id).one_or_none()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.get("/", response_model=OrderListOut)
def list_orders(
    status: Optional[OrderStatusLiteral] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    q = db.query(Order).filter(Order.user_id == user.id)
    if status:
        q = q.filter(Order.status == status)
    total = q.count()
    orders = q.order_by(Order.created_at.desc(), Order.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {"items": orders, "total": total, "page": page, "limit": limit}


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return _own_order(db, user, order_id)


@router.post("/", response_model=CheckoutResponse, status_code=201, dependencies=[Depends(block_during_maintenance)])
def create_order(data: CheckoutRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    order = place_order(
        db,
        user,
        address_id=data.address_id,
        payment_method=data.payment_method,
        delivery_slot=data.delivery_slot,
        customer_note=data.customer_note,
        promo_code=data.promo_code,
    )
    db.commit()
    db.refresh(order)

    payment_url = None
    if order.payment_method == "ONLINE":
        # the order stands even if the gateway is down; the customer can retry via /payments/init
        try:
            payment_url, _ = payments.start_payment(db, order)
            db.commit()
        except ServiceError as e:
            db.rollback()
            logger.warning("Payment session for order %s not started: %s", order.order_number, e.message)
    return {"order": order, "payment_url": payment_url}


@router.post("/{order_id}/cancel", response_model=OrderOut)
def cancel(
    order_id: int,
    data: Optional[CancelRequest] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    order = _own_order(db, user, order_id)
    reason = data.reason if data and data.reason else "Cancelled by customer"
    cancel_order(db, order, reason, actor_id=user.id, allowed_statuses=(OrderStatus.PENDING,))
    db.commit()
    db.refresh(order)
    return order
