import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from core.config import settings
from core.db import get_db
from core.features import block_during_maintenance
from core.permissions import get_current_user
from core.rate_limit import rate_limit
from models.order import Order
from models.payment import Payment
from models.user import User
from schemas.payment import PaymentInitRequest, PaymentInitResponse, PaymentOut, PaymentRedirect
from services import payments
from services.exceptions import NotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


def _redirect(order_id, state: str) -> dict:
    base = settings.APP_BASE_URL.rstrip("/")
    url = f"{base}/orders/{order_id}?payment={state}" if order_id else f"{base}/checkout/error?reason={state}"
    return {"status": state, "order_id": order_id, "redirect_url": url}


async def _form(request: Request) -> dict:
    form = await request.form()
    return {k: str(v) for k, v in form.items()}


@router.post(
    "/init",
    response_model=PaymentInitResponse,
    dependencies=[Depends(rate_limit("payment")), Depends(block_during_maintenance)],
)
def init_payment(data: PaymentInitRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    order = db.query(Order).filter(Order.id == data.order_id, Order.user_id == user.id).one_or_none()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    gateway_url, tran_id = payments.start_payment(db, order)
    db.commit()
    return {"gateway_url": gateway_url, "tran_id": tran_id}


@router.post("/ipn")
def ipn(payload: dict = Depends(_form), db: Session = Depends(get_db)):
    result = payments.handle_ipn(db, payload)
    # the failure is recorded before rejecting the notification
    db.commit()
    if result == "invalid":
        raise HTTPException(status_code=400, detail="Validation failed")
    return {"status": result, "tran_id": payload.get("tran_id")}


@router.get("/ipn", response_model=PaymentOut)
def payment_status(tran_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    payment = payments.find_payment(db, tran_id)
    if payment.order.user_id != user.id:
        raise HTTPException(status_code=404, detail="Payment not found")
    return payment


@router.post("/success", response_model=PaymentRedirect)
def payment_success(payload: dict = Depends(_form), db: Session = Depends(get_db)):
    try:
        payment = payments.find_payment(db, payload.get("tran_id"))
    except NotFoundError:
        return _redirect(None, "not_found")
    if not payload.get("val_id"):
        return _redirect(payment.order_id, "invalid")
    ok = payments.confirm_payment(db, payment, payload["val_id"])
    db.commit()
    return _redirect(payment.order_id, "success" if ok else "failed")


@router.post("/fail", response_model=PaymentRedirect)
def payment_fail(payload: dict = Depends(_form), db: Session = Depends(get_db)):
    try:
        payment = payments.find_payment(db, payload.get("tran_id"))
    except NotFoundError:
        return _redirect(None, "not_found")
    payments.record_failure(db, payment, payload.get("error") or "Payment failed")
    db.commit()
    return _redirect(payment.order_id, "failed")


@router.post("/cancel", response_model=PaymentRedirect)
def payment_cancel(payload: dict = Depends(_form), db: Session = Depends(get_db)):
    payment = db.query(Payment).filter(Payment.reference == payload.get("tran_id")).one_or_none()
    if not payment:
        return _redirect(None, "not_found")
    payment.status = "cancelled"
    db.commit()
    return _redirect(payment.order_id, "cancelled")
