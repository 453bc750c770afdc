"""Online payment flow on top of the SSLCommerz client."""
import logging
from decimal import Decimal
from typing import Mapping, Optional, Tuple

import requests
from sqlalchemy.orm import Session

from models.order import Order, OrderStatus, PaymentStatus
from models.payment import Payment
from services import notifications, sslcommerz
from services.exceptions import NotFoundError, ValidationFailed
from services.order_lifecycle import mark_order_paid

logger = logging.getLogger(__name__)

AMOUNT_TOLERANCE = Decimal("1.00")


def start_payment(db: Session, order: Order) -> Tuple[str, str]:
    """Open a gateway session for an unpaid online order. Returns (gateway_url, tran_id)."""
    if order.payment_method != "ONLINE":
        raise ValidationFailed("Order is not payable online")
    if order.status != OrderStatus.PENDING or order.payment_status == PaymentStatus.PAID:
        raise ValidationFailed("Order is not awaiting payment")
    if order.total is None or Decimal(str(order.total)) <= 0:
        raise ValidationFailed("Order total must be greater than 0")

    tran_id = sslcommerz.generate_tran_id(order.id)
    customer = {
        "name": order.shipping_name,
        "email": order.email,
        "phone": order.shipping_phone,
        "address": order.shipping_address,
        "city": order.shipping_city,
    }
    product_name = ", ".join(item.product_name for item in order.items)
    try:
        resp = sslcommerz.init_session(tran_id, float(order.total), customer, product_name, order.id)
    except requests.RequestException as e:
        logger.error("SSLCommerz init failed for order %s: %s", order.order_number, e)
        raise ValidationFailed("Unable to reach the payment gateway", status_code=502)

    gateway_url = resp.get("GatewayPageURL")
    if resp.get("status") != "SUCCESS" or not gateway_url:
        logger.warning("SSLCommerz rejected order %s: %s", order.order_number, resp.get("failedreason"))
        raise ValidationFailed(resp.get("failedreason") or "Unable to initialize payment")

    if order.payment_status == PaymentStatus.FAILED:
        order.payment_status = PaymentStatus.PENDING
    db.add(
        Payment(
            order_id=order.id,
            provider="sslcommerz",
            reference=tran_id,
            amount=order.total,
            currency=order.currency,
            status="initialized",
            raw_response={"sessionkey": resp.get("sessionkey"), "status": resp.get("status")},
        )
    )
    db.flush()
    return gateway_url, tran_id


def find_payment(db: Session, tran_id: Optional[str]) -> Payment:
    payment = None
    if tran_id:
        payment = db.query(Payment).filter(Payment.reference == tran_id).one_or_none()
    if not payment:
        raise NotFoundError("Payment not found")
    return payment


def record_failure(db: Session, payment: Payment, reason: str, status: str = "failed") -> None:
    payment.status = status
    order = payment.order
    if order.payment_status != PaymentStatus.PAID:
        order.payment_status = PaymentStatus.FAILED
        notifications.payment_failed(db, order)
    logger.info("Payment %s for order %s %s: %s", payment.reference, order.order_number, status, reason)
    db.flush()


def confirm_payment(db: Session, payment: Payment, val_id: str) -> bool:
    """Validate with the gateway and mark the order paid. Returns True on success."""
    order = payment.order
    if payment.status == "success" and order.payment_status == PaymentStatus.PAID:
        return True

    try:
        validation = sslcommerz.validate_transaction(val_id)
    except requests.RequestException as e:
        logger.error("SSLCommerz validation failed for %s: %s", payment.reference, e)
        raise ValidationFailed("Unable to reach the payment gateway", status_code=502)

    payment.raw_response = validation
    payment.val_id = val_id
    if not sslcommerz.is_validated(validation):
        record_failure(db, payment, "Validation failed")
        return False

    received = Decimal(str(validation.get("amount") or "0"))
    if abs(Decimal(str(order.total)) - received) > AMOUNT_TOLERANCE:
        record_failure(db, payment, f"Amount mismatch: expected {order.total}, received {received}")
        return False

    payment.status = "success"
    mark_order_paid(db, order, note=f"Paid online ({validation.get('card_type') or 'SSLCommerz'})")
    notifications.payment_succeeded(db, order, received)
    db.flush()
    return True


def handle_ipn(db: Session, payload: Mapping[str, str]) -> str:
    if not sslcommerz.verify_ipn_signature(payload):
        logger.warning("IPN with invalid signature for tran_id=%s", payload.get("tran_id"))
        raise ValidationFailed("Invalid signature")

    payment = find_payment(db, payload.get("tran_id"))
    status = (payload.get("status") or "").upper()
    if status in sslcommerz.VALID_STATUSES:
        return "success" if confirm_payment(db, payment, payload.get("val_id", "")) else "invalid"
    if status == "FAILED":
        record_failure(db, payment, "Payment failed by gateway")
        return "failed"
    if status == "CANCELLED":
        record_failure(db, payment, "Payment cancelled by user", status="cancelled")
        return "cancelled"
    raise ValidationFailed("Unknown payment status")
