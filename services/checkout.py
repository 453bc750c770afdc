import logging
import secrets
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from models.address import Address
from models.cart import Cart
from models.order import Order, OrderStatus, OrderStatusHistory, JarDeposit
from models.order_item import OrderItem
from models.product import JAR
from models.user import User
from services import notifications, site_settings
from services.email import send_templated_email
from services.exceptions import ValidationFailed
from services.pricing import compute_totals, price_line
from services.promo import validate_promo

logger = logging.getLogger(__name__)


def get_or_create_cart(db: Session, user_id: int) -> Cart:
    cart = db.query(Cart).filter(Cart.user_id == user_id).one_or_none()
    if cart is None:
        cart = Cart(user_id=user_id)
        db.add(cart)
        db.flush()
    return cart


def generate_order_number(now: Optional[datetime] = None) -> str:
    now = now or datetime.utcnow()
    return f"PN{now:%y%m%d}-{secrets.token_hex(3).upper()}"


def place_order(
    db: Session,
    user: User,
    address_id: int,
    payment_method: str = "COD",
    delivery_slot: Optional[str] = None,
    customer_note: Optional[str] = None,
    promo_code: Optional[str] = None,
) -> Order:
    """Turn the user's cart into an order, reserving stock and clearing the cart."""
    cart = db.query(Cart).filter(Cart.user_id == user.id).one_or_none()
    if cart is None or not cart.items:
        raise ValidationFailed("Cart is empty")

    address = db.query(Address).filter(Address.id == address_id, Address.user_id == user.id).one_or_none()
    if not address:
        raise ValidationFailed("Invalid address")

    if payment_method == "COD" and not site_settings.get_bool(db, "shipping.enableCOD"):
        raise ValidationFailed("Cash on delivery is not available")

    max_items = site_settings.get_int(db, "order.maxOrderItems")
    if sum(ci.quantity for ci in cart.items) > max_items:
        raise ValidationFailed(f"Orders are limited to {max_items} items")

    for ci in cart.items:
        product = ci.product
        if not product or not product.is_active or product.stock < ci.quantity:
            name = product.name if product else "A product"
            raise ValidationFailed(f"{name} is out of stock or has insufficient quantity")

    lines = [(ci.product, ci.quantity, ci.exchange_jars) for ci in cart.items]
    subtotal = compute_totals(db, lines)["subtotal"]

    min_value = site_settings.get_decimal(db, "order.minOrderValue")
    if subtotal < min_value:
        raise ValidationFailed(f"Minimum order value is ৳{min_value}")

    promo = None
    discount = Decimal("0.00")
    if promo_code:
        promo, discount = validate_promo(db, promo_code, subtotal, user.id)

    totals = compute_totals(db, lines, payment_method=payment_method, discount=discount)

    order = Order(
        order_number=generate_order_number(),
        user_id=user.id,
        address_id=address.id,
        email=user.email,
        shipping_name=address.name,
        shipping_phone=address.phone,
        shipping_address=address.address,
        shipping_city=address.city,
        shipping_district=address.district,
        status=OrderStatus.PENDING,
        payment_method=payment_method,
        subtotal=totals["subtotal"],
        discount=totals["discount"],
        vat=totals["vat"],
        deposit_total=totals["deposit_total"],
        delivery_fee=totals["delivery_fee"],
        total=totals["total"],
        promo_code_id=promo.id if promo else None,
        delivery_slot=delivery_slot,
        customer_note=customer_note,
    )
    order.history.append(OrderStatusHistory(status=OrderStatus.PENDING, note="Order placed", created_by=user.id))
    db.add(order)
    db.flush()

    ordered = []
    for ci in cart.items:
        product = ci.product
        ordered.append(product)
        line = price_line(product, ci.quantity, ci.exchange_jars)
        brand = product.brand
        order.items.append(
            OrderItem(
                product_id=product.id,
                vendor_id=brand.vendor_id if brand else None,
                product_name=product.name,
                brand_name=brand.name if brand else "",
                quantity=ci.quantity,
                exchange_jars=line["exchange_jars"],
                unit_price=line["unit_price"],
                deposit=line["deposit"],
                total=line["line_total"],
            )
        )
        if product.type == JAR and line["new_jars"] > 0:
            db.add(
                JarDeposit(
                    user_id=user.id,
                    order_id=order.id,
                    product_id=product.id,
                    jar_type=f"{product.volume_ml}ml" if product.volume_ml else "standard",
                    quantity=line["new_jars"],
                    amount=line["deposit"],
                )
            )
        product.stock -= ci.quantity
        product.sold_count = (product.sold_count or 0) + ci.quantity

    if promo:
        promo.usage_count = (promo.usage_count or 0) + 1

    cart.items.clear()
    notifications.alert_vendors(db, order, ordered)
    db.flush()
    logger.info("Order %s placed by user %s total=%s method=%s", order.order_number, user.id, order.total, payment_method)

    if site_settings.get_bool(db, "email.orderConfirmation"):
        send_templated_email(
            user.email,
            f"Order {order.order_number} received",
            "emails/order_confirmation.txt",
            {"first_name": user.first_name, "order": order, "items": order.items},
        )
    return order
