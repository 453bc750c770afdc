from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from models.order import Order, OrderStatus
from models.promo import PromoCode, DISCOUNT_PERCENTAGE
from services.exceptions import ValidationFailed

CENT = Decimal("0.01")


def compute_discount(promo: PromoCode, subtotal: Decimal) -> Decimal:
    value = Decimal(str(promo.discount_value))
    if promo.discount_type == DISCOUNT_PERCENTAGE:
        discount = subtotal * value / Decimal("100")
    else:
        discount = value
    if promo.max_discount is not None:
        discount = min(discount, Decimal(str(promo.max_discount)))
    return min(discount, subtotal).quantize(CENT, rounding=ROUND_HALF_UP)


def validate_promo(
    db: Session, code: str, subtotal: Decimal, user_id: Optional[int] = None, now: Optional[datetime] = None
) -> Tuple[PromoCode, Decimal]:
    """Look up a promo code and check it applies to this subtotal."""
    now = now or datetime.utcnow()
    promo = db.query(PromoCode).filter(PromoCode.code == code.strip().upper()).one_or_none()
    if not promo or not promo.is_active:
        raise ValidationFailed("Invalid promo code")
    if promo.starts_at and promo.starts_at > now:
        raise ValidationFailed("Promo code is not active yet")
    if promo.expires_at and promo.expires_at < now:
        raise ValidationFailed("Promo code has expired")
    if promo.usage_limit is not None and promo.usage_count >= promo.usage_limit:
        raise ValidationFailed("Promo code usage limit reached")
    if promo.per_user_limit is not None and user_id is not None:
        used = (
            db.query(func.count(Order.id))
            .filter(
                Order.promo_code_id == promo.id,
                Order.user_id == user_id,
                Order.status != OrderStatus.CANCELLED,
            )
            .scalar()
        )
        if used >= promo.per_user_limit:
            raise ValidationFailed("You have already used this promo code")
    if promo.min_order is not None and subtotal < Decimal(str(promo.min_order)):
        raise ValidationFailed(f"Minimum order of ৳{promo.min_order} required for this promo code")
    return promo, compute_discount(promo, subtotal)
