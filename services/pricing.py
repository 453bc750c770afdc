from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Tuple

from sqlalchemy.orm import Session

from models.product import Product, JAR
from services import site_settings

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def _to_decimal(value: float | int | Decimal | None) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def price_line(product: Product, quantity: int, exchange_jars: int = 0) -> dict:
    """Price one line. Jar products charge a deposit for each jar not swapped for an empty."""
    unit_price = _to_decimal(product.price)
    exchange = min(max(exchange_jars or 0, 0), quantity)
    new_jars = 0
    deposit = ZERO
    if product.type == JAR:
        new_jars = max(quantity - exchange, 0)
        deposit = _money(_to_decimal(product.deposit) * new_jars)
    else:
        exchange = 0
    return {
        "unit_price": unit_price,
        "quantity": quantity,
        "line_total": _money(unit_price * quantity),
        "exchange_jars": exchange,
        "new_jars": new_jars,
        "deposit": deposit,
    }


def delivery_fee(db: Session, subtotal: Decimal, free_shipping: bool, payment_method: Optional[str] = None) -> Decimal:
    fee = ZERO
    threshold = site_settings.get_decimal(db, "shipping.freeShippingThreshold")
    if not free_shipping and not (threshold > 0 and subtotal >= threshold):
        fee = site_settings.get_decimal(db, "shipping.defaultRate")
    if payment_method == "COD":
        fee += site_settings.get_decimal(db, "shipping.codFee")
    return _money(fee)


def compute_totals(
    db: Session,
    lines: Iterable[Tuple[Product, int, int]],
    payment_method: Optional[str] = None,
    discount: Decimal = ZERO,
) -> dict:
    """Totals for (product, quantity, exchange_jars) lines."""
    priced = []
    subtotal = ZERO
    deposit_total = ZERO
    free_shipping = False
    for product, quantity, exchange_jars in lines:
        line = price_line(product, quantity, exchange_jars)
        priced.append(line)
        subtotal += line["line_total"]
        deposit_total += line["deposit"]
        free_shipping = free_shipping or bool(product.free_shipping)

    discount = min(_to_decimal(discount), subtotal)
    vat_rate = site_settings.get_decimal(db, "order.vatRate")
    vat = _money((subtotal - discount) * vat_rate / Decimal("100"))
    fee = delivery_fee(db, subtotal, free_shipping, payment_method) if priced else ZERO
    total = subtotal - discount + vat + deposit_total + fee
    return {
        "lines": priced,
        "subtotal": _money(subtotal),
        "deposit_total": _money(deposit_total),
        "discount": _money(discount),
        "vat": vat,
        "delivery_fee": fee,
        "total": _money(total),
        "free_shipping": free_shipping,
    }
