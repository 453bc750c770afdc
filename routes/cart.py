from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.db import get_db
from core.permissions import get_current_user, get_optional_user
from models.cart import Cart, CartItem
from models.product import Product
from models.user import User
from schemas.cart import CartItemAdd, CartItemUpdate, CartOut
from services.checkout import get_or_create_cart
from services.pricing import compute_totals

router = APIRouter(prefix="/cart", tags=["cart"])


def _serialize(db: Session, cart: Cart) -> dict:
    items = [ci for ci in cart.items if ci.product is not None]
    totals = compute_totals(db, [(ci.product, ci.quantity, ci.exchange_jars) for ci in items])
    out = []
    for ci, line in zip(items, totals["lines"]):
        product = ci.product
        out.append({
            "id": ci.id,
            "product_id": product.id,
            "name": product.name,
            "slug": product.slug,
            "brand_name": product.brand.name if product.brand else "",
            "type": product.type,
            "image": (product.images or [None])[0],
            "unit_price": line["unit_price"],
            "quantity": ci.quantity,
            "exchange_jars": line["exchange_jars"],
            "new_jars": line["new_jars"],
            "deposit": line["deposit"],
            "line_total": line["line_total"],
            "stock": product.stock,
        })
    return {
        "items": out,
        "item_count": sum(ci.quantity for ci in items),
        "subtotal": totals["subtotal"],
        "deposit_total": totals["deposit_total"],
        "vat": totals["vat"],
        "delivery_fee": totals["delivery_fee"],
        "total": totals["total"],
    }


def _touch(cart: Cart) -> None:
    cart.updated_at = datetime.utcnow()


@router.get("/", response_model=CartOut)
def get_cart(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    cart = get_or_create_cart(db, user.id)
    db.commit()
    return _serialize(db, cart)


@router.get("/count")
def cart_count(user: Optional[User] = Depends(get_optional_user), db: Session = Depends(get_db)):
    if user is None:
        return {"count": 0}
    cart = db.query(Cart).filter(Cart.user_id == user.id).one_or_none()
    return {"count": sum(ci.quantity for ci in cart.items) if cart else 0}


@router.post("/items", response_model=CartOut, status_code=201)
def add_item(data: CartItemAdd, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    product = db.query(Product).filter(Product.id == data.product_id, Product.is_active.is_(True)).one_or_none()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    cart = get_or_create_cart(db, user.id)
    item = next((ci for ci in cart.items if ci.product_id == product.id), None)
    quantity = data.quantity + (item.quantity if item else 0)
    if product.stock < quantity:
        raise HTTPException(status_code=400, detail="Insufficient stock")

    if item:
        item.quantity = quantity
        item.exchange_jars = min(item.exchange_jars + data.exchange_jars, quantity)
    else:
        cart.items.append(
            CartItem(product_id=product.id, quantity=quantity, exchange_jars=min(data.exchange_jars, quantity))
        )
    _touch(cart)
    db.commit()
    db.refresh(cart)
    return _serialize(db, cart)


@router.patch("/items/{item_id}", response_model=CartOut)
def update_item(
    item_id: int, data: CartItemUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    cart = get_or_create_cart(db, user.id)
    item = next((ci for ci in cart.items if ci.id == item_id), None)
    if not item:
        raise HTTPException(status_code=404, detail="Cart item not found")

    if data.quantity <= 0:
        cart.items.remove(item)
    else:
        if item.product.stock < data.quantity:
            raise HTTPException(status_code=400, detail="Insufficient stock")
        item.quantity = data.quantity
        exchange = data.exchange_jars if data.exchange_jars is not None else item.exchange_jars
        item.exchange_jars = min(exchange, data.quantity)
    _touch(cart)
    db.commit()
    db.refresh(cart)
    return _serialize(db, cart)


@router.delete("/items/{item_id}", response_model=CartOut)
def remove_item(item_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    cart = get_or_create_cart(db, user.id)
    item = next((ci for ci in cart.items if ci.id == item_id), None)
    if not item:
        raise HTTPException(status_code=404, detail="Cart item not found")
    cart.items.remove(item)
    _touch(cart)
    db.commit()
    db.refresh(cart)
    return _serialize(db, cart)


@router.delete("/", response_model=CartOut)
def clear_cart(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    cart = get_or_create_cart(db, user.id)
    cart.items.clear()
    _touch(cart)
    db.commit()
    db.refresh(cart)
    return _serialize(db, cart)
