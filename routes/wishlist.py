from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session, joinedload

from core.db import get_db
from core.permissions import get_current_user
from models.product import Product
from models.user import User
from models.wishlist import WishlistItem
from schemas.wishlist import WishlistAdd, WishlistItemOut

router = APIRouter(prefix="/wishlist", tags=["wishlist"])


def _serialize(entry: WishlistItem) -> dict:
    product = entry.product
    return {
        "id": entry.id,
        "product": product,
        "available": bool(product.is_active and product.stock > 0),
        "created_at": entry.created_at,
    }


@router.get("/", response_model=List[WishlistItemOut])
def list_wishlist(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    entries = (
        db.query(WishlistItem)
        .options(joinedload(WishlistItem.product))
        .filter(WishlistItem.user_id == user.id)
        .order_by(WishlistItem.created_at.desc(), WishlistItem.id.desc())
        .all()
    )
    return [_serialize(e) for e in entries]


@router.post("/", response_model=WishlistItemOut, status_code=201)
def add_to_wishlist(data: WishlistAdd, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    product = db.get(Product, data.product_id)
    if not product or not product.is_active:
        raise HTTPException(status_code=404, detail="Product not found")
    exists = (
        db.query(WishlistItem)
        .filter(WishlistItem.user_id == user.id, WishlistItem.product_id == product.id)
        .one_or_none()
    )
    if exists:
        raise HTTPException(status_code=409, detail="Product already in wishlist")
    entry = WishlistItem(user_id=user.id, product_id=product.id)
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return _serialize(entry)


@router.delete("/{product_id}", status_code=204)
def remove_from_wishlist(product_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    entry = (
        db.query(WishlistItem)
        .filter(WishlistItem.user_id == user.id, WishlistItem.product_id == product_id)
        .one_or_none()
    )
    if not entry:
        raise HTTPException(status_code=404, detail="Product not in wishlist")
    db.delete(entry)
    db.commit()
