import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session

from core.db import get_db
from core.permissions import require_admin
from core.rate_limit import rate_limit
from models.brand import Brand
from models.order import Order
from models.product import Product
from models.promo import PromoCode
from models.review import Review
from models.user import User
from schemas.product import AdminProductUpdate, ProductListOut, ProductOut
from schemas.promo import PromoCreate, PromoOut, PromoUpdate
from schemas.review import AdminReviewListOut, AdminReviewOut, ReviewModeration
from services import reviews as review_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(rate_limit("admin"))])


# --- products ---

@router.get("/products", response_model=ProductListOut)
def list_products(
    search: Optional[str] = Query(None, max_length=100),
    brand_id: Optional[int] = None,
    is_active: Optional[bool] = None,
    featured: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    q = db.query(Product).join(Brand, Brand.id == Product.brand_id)
    if search:
        term = f"%{search.strip()}%"
        q = q.filter(or_(Product.name.ilike(term), Product.sku.ilike(term), Brand.name.ilike(term)))
    if brand_id:
        q = q.filter(Product.brand_id == brand_id)
    if is_active is not None:
        q = q.filter(Product.is_active.is_(is_active))
    if featured is not None:
        q = q.filter(Product.featured.is_(featured))
    total = q.count()
    items = q.order_by(Product.created_at.desc(), Product.id.desc()).offset((page - 1) * limit).limit(limit).all()
    pages = (total + limit - 1) // limit
    return {"items": items, "total": total, "page": page, "limit": limit, "pages": pages}


@router.patch("/products/{product_id}", response_model=ProductOut)
def update_product(
    product_id: int, data: AdminProductUpdate, admin: User = Depends(require_admin), db: Session = Depends(get_db)
):
    product = db.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(product, field, value)
    db.commit()
    db.refresh(product)
    return product


# --- reviews ---

def _get_review(db: Session, review_id: int) -> Review:
    review = db.get(Review, review_id)
    if not review:
        raise HTTPException(status_code=404, detail="Review not found")
    return review


@router.get("/reviews", response_model=AdminReviewListOut)
def list_reviews(
    state: Optional[str] = Query(None, pattern="^(pending|approved|rejected)$"),
    rating: Optional[int] = Query(None, ge=1, le=5),
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    q = db.query(Review)
    if state == "approved":
        q = q.filter(Review.is_approved.is_(True))
    elif state == "rejected":
        q = q.filter(Review.is_approved.is_(False), Review.rejection_reason.isnot(None))
    elif state == "pending":
        q = q.filter(Review.is_approved.is_(False), Review.rejection_reason.is_(None))
    if rating:
        q = q.filter(Review.rating == rating)
    if search:
        term = f"%{search.strip()}%"
        q = q.filter(or_(Review.title.ilike(term), Review.content.ilike(term)))
    total = q.count()
    items = q.order_by(Review.created_at.desc(), Review.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {"items": items, "total": total, "page": page, "limit": limit}


@router.patch("/reviews/{review_id}", response_model=AdminReviewOut)
def moderate_review(
    review_id: int, data: ReviewModeration, admin: User = Depends(require_admin), db: Session = Depends(get_db)
):
    review = _get_review(db, review_id)
    review_service.moderate_review(db, review, data.action, data.rejection_reason)
    db.commit()
    db.refresh(review)
    return review


@router.delete("/reviews/{review_id}", status_code=204)
def delete_review(review_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    review = _get_review(db, review_id)
    review_service.delete_review(db, review)
    db.commit()


# --- promo codes ---

def _get_promo(db: Session, promo_id: int) -> PromoCode:
    promo = db.get(PromoCode, promo_id)
    if not promo:
        raise HTTPException(status_code=404, detail="Promo code not found")
    return promo


@router.get("/promos", response_model=List[PromoOut])
def list_promos(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return db.query(PromoCode).order_by(PromoCode.created_at.desc(), PromoCode.id.desc()).all()


@router.post("/promos", response_model=PromoOut, status_code=201)
def create_promo(data: PromoCreate, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    if db.query(PromoCode.id).filter(PromoCode.code == data.code).first():
        raise HTTPException(status_code=409, detail="Promo code already exists")
    promo = PromoCode(**data.model_dump(), usage_count=0)
    db.add(promo)
    db.commit()
    db.refresh(promo)
    logger.info("Promo %s created by admin %s", promo.code, admin.id)
    return promo


@router.patch("/promos/{promo_id}", response_model=PromoOut)
def update_promo(
    promo_id: int, data: PromoUpdate, admin: User = Depends(require_admin), db: Session = Depends(get_db)
):
    promo = _get_promo(db, promo_id)
    changes = data.model_dump(exclude_unset=True)
    discount_type = changes.get("discount_type") or promo.discount_type
    discount_value = changes.get("discount_value") or promo.discount_value
    if discount_type == "percentage" and float(discount_value) > 100:
        raise HTTPException(status_code=400, detail="Percentage discount cannot exceed 100")
    for field, value in changes.items():
        setattr(promo, field, value)
    db.commit()
    db.refresh(promo)
    return promo


@router.delete("/promos/{promo_id}", status_code=204)
def delete_promo(promo_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    promo = _get_promo(db, promo_id)
    if db.query(Order.id).filter(Order.promo_code_id == promo.id).first():
        promo.is_active = False
    else:
        db.delete(promo)
    db.commit()
