from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session, joinedload

from core.db import get_db
from core.permissions import get_current_user
from models.product import Product
from models.review import Review
from models.user import User
from schemas.review import ReviewCreate, ReviewListOut, ReviewOut
from services import reviews as review_service

router = APIRouter(prefix="/reviews", tags=["reviews"])

SORTS = {
    "newest": (Review.created_at.desc(),),
    "oldest": (Review.created_at.asc(),),
    "highest": (Review.rating.desc(), Review.created_at.desc()),
    "lowest": (Review.rating.asc(), Review.created_at.desc()),
}


@router.get("/product/{product_id}", response_model=ReviewListOut)
def list_product_reviews(
    product_id: int,
    sort: Literal["newest", "oldest", "highest", "lowest"] = "newest",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
):
    if not db.get(Product, product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    q = db.query(Review).filter(Review.product_id == product_id, Review.is_approved.is_(True))
    total = q.count()
    items = (
        q.options(joinedload(Review.user))
        .order_by(*SORTS[sort], Review.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "stats": review_service.rating_stats(db, product_id),
    }


@router.post("/", response_model=ReviewOut, status_code=201)
def submit_review(data: ReviewCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    review = review_service.create_review(db, user, data.product_id, data.rating, data.title, data.content)
    db.commit()
    db.refresh(review)
    return review
