import math
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import case, or_
from sqlalchemy.orm import Session, joinedload

from core.db import get_db
from core.rate_limit import rate_limit
from models.brand import Brand
from models.product import Product
from schemas.product import ProductListOut, ProductOut, ProductDetailOut
from services.reviews import rating_stats

router = APIRouter(prefix="/products", tags=["products"])

SORT_COLUMNS = {
    "created_at": Product.created_at,
    "price": Product.price,
    "name": Product.name,
    "rating": Product.avg_rating,
    "popularity": Product.sold_count,
}


@router.get("/", response_model=ProductListOut, dependencies=[Depends(rate_limit("search"))])
def list_products(
    search: Optional[str] = Query(None, max_length=100),
    category: Optional[str] = None,
    brand: Optional[str] = Query(None, description="Brand slug"),
    type: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    in_stock: Optional[bool] = None,
    featured: Optional[bool] = None,
    free_shipping: Optional[bool] = None,
    sort: Literal["created_at", "price", "name", "rating", "popularity", "relevance"] = "created_at",
    order: Literal["asc", "desc"] = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=50),
    db: Session = Depends(get_db),
):
    query = (
        db.query(Product)
        .join(Brand, Brand.id == Product.brand_id)
        .filter(Product.is_active.is_(True), Brand.is_active.is_(True))
    )
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Product.name.ilike(term),
                Product.description.ilike(term),
                Product.sku.ilike(term),
                Brand.name.ilike(term),
            )
        )
    if category:
        query = query.filter(Product.category == category)
    if brand:
        query = query.filter(Brand.slug == brand)
    if type:
        query = query.filter(Product.type == type.upper())
    if min_price is not None:
        query = query.filter(Product.price >= min_price)
    if max_price is not None:
        query = query.filter(Product.price <= max_price)
    if in_stock is True:
        query = query.filter(Product.stock > 0)
    elif in_stock is False:
        query = query.filter(Product.stock <= 0)
    if featured is not None:
        query = query.filter(Product.featured.is_(featured))
    if free_shipping is not None:
        query = query.filter(Product.free_shipping.is_(free_shipping))

    total = query.count()
    if sort == "relevance":
        # name hits first, then featured, then newest; order is ignored
        ordering = [Product.featured.desc(), Product.created_at.desc(), Product.id.desc()]
        if search:
            ordering.insert(0, case((Product.name.ilike(f"%{search.strip()}%"), 0), else_=1))
        query = query.order_by(*ordering)
    else:
        column = SORT_COLUMNS[sort]
        query = query.order_by(column.asc() if order == "asc" else column.desc(), Product.id.desc())
    items = query.options(joinedload(Product.brand)).offset((page - 1) * limit).limit(limit).all()
    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if total else 0,
    }


@router.get("/{slug}", response_model=ProductDetailOut)
def get_product(slug: str, db: Session = Depends(get_db)):
    product = db.query(Product).filter(Product.slug == slug, Product.is_active.is_(True)).one_or_none()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    data = ProductOut.model_validate(product).model_dump()
    data["rating_stats"] = rating_stats(db, product.id)
    return data
