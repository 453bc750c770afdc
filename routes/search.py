"""Typeahead suggestions and sidebar facet counts for the storefront search."""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session, joinedload

from core.db import get_db
from core.rate_limit import rate_limit
from models.brand import Brand
from models.product import Product
from schemas.search import FacetsOut, SuggestionsOut

router = APIRouter(prefix="/search", tags=["search"], dependencies=[Depends(rate_limit("search"))])

MIN_QUERY_LENGTH = 2
MAX_PRODUCT_SUGGESTIONS = 5
MAX_BRAND_SUGGESTIONS = 3
MAX_CATEGORY_SUGGESTIONS = 3


def _label(value: str) -> str:
    return value.replace("_", " ").replace("-", " ").title()


def _visible(query):
    return query.select_from(Product).join(Brand, Brand.id == Product.brand_id).filter(
        Product.is_active.is_(True), Brand.is_active.is_(True)
    )


@router.get("/suggest", response_model=SuggestionsOut)
def suggest(q: str = Query("", max_length=100), db: Session = Depends(get_db)):
    term = q.strip()
    if len(term) < MIN_QUERY_LENGTH:
        return SuggestionsOut()
    like = f"%{term}%"

    products = (
        _visible(db.query(Product))
        .filter(or_(Product.name.ilike(like), Product.description.ilike(like)))
        .options(joinedload(Product.brand))
        .order_by(Product.featured.desc(), Product.sold_count.desc(), Product.id)
        .limit(MAX_PRODUCT_SUGGESTIONS)
        .all()
    )
    brands = (
        db.query(Brand, func.count(Product.id))
        .outerjoin(Product, and_(Product.brand_id == Brand.id, Product.is_active.is_(True)))
        .filter(Brand.is_active.is_(True), Brand.name.ilike(like))
        .group_by(Brand.id)
        .order_by(Brand.name)
        .limit(MAX_BRAND_SUGGESTIONS)
        .all()
    )
    categories = (
        _visible(db.query(Product.category))
        .filter(Product.category.isnot(None), Product.category.ilike(like))
        .distinct()
        .order_by(Product.category)
        .limit(MAX_CATEGORY_SUGGESTIONS)
        .all()
    )

    return {
        "products": [
            {
                "id": p.id,
                "name": p.name,
                "slug": p.slug,
                "price": p.price,
                "image": (p.images or [None])[0],
                "brand": p.brand.name,
            }
            for p in products
        ],
        "brands": [
            {"id": b.id, "name": b.name, "slug": b.slug, "logo_url": b.logo_url, "product_count": count}
            for b, count in brands
        ],
        "categories": [{"value": c, "label": _label(c)} for (c,) in categories],
    }


@router.get("/facets", response_model=FacetsOut)
def facets(search: Optional[str] = Query(None, max_length=100), db: Session = Depends(get_db)):
    """Counts per brand, category and type for the products a search matches."""

    def matching(*columns):
        query = _visible(db.query(*columns))
        if search and search.strip():
            like = f"%{search.strip()}%"
            query = query.filter(
                or_(Product.name.ilike(like), Product.description.ilike(like), Brand.name.ilike(like))
            )
        return query

    count = func.count(Product.id)
    brands = matching(Brand.slug, Brand.name, count).group_by(Brand.slug, Brand.name).order_by(Brand.name).all()
    categories = (
        matching(Product.category, count)
        .filter(Product.category.isnot(None))
        .group_by(Product.category)
        .order_by(Product.category)
        .all()
    )
    types = matching(Product.type, count).group_by(Product.type).order_by(Product.type).all()
    low, high = _visible(db.query(func.min(Product.price), func.max(Product.price))).one()

    return {
        "brands": [{"value": slug, "label": name, "count": n} for slug, name, n in brands],
        "categories": [{"value": c, "label": _label(c), "count": n} for c, n in categories],
        "types": [{"value": t, "label": _label(t), "count": n} for t, n in types],
        "price_range": {"min": low or 0, "max": high or 0},
    }
