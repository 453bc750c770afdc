from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.db import get_db
from models.brand import Brand
from models.product import Product
from schemas.brand import BrandOut
from schemas.product import ProductOut

router = APIRouter(prefix="/brands", tags=["brands"])


@router.get("/", response_model=List[BrandOut])
def list_brands(db: Session = Depends(get_db)):
    return db.query(Brand).filter(Brand.is_active.is_(True)).order_by(Brand.name).all()


@router.get("/{slug}")
def get_brand(slug: str, db: Session = Depends(get_db)):
    brand = db.query(Brand).filter(Brand.slug == slug, Brand.is_active.is_(True)).one_or_none()
    if not brand:
        raise HTTPException(status_code=404, detail="Brand not found")
    products = (
        db.query(Product)
        .filter(Product.brand_id == brand.id, Product.is_active.is_(True))
        .order_by(Product.featured.desc(), Product.name)
        .all()
    )
    return {
        "brand": BrandOut.model_validate(brand),
        "products": [ProductOut.model_validate(p) for p in products],
    }
