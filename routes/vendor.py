import logging
import re
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from core.db import get_db
from core.permissions import get_current_user, get_current_vendor
from models.brand import Brand
from models.order import Order
from models.order_item import OrderItem, ItemStatus
from models.product import Product
from models.user import User, ROLE_ADMIN, ROLE_VENDOR
from models.vendor import Vendor, VENDOR_PENDING
from schemas.brand import BrandOut, BrandUpdate
from schemas.order import OrderItemOut, VendorItemUpdate, VendorOrderListOut, VendorOrderOut
from schemas.product import ProductCreate, ProductOut, ProductUpdate
from schemas.vendor import VendorApply, VendorOut, VendorSettingsUpdate
from services import analytics, site_settings
from services.cloudinary import cloudinary_service, MAX_IMAGE_BYTES
from services.order_lifecycle import update_item_status

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vendor", tags=["vendor"])

MAX_PRODUCT_IMAGES = 5


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-") or "brand"


def _unique_brand_slug(db: Session, name: str) -> str:
    base = slugify(name)
    slug, n = base, 1
    while db.query(Brand.id).filter(Brand.slug == slug).first():
        n += 1
        slug = f"{base}-{n}"
    return slug


def _brand_ids(vendor: Vendor) -> List[int]:
    return [b.id for b in vendor.brands]


def _own_product(db: Session, vendor: Vendor, product_id: int) -> Product:
    product = (
        db.query(Product)
        .filter(Product.id == product_id, Product.brand_id.in_(_brand_ids(vendor)))
        .one_or_none()
    )
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


def _vendor_order(order: Order, vendor_id: int) -> dict:
    items = [i for i in order.items if i.vendor_id == vendor_id]
    active = [i for i in items if i.status not in ItemStatus.INACTIVE]
    return {
        "id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "payment_status": order.payment_status,
        "payment_method": order.payment_method,
        "shipping_name": order.shipping_name,
        "shipping_phone": order.shipping_phone,
        "shipping_address": order.shipping_address,
        "shipping_city": order.shipping_city,
        "shipping_district": order.shipping_district,
        "delivery_slot": order.delivery_slot,
        "created_at": order.created_at,
        "items": items,
        "vendor_subtotal": sum(float(i.total) for i in active),
        "vendor_item_count": sum(i.quantity for i in active),
    }


# --- registration and settings ---

@router.post("/apply", response_model=VendorOut, status_code=201)
def apply(data: VendorApply, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if user.role == ROLE_ADMIN:
        raise HTTPException(status_code=400, detail="Admins cannot register as vendors")
    if db.query(Vendor).filter(Vendor.user_id == user.id).one_or_none():
        raise HTTPException(status_code=409, detail="Vendor application already exists")

    vendor = Vendor(
        user_id=user.id,
        business_name=data.business_name,
        contact_email=data.contact_email or user.email,
        contact_phone=data.contact_phone,
        address=data.address,
        trade_license=data.trade_license,
        description=data.description,
        status=VENDOR_PENDING,
        commission_rate=site_settings.get_decimal(db, "commission.defaultRate"),
    )
    db.add(vendor)
    db.flush()
    brand_name = data.brand_name or data.business_name
    db.add(Brand(vendor_id=vendor.id, name=brand_name, slug=_unique_brand_slug(db, brand_name), is_active=True))
    user.role = ROLE_VENDOR
    db.commit()
    db.refresh(vendor)
    logger.info("Vendor application %s from user %s", vendor.id, user.id)
    return vendor


@router.get("/settings", response_model=VendorOut)
def get_settings(vendor: Vendor = Depends(get_current_vendor)):
    return vendor


@router.patch("/settings", response_model=VendorOut)
def update_settings(
    data: VendorSettingsUpdate, vendor: Vendor = Depends(get_current_vendor), db: Session = Depends(get_db)
):
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(vendor, field, value)
    db.commit()
    db.refresh(vendor)
    return vendor


# --- brands ---

@router.get("/brands", response_model=List[BrandOut])
def list_brands(vendor: Vendor = Depends(get_current_vendor)):
    return vendor.brands


@router.patch("/brands/{brand_id}", response_model=BrandOut)
def update_brand(
    brand_id: int, data: BrandUpdate, vendor: Vendor = Depends(get_current_vendor), db: Session = Depends(get_db)
):
    brand = db.query(Brand).filter(Brand.id == brand_id, Brand.vendor_id == vendor.id).one_or_none()
    if not brand:
        raise HTTPException(status_code=404, detail="Brand not found")
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(brand, field, value)
    db.commit()
    db.refresh(brand)
    return brand


# --- products ---

@router.get("/products", response_model=List[ProductOut])
def list_products(
    search: Optional[str] = Query(None, max_length=100),
    vendor: Vendor = Depends(get_current_vendor),
    db: Session = Depends(get_db),
):
    q = db.query(Product).filter(Product.brand_id.in_(_brand_ids(vendor)))
    if search:
        term = f"%{search.strip()}%"
        q = q.filter(or_(Product.name.ilike(term), Product.sku.ilike(term)))
    return q.order_by(Product.created_at.desc(), Product.id.desc()).all()


@router.post("/products", response_model=ProductOut, status_code=201)
def create_product(data: ProductCreate, vendor: Vendor = Depends(get_current_vendor), db: Session = Depends(get_db)):
    if data.brand_id not in _brand_ids(vendor):
        raise HTTPException(status_code=404, detail="Brand not found")
    if db.query(Product.id).filter(Product.slug == data.slug).first():
        raise HTTPException(status_code=409, detail="Product with this slug already exists")
    product = Product(**data.model_dump(), images=[], is_active=True)
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@router.get("/products/{product_id}", response_model=ProductOut)
def get_product(product_id: int, vendor: Vendor = Depends(get_current_vendor), db: Session = Depends(get_db)):
    return _own_product(db, vendor, product_id)


@router.patch("/products/{product_id}", response_model=ProductOut)
def update_product(
    product_id: int, data: ProductUpdate, vendor: Vendor = Depends(get_current_vendor), db: Session = Depends(get_db)
):
    product = _own_product(db, vendor, product_id)
    changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
    product_type = changes.get("type", product.type)
    deposit = changes.get("deposit", product.deposit)
    if product_type != "JAR" and deposit:
        if "deposit" in changes:
            raise HTTPException(status_code=400, detail="Deposit applies only to JAR products")
        changes["deposit"] = 0
    for field, value in changes.items():
        setattr(product, field, value)
    db.commit()
    db.refresh(product)
    return product


@router.delete("/products/{product_id}", status_code=204)
def delete_product(product_id: int, vendor: Vendor = Depends(get_current_vendor), db: Session = Depends(get_db)):
    product = _own_product(db, vendor, product_id)
    has_orders = db.query(OrderItem.id).filter(OrderItem.product_id == product.id).first()
    if has_orders:
        # keep the row for order history
        product.is_active = False
    else:
        db.delete(product)
    db.commit()


@router.post("/products/{product_id}/images", response_model=ProductOut)
async def upload_product_image(
    product_id: int,
    file: UploadFile = File(...),
    vendor: Vendor = Depends(get_current_vendor),
    db: Session = Depends(get_db),
):
    product = _own_product(db, vendor, product_id)
    images = list(product.images or [])
    if len(images) >= MAX_PRODUCT_IMAGES:
        raise HTTPException(status_code=400, detail=f"A product can have at most {MAX_PRODUCT_IMAGES} images")
    if not file.content_type or not file.content_type.startswith("image/"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File must be an image")
    file_data = await file.read()
    if len(file_data) > MAX_IMAGE_BYTES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File size must be less than 5MB")

    success, url, error = cloudinary_service.upload_product_image(file_data, product.id, len(images))
    if not success:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Failed to upload image: {error}")
    product.images = images + [url]
    db.commit()
    db.refresh(product)
    return product


@router.delete("/products/{product_id}/images/{index}", response_model=ProductOut)
def delete_product_image(
    product_id: int, index: int, vendor: Vendor = Depends(get_current_vendor), db: Session = Depends(get_db)
):
    product = _own_product(db, vendor, product_id)
    images = list(product.images or [])
    if index < 0 or index >= len(images):
        raise HTTPException(status_code=404, detail="Image not found")
    success, error = cloudinary_service.delete_product_image(product.id, index)
    if not success:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Failed to delete image: {error}")
    images.pop(index)
    product.images = images
    db.commit()
    db.refresh(product)
    return product


# --- orders ---

ORDER_SORTS = {
    "newest": Order.created_at.desc(),
    "oldest": Order.created_at.asc(),
    "total": Order.total.desc(),
}


@router.get("/orders", response_model=VendorOrderListOut)
def list_orders(
    status: Optional[str] = None,
    search: Optional[str] = Query(None, max_length=100),
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    sort: Literal["newest", "oldest", "total"] = "newest",
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    vendor: Vendor = Depends(get_current_vendor),
    db: Session = Depends(get_db),
):
    order_ids = db.query(OrderItem.order_id).filter(OrderItem.vendor_id == vendor.id)
    base = db.query(Order).filter(Order.id.in_(order_ids))
    if search:
        term = f"%{search.strip()}%"
        base = base.filter(or_(Order.order_number.ilike(term), Order.shipping_name.ilike(term), Order.shipping_phone.ilike(term)))
    if date_from:
        base = base.filter(Order.created_at >= date_from)
    if date_to:
        base = base.filter(Order.created_at <= date_to)

    counts = analytics.status_counts(db, base)
    q = base.filter(Order.status == status.upper()) if status else base
    total = q.count()
    orders = q.order_by(ORDER_SORTS[sort], Order.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "items": [_vendor_order(o, vendor.id) for o in orders],
        "total": total,
        "page": page,
        "limit": limit,
        "status_counts": counts,
    }


@router.get("/orders/{order_id}", response_model=VendorOrderOut)
def get_order(order_id: int, vendor: Vendor = Depends(get_current_vendor), db: Session = Depends(get_db)):
    order = db.get(Order, order_id)
    if not order or not any(i.vendor_id == vendor.id for i in order.items):
        raise HTTPException(status_code=404, detail="Order not found")
    return _vendor_order(order, vendor.id)


@router.patch("/order-items/{item_id}", response_model=OrderItemOut)
def update_order_item(
    item_id: int,
    data: VendorItemUpdate,
    vendor: Vendor = Depends(get_current_vendor),
    db: Session = Depends(get_db),
):
    item = db.query(OrderItem).filter(OrderItem.id == item_id, OrderItem.vendor_id == vendor.id).one_or_none()
    if not item:
        raise HTTPException(status_code=404, detail="Order item not found")
    update_item_status(db, item, data.status, actor_id=vendor.user_id)
    db.commit()
    db.refresh(item)
    return item


@router.get("/analytics")
def vendor_analytics(
    period: int = Query(30, ge=1, le=365), vendor: Vendor = Depends(get_current_vendor), db: Session = Depends(get_db)
):
    return analytics.vendor_analytics(db, vendor, period)
