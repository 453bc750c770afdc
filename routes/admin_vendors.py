import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session

from core.db import get_db
from core.permissions import require_admin
from core.rate_limit import rate_limit
from models.order_item import OrderItem
from models.payout import Payout
from models.user import User, ROLE_CUSTOMER
from models.vendor import Vendor, VENDOR_APPROVED, VENDOR_SUSPENDED
from schemas.vendor import AdminVendorUpdate, PayoutOut, PayoutProcess, VendorListOut, VendorOut
from services.email import send_templated_email
from services.payouts import process_payout, vendor_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(rate_limit("admin"))])


def _get_vendor(db: Session, vendor_id: int) -> Vendor:
    vendor = db.get(Vendor, vendor_id)
    if not vendor:
        raise HTTPException(status_code=404, detail="Vendor not found")
    return vendor


@router.get("/vendors", response_model=VendorListOut)
def list_vendors(
    status: Optional[str] = None,
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    q = db.query(Vendor)
    if status:
        q = q.filter(Vendor.status == status.upper())
    if search:
        term = f"%{search.strip()}%"
        q = q.filter(or_(Vendor.business_name.ilike(term), Vendor.contact_email.ilike(term), Vendor.contact_phone.ilike(term)))
    total = q.count()
    items = q.order_by(Vendor.created_at.desc(), Vendor.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {"items": items, "total": total, "page": page, "limit": limit}


@router.get("/vendors/{vendor_id}", response_model=VendorOut)
def get_vendor(vendor_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return _get_vendor(db, vendor_id)


@router.patch("/vendors/{vendor_id}", response_model=VendorOut)
def update_vendor(
    vendor_id: int, data: AdminVendorUpdate, admin: User = Depends(require_admin), db: Session = Depends(get_db)
):
    vendor = _get_vendor(db, vendor_id)
    if data.commission_rate is not None:
        vendor.commission_rate = data.commission_rate

    status_changed = data.status is not None and data.status != vendor.status
    if status_changed:
        vendor.status = data.status
        if data.status == VENDOR_APPROVED and vendor.approved_at is None:
            vendor.approved_at = datetime.utcnow()
        logger.info("Vendor %s status set to %s by admin %s", vendor.id, data.status, admin.id)

    db.commit()
    db.refresh(vendor)
    if status_changed:
        send_templated_email(
            vendor_email(vendor),
            f"Vendor account {vendor.status.lower()}",
            "emails/vendor_status.txt",
            {"business_name": vendor.business_name, "status": vendor.status},
        )
    return vendor


@router.delete("/vendors/{vendor_id}")
def delete_vendor(vendor_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    vendor = _get_vendor(db, vendor_id)
    has_sales = db.query(OrderItem.id).filter(OrderItem.vendor_id == vendor.id).first()
    if has_sales:
        vendor.status = VENDOR_SUSPENDED
        db.commit()
        return {"detail": "Vendor suspended", "deleted": False}

    user = vendor.user
    for brand in vendor.brands:
        brand.vendor_id = None
        brand.is_active = False
    if user is not None:
        user.role = ROLE_CUSTOMER
    db.delete(vendor)
    db.commit()
    logger.info("Vendor %s deleted by admin %s", vendor_id, admin.id)
    return {"detail": "Vendor deleted", "deleted": True}


@router.get("/payouts")
def list_payouts(
    status: Optional[str] = None,
    vendor_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    q = db.query(Payout)
    if status:
        q = q.filter(Payout.status == status.upper())
    if vendor_id:
        q = q.filter(Payout.vendor_id == vendor_id)
    total = q.count()
    payouts = q.order_by(Payout.created_at.desc(), Payout.id.desc()).offset((page - 1) * limit).limit(limit).all()
    items = []
    for payout in payouts:
        row = PayoutOut.model_validate(payout).model_dump()
        row["business_name"] = payout.vendor.business_name if payout.vendor else None
        items.append(row)
    return {"items": items, "total": total, "page": page, "limit": limit}


@router.patch("/payouts/{payout_id}", response_model=PayoutOut)
def update_payout(
    payout_id: int, data: PayoutProcess, admin: User = Depends(require_admin), db: Session = Depends(get_db)
):
    payout = db.get(Payout, payout_id)
    if not payout:
        raise HTTPException(status_code=404, detail="Payout not found")
    process_payout(db, payout, data.status, reference=data.reference, admin_note=data.admin_note)
    db.commit()
    db.refresh(payout)
    return payout
