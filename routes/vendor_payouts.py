from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.db import get_db
from core.permissions import get_current_vendor
from models.payout import Payout
from models.vendor import Vendor
from schemas.vendor import PayoutCreate, PayoutListOut, PayoutOut
from services import payouts as payout_service

router = APIRouter(prefix="/vendor", tags=["vendor payouts"])


@router.get("/earnings")
def earnings(
    period: int = Query(30, ge=1, le=365), vendor: Vendor = Depends(get_current_vendor), db: Session = Depends(get_db)
):
    report = payout_service.earnings_report(db, vendor, period)
    report["recent_payouts"] = [PayoutOut.model_validate(p).model_dump() for p in report["recent_payouts"]]
    return report


@router.get("/payouts", response_model=PayoutListOut)
def list_payouts(
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    vendor: Vendor = Depends(get_current_vendor),
    db: Session = Depends(get_db),
):
    q = db.query(Payout).filter(Payout.vendor_id == vendor.id)
    if status:
        q = q.filter(Payout.status == status.upper())
    total = q.count()
    items = q.order_by(Payout.created_at.desc(), Payout.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "stats": payout_service.payout_stats(db, vendor.id),
        "balance": vendor.balance,
        "minimum_payout": payout_service.minimum_payout(db),
    }


@router.post("/payouts", response_model=PayoutOut, status_code=201)
def request_payout(data: PayoutCreate, vendor: Vendor = Depends(get_current_vendor), db: Session = Depends(get_db)):
    payout = payout_service.request_payout(db, vendor, Decimal(str(data.amount)), data.method, data.note)
    db.commit()
    db.refresh(payout)
    return payout


@router.post("/payouts/{payout_id}/cancel", response_model=PayoutOut)
def cancel_payout(payout_id: int, vendor: Vendor = Depends(get_current_vendor), db: Session = Depends(get_db)):
    payout = payout_service.cancel_payout(db, vendor, payout_id)
    db.commit()
    db.refresh(payout)
    return payout
