from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from core.db import get_db
from core.permissions import require_admin
from core.rate_limit import rate_limit
from models.user import User
from schemas.site_settings import SettingsReset, SettingsUpdate
from services import analytics, site_settings

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(rate_limit("admin"))])


@router.get("/settings")
def get_settings(
    category: Optional[str] = Query(None, pattern="^[a-z]+$"),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return {"settings": site_settings.list_settings(db, category), "categories": list(site_settings.CATEGORIES)}


@router.put("/settings")
def update_settings(data: SettingsUpdate, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    updated = site_settings.update_settings(db, data.settings, updated_by=admin.id)
    db.commit()
    return {"updated": updated, "settings": site_settings.list_settings(db)}


@router.post("/settings/reset")
def reset_settings(data: SettingsReset, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    if data.all:
        count = site_settings.reset_settings(db)
    elif data.keys or data.category:
        count = site_settings.reset_settings(db, keys=data.keys, category=data.category)
    else:
        raise HTTPException(status_code=400, detail="Provide keys, a category or all=true")
    db.commit()
    return {"reset": count, "settings": site_settings.list_settings(db)}


@router.get("/analytics")
def platform_analytics(
    period: int = Query(30, ge=1, le=365), admin: User = Depends(require_admin), db: Session = Depends(get_db)
):
    return analytics.platform_analytics(db, period)
