import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session

from core.db import get_db
from core.permissions import require_admin
from core.rate_limit import rate_limit
from models.user import User, ROLE_ADMIN
from schemas.users import AdminUserUpdate, UserListOut, UserOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/users", tags=["admin"], dependencies=[Depends(rate_limit("admin"))])


@router.get("/", response_model=UserListOut)
def list_users(
    search: Optional[str] = Query(None, max_length=100),
    role: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    q = db.query(User)
    if role:
        q = q.filter(User.role == role.upper())
    if search:
        term = f"%{search.strip()}%"
        q = q.filter(
            or_(User.email.ilike(term), User.first_name.ilike(term), User.last_name.ilike(term), User.phone.ilike(term))
        )
    total = q.count()
    items = q.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {"items": items, "total": total, "page": page, "limit": limit}


@router.patch("/{user_id}", response_model=UserOut)
def update_user(user_id: int, data: AdminUserUpdate, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if user.id == admin.id:
        if data.role is not None and data.role != ROLE_ADMIN:
            raise HTTPException(status_code=400, detail="You cannot change your own role")
        if data.is_active is False:
            raise HTTPException(status_code=400, detail="You cannot deactivate your own account")

    if data.role is not None:
        user.role = data.role
    if data.is_active is not None:
        user.is_active = data.is_active
    db.commit()
    db.refresh(user)
    logger.info("User %s updated by admin %s", user.id, admin.id)
    return user
