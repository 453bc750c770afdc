from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.db import get_db
from core.permissions import get_current_user
from models.user import User
from schemas.notification import NotificationListOut, NotificationOut
from services import notifications as notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/", response_model=NotificationListOut)
def list_notifications(
    unread_only: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return notification_service.list_for_user(db, user.id, unread_only=unread_only, page=page, limit=limit)


@router.patch("/{notification_id}/read", response_model=NotificationOut)
def mark_read(notification_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    notification = notification_service.get_for_user(db, user.id, notification_id)
    notification.is_read = True
    db.commit()
    return notification


@router.post("/read-all")
def mark_all_read(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    count = notification_service.mark_all_read(db, user.id)
    db.commit()
    return {"updated": count}


@router.delete("/{notification_id}", status_code=204)
def delete_notification(notification_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    db.delete(notification_service.get_for_user(db, user.id, notification_id))
    db.commit()
