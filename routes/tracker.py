from typing import Literal

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.db import get_db
from core.permissions import get_current_user
from models.user import User
from schemas.tracker import IntakeCreate, TrackerLogOut, TrackerSettingsOut, TrackerSettingsUpdate
from services import tracker as tracker_service

router = APIRouter(prefix="/tracker", tags=["tracker"])


@router.get("/")
def get_tracker(
    view: Literal["today", "week", "month"] = "today",
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    data = tracker_service.summary(db, user.id, view)
    db.commit()
    data["settings"] = TrackerSettingsOut.model_validate(data["settings"]).model_dump()
    return data


@router.post("/log", response_model=TrackerLogOut, status_code=201)
def log_intake(data: IntakeCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    log = tracker_service.log_intake(db, user.id, data.amount_ml, data.type, data.time)
    db.commit()
    db.refresh(log)
    return log


@router.delete("/log/last", response_model=TrackerLogOut)
def undo_last(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    log = tracker_service.undo_last_entry(db, user.id)
    db.commit()
    db.refresh(log)
    return log


@router.get("/settings", response_model=TrackerSettingsOut)
def get_settings(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    tracker_settings = tracker_service.get_settings(db, user.id)
    db.commit()
    return tracker_settings


@router.patch("/settings", response_model=TrackerSettingsOut)
def update_settings(
    data: TrackerSettingsUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
    tracker_settings = tracker_service.update_settings(db, user.id, changes)
    db.commit()
    db.refresh(tracker_settings)
    return tracker_settings
