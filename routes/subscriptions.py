from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.db import get_db
from core.permissions import get_current_user
from models.subscription import Subscription
from models.user import User
from schemas.subscription import SubscriptionAction, SubscriptionCreate, SubscriptionOut
from services import subscriptions as subscription_service

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.get("/", response_model=List[SubscriptionOut])
def list_subscriptions(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return (
        db.query(Subscription)
        .filter(Subscription.user_id == user.id)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .all()
    )


@router.post("/", response_model=SubscriptionOut, status_code=201)
def create_subscription(
    data: SubscriptionCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    subscription = subscription_service.create_subscription(
        db,
        user.id,
        [item.model_dump() for item in data.items],
        data.address_id,
        frequency=data.frequency,
        preferred_slot=data.preferred_slot,
    )
    db.commit()
    db.refresh(subscription)
    return subscription


@router.patch("/{subscription_id}", response_model=SubscriptionOut)
def update_subscription(
    subscription_id: int,
    data: SubscriptionAction,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    subscription = (
        db.query(Subscription)
        .filter(Subscription.id == subscription_id, Subscription.user_id == user.id)
        .one_or_none()
    )
    if not subscription:
        raise HTTPException(status_code=404, detail="Subscription not found")
    subscription_service.change_status(db, subscription, data.action)
    db.commit()
    db.refresh(subscription)
    return subscription
