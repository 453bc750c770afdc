from decimal import Decimal

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.db import get_db
from core.permissions import get_current_user
from models.user import User
from schemas.promo import PromoCheckRequest, PromoCheckResponse
from services.promo import validate_promo

router = APIRouter(prefix="/promos", tags=["promos"])


@router.post("/validate", response_model=PromoCheckResponse)
def check_promo(data: PromoCheckRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    promo, discount = validate_promo(db, data.code, Decimal(str(data.subtotal)), user_id=user.id)
    return {
        "code": promo.code,
        "discount": discount,
        "discount_type": promo.discount_type,
        "discount_value": promo.discount_value,
    }
