"""Route guards driven by the runtime platform settings."""
from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from core.db import get_db
from services import site_settings

FEATURE_FLAGS = {
    "reviews": "features.enableReviews",
    "wishlist": "features.enableWishlist",
    "subscriptions": "features.enableSubscriptions",
    "tracker": "features.enableTracker",
}


def require_feature(feature: str):
    """Dependency that answers 404 while the feature's flag is switched off."""
    key = FEATURE_FLAGS[feature]

    def _dependency(db: Session = Depends(get_db)) -> None:
        if not site_settings.get_bool(db, key):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"The {feature} feature is disabled")

    return _dependency


def block_during_maintenance(db: Session = Depends(get_db)) -> None:
    if site_settings.get_bool(db, "platform.maintenanceMode"):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="The store is under maintenance. Please try again later.",
        )
