import hmac
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from core.config import settings
from core.db import get_db
from services.cleanup import run_cleanup

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


def _check_secret(authorization: Optional[str]) -> None:
    if not settings.CRON_SECRET:
        return
    expected = f"Bearer {settings.CRON_SECRET}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")


def _run(db: Session) -> dict:
    now = datetime.utcnow()
    results = run_cleanup(db, now)
    db.commit()
    return {
        "success": True,
        "message": "Cleanup completed",
        "results": results,
        "timestamp": now.isoformat(),
    }


@router.post("/cleanup")
def cleanup(authorization: Optional[str] = Header(None), db: Session = Depends(get_db)):
    _check_secret(authorization)
    return _run(db)


@router.get("/cleanup")
def cleanup_manual(request: Request, authorization: Optional[str] = Header(None), db: Session = Depends(get_db)):
    """Manual trigger for local runs."""
    if settings.is_production:
        raise HTTPException(status_code=405, detail="Method not allowed")
    _check_secret(authorization)
    logger.info("Manual cleanup triggered from %s", request.client.host if request.client else "unknown")
    return _run(db)
