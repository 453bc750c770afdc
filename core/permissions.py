from typing import Optional

import jwt
from fastapi import Header, HTTPException, status, Depends
from sqlalchemy.orm import Session

from core.db import get_db
from models.user import User, ROLE_ADMIN, ROLE_VENDOR
from models.vendor import Vendor, VENDOR_APPROVED
from security import jwt as jwt_utils


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    return authorization.split(" ", 1)[1].strip()


def _user_from_token(token: str, db: Session) -> User:
    try:
        payload = jwt_utils.decode_access(token)
    except jwt.PyJWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    user = db.query(User).filter(User.id == jwt_utils.user_id_of(payload)).one_or_none()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is deactivated")
    return user


def get_current_user(
    db: Session = Depends(get_db), authorization: Optional[str] = Header(default=None, alias="Authorization")
) -> User:
    token = _bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return _user_from_token(token, db)


def get_optional_user(
    db: Session = Depends(get_db), authorization: Optional[str] = Header(default=None, alias="Authorization")
) -> Optional[User]:
    """Like get_current_user but returns None for anonymous callers."""
    token = _bearer_token(authorization)
    if not token:
        return None
    try:
        return _user_from_token(token, db)
    except HTTPException:
        return None


def require_role(*roles: str):
    """Dependency to require one of the given user roles."""
    def _check_role(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires {' or '.join(r.lower() for r in roles)} role",
            )
        return user
    return _check_role


require_admin = require_role(ROLE_ADMIN)


def get_current_vendor(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> Vendor:
    """Approved vendor profile of the current user."""
    if user.role != ROLE_VENDOR:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized as vendor")
    vendor = db.query(Vendor).filter(Vendor.user_id == user.id).one_or_none()
    if not vendor or vendor.status != VENDOR_APPROVED:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized as vendor")
    return vendor
