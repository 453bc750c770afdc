import logging
from datetime import datetime, timedelta

import jwt
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from core.config import settings
from core.db import get_db
from core.permissions import get_current_user
from core.rate_limit import rate_limit
from models.user import User
from schemas.auth import (
    RegisterRequest,
    LoginRequest,
    TokenPair,
    VerifyOtpRequest,
    ResendOtpRequest,
    ChangePasswordRequest,
    ResetPasswordRequest,
    ResetPasswordConfirm,
    RefreshTokenRequest,
)
from schemas.users import UserOut
from security.password import hash_password, verify_and_update, verify_password
from security import jwt as jwt_utils
from services import site_settings
from services.otp import OtpThrottled, send_verification_code, verify_code, verify_code_without_email, get_otp_status
from services.email import send_templated_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def issue_tokens(db: Session, user: User) -> TokenPair:
    """Token pair whose access lifetime follows the session timeout setting."""
    minutes = site_settings.get_int(db, "security.sessionTimeout")
    return TokenPair(**jwt_utils.issue_token_pair(user.id, user.role, access_minutes=minutes))


@router.post("/register", response_model=UserOut, status_code=201, dependencies=[Depends(rate_limit("auth"))])
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    existing = db.query(User).filter(User.email == data.email.lower()).one_or_none()
    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")
    user = User(
        first_name=data.first_name,
        last_name=data.last_name,
        email=data.email.lower(),
        phone=data.phone,
        password_hash=hash_password(data.password),
        is_verified=False,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    send_verification_code(user)
    logger.info("User %s registered", user.id)
    return user


@router.post("/login", response_model=TokenPair, dependencies=[Depends(rate_limit("auth"))])
def login(data: LoginRequest, db: Session = Depends(get_db)):
    now = datetime.utcnow()
    user = db.query(User).filter(User.email == data.email.lower()).one_or_none()

    if user and user.is_locked(now):
        minutes = max(int((user.locked_until - now).total_seconds() // 60) + 1, 1)
        raise HTTPException(
            status_code=status.HTTP_423_LOCKED,
            detail=f"Account locked due to too many failed attempts. Try again in {minutes} minutes",
        )
    if user and user.locked_until is not None:
        # lock has expired; start counting afresh
        user.locked_until = None
        user.failed_attempts = 0

    verified, upgraded_hash = verify_and_update(data.password, user.password_hash) if user else (False, None)
    if not verified:
        if user:
            user.failed_attempts = (user.failed_attempts or 0) + 1
            max_attempts = site_settings.get_int(db, "security.maxLoginAttempts")
            if user.failed_attempts >= max_attempts:
                lockout = site_settings.get_int(db, "security.lockoutMinutes")
                user.locked_until = now + timedelta(minutes=lockout)
                logger.warning("User %s locked out after %s failed logins", user.id, user.failed_attempts)
            db.commit()
        raise HTTPException(status_code=400, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is deactivated")
    if not user.is_verified:
        raise HTTPException(status_code=403, detail="Account not verified")

    if upgraded_hash:
        user.password_hash = upgraded_hash
    user.failed_attempts = 0
    user.locked_until = None
    user.last_login_at = now
    db.commit()
    return issue_tokens(db, user)


@router.post("/verify-otp")
def verify_otp(data: VerifyOtpRequest, db: Session = Depends(get_db)):
    ok, email = verify_code_without_email(data.code)
    if not ok:
        raise HTTPException(status_code=400, detail="Invalid or expired code")
    user = db.query(User).filter(User.email == email.lower()).one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    user.is_verified = True
    db.commit()
    send_templated_email(
        user.email,
        "Email verified",
        "emails/verification_success.txt",
        {"first_name": user.first_name},
    )
    return {"detail": "Verified"}


@router.post("/resend-otp", dependencies=[Depends(rate_limit("auth"))])
def resend_otp(data: ResendOtpRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == data.email.lower()).one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    try:
        send_verification_code(user)
    except OtpThrottled as e:
        raise HTTPException(status_code=429, detail=str(e))
    return {"detail": "OTP sent"}


@router.post("/change-password")
def change_password(
    data: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not verify_password(data.old_password, current_user.password_hash):
        raise HTTPException(status_code=400, detail="Old password is incorrect")
    current_user.password_hash = hash_password(data.new_password)
    db.commit()
    return {"detail": "Password changed"}


@router.post("/reset-password/request", dependencies=[Depends(rate_limit("auth"))])
def reset_password_request(data: ResetPasswordRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == data.email.lower()).one_or_none()
    if user:
        try:
            send_verification_code(user, purpose="password reset")
        except OtpThrottled:
            logger.info("Password reset code for user %s throttled", user.id)
    return {"detail": "If the email exists, a code has been sent"}


@router.post("/reset-password/confirm")
def reset_password_confirm(data: ResetPasswordConfirm, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == data.email.lower()).one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if not verify_code(user, data.code):
        raise HTTPException(status_code=400, detail="Invalid or expired code")
    user.password_hash = hash_password(data.new_password)
    user.failed_attempts = 0
    user.locked_until = None
    db.commit()
    send_templated_email(
        user.email,
        "Password reset successful",
        "emails/password_reset_success.txt",
        {"first_name": user.first_name},
    )
    return {"detail": "Password reset"}


@router.post("/refresh-token", response_model=TokenPair)
def refresh_token(data: RefreshTokenRequest, db: Session = Depends(get_db)):
    try:
        payload = jwt_utils.decode_refresh(data.refresh_token)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    user = db.query(User).filter(User.id == jwt_utils.user_id_of(payload)).one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is deactivated")
    return issue_tokens(db, user)


@router.get("/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_user)):
    return current_user


@router.get("/otp-status/{email}")
def otp_status(email: str):
    """OTP state for an address. Not exposed in production."""
    if settings.is_production:
        raise HTTPException(status_code=404, detail="Not found")
    return get_otp_status(email.lower())
