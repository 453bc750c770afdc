import logging
import secrets
from datetime import datetime

from authlib.integrations.starlette_client import OAuth, OAuthError
from fastapi import APIRouter, Request, Depends, HTTPException
from sqlalchemy.orm import Session

from core.config import settings
from core.db import get_db
from models.user import User
from security.password import hash_password
from routes.auth import issue_tokens
from schemas.auth import TokenPair

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth/google", tags=["oauth"])

oauth = OAuth()
oauth.register(
    name="google",
    client_id=settings.GOOGLE_CLIENT_ID,
    client_secret=settings.GOOGLE_CLIENT_SECRET,
    server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
    client_kwargs={"scope": "openid email profile"},
)


def _require_configured() -> None:
    if not settings.GOOGLE_CLIENT_ID or not settings.GOOGLE_CLIENT_SECRET:
        raise HTTPException(status_code=500, detail="Google OAuth not configured")


@router.get("/login")
async def google_login(request: Request):
    _require_configured()
    return await oauth.google.authorize_redirect(request, settings.GOOGLE_REDIRECT_URI)


@router.get("/callback", response_model=TokenPair)
async def google_callback(request: Request, db: Session = Depends(get_db)):
    _require_configured()
    try:
        token = await oauth.google.authorize_access_token(request)
    except OAuthError as e:
        logger.warning("Google OAuth callback failed: %s", e)
        raise HTTPException(status_code=400, detail="Google sign-in failed")

    userinfo = token.get("userinfo")
    if not userinfo:
        resp = await oauth.google.get("https://openidconnect.googleapis.com/v1/userinfo", token=token)
        userinfo = resp.json()
    email = (userinfo.get("email") or "").lower()
    if not email:
        raise HTTPException(status_code=400, detail="Email not provided by Google")

    user = db.query(User).filter(User.email == email).one_or_none()
    if not user:
        user = User(
            first_name=userinfo.get("given_name") or "Google",
            last_name=userinfo.get("family_name") or "User",
            email=email,
            # unusable password; the account signs in through Google
            password_hash=hash_password(secrets.token_urlsafe(32)),
            profile_picture=userinfo.get("picture"),
            is_verified=True,
        )
        db.add(user)
        logger.info("Created user for Google account %s", email)
    elif not user.is_active:
        raise HTTPException(status_code=403, detail="Account is deactivated")
    else:
        user.is_verified = True

    user.last_login_at = datetime.utcnow()
    db.commit()
    db.refresh(user)

    return issue_tokens(db, user)
