"""
Access and refresh tokens.

Access tokens carry the user's role for clients; authorization always reads
the role from the user row. Each token names its ``type`` and a token of the
wrong type is rejected even when its signature is valid.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from core.config import settings

ACCESS = "access"
REFRESH = "refresh"


class WrongTokenType(jwt.InvalidTokenError):
    pass


def _encode(payload: Dict[str, Any], secret: str, minutes: int) -> str:
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=minutes)
    to_encode = {"iat": int(now.timestamp()), "exp": int(exp.timestamp()), **payload}
    return jwt.encode(to_encode, secret, algorithm=settings.JWT_ALG)


def create_access_token(user_id: int, role: str, minutes: Optional[int] = None) -> str:
    payload = {"sub": str(user_id), "type": ACCESS, "role": role}
    return _encode(payload, settings.JWT_SECRET, minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES)


def create_refresh_token(user_id: int) -> str:
    payload = {"sub": str(user_id), "type": REFRESH}
    return _encode(payload, settings.REFRESH_SECRET, settings.REFRESH_TOKEN_EXPIRE_MINUTES)


def issue_token_pair(user_id: int, role: str, access_minutes: Optional[int] = None) -> Dict[str, str]:
    return {
        "access_token": create_access_token(user_id, role, access_minutes),
        "refresh_token": create_refresh_token(user_id),
    }


def _decode(token: str, secret: str, expected_type: str) -> Dict[str, Any]:
    payload = jwt.decode(
        token, secret, algorithms=[settings.JWT_ALG], options={"require": ["exp", "sub", "type"]}
    )
    if payload["type"] != expected_type:
        raise WrongTokenType(f"Expected {expected_type} token")
    if not str(payload["sub"]).isdigit():
        raise jwt.InvalidTokenError("Malformed subject")
    return payload


def decode_access(token: str) -> Dict[str, Any]:
    return _decode(token, settings.JWT_SECRET, ACCESS)


def decode_refresh(token: str) -> Dict[str, Any]:
    return _decode(token, settings.REFRESH_SECRET, REFRESH)


def user_id_of(payload: Dict[str, Any]) -> int:
    return int(payload["sub"])
