import json
import logging
import secrets
from datetime import datetime
from typing import Optional, Tuple

from core.config import settings
from core import redis as core_redis
from models.user import User
from services.email import send_templated_email

logger = logging.getLogger(__name__)

OTP_PREFIX = "otp:"
OTP_CODE_PREFIX = "otp_code:"
OTP_LAST_SENT_PREFIX = "otp:last:"
MAX_ATTEMPTS = 5


class OtpThrottled(Exception):
    """Raised when a new code is requested before the resend interval elapses."""


def _generate_code() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


def send_verification_code(user: User, purpose: str = "verification") -> str:
    """Store a fresh OTP in Redis and email it to the user."""
    client = core_redis.redis_client
    last_key = f"{OTP_LAST_SENT_PREFIX}{user.email}"
    if settings.OTP_RESEND_INTERVAL_SECONDS > 0 and client.exists(last_key):
        ttl = client.ttl(last_key)
        wait = ttl if ttl and ttl > 0 else settings.OTP_RESEND_INTERVAL_SECONDS
        raise OtpThrottled(f"Please wait {wait} seconds before requesting a new code")

    code = _generate_code()
    otp_data = {
        "code": code,
        "user_id": user.id,
        "email": user.email,
        "purpose": purpose,
        "created_at": datetime.utcnow().isoformat(),
        "attempts": 0,
    }
    client.setex(f"{OTP_PREFIX}{user.email}", settings.OTP_TTL_SECONDS, json.dumps(otp_data))
    # code -> email mapping lets the verify endpoint accept the code alone
    client.setex(f"{OTP_CODE_PREFIX}{code}", settings.OTP_TTL_SECONDS, user.email)
    if settings.OTP_RESEND_INTERVAL_SECONDS > 0:
        client.setex(last_key, settings.OTP_RESEND_INTERVAL_SECONDS, "1")

    send_templated_email(
        user.email,
        "Your verification code",
        "emails/verification_code.txt",
        {"code": code, "first_name": user.first_name, "purpose": purpose},
    )
    return code


def _check(email: str, code: str) -> bool:
    client = core_redis.redis_client
    otp_key = f"{OTP_PREFIX}{email}"
    raw = client.get(otp_key)
    if not raw:
        return False
    try:
        otp_data = json.loads(raw)
        if otp_data.get("attempts", 0) >= MAX_ATTEMPTS:
            client.delete(otp_key)
            client.delete(f"{OTP_CODE_PREFIX}{otp_data.get('code')}")
            return False
        if otp_data["code"] != code:
            otp_data["attempts"] = otp_data.get("attempts", 0) + 1
            client.setex(otp_key, settings.OTP_TTL_SECONDS, json.dumps(otp_data))
            return False
    except (json.JSONDecodeError, KeyError):
        logger.warning("Corrupted OTP record for %s dropped", email)
        client.delete(otp_key)
        return False

    client.delete(otp_key)
    client.delete(f"{OTP_CODE_PREFIX}{code}")
    return True


def verify_code(user: User, code: str) -> bool:
    return _check(user.email, code)


def verify_code_without_email(code: str) -> Tuple[bool, Optional[str]]:
    """Verify using only the code. Returns (ok, email)."""
    email = core_redis.redis_client.get(f"{OTP_CODE_PREFIX}{code}")
    if not email:
        return False, None
    if not _check(email, code):
        return False, None
    return True, email


def get_otp_status(email: str) -> dict:
    client = core_redis.redis_client
    otp_key = f"{OTP_PREFIX}{email}"
    raw = client.get(otp_key)
    if not raw:
        return {"exists": False}
    try:
        otp_data = json.loads(raw)
    except json.JSONDecodeError:
        client.delete(otp_key)
        return {"exists": False}
    return {
        "exists": True,
        "email": otp_data.get("email"),
        "created_at": otp_data.get("created_at"),
        "attempts": otp_data.get("attempts", 0),
        "ttl_seconds": client.ttl(otp_key),
    }
