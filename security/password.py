from typing import Optional, Tuple

from passlib.context import CryptContext

# bcrypt reads at most 72 bytes of input
BCRYPT_MAX_BYTES = 72

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__min_rounds=12)


def _clip(password: str) -> str:
    """Cut to the bcrypt limit on a byte boundary, dropping a split character."""
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES].decode("utf-8", "ignore")


def hash_password(password: str) -> str:
    return _pwd_context.hash(_clip(password))


def verify_password(password: str, password_hash: str) -> bool:
    return _pwd_context.verify(_clip(password), password_hash)


def verify_and_update(password: str, password_hash: str) -> Tuple[bool, Optional[str]]:
    """Verify, and return a fresh hash when the stored one is below the current policy."""
    return _pwd_context.verify_and_update(_clip(password), password_hash)
