from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union
import secrets

import bcrypt
from jose import jwt

from app.core.config import settings

OTP_MIN = 100000
OTP_MAX = 999999

# bcrypt ignores everything past 72 bytes
_BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(plain_password), hashed_password.encode("utf-8"))
    except ValueError:
        # Malformed hash in the users table
        return False


def create_access_token(subject: Union[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode = {"exp": expire, "sub": str(subject)}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])


def generate_otp() -> str:
    """Six digit code drawn uniformly from [100000, 999999] using the OS CSPRNG."""
    return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))


def otp_matches(submitted: Optional[str], stored: Optional[str]) -> bool:
    """
    Compare a submitted code against the stored one.

    Both sides are stripped of surrounding whitespace and compared in constant time.
    """
    if not submitted or not stored:
        return False
    return secrets.compare_digest(submitted.strip().encode("utf-8"), stored.strip().encode("utf-8"))
