# quicknote/core/security.py
from datetime import datetime, timedelta, timezone
from typing import Optional, Union
import hashlib
import hmac
import os

from jose import JWTError, jwt
from quicknote.core.config import settings

PBKDF2_ITERATIONS = 310000


def hash_password(plain: str) -> str:
    """PBKDF2-SHA256, stored as "<salt hex>:<key hex>"."""
    salt = os.urandom(32)
    key = hashlib.pbkdf2_hmac("sha256", plain.encode(), salt, PBKDF2_ITERATIONS)
    return f"{salt.hex()}:{key.hex()}"


def verify_password(plain: str, hashed: str) -> bool:
    try:
        salt_hex, key_hex = hashed.split(":")
        salt = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(key_hex)
    except ValueError:
        return False
    candidate = hashlib.pbkdf2_hmac("sha256", plain.encode(), salt, PBKDF2_ITERATIONS)
    return hmac.compare_digest(expected, candidate)


def create_access_token(subject: Union[int, str], expires_delta: Optional[timedelta] = None) -> str:
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    payload = {"sub": str(subject), "exp": expire, "iat": now}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[str]:
    """Return the token subject (the user id as a string), or None if invalid/expired."""
    try:
        data = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    return data.get("sub")
