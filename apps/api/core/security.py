"""
Security utilities for authentication.

Provides:
- Password hashing (bcrypt)
- JWT access tokens (HS256, ``sub`` = profile id)
- Short-lived password recovery tokens

SECRET_KEY must be set via environment variable, be at least 32 characters
and differ per environment.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict
import hashlib
from jose import JWTError, jwt
import bcrypt
from core.config import settings

SECRET_KEY = settings.SECRET_KEY

if len(SECRET_KEY) < 32:
    raise ValueError(
        "SECRET_KEY must be at least 32 characters. "
        "Generate with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
    )

ALGORITHM = "HS256"
RECOVERY_TOKEN_TYPE = "recovery"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    return bcrypt.checkpw(
        plain_password.encode('utf-8'),
        hashed_password.encode('utf-8')
    )


def get_password_hash(password: str) -> str:
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def create_access_token(data: Dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    if expires_delta is None:
        expires_delta = timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS)
    to_encode.update({"exp": datetime.now(timezone.utc) + expires_delta})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict]:
    """Decode and validate a JWT token. Returns None when invalid or expired."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


def password_fingerprint(password_hash: Optional[str]) -> str:
    """Short digest of the stored hash; changes whenever the password does."""
    return hashlib.sha256((password_hash or "").encode("utf-8")).hexdigest()[:16]


def create_recovery_token(user_id: str, email: str, password_hash: Optional[str]) -> str:
    """
    Token embedded in password recovery links.

    Bound to the email and to the current password, so a link stops working
    once the address changes or once it has been used.
    """
    return create_access_token(
        {
            "sub": str(user_id),
            "email": email,
            "pwd": password_fingerprint(password_hash),
            "typ": RECOVERY_TOKEN_TYPE,
        },
        expires_delta=timedelta(minutes=settings.PASSWORD_RESET_TOKEN_TTL_MINUTES),
    )


def decode_recovery_token(token: str) -> Optional[Dict]:
    payload = decode_access_token(token)
    if not payload or payload.get("typ") != RECOVERY_TOKEN_TYPE:
        return None
    return payload


def build_recovery_link(user_id: str, email: str, password_hash: Optional[str]) -> str:
    token = create_recovery_token(user_id, email, password_hash)
    return f"{settings.WEB_APP_BASE_URL.rstrip('/')}/reset-password?token={token}"
