"""
Authentication and authorization dependencies.

Provides FastAPI dependencies for:
- Getting the current authenticated profile (bearer JWT)
- Optional authentication for endpoints open to visitors
- Admin-only access (``user_roles`` row with role 'admin')
"""
from datetime import datetime, timedelta, timezone
import logging
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from core.database import get_db
from core.security import decode_access_token
from models import Profile

logger = logging.getLogger(__name__)

# Use auto_error=False to handle missing credentials manually and return 401 (not 403)
security = HTTPBearer(auto_error=False)

ACTIVITY_TOUCH_INTERVAL = timedelta(hours=1)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _load_profile_from_token(token: str, db: Session) -> Optional[Profile]:
    payload = decode_access_token(token)
    if not payload or payload.get("typ") is not None:
        # Recovery tokens are not access tokens.
        return None
    user_id = payload.get("sub")
    if not user_id:
        return None
    try:
        user_id_uuid = UUID(str(user_id))
    except ValueError:
        return None
    return db.query(Profile).filter(Profile.id == user_id_uuid).first()


def touch_last_activity(user: Profile, db: Session) -> None:
    """Refresh ``last_activity_at`` at most once per hour."""
    now = datetime.now(timezone.utc)
    last = _as_utc(user.last_activity_at)
    if last is not None and now - last < ACTIVITY_TOUCH_INTERVAL:
        return
    user.last_activity_at = now
    db.flush()


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> Profile:
    """
    Get the current authenticated profile from the bearer token.

    401 when the token is missing, invalid or points at no profile;
    403 when the account has been disabled by an admin.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = _load_profile_from_token(credentials.credentials, db)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if user.is_disabled:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Compte désactivé",
        )

    touch_last_activity(user, db)
    return user


def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> Optional[Profile]:
    """
    Current profile if a valid token is provided, otherwise None.

    Used by checkout and the support form, which also serve visitors who
    have not signed up yet.
    """
    if not credentials:
        return None
    user = _load_profile_from_token(credentials.credentials, db)
    if not user or user.is_disabled:
        return None
    return user


def require_admin(
    current_user: Profile = Depends(get_current_user)
) -> Profile:
    """Require an admin role row."""
    if not current_user.is_admin:
        logger.warning(
            "Admin access denied",
            extra={"extra_fields": {"user_id": str(current_user.id)}},
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden",
        )
    return current_user
