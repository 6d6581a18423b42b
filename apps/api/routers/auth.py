"""
Authentication API endpoints.

Provides:
- Registration (profile, member role, onboarding email sequence)
- Login (JWT token generation)
- Password recovery (emailed link, then reset with the recovery token)
- Current profile
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from uuid import UUID
import logging

from core.auth import get_current_user
from core.config import settings
from core.database import get_db
from core.password_policy import validate_password
from core.security import (
    build_recovery_link,
    create_access_token,
    decode_recovery_token,
    get_password_hash,
    password_fingerprint,
    verify_password,
)
from models import Profile, UserRole
from schemas import ProfileResponse, TokenResponse
from services import email_templates
from services.email_jobs import queue_onboarding_emails
from services.email_service import email_service
from services.entitlements import has_active_subscription

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/auth", tags=["auth"])

INVALID_CREDENTIALS = "Email ou mot de passe incorrect"
INVALID_RESET_TOKEN = "Lien de réinitialisation invalide ou expiré"


class UserRegister(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72)
    name: Optional[str] = Field(default=None, max_length=100)


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str = Field(..., min_length=8, max_length=72)


def profile_response(db: Session, user: Profile) -> ProfileResponse:
    data = ProfileResponse.model_validate(user)
    data.role = "admin" if user.is_admin else "member"
    data.has_active_subscription = has_active_subscription(db, user)
    return data


def _token_response(db: Session, user: Profile) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token({"sub": str(user.id)}),
        expires_in=settings.ACCESS_TOKEN_EXPIRE_DAYS * 24 * 3600,
        user=profile_response(db, user),
    )


def _check_password_policy(password: str) -> None:
    ok, errors = validate_password(password)
    if not ok:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=errors[0])


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(user_data: UserRegister, db: Session = Depends(get_db)):
    """
    Register a new account.

    Queues the day 1/3/7 onboarding emails and sends the welcome email; a
    token is issued immediately so the web app can go straight to onboarding.
    """
    email = user_data.email.strip().lower()
    if db.query(Profile.id).filter(Profile.email == email).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cet email est déjà utilisé")
    _check_password_policy(user_data.password)

    name = (user_data.name or "").strip() or email.split("@")[0]
    user = Profile(email=email, name=name, password_hash=get_password_hash(user_data.password))
    db.add(user)
    db.flush()
    db.add(UserRole(user_id=user.id, role="member"))
    queue_onboarding_emails(db, user.id)
    db.flush()
    db.refresh(user)

    welcome = email_templates.welcome_email(user.name)
    if not email_service.send_email(user.email, welcome.subject, welcome.html, welcome.text):
        logger.warning("Welcome email not sent", extra={"extra_fields": {"user_id": str(user.id)}})

    logger.info("Account registered", extra={"extra_fields": {"user_id": str(user.id)}})
    return _token_response(db, user)


@router.post("/login", response_model=TokenResponse)
def login(credentials: UserLogin, db: Session = Depends(get_db)):
    email = credentials.email.strip().lower()
    user = db.query(Profile).filter(Profile.email == email).first()

    if not user or not user.password_hash or not verify_password(credentials.password, user.password_hash):
        logger.info("Login failed", extra={"extra_fields": {"email": email}})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=INVALID_CREDENTIALS,
            headers={"WWW-Authenticate": "Bearer"},
        )
    if user.is_disabled:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Compte désactivé")

    return _token_response(db, user)


@router.get("/me", response_model=ProfileResponse)
def get_current_user_info(current_user: Profile = Depends(get_current_user), db: Session = Depends(get_db)):
    return profile_response(db, current_user)


@router.post("/forgot-password")
def forgot_password(request: ForgotPasswordRequest, db: Session = Depends(get_db)):
    """
    Email a recovery link if the account exists.

    Always returns success to prevent email enumeration.
    """
    email = request.email.strip().lower()
    user = db.query(Profile).filter(Profile.email == email).first()
    if user and not user.is_disabled:
        link = build_recovery_link(str(user.id), user.email, user.password_hash)
        content = email_templates.password_reset_email(user.name, link)
        if not email_service.send_email(user.email, content.subject, content.html, content.text):
            logger.warning("Password reset email not sent", extra={"extra_fields": {"user_id": str(user.id)}})
    else:
        logger.info("Password reset requested for unknown email")

    return {
        "success": True,
        "message": "Si un compte existe pour cet email, un lien de réinitialisation a été envoyé.",
    }


@router.post("/reset-password")
def reset_password(request: ResetPasswordRequest, db: Session = Depends(get_db)):
    payload = decode_recovery_token(request.token)
    if not payload or not payload.get("sub"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_RESET_TOKEN)

    try:
        user_id = UUID(str(payload["sub"]))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_RESET_TOKEN)

    user = db.query(Profile).filter(Profile.id == user_id).first()
    # The link is bound to the email it was sent to and to the password it replaces.
    if (
        not user
        or user.is_disabled
        or user.email != payload.get("email")
        or password_fingerprint(user.password_hash) != payload.get("pwd")
    ):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_RESET_TOKEN)
    _check_password_policy(request.new_password)

    user.password_hash = get_password_hash(request.new_password)
    db.flush()
    logger.info("Password reset", extra={"extra_fields": {"user_id": str(user.id)}})
    return {"success": True, "message": "Mot de passe mis à jour. Tu peux te reconnecter."}
