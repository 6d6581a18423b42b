"""
Entitlements

Single place answering "can this user keep using a paid feature?".

Policy:
- admins always pass
- an ``active`` or ``trialing`` subscription row passes
- everyone else gets exactly one free use per feature; the caller supplies how
  many uses already happened (feedback rows, assistant replies...)
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.exceptions import SubscriptionRequiredError
from models import (
    ACTIVE_SUBSCRIPTION_STATUSES,
    ChatMessage,
    Conversation,
    Profile,
    SessionFeedback,
    Subscription,
    UserRole,
)


@dataclass
class AccessResult:
    allowed: bool
    reason: str
    usage_count: int = 0


def is_admin(db: Session, user_id) -> bool:
    return (
        db.query(UserRole.id)
        .filter(UserRole.user_id == user_id, UserRole.role == "admin")
        .first()
        is not None
    )


def get_subscription(db: Session, user_id) -> Optional[Subscription]:
    return db.query(Subscription).filter(Subscription.user_id == user_id).first()


def has_active_subscription(db: Session, user: Profile) -> bool:
    if is_admin(db, user.id):
        return True
    sub = get_subscription(db, user.id)
    return bool(sub and sub.status in ACTIVE_SUBSCRIPTION_STATUSES)


def check_first_use_access(db: Session, user: Profile, usage_count: int) -> AccessResult:
    if has_active_subscription(db, user):
        return AccessResult(allowed=True, reason="subscribed", usage_count=usage_count)
    if usage_count <= 0:
        return AccessResult(allowed=True, reason="first_use", usage_count=usage_count)
    return AccessResult(allowed=False, reason="subscription_required", usage_count=usage_count)


def require_subscription_after_first_use(db: Session, user: Profile, usage_count: int) -> AccessResult:
    result = check_first_use_access(db, user, usage_count)
    if not result.allowed:
        raise SubscriptionRequiredError()
    return result


def require_active_subscription(db: Session, user: Profile, detail: str = "Abonnement requis") -> None:
    """Features with no free use at all (nutrition plan)."""
    if not has_active_subscription(db, user):
        raise SubscriptionRequiredError(detail=detail)


def training_usage_count(db: Session, user_id) -> int:
    """Session feedback rows: a user who has rated a workout has used their free session."""
    return int(
        db.query(func.count(SessionFeedback.id))
        .filter(SessionFeedback.user_id == user_id)
        .scalar()
        or 0
    )


def coach_usage_count(db: Session, user_id, coach_type: str) -> int:
    """Assistant replies already delivered by this coach."""
    return int(
        db.query(func.count(ChatMessage.id))
        .join(Conversation, Conversation.id == ChatMessage.conversation_id)
        .filter(
            ChatMessage.user_id == user_id,
            ChatMessage.role == "assistant",
            Conversation.coach_type == coach_type,
        )
        .scalar()
        or 0
    )
