"""
Reasons collected when a member cancels their subscription or deletes their
account. Answers survive account deletion without the user id.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from core.exceptions import ValidationError
from models import CancellationFeedback

logger = logging.getLogger(__name__)

ACTION_TYPES = ("cancel_subscription", "delete_account")
REASONS = (
    "Trop cher",
    "Je n'utilise pas assez l'app",
    "Je n'ai pas trouvé ce que je cherchais",
    "Problème technique",
    "Mauvaise expérience utilisateur",
    "Autre raison",
)
COMMENTS_MAX = 1000


def validate_reason(reason: str) -> str:
    if reason not in REASONS:
        raise ValidationError("Raison invalide", field="reason")
    return reason


def record_cancellation_feedback(
    db: Session,
    user_id,
    action_type: str,
    reason: str,
    comments: Optional[str] = None,
) -> CancellationFeedback:
    """``user_id`` may be None for an account that is being deleted."""
    if action_type not in ACTION_TYPES:
        raise ValueError(f"Unknown action type {action_type}")
    validate_reason(reason)
    comments = (comments or "").strip()[:COMMENTS_MAX] or None

    row = CancellationFeedback(
        user_id=user_id,
        action_type=action_type,
        reason=reason,
        additional_comments=comments,
    )
    db.add(row)
    db.flush()
    logger.info(
        "Cancellation feedback stored",
        extra={"extra_fields": {"action_type": action_type, "reason": reason}},
    )
    return row
