"""
Account deletion (self-service and admin).

Every user-owned table is cleared explicitly, children first, then the profile.
Foreign keys cascade as well; the explicit deletes keep the operation correct
on databases where cascades are not enforced. Admin audit rows are kept and
cancellation feedback is kept without the user id.
"""

import logging
from typing import Dict

from sqlalchemy.orm import Session

from models import (
    AdjustmentLog,
    CancellationFeedback,
    ChatMessage,
    Conversation,
    EmailQueueItem,
    ExerciseLog,
    Goals,
    NutritionLog,
    Profile,
    SessionFeedback,
    Subscription,
    SupportTicket,
    TrainingPreferences,
    TrainingSession,
    UserRole,
    WeeklyCheckin,
    WeeklyProgram,
    WeightLog,
)

logger = logging.getLogger(__name__)

# Deletion order: rows referencing other user rows go first.
USER_OWNED_MODELS = (
    ChatMessage,
    Conversation,
    ExerciseLog,
    SessionFeedback,
    TrainingSession,
    WeeklyCheckin,
    AdjustmentLog,
    WeeklyProgram,
    WeightLog,
    NutritionLog,
    SupportTicket,
    EmailQueueItem,
    Subscription,
    TrainingPreferences,
    Goals,
    UserRole,
)


def delete_user_data(db: Session, user_id) -> Dict[str, int]:
    """
    Delete the profile and everything it owns inside the caller's transaction.

    Returns the number of deleted rows per table. Nothing is committed here.
    """
    counts: Dict[str, int] = {}
    for model in USER_OWNED_MODELS:
        counts[model.__tablename__] = db.query(model).filter(model.user_id == user_id).delete()
    anonymised = (
        db.query(CancellationFeedback)
        .filter(CancellationFeedback.user_id == user_id)
        .update({"user_id": None}, synchronize_session=False)
    )

    counts[Profile.__tablename__] = db.query(Profile).filter(Profile.id == user_id).delete()
    db.flush()

    logger.info(
        "User data deleted",
        extra={"extra_fields": {"user_id": str(user_id), "deleted": counts, "feedback_anonymised": anonymised}},
    )
    return counts
