"""
Onboarding answers: goals, training preferences and the onboarding flag.

Goals and preferences are one row per user and are written by upsert, so the
questionnaire can be resubmitted and the settings sections can update a
subset of fields.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from core.exceptions import ValidationError
from models import Goals, Profile, TrainingPreferences

logger = logging.getLogger(__name__)


def get_goals(db: Session, user_id) -> Optional[Goals]:
    return db.query(Goals).filter(Goals.user_id == user_id).first()


def get_training_preferences(db: Session, user_id) -> Optional[TrainingPreferences]:
    return db.query(TrainingPreferences).filter(TrainingPreferences.user_id == user_id).first()


def _upsert(db: Session, model, row, user_id, values: Dict[str, Any]):
    if row is None:
        row = model(user_id=user_id)
        db.add(row)
    for key, value in values.items():
        setattr(row, key, value)
    db.flush()
    return row


def upsert_goals(db: Session, user_id, values: Dict[str, Any]) -> Goals:
    """Create the goals row or update the given fields of the existing one."""
    goals = _upsert(db, Goals, get_goals(db, user_id), user_id, values)
    logger.info(
        "Goals saved",
        extra={"extra_fields": {"user_id": str(user_id), "fields": sorted(values)}},
    )
    return goals


def upsert_training_preferences(db: Session, user_id, values: Dict[str, Any]) -> TrainingPreferences:
    prefs = _upsert(db, TrainingPreferences, get_training_preferences(db, user_id), user_id, values)
    logger.info(
        "Training preferences saved",
        extra={"extra_fields": {"user_id": str(user_id), "fields": sorted(values)}},
    )
    return prefs


def update_profile(db: Session, user: Profile, name: Optional[str] = None, onboarding_completed: Optional[bool] = None) -> Profile:
    """
    Rename the profile and/or set the onboarding flag.

    Onboarding can only be marked complete once goals exist, since every
    generator reads them.
    """
    if name is not None:
        cleaned = name.strip()
        if not cleaned:
            raise ValidationError("Le nom est requis", field="name")
        user.name = cleaned
    if onboarding_completed is not None:
        if onboarding_completed and get_goals(db, user.id) is None:
            raise ValidationError("Objectifs introuvables. Termine l'onboarding.", field="goals")
        user.onboarding_completed = onboarding_completed
    db.flush()
    return user
