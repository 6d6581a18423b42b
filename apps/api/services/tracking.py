"""
Daily tracking: body weight (with optional waist) and logged meals.

The weight history feeds the progress charts and the weekly digest; the meal
log feeds the nutrition summary (days tracked, average calories).
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from core.exceptions import NotFoundError
from models import NutritionLog, WeightLog

logger = logging.getLogger(__name__)

MEAL_TYPES = ("breakfast", "lunch", "dinner", "snack")
WEIGHT_HISTORY_DAYS = 30
NUTRITION_SUMMARY_DAYS = 7


def _now() -> datetime:
    return datetime.now(timezone.utc)


def log_weight(
    db: Session,
    user_id,
    weight: float,
    waist_circumference: Optional[float] = None,
    logged_at: Optional[datetime] = None,
) -> WeightLog:
    row = WeightLog(
        user_id=user_id,
        weight=weight,
        waist_circumference=waist_circumference or None,
        logged_at=logged_at or _now(),
    )
    db.add(row)
    db.flush()
    logger.info("Weight logged", extra={"extra_fields": {"user_id": str(user_id)}})
    return row


def list_weight_logs(db: Session, user_id, days: int = WEIGHT_HISTORY_DAYS, now: Optional[datetime] = None) -> List[WeightLog]:
    """Entries of the last ``days`` days, oldest first."""
    since = (now or _now()) - timedelta(days=days)
    return (
        db.query(WeightLog)
        .filter(WeightLog.user_id == user_id, WeightLog.logged_at >= since)
        .order_by(WeightLog.logged_at.asc())
        .all()
    )


def delete_weight_log(db: Session, user_id, log_id) -> None:
    deleted = (
        db.query(WeightLog)
        .filter(WeightLog.id == log_id, WeightLog.user_id == user_id)
        .delete(synchronize_session=False)
    )
    if not deleted:
        raise NotFoundError("Entrée introuvable")


def weights_between(db: Session, user_id, start: datetime, end: datetime) -> List[float]:
    """Logged weights in ``[start, end)``, oldest first."""
    return [
        w
        for (w,) in db.query(WeightLog.weight)
        .filter(WeightLog.user_id == user_id, WeightLog.logged_at >= start, WeightLog.logged_at < end)
        .order_by(WeightLog.logged_at.asc())
        .all()
    ]


def log_meal(
    db: Session,
    user_id,
    meal_type: str,
    food_description: str,
    calories: int,
    protein: Optional[float] = None,
    carbs: Optional[float] = None,
    fats: Optional[float] = None,
    logged_at: Optional[datetime] = None,
) -> NutritionLog:
    row = NutritionLog(
        user_id=user_id,
        meal_type=meal_type,
        food_description=food_description.strip(),
        calories=calories,
        protein=protein,
        carbs=carbs,
        fats=fats,
        logged_at=logged_at or _now(),
    )
    db.add(row)
    db.flush()
    return row


def list_nutrition_logs(
    db: Session, user_id, days: int = NUTRITION_SUMMARY_DAYS, now: Optional[datetime] = None
) -> List[NutritionLog]:
    """Meals of the last ``days`` days, newest first."""
    since = (now or _now()) - timedelta(days=days)
    return (
        db.query(NutritionLog)
        .filter(NutritionLog.user_id == user_id, NutritionLog.logged_at >= since)
        .order_by(NutritionLog.logged_at.desc())
        .all()
    )


def nutrition_summary(logs: List[NutritionLog], days: int = NUTRITION_SUMMARY_DAYS) -> Optional[Dict[str, int]]:
    """
    Days with at least one meal, average calories per logged meal and the
    share of tracked days. None when nothing was logged.
    """
    if not logs:
        return None
    days_tracked = len({log.logged_at.date() for log in logs})
    return {
        "days_tracked": days_tracked,
        "avg_calories": round(sum(log.calories for log in logs) / len(logs)),
        "adherence": round(days_tracked / days * 100),
    }
