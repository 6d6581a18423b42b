"""
Landing page counters (total users, completed sessions, satisfaction, weight lost).

Recomputed at most once per ``PUBLIC_STATS_TTL_S`` and kept in the single
``public_stats_cache`` row.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.config import settings
from models import Profile, PublicStatsCache, SessionFeedback, TrainingSession, WeeklyCheckin

logger = logging.getLogger(__name__)

STATS_ROW_ID = "main"
MIN_FEEDBACK_FOR_RATING = 5
MIN_USERS_FOR_WEIGHT_LOSS = 3


def rpe_to_rating(rpe: int) -> float:
    """Satisfaction out of 5: RPE up to 7 is the comfortable zone."""
    if rpe <= 7:
        return 5.0
    if rpe <= 8:
        return 4.5
    if rpe <= 9:
        return 4.0
    return 3.5


def average_rating(rpes: Iterable[int]) -> Optional[float]:
    values = [rpe_to_rating(r) for r in rpes if r is not None]
    if len(values) < MIN_FEEDBACK_FOR_RATING:
        return None
    return round(sum(values) / len(values), 1)


def average_weight_loss(rows: Iterable) -> Optional[float]:
    """
    ``rows`` are (user_id, average_weight) in chronological order. Loss is first
    minus last weight per user; only users who lost weight count.
    """
    first_last: Dict[Any, list] = {}
    for user_id, weight in rows:
        if weight is None:
            continue
        if user_id not in first_last:
            first_last[user_id] = [weight, weight]
        else:
            first_last[user_id][1] = weight

    losses = [first - last for first, last in first_last.values() if first - last > 0]
    if len(losses) < MIN_USERS_FOR_WEIGHT_LOSS:
        return None
    return round(sum(losses) / len(losses), 1)


def _as_dict(row: PublicStatsCache) -> Dict[str, Any]:
    return {
        "total_users": row.total_users,
        "completed_sessions": row.completed_sessions,
        "average_rating": row.average_rating,
        "avg_weight_loss": row.avg_weight_loss,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }


def _is_fresh(row: PublicStatsCache, now: datetime) -> bool:
    updated_at = row.updated_at
    if updated_at is None:
        return False
    if updated_at.tzinfo is None:
        updated_at = updated_at.replace(tzinfo=timezone.utc)
    return (now - updated_at).total_seconds() < settings.PUBLIC_STATS_TTL_S


def compute_public_stats(db: Session) -> Dict[str, Any]:
    total_users = db.query(func.count(Profile.id)).scalar() or 0
    completed_sessions = (
        db.query(func.count(TrainingSession.id)).filter(TrainingSession.completed.is_(True)).scalar() or 0
    )
    rpes = [r for (r,) in db.query(SessionFeedback.rpe).filter(SessionFeedback.rpe.isnot(None)).all()]
    weights = (
        db.query(WeeklyCheckin.user_id, WeeklyCheckin.average_weight)
        .filter(WeeklyCheckin.average_weight.isnot(None))
        .order_by(WeeklyCheckin.created_at.asc())
        .all()
    )
    return {
        "total_users": int(total_users),
        "completed_sessions": int(completed_sessions),
        "average_rating": average_rating(rpes),
        "avg_weight_loss": average_weight_loss(weights),
    }


def get_public_stats(db: Session) -> Dict[str, Any]:
    now = datetime.now(timezone.utc)
    row = db.query(PublicStatsCache).filter(PublicStatsCache.id == STATS_ROW_ID).first()
    if row is not None and _is_fresh(row, now):
        return _as_dict(row)

    stats = compute_public_stats(db)
    if row is None:
        row = PublicStatsCache(id=STATS_ROW_ID)
        db.add(row)
    row.total_users = stats["total_users"]
    row.completed_sessions = stats["completed_sessions"]
    row.average_rating = stats["average_rating"]
    row.avg_weight_loss = stats["avg_weight_loss"]
    row.updated_at = now
    db.flush()

    logger.info("Public stats recalculated", extra={"extra_fields": stats})
    return _as_dict(row)
