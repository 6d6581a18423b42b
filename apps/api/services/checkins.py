"""
Weekly check-in: store the week's answers, compute the adjustment
recommendation, journal it and mark the week's program as checked in.
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from models import AdjustmentLog, WeeklyCheckin, WeeklyProgram
from services.program_generator import week_monday
from services.recommendations import Recommendation, calculate_recommendation

logger = logging.getLogger(__name__)


def iso_week(day: Optional[date] = None) -> str:
    """ISO week label ``YYYY-Www`` using the ISO year (2027-01-01 is 2026-W53)."""
    day = day or datetime.now(timezone.utc).date()
    year, week, _ = day.isocalendar()
    return f"{year}-W{week:02d}"


def previous_weight(db: Session, user_id, before_week: str) -> Optional[float]:
    row = (
        db.query(WeeklyCheckin.average_weight)
        .filter(
            WeeklyCheckin.user_id == user_id,
            WeeklyCheckin.week_iso < before_week,
            WeeklyCheckin.average_weight.isnot(None),
        )
        .order_by(WeeklyCheckin.week_iso.desc())
        .first()
    )
    return row[0] if row else None


def get_checkin(db: Session, user_id, week: str) -> Optional[WeeklyCheckin]:
    return (
        db.query(WeeklyCheckin)
        .filter(WeeklyCheckin.user_id == user_id, WeeklyCheckin.week_iso == week)
        .first()
    )


def record_adjustment(db: Session, user_id, week: str, recommendation: Recommendation) -> Optional[AdjustmentLog]:
    """Journal entry for the week, replaced on resubmission; none when nothing changes."""
    db.query(AdjustmentLog).filter(
        AdjustmentLog.user_id == user_id,
        AdjustmentLog.week_iso == week,
    ).delete(synchronize_session=False)
    if recommendation.action == "no_change":
        return None
    entry = AdjustmentLog(
        user_id=user_id,
        week_iso=week,
        type=recommendation.type,
        new_value=recommendation.action,
        reason=recommendation.reason,
    )
    db.add(entry)
    return entry


def list_adjustments(db: Session, user_id, limit: int = 10) -> List[AdjustmentLog]:
    return (
        db.query(AdjustmentLog)
        .filter(AdjustmentLog.user_id == user_id)
        .order_by(AdjustmentLog.created_at.desc(), AdjustmentLog.week_iso.desc())
        .limit(limit)
        .all()
    )


def submit_checkin(db: Session, user_id, data: Dict[str, Any], today: Optional[date] = None) -> WeeklyCheckin:
    """
    Create or replace the check-in for the current ISO week.

    ``data`` carries the WeeklyCheckin columns; the recommendation is derived
    from them and the previous week's weight.
    """
    today = today or datetime.now(timezone.utc).date()
    week = iso_week(today)

    pain_zones = data.get("pain_zones") or []
    has_pain = bool(pain_zones) or (data.get("pain_intensity") or 0) > 0
    recommendation = calculate_recommendation(
        current_weight=data.get("average_weight"),
        previous_weight=previous_weight(db, user_id, week),
        adherence=data.get("adherence_diet") or 0,
        rpe=data.get("rpe_avg") or 0,
        has_pain=has_pain,
        energy=data.get("energy"),
        sessions_completed=data.get("sessions_done") or 0,
    )

    checkin = get_checkin(db, user_id, week)
    if checkin is None:
        checkin = WeeklyCheckin(user_id=user_id, week_iso=week)
        db.add(checkin)
    for key, value in data.items():
        setattr(checkin, key, value)
    checkin.pain_zones = pain_zones
    checkin.recommendation = recommendation.to_dict()
    record_adjustment(db, user_id, week, recommendation)

    monday = week_monday(today)
    program = (
        db.query(WeeklyProgram)
        .filter(WeeklyProgram.user_id == user_id, WeeklyProgram.week_start_date == monday)
        .first()
    )
    if program is not None:
        program.check_in_completed = True

    db.flush()
    logger.info(
        "Weekly check-in stored",
        extra={"extra_fields": {"user_id": str(user_id), "week": week, "action": recommendation.action}},
    )
    return checkin
