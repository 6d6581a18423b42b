"""
Weekly Program Generator

Builds one week of training sessions for a user:

1. read goals and training preferences
2. place ``frequency`` sessions inside the Monday-based week
3. pick the session focus from the preferred split
4. one forced tool call per session on the LLM gateway
5. persist each successful session; a failed one is skipped

The week counts as generated when at least ``min(3, frequency)`` sessions
were persisted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import ConflictError, ValidationError
from models import Goals, Profile, TrainingPreferences, TrainingSession, WeeklyProgram
from services import llm_gateway
from services.training_prompts import WEEKLY_SESSION_TOOL, build_weekly_session_messages

logger = logging.getLogger(__name__)

DEFAULT_FREQUENCY = 3
DEFAULT_SESSION_DURATION = 60
MIN_SUCCESSFUL_SESSIONS = 3
TOOL_CALL_ATTEMPTS = 2

SPLIT_ROTATIONS: Dict[str, List[str]] = {
    "upper_lower": ["Upper Body", "Lower Body", "Upper Body", "Lower Body", "Full Body", "Upper Body"],
    "ppl": ["Push", "Pull", "Legs", "Push", "Pull", "Legs"],
    "body_part": ["Chest & Triceps", "Back & Biceps", "Legs", "Shoulders", "Full Body", "Arms"],
}


@dataclass
class WeeklyProgramResult:
    week_start: date
    requested: int
    required: int
    sessions: List[TrainingSession] = field(default_factory=list)
    failures: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def total_generated(self) -> int:
        return len(self.sessions)

    @property
    def success(self) -> bool:
        return self.total_generated >= self.required


def week_monday(day: date) -> date:
    return day - timedelta(days=day.weekday())


def get_split_types(split: Optional[str], frequency: int) -> List[str]:
    rotation = SPLIT_ROTATIONS.get(split or "")
    if rotation is None:
        return ["Full Body"] * frequency
    return rotation


def compute_session_dates(week_start: date, frequency: int) -> List[date]:
    """Spread ``frequency`` sessions evenly from Monday, never past Sunday."""
    monday = week_monday(week_start)
    step = max(1, 7 // frequency)
    return [monday + timedelta(days=min(i * step, 6)) for i in range(frequency)]


def required_successes(frequency: int) -> int:
    return min(MIN_SUCCESSFUL_SESSIONS, frequency)


def _generate_session_payload(messages: List[Dict[str, str]]) -> Dict[str, Any]:
    """Tool call with a single retry when the model skipped the call."""
    last_error: Optional[Exception] = None
    for attempt in range(TOOL_CALL_ATTEMPTS):
        try:
            return llm_gateway.call_tool(messages, WEEKLY_SESSION_TOOL)
        except llm_gateway.MissingToolCallError as e:
            last_error = e
            logger.warning(f"No tool call (attempt {attempt + 1}/{TOOL_CALL_ATTEMPTS}): {e}")
    raise last_error


def _session_document(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "sessionName": payload.get("sessionName"),
        "warmup": payload.get("warmup") or [],
        "exercises": payload.get("exercises") or [],
        "checklist": payload.get("checklist") or [],
        "coachNotes": payload.get("coachNotes"),
        "estimatedTime": payload.get("estimatedTime"),
        "completed": False,
    }


def _delete_week_sessions(db: Session, user_id, monday: date) -> int:
    return (
        db.query(TrainingSession)
        .filter(
            TrainingSession.user_id == user_id,
            TrainingSession.session_date >= monday,
            TrainingSession.session_date < monday + timedelta(days=7),
        )
        .delete(synchronize_session=False)
    )


def _upsert_weekly_program(db: Session, user_id, monday: date) -> WeeklyProgram:
    program = (
        db.query(WeeklyProgram)
        .filter(WeeklyProgram.user_id == user_id, WeeklyProgram.week_start_date == monday)
        .first()
    )
    if program is None:
        program = WeeklyProgram(
            user_id=user_id,
            week_start_date=monday,
            week_end_date=monday + timedelta(days=6),
        )
        db.add(program)
    db.flush()
    return program


def generate_weekly_program(
    db: Session,
    user: Profile,
    week_start: date,
    regenerate: bool = False,
) -> WeeklyProgramResult:
    goals = db.query(Goals).filter(Goals.user_id == user.id).first()
    if not goals:
        raise ValidationError("Objectifs introuvables. Termine l'onboarding.", field="goals")
    preferences = db.query(TrainingPreferences).filter(TrainingPreferences.user_id == user.id).first()

    frequency = max(1, min(7, goals.frequency or DEFAULT_FREQUENCY))
    duration = goals.session_duration or DEFAULT_SESSION_DURATION
    monday = week_monday(week_start)

    if regenerate:
        deleted = _delete_week_sessions(db, user.id, monday)
        logger.info(
            "Deleted existing sessions before regeneration",
            extra={"extra_fields": {"user_id": str(user.id), "week_start": monday.isoformat(), "deleted": deleted}},
        )
    else:
        existing = (
            db.query(TrainingSession.id)
            .filter(
                TrainingSession.user_id == user.id,
                TrainingSession.session_date >= monday,
                TrainingSession.session_date < monday + timedelta(days=7),
            )
            .first()
        )
        if existing:
            raise ConflictError("Un programme existe déjà pour cette semaine.")

    dates = compute_session_dates(monday, frequency)
    session_types = get_split_types(getattr(preferences, "split_preference", None), frequency)
    result = WeeklyProgramResult(week_start=monday, requested=frequency, required=required_successes(frequency))

    for i, session_date in enumerate(dates):
        session_type = session_types[i % len(session_types)]
        messages = build_weekly_session_messages(i + 1, session_type, duration, goals, preferences)
        try:
            payload = _generate_session_payload(messages)
        except llm_gateway.LLMGatewayError as e:
            logger.error(
                f"Session {i + 1} generation failed: {e}",
                extra={"extra_fields": {"user_id": str(user.id), "session_index": i + 1, "status_code": e.status_code}},
            )
            result.failures.append({"index": i + 1, "session_date": session_date.isoformat(), "error": "generation"})
            continue

        try:
            with db.begin_nested():
                row = TrainingSession(
                    user_id=user.id,
                    session_date=session_date,
                    exercises=_session_document(payload),
                    completed=False,
                )
                db.add(row)
        except SQLAlchemyError as e:
            logger.error(f"Error inserting session {i + 1}: {e}")
            result.failures.append({"index": i + 1, "session_date": session_date.isoformat(), "error": "insert"})
            continue

        result.sessions.append(row)

    if result.success:
        _upsert_weekly_program(db, user.id, monday)

    logger.info(
        "Weekly program generation finished",
        extra={
            "extra_fields": {
                "user_id": str(user.id),
                "week_start": monday.isoformat(),
                "requested": result.requested,
                "generated": result.total_generated,
                "success": result.success,
            }
        },
    )
    return result
