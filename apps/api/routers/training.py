"""
Training API endpoints.

Weekly program generation, the user's generated sessions and post-session
feedback.
"""
from datetime import date, timedelta
from typing import List, Optional
from uuid import UUID
import logging

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.database import get_db
from core.exceptions import NotFoundError, ValidationError
from models import ExerciseLog, Profile, SessionFeedback, TrainingSession
from schemas import ExerciseLogResponse, FeedbackResponse, TrainingSessionResponse, WeeklyProgramResponse
from services.program_generator import generate_weekly_program, week_monday

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/training", tags=["training"])

GENERATION_INCOMPLETE = "Impossible de générer suffisamment de séances. Réessaie dans quelques instants."


class WeeklyProgramRequest(BaseModel):
    week_start_date: date
    regenerate: bool = False


class ExerciseLogEntry(BaseModel):
    exercise_name: str = Field(..., min_length=1, max_length=200)
    set_number: int = Field(..., ge=1, le=20)
    weight_used: Optional[float] = Field(default=None, ge=0, le=1000)
    rpe_felt: Optional[int] = Field(default=None, ge=1, le=10)
    comment: Optional[str] = Field(default=None, max_length=500)


class FeedbackCreate(BaseModel):
    session_id: Optional[UUID] = None
    rpe: int = Field(..., ge=1, le=10)
    completed: bool = True
    had_pain: bool = False
    pain_zones: List[str] = Field(default_factory=list, max_length=20)
    comments: Optional[str] = Field(default=None, max_length=2000)
    exercise_logs: List[ExerciseLogEntry] = Field(default_factory=list, max_length=200)


def _get_owned_session(db: Session, user: Profile, session_id: UUID) -> TrainingSession:
    row = (
        db.query(TrainingSession)
        .filter(TrainingSession.id == session_id, TrainingSession.user_id == user.id)
        .first()
    )
    if row is None:
        raise NotFoundError("Séance introuvable")
    return row


@router.post("/weekly-program", response_model=WeeklyProgramResponse)
def create_weekly_program(
    request: WeeklyProgramRequest,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Generate the sessions of one week.

    Below the minimum number of generated sessions the response is a 500
    carrying the sessions that did get stored.
    """
    result = generate_weekly_program(db, current_user, request.week_start_date, regenerate=request.regenerate)
    sessions = [TrainingSessionResponse.model_validate(s) for s in result.sessions]

    if not result.success:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": GENERATION_INCOMPLETE,
                "error_code": "GENERATION_INCOMPLETE",
                "partial_sessions": [s.model_dump(mode="json") for s in sessions],
                "total_generated": result.total_generated,
                "required": result.required,
            },
        )

    return WeeklyProgramResponse(success=True, sessions=sessions, total_generated=result.total_generated)


@router.get("/sessions", response_model=List[TrainingSessionResponse])
def list_sessions(
    week_start: Optional[date] = Query(default=None),
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Sessions of the week containing ``week_start``, or the 50 most recent."""
    query = db.query(TrainingSession).filter(TrainingSession.user_id == current_user.id)
    if week_start is not None:
        monday = week_monday(week_start)
        return (
            query.filter(
                TrainingSession.session_date >= monday,
                TrainingSession.session_date < monday + timedelta(days=7),
            )
            .order_by(TrainingSession.session_date.asc())
            .all()
        )
    return query.order_by(TrainingSession.session_date.desc()).limit(50).all()


@router.post("/sessions/{session_id}/complete", response_model=TrainingSessionResponse)
def complete_session(
    session_id: UUID,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = _get_owned_session(db, current_user, session_id)
    row.completed = True
    db.flush()
    return row


@router.post("/feedback", response_model=FeedbackResponse, status_code=status.HTTP_201_CREATED)
def create_feedback(
    request: FeedbackCreate,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if request.exercise_logs and request.session_id is None:
        raise ValidationError("Les charges doivent être rattachées à une séance", field="session_id")
    if request.session_id is not None:
        session_row = _get_owned_session(db, current_user, request.session_id)
        if request.completed:
            session_row.completed = True

    feedback = SessionFeedback(
        user_id=current_user.id,
        session_id=request.session_id,
        rpe=request.rpe,
        completed=request.completed,
        had_pain=request.had_pain or bool(request.pain_zones),
        pain_zones=request.pain_zones,
        comments=(request.comments or "").strip() or None,
    )
    db.add(feedback)
    for entry in request.exercise_logs:
        db.add(ExerciseLog(user_id=current_user.id, session_id=request.session_id, **entry.model_dump()))
    db.flush()
    logger.info(
        "Session feedback stored",
        extra={
            "extra_fields": {
                "user_id": str(current_user.id),
                "rpe": request.rpe,
                "had_pain": feedback.had_pain,
                "sets_logged": len(request.exercise_logs),
            }
        },
    )
    return feedback


@router.get("/sessions/{session_id}/exercise-logs", response_model=List[ExerciseLogResponse])
def list_exercise_logs(
    session_id: UUID,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Sets logged for one session, by exercise then set number."""
    _get_owned_session(db, current_user, session_id)
    return (
        db.query(ExerciseLog)
        .filter(ExerciseLog.session_id == session_id, ExerciseLog.user_id == current_user.id)
        .order_by(ExerciseLog.exercise_name.asc(), ExerciseLog.set_number.asc())
        .all()
    )
