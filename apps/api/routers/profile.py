"""
Profile API endpoints.

Onboarding questionnaire and settings: goals, training preferences, display
name and the onboarding flag.
"""
from typing import List, Literal, Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.database import get_db
from core.exceptions import NotFoundError
from models import Profile
from routers.auth import profile_response
from schemas import GoalsResponse, ProfileResponse, TrainingPreferencesResponse
from services import onboarding

router = APIRouter(prefix="/v1/profile", tags=["profile"])


def _split_list(value: Union[str, List[str], None]) -> Optional[List[str]]:
    """Accept a list or a comma-separated string; blanks are dropped."""
    if value is None:
        return None
    items = value.split(",") if isinstance(value, str) else value
    return [s.strip() for s in items if s and s.strip()]


class GoalsUpdate(BaseModel):
    goal_type: Optional[str] = Field(default=None, max_length=50)
    horizon: Optional[str] = Field(default=None, max_length=50)
    target_weight_loss: Optional[float] = Field(default=None, ge=0, le=100)
    age: Optional[int] = Field(default=None, ge=13, le=100)
    sex: Optional[Literal["male", "female", "other"]] = None
    height: Optional[float] = Field(default=None, ge=100, le=250)
    weight: Optional[float] = Field(default=None, ge=30, le=300)
    activity_level: Optional[str] = Field(default=None, max_length=50)
    frequency: Optional[int] = Field(default=None, ge=1, le=7)
    session_duration: Optional[int] = Field(default=None, ge=15, le=180)
    location: Optional[Literal["home", "gym", "outdoor"]] = None
    equipment: Optional[List[str]] = Field(default=None, max_length=30)
    has_cardio: Optional[bool] = None
    cardio_frequency: Optional[int] = Field(default=None, ge=0, le=7)
    meals_per_day: Optional[int] = Field(default=None, ge=1, le=8)
    has_breakfast: Optional[bool] = None
    restrictions: Optional[List[str]] = None
    allergies: Optional[List[str]] = None
    health_conditions: Optional[List[str]] = None

    @field_validator("restrictions", "allergies", "health_conditions", mode="before")
    @classmethod
    def _comma_separated(cls, value):
        return _split_list(value)


class TrainingPreferencesUpdate(BaseModel):
    experience_level: Optional[Literal["beginner", "intermediate", "advanced", "expert"]] = None
    session_type: Optional[Literal["strength", "cardio", "mixed", "mobility"]] = None
    split_preference: Optional[Literal["full_body", "upper_lower", "ppl", "body_part"]] = None
    progression_focus: Optional[Literal["strength", "reps", "rest", "technique", "auto"]] = None
    mobility_preference: Optional[Literal["every_session", "dedicated", "occasional", "none"]] = None
    cardio_intensity: Optional[Literal["liss", "miss", "hiit", "mixed"]] = None
    priority_zones: Optional[List[str]] = Field(default=None, max_length=10)
    limitations: Optional[List[str]] = Field(default=None, max_length=10)
    favorite_exercises: Optional[str] = Field(default=None, max_length=1000)
    exercises_to_avoid: Optional[str] = Field(default=None, max_length=1000)


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=100)
    onboarding_completed: Optional[bool] = None


@router.get("")
def get_profile(current_user: Profile = Depends(get_current_user), db: Session = Depends(get_db)):
    """Profile with its goals and training preferences (null until answered)."""
    goals = onboarding.get_goals(db, current_user.id)
    prefs = onboarding.get_training_preferences(db, current_user.id)
    return {
        "profile": profile_response(db, current_user).model_dump(mode="json"),
        "goals": GoalsResponse.model_validate(goals).model_dump(mode="json") if goals else None,
        "training_preferences": (
            TrainingPreferencesResponse.model_validate(prefs).model_dump(mode="json") if prefs else None
        ),
    }


@router.patch("", response_model=ProfileResponse)
def update_profile(
    request: ProfileUpdate,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user = onboarding.update_profile(
        db,
        current_user,
        name=request.name,
        onboarding_completed=request.onboarding_completed,
    )
    return profile_response(db, user)


@router.get("/goals", response_model=GoalsResponse)
def get_goals(current_user: Profile = Depends(get_current_user), db: Session = Depends(get_db)):
    goals = onboarding.get_goals(db, current_user.id)
    if goals is None:
        raise NotFoundError("Objectifs introuvables")
    return goals


@router.put("/goals", response_model=GoalsResponse)
def put_goals(
    request: GoalsUpdate,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Upsert; only the fields present in the body are written."""
    return onboarding.upsert_goals(db, current_user.id, request.model_dump(exclude_unset=True))


@router.get("/training-preferences", response_model=TrainingPreferencesResponse)
def get_training_preferences(current_user: Profile = Depends(get_current_user), db: Session = Depends(get_db)):
    prefs = onboarding.get_training_preferences(db, current_user.id)
    if prefs is None:
        raise NotFoundError("Préférences d'entraînement introuvables")
    return prefs


@router.put("/training-preferences", response_model=TrainingPreferencesResponse)
def put_training_preferences(
    request: TrainingPreferencesUpdate,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return onboarding.upsert_training_preferences(db, current_user.id, request.model_dump(exclude_unset=True))
