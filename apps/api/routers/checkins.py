"""
Weekly check-in API endpoints.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.database import get_db
from models import Profile
from schemas import AdjustmentResponse, CheckinResponse
from services.checkins import get_checkin, iso_week, list_adjustments, submit_checkin

router = APIRouter(prefix="/v1/checkins", tags=["checkins"])


class CheckinCreate(BaseModel):
    average_weight: Optional[float] = Field(default=None, gt=0, le=500)
    waist_circumference: Optional[float] = Field(default=None, gt=0, le=300)
    adherence_diet: int = Field(default=0, ge=0, le=100)
    rpe_avg: float = Field(default=0, ge=0, le=10)
    energy: Optional[str] = Field(default=None, pattern="^(low|medium|high)$")
    sleep: Optional[str] = Field(default=None, max_length=50)
    hunger: Optional[str] = Field(default=None, max_length=50)
    pain_zones: List[str] = Field(default_factory=list, max_length=20)
    pain_intensity: Optional[int] = Field(default=None, ge=0, le=10)
    sessions_done: int = Field(default=0, ge=0, le=14)
    sessions_planned: Optional[int] = Field(default=None, ge=0, le=14)
    blockers: Optional[str] = Field(default=None, max_length=2000)


@router.post("", response_model=CheckinResponse, status_code=status.HTTP_201_CREATED)
def create_checkin(
    request: CheckinCreate,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Store this week's check-in; the response carries the adjustment recommendation."""
    return submit_checkin(db, current_user.id, request.model_dump())


@router.get("/status")
def checkin_status(current_user: Profile = Depends(get_current_user), db: Session = Depends(get_db)):
    week = iso_week()
    checkin = get_checkin(db, current_user.id, week)
    return {
        "week": week,
        "completed": checkin is not None,
        "checkin": CheckinResponse.model_validate(checkin).model_dump(mode="json") if checkin else None,
    }


@router.get("/adjustments", response_model=List[AdjustmentResponse])
def adjustments(current_user: Profile = Depends(get_current_user), db: Session = Depends(get_db)):
    """The ten latest adjustments recommended by check-ins."""
    return list_adjustments(db, current_user.id)
