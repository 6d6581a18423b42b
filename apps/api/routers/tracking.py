"""
Tracking API endpoints.

Body weight log and meal log, with the weekly nutrition summary.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.database import get_db
from models import Profile
from schemas import NutritionLogResponse, WeightLogResponse
from services import tracking

router = APIRouter(prefix="/v1/tracking", tags=["tracking"])


class WeightLogCreate(BaseModel):
    weight: float = Field(..., gt=0, le=500)
    waist_circumference: Optional[float] = Field(default=None, gt=0, le=300)
    logged_at: Optional[datetime] = None


class NutritionLogCreate(BaseModel):
    meal_type: str = Field(..., pattern="^(breakfast|lunch|dinner|snack)$")
    food_description: str = Field(..., min_length=1, max_length=500)
    calories: int = Field(..., ge=0, le=10000)
    protein: Optional[float] = Field(default=None, ge=0, le=1000)
    carbs: Optional[float] = Field(default=None, ge=0, le=1000)
    fats: Optional[float] = Field(default=None, ge=0, le=1000)
    logged_at: Optional[datetime] = None


@router.post("/weight", response_model=WeightLogResponse, status_code=status.HTTP_201_CREATED)
def create_weight_log(
    request: WeightLogCreate,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return tracking.log_weight(
        db,
        current_user.id,
        request.weight,
        waist_circumference=request.waist_circumference,
        logged_at=request.logged_at,
    )


@router.get("/weight", response_model=List[WeightLogResponse])
def list_weight_logs(
    days: int = Query(default=tracking.WEIGHT_HISTORY_DAYS, ge=1, le=365),
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return tracking.list_weight_logs(db, current_user.id, days=days)


@router.delete("/weight/{log_id}")
def delete_weight_log(
    log_id: UUID,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    tracking.delete_weight_log(db, current_user.id, log_id)
    return {"success": True}


@router.post("/nutrition", response_model=NutritionLogResponse, status_code=status.HTTP_201_CREATED)
def create_nutrition_log(
    request: NutritionLogCreate,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return tracking.log_meal(db, current_user.id, **request.model_dump())


@router.get("/nutrition", response_model=List[NutritionLogResponse])
def list_nutrition_logs(
    days: int = Query(default=tracking.NUTRITION_SUMMARY_DAYS, ge=1, le=90),
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return tracking.list_nutrition_logs(db, current_user.id, days=days)


@router.get("/nutrition/summary")
def nutrition_summary(current_user: Profile = Depends(get_current_user), db: Session = Depends(get_db)):
    """Last seven days; ``summary`` is null when no meal was logged."""
    logs = tracking.list_nutrition_logs(db, current_user.id)
    return {"days": tracking.NUTRITION_SUMMARY_DAYS, "summary": tracking.nutrition_summary(logs)}
