"""
On-demand AI generators: single training session, global training plan and
the nutrition helpers.

Gateway failures surface as 429/402 or a generic 500; details stay in the logs.
"""
from datetime import datetime, timezone
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.database import get_db
from core.exceptions import ValidationError
from models import Goals, Profile, TrainingSession
from services import llm_gateway, nutrition_generation, training_generation
from services.entitlements import (
    require_active_subscription,
    require_subscription_after_first_use,
    training_usage_count,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["generation"])


class TrainingPlanRequest(BaseModel):
    goal_type: Optional[str] = Field(default=None, max_length=50)
    experience_level: Optional[str] = Field(default=None, max_length=50)
    frequency: Optional[int] = Field(default=None, ge=1, le=7)
    session_duration: Optional[int] = Field(default=None, ge=10, le=240)
    location: Optional[str] = Field(default=None, max_length=50)
    equipment: List[str] = Field(default_factory=list, max_length=30)
    limitations: List[str] = Field(default_factory=list, max_length=20)


class MealRequest(BaseModel):
    protein: float = Field(..., ge=0, le=500)
    carbs: float = Field(..., ge=0, le=1000)
    fats: float = Field(..., ge=0, le=300)
    type: str = Field(..., pattern="^(sweet|savory)$")
    category: str = Field(..., pattern="^(breakfast|lunch|dinner|snack)$")


class HealthDataRequest(BaseModel):
    allergies: str = Field(default="", max_length=2000)
    restrictions: str = Field(default="", max_length=2000)
    health_conditions: str = Field(default="", max_length=2000)


@router.post("/training/session")
def generate_training_session(
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    One personalised session, stored for today.

    The first session is free; afterwards a subscription is required.
    """
    require_subscription_after_first_use(db, current_user, training_usage_count(db, current_user.id))
    try:
        session = training_generation.generate_single_session(db, current_user)
    except llm_gateway.LLMGatewayError as e:
        logger.error(f"Session generation failed: {e}", extra={"extra_fields": {"user_id": str(current_user.id)}})
        raise llm_gateway.to_api_exception(e)

    row = TrainingSession(
        user_id=current_user.id,
        session_date=datetime.now(timezone.utc).date(),
        exercises=session,
        completed=False,
    )
    db.add(row)
    db.flush()
    return {**session, "sessionId": str(row.id)}


@router.post("/training/plan")
def generate_training_plan(
    request: TrainingPlanRequest,
    current_user: Profile = Depends(get_current_user),
):
    try:
        return training_generation.generate_training_plan(request.model_dump())
    except llm_gateway.LLMGatewayError as e:
        logger.error(f"Training plan generation failed: {e}", extra={"extra_fields": {"user_id": str(current_user.id)}})
        raise llm_gateway.to_api_exception(e)


@router.post("/nutrition/plan")
def generate_nutrition_plan(
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_active_subscription(db, current_user)
    goals = db.query(Goals).filter(Goals.user_id == current_user.id).first()
    if goals is None:
        raise ValidationError("Objectifs introuvables. Termine l'onboarding.", field="goals")
    try:
        return nutrition_generation.generate_nutrition_plan(goals)
    except llm_gateway.LLMGatewayError as e:
        logger.error(f"Nutrition plan generation failed: {e}", extra={"extra_fields": {"user_id": str(current_user.id)}})
        raise llm_gateway.to_api_exception(e)


@router.post("/nutrition/meal")
def generate_meal(request: MealRequest, current_user: Profile = Depends(get_current_user)):
    try:
        return nutrition_generation.generate_meal(
            request.protein, request.carbs, request.fats, request.type, request.category
        )
    except llm_gateway.LLMGatewayError as e:
        logger.error(f"Meal generation failed: {e}", extra={"extra_fields": {"user_id": str(current_user.id)}})
        raise llm_gateway.to_api_exception(e)


@router.post("/nutrition/format-health-data")
def format_health_data(request: HealthDataRequest, current_user: Profile = Depends(get_current_user)):
    """Reformatted health data; on failure the reassuring defaults come back with a 500."""
    try:
        return nutrition_generation.format_health_data(
            request.allergies, request.restrictions, request.health_conditions
        )
    except llm_gateway.LLMGatewayError as e:
        logger.error(f"Health data formatting failed: {e}", extra={"extra_fields": {"user_id": str(current_user.id)}})
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "Erreur lors du formatage des données",
                "error_code": "UPSTREAM_ERROR",
                **nutrition_generation.HEALTH_DATA_DEFAULTS,
            },
        )
