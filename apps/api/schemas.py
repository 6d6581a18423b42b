from pydantic import BaseModel, ConfigDict, field_serializer
from datetime import datetime, date
from uuid import UUID
from typing import Optional, List, Dict, Any


class ProfileResponse(BaseModel):
    id: UUID
    email: str
    name: Optional[str] = None
    onboarding_completed: bool = False
    is_disabled: bool = False
    created_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None
    # Derived from user_roles / subscriptions
    role: str = "member"
    has_active_subscription: bool = False

    model_config = ConfigDict(from_attributes=True)

    @field_serializer('id')
    def serialize_id(self, id: UUID) -> str:
        return str(id)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: Optional[ProfileResponse] = None


class TrainingSessionResponse(BaseModel):
    """A generated workout; ``exercises`` is the stored session document."""
    id: UUID
    session_date: date
    exercises: Dict[str, Any]
    completed: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_serializer('id')
    def serialize_id(self, id: UUID) -> str:
        return str(id)


class WeeklyProgramResponse(BaseModel):
    success: bool
    sessions: List[TrainingSessionResponse]
    total_generated: int


class FeedbackResponse(BaseModel):
    id: UUID
    session_id: Optional[UUID] = None
    rpe: Optional[int] = None
    completed: bool
    had_pain: bool
    pain_zones: Optional[List[str]] = None
    comments: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CheckinResponse(BaseModel):
    id: UUID
    week_iso: str
    average_weight: Optional[float] = None
    waist_circumference: Optional[float] = None
    adherence_diet: Optional[int] = None
    rpe_avg: Optional[float] = None
    energy: Optional[str] = None
    sleep: Optional[str] = None
    hunger: Optional[str] = None
    pain_zones: Optional[List[str]] = None
    pain_intensity: Optional[int] = None
    sessions_done: Optional[int] = None
    sessions_planned: Optional[int] = None
    blockers: Optional[str] = None
    recommendation: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(from_attributes=True)


class ConversationResponse(BaseModel):
    id: UUID
    coach_type: str
    title: str
    is_archived: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ChatMessageResponse(BaseModel):
    id: UUID
    role: str
    content: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class GoalsResponse(BaseModel):
    goal_type: Optional[str] = None
    horizon: Optional[str] = None
    target_weight_loss: Optional[float] = None
    age: Optional[int] = None
    sex: Optional[str] = None
    height: Optional[float] = None
    weight: Optional[float] = None
    activity_level: Optional[str] = None
    frequency: Optional[int] = None
    session_duration: Optional[int] = None
    location: Optional[str] = None
    equipment: Optional[List[str]] = None
    has_cardio: Optional[bool] = None
    cardio_frequency: Optional[int] = None
    meals_per_day: Optional[int] = None
    has_breakfast: Optional[bool] = None
    restrictions: Optional[List[str]] = None
    allergies: Optional[List[str]] = None
    health_conditions: Optional[List[str]] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TrainingPreferencesResponse(BaseModel):
    experience_level: Optional[str] = None
    session_type: Optional[str] = None
    split_preference: Optional[str] = None
    progression_focus: Optional[str] = None
    mobility_preference: Optional[str] = None
    cardio_intensity: Optional[str] = None
    priority_zones: Optional[List[str]] = None
    limitations: Optional[List[str]] = None
    favorite_exercises: Optional[str] = None
    exercises_to_avoid: Optional[str] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class WeightLogResponse(BaseModel):
    id: UUID
    weight: float
    waist_circumference: Optional[float] = None
    logged_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NutritionLogResponse(BaseModel):
    id: UUID
    meal_type: str
    food_description: str
    calories: int
    protein: Optional[float] = None
    carbs: Optional[float] = None
    fats: Optional[float] = None
    logged_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ExerciseLogResponse(BaseModel):
    id: UUID
    session_id: UUID
    exercise_name: str
    set_number: int
    weight_used: Optional[float] = None
    rpe_felt: Optional[int] = None
    comment: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class AdjustmentResponse(BaseModel):
    id: UUID
    week_iso: Optional[str] = None
    type: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    reason: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SupportTicketResponse(BaseModel):
    id: UUID
    subject: str
    message: str
    status: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
