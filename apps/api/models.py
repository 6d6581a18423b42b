from sqlalchemy import Column, Integer, Boolean, CheckConstraint, Float, Date, DateTime, ForeignKey, Text, Index, UniqueConstraint, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.sql import func
from core.database import Base
import uuid
from datetime import datetime, timezone

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests). Also used for the
# short text lists (equipment, allergies, pain zones...).
JSONType = JSON().with_variant(JSONB(), "postgresql")

ACTIVE_SUBSCRIPTION_STATUSES = ("active", "trialing")


class Profile(Base):
    """
    One row per account. The profile id is the user id used as JWT subject and
    as the foreign key of every user-owned table.
    """

    __tablename__ = "profiles"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(Text, unique=True, nullable=False, index=True)
    name = Column(Text, nullable=True)
    password_hash = Column(Text, nullable=True)

    is_disabled = Column(Boolean, default=False, nullable=False)
    onboarding_completed = Column(Boolean, default=False, nullable=False)
    last_activity_at = Column(DateTime(timezone=True), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    goals = relationship("Goals", uselist=False, back_populates="profile", passive_deletes=True)
    training_preferences = relationship("TrainingPreferences", uselist=False, back_populates="profile", passive_deletes=True)
    subscription = relationship("Subscription", uselist=False, back_populates="profile", passive_deletes=True)
    roles = relationship("UserRole", back_populates="profile", passive_deletes=True)

    @property
    def role_names(self) -> set:
        return {r.role for r in (self.roles or [])}

    @property
    def is_admin(self) -> bool:
        return "admin" in self.role_names

    @property
    def has_active_subscription(self) -> bool:
        sub = self.subscription
        return bool(sub and sub.status in ACTIVE_SUBSCRIPTION_STATUSES)


class UserRole(Base):
    __tablename__ = "user_roles"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(Text, nullable=False)  # admin | member
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    profile = relationship("Profile", back_populates="roles")

    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
        CheckConstraint("role IN ('admin', 'member')", name="ck_user_roles_role"),
    )


class Goals(Base):
    """Onboarding answers: body metrics, training volume and nutrition constraints."""

    __tablename__ = "goals"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)

    goal_type = Column(Text, nullable=True)  # weight-loss | muscle-gain | recomp | strength | endurance | general-health
    horizon = Column(Text, nullable=True)
    target_weight_loss = Column(Float, nullable=True)

    age = Column(Integer, nullable=True)
    sex = Column(Text, nullable=True)  # male | female | other
    height = Column(Float, nullable=True)  # cm
    weight = Column(Float, nullable=True)  # kg
    activity_level = Column(Text, nullable=True)

    frequency = Column(Integer, nullable=True)  # sessions per week
    session_duration = Column(Integer, nullable=True)  # minutes
    location = Column(Text, nullable=True)  # home | gym | outdoor
    equipment = Column(JSONType, nullable=True, default=list)
    has_cardio = Column(Boolean, nullable=True)
    cardio_frequency = Column(Integer, nullable=True)

    meals_per_day = Column(Integer, nullable=True)
    has_breakfast = Column(Boolean, nullable=True)
    restrictions = Column(JSONType, nullable=True, default=list)
    allergies = Column(JSONType, nullable=True, default=list)
    health_conditions = Column(JSONType, nullable=True, default=list)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    profile = relationship("Profile", back_populates="goals")


class TrainingPreferences(Base):
    __tablename__ = "training_preferences"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)

    experience_level = Column(Text, nullable=True)  # beginner | intermediate | advanced | expert
    session_type = Column(Text, nullable=True)
    split_preference = Column(Text, nullable=True)  # full_body | upper_lower | ppl | body_part
    progression_focus = Column(Text, nullable=True)
    mobility_preference = Column(Text, nullable=True)
    cardio_intensity = Column(Text, nullable=True)
    priority_zones = Column(JSONType, nullable=True, default=list)
    limitations = Column(JSONType, nullable=True, default=list)
    favorite_exercises = Column(Text, nullable=True)
    exercises_to_avoid = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    profile = relationship("Profile", back_populates="training_preferences")


class TrainingSession(Base):
    """
    One planned workout. ``exercises`` holds the generated payload:
    sessionName, warmup, exercises[], checklist, coachNotes, estimatedTime, completed.
    """

    __tablename__ = "sessions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    session_date = Column(Date, nullable=False, index=True)
    exercises = Column(JSONType, nullable=False, default=dict)
    completed = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_sessions_user_date", "user_id", "session_date"),
    )


class SessionFeedback(Base):
    __tablename__ = "feedback"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    session_id = Column(UUID(as_uuid=True), ForeignKey("sessions.id", ondelete="SET NULL"), nullable=True, index=True)

    rpe = Column(Integer, nullable=True)
    completed = Column(Boolean, default=True, nullable=False)
    had_pain = Column(Boolean, default=False, nullable=False)
    pain_zones = Column(JSONType, nullable=True, default=list)
    comments = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("rpe IS NULL OR (rpe >= 1 AND rpe <= 10)", name="ck_feedback_rpe_range"),
    )


class ExerciseLog(Base):
    """Per-set load and effort recorded with the post-session feedback."""

    __tablename__ = "exercise_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    session_id = Column(UUID(as_uuid=True), ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    exercise_name = Column(Text, nullable=False)
    set_number = Column(Integer, nullable=False)
    weight_used = Column(Float, nullable=True)  # kg
    rpe_felt = Column(Integer, nullable=True)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class WeightLog(Base):
    __tablename__ = "weight_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    weight = Column(Float, nullable=False)  # kg
    waist_circumference = Column(Float, nullable=True)  # cm
    logged_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_weight_logs_user_logged_at", "user_id", "logged_at"),
    )


class NutritionLog(Base):
    __tablename__ = "nutrition_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    meal_type = Column(Text, nullable=False)  # breakfast | lunch | dinner | snack
    food_description = Column(Text, nullable=False)
    calories = Column(Integer, nullable=False)
    protein = Column(Float, nullable=True)
    carbs = Column(Float, nullable=True)
    fats = Column(Float, nullable=True)
    logged_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_nutrition_logs_user_logged_at", "user_id", "logged_at"),
        CheckConstraint("meal_type IN ('breakfast', 'lunch', 'dinner', 'snack')", name="ck_nutrition_logs_meal_type"),
    )


class WeeklyCheckin(Base):
    __tablename__ = "weekly_checkins"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    week_iso = Column(Text, nullable=False)  # YYYY-Www

    average_weight = Column(Float, nullable=True)
    waist_circumference = Column(Float, nullable=True)
    adherence_diet = Column(Integer, nullable=True)  # percent
    rpe_avg = Column(Float, nullable=True)
    energy = Column(Text, nullable=True)  # low | medium | high
    sleep = Column(Text, nullable=True)
    hunger = Column(Text, nullable=True)
    pain_zones = Column(JSONType, nullable=True, default=list)
    pain_intensity = Column(Integer, nullable=True)
    sessions_done = Column(Integer, nullable=True)
    sessions_planned = Column(Integer, nullable=True)
    blockers = Column(Text, nullable=True)
    recommendation = Column(JSONType, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("user_id", "week_iso", name="uq_weekly_checkins_user_week"),
    )


class AdjustmentLog(Base):
    """Journal of the adjustments recommended by weekly check-ins, one per week."""

    __tablename__ = "adjustments_log"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    week_iso = Column(Text, nullable=True)
    type = Column(Text, nullable=False)  # nutrition | training
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)


class WeeklyProgram(Base):
    __tablename__ = "weekly_programs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    week_start_date = Column(Date, nullable=False)
    week_end_date = Column(Date, nullable=False)
    check_in_completed = Column(Boolean, default=False, nullable=False)
    generated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "week_start_date", name="uq_weekly_programs_user_week"),
    )


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    coach_type = Column(Text, nullable=False)  # alex | julie
    title = Column(Text, nullable=False, default="Nouvelle conversation")
    is_archived = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False, index=True)

    messages = relationship(
        "ChatMessage",
        back_populates="conversation",
        order_by="ChatMessage.created_at",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("coach_type IN ('alex', 'julie')", name="ck_conversations_coach_type"),
    )


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    conversation_id = Column(UUID(as_uuid=True), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(Text, nullable=False)  # user | assistant
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    conversation = relationship("Conversation", back_populates="messages")

    __table_args__ = (
        CheckConstraint("role IN ('user', 'assistant')", name="ck_chat_messages_role"),
    )


class Subscription(Base):
    """
    Stripe subscription mirror.

    Stripe is the billing source of truth; this table stores a minimal, queryable
    mirror for entitlement decisions and admin visibility. One row per user.
    """

    __tablename__ = "subscriptions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)

    stripe_customer_id = Column(Text, nullable=True, index=True)
    stripe_subscription_id = Column(Text, nullable=True, index=True)

    status = Column(Text, nullable=True, index=True)  # active|trialing|past_due|canceled|...
    plan_type = Column(Text, nullable=True)  # weekly | monthly | yearly
    started_at = Column(DateTime(timezone=True), nullable=True)
    ends_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    profile = relationship("Profile", back_populates="subscription")


class StripeEvent(Base):
    """
    Processed Stripe events (idempotency guard).

    Stripe retries webhook deliveries; storing event ids makes webhook handling safe.
    """

    __tablename__ = "stripe_events"

    event_id = Column(Text, primary_key=True)
    event_type = Column(Text, nullable=False, index=True)
    stripe_created = Column(Integer, nullable=True)
    received_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class AdminAuditLog(Base):
    """
    Append-only audit log for admin actions.

    Rows are never updated by the application. ``target_user_id`` is kept as a
    bare column so entries survive the deletion of the targeted account.
    """

    __tablename__ = "admin_audit_log"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    admin_user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    target_user_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    action = Column(Text, nullable=False, index=True)
    details = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)


class ExerciseImageCache(Base):
    __tablename__ = "exercise_image_cache"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    exercise_name = Column(Text, nullable=False)
    exercise_name_normalized = Column(Text, nullable=False, unique=True, index=True)
    image_url = Column(Text, nullable=True)
    gif_url = Column(Text, nullable=True)
    source = Column(Text, nullable=False, default="exercisedb")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class PublicStatsCache(Base):
    """Single-row cache ('main') behind the public landing page counters."""

    __tablename__ = "public_stats_cache"

    id = Column(Text, primary_key=True, default="main")
    total_users = Column(Integer, nullable=False, default=0)
    completed_sessions = Column(Integer, nullable=False, default=0)
    average_rating = Column(Float, nullable=True)
    avg_weight_loss = Column(Float, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


class EmailQueueItem(Base):
    """Scheduled transactional email (onboarding sequence)."""

    __tablename__ = "email_queue"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    email_type = Column(Text, nullable=False)  # onboarding_day1 | onboarding_day3 | onboarding_day7
    status = Column(Text, nullable=False, default="pending", index=True)  # pending | sent | failed
    scheduled_at = Column(DateTime(timezone=True), nullable=False, index=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class CancellationFeedback(Base):
    """
    Reason given when cancelling a subscription or deleting the account.

    ``user_id`` is cleared when the account is deleted; the answer itself is kept.
    """

    __tablename__ = "cancellation_feedback"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)
    action_type = Column(Text, nullable=False)  # cancel_subscription | delete_account
    reason = Column(Text, nullable=False)
    additional_comments = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    __table_args__ = (
        CheckConstraint(
            "action_type IN ('cancel_subscription', 'delete_account')",
            name="ck_cancellation_feedback_action_type",
        ),
    )


class SupportTicket(Base):
    """Support form submission; ``user_id`` is set when the sender was signed in."""

    __tablename__ = "support_tickets"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=True, index=True)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=False)
    subject = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="open", index=True)  # open | in_progress | resolved | closed
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('open', 'in_progress', 'resolved', 'closed')",
            name="ck_support_tickets_status",
        ),
    )
