"""
Pytest configuration and fixtures

The suite runs against an in-memory SQLite database. The schema is rebuilt
before every test, so nothing leaks from one test to the next. Redis, email
delivery and rate limiting are switched off; LLM, Stripe and ExerciseDB calls
are monkeypatched in the tests that need them.
"""
import os
import sys
from datetime import datetime, timezone
from uuid import uuid4

# Must be set before core.config is imported.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key-with-at-least-32-characters")
os.environ["REDIS_URL"] = ""
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["EMAIL_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest  # noqa: E402

from core.database import Base, SessionLocal, engine  # noqa: E402
from core.security import create_access_token, get_password_hash  # noqa: E402
from models import Goals, Profile, Subscription, TrainingPreferences, UserRole  # noqa: E402

TEST_PASSWORD = "Sup3rSecret!"


@pytest.fixture(autouse=True)
def _fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()


def auth_headers(user: Profile) -> dict:
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers_for():
    return auth_headers


@pytest.fixture
def make_user():
    """
    Factory for committed profiles.

    ``subscription`` is a subscription status ('active', 'trialing',
    'canceled'...) or None for no subscription row.
    """

    def _make(
        email=None,
        name="Test User",
        admin=False,
        password=TEST_PASSWORD,
        onboarded=False,
        disabled=False,
        subscription=None,
    ) -> Profile:
        db = SessionLocal()
        try:
            user = Profile(
                email=email or f"user_{uuid4().hex[:10]}@example.com",
                name=name,
                password_hash=get_password_hash(password) if password else None,
                onboarding_completed=onboarded,
                is_disabled=disabled,
            )
            db.add(user)
            db.flush()
            db.add(UserRole(user_id=user.id, role="admin" if admin else "member"))
            if subscription:
                db.add(
                    Subscription(
                        user_id=user.id,
                        status=subscription,
                        plan_type="monthly",
                        stripe_customer_id=f"cus_{uuid4().hex[:8]}",
                        stripe_subscription_id=f"sub_{uuid4().hex[:8]}",
                        started_at=datetime.now(timezone.utc),
                    )
                )
            db.commit()
            db.refresh(user)
            return user
        finally:
            db.close()

    return _make


@pytest.fixture
def make_goals():
    def _make(user: Profile, **overrides) -> Goals:
        values = dict(
            goal_type="weight-loss",
            horizon="3_months",
            age=32,
            sex="female",
            height=168.0,
            weight=72.0,
            activity_level="moderate",
            frequency=3,
            session_duration=60,
            location="gym",
            equipment=["dumbbells", "barbell"],
            meals_per_day=3,
            has_breakfast=True,
            restrictions=[],
            allergies=[],
        )
        values.update(overrides)
        db = SessionLocal()
        try:
            goals = Goals(user_id=user.id, **values)
            db.add(goals)
            db.commit()
            db.refresh(goals)
            return goals
        finally:
            db.close()

    return _make


@pytest.fixture
def make_preferences():
    def _make(user: Profile, **overrides) -> TrainingPreferences:
        values = dict(
            experience_level="intermediate",
            session_type="strength",
            split_preference="full_body",
            progression_focus="strength",
            mobility_preference="light",
            cardio_intensity="moderate",
            priority_zones=["glutes"],
            limitations=[],
        )
        values.update(overrides)
        db = SessionLocal()
        try:
            prefs = TrainingPreferences(user_id=user.id, **values)
            db.add(prefs)
            db.commit()
            db.refresh(prefs)
            return prefs
        finally:
            db.close()

    return _make
