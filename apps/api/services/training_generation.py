"""
On-demand training generators: one personalised session, and the global
weekly plan shown during onboarding.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy.orm import Session

from core.exceptions import ValidationError
from models import Goals, Profile, TrainingPreferences, TrainingSession
from services import llm_gateway
from services.training_prompts import (
    SINGLE_SESSION_TOOL,
    build_single_session_messages,
    build_training_plan_prompts,
)

logger = logging.getLogger(__name__)

INCOMPLETE_CONFIGURATION = "Configuration incomplète"
REQUIRED_PERSONAL_FIELDS = ("age", "sex", "height", "weight")


def _incomplete(missing: str) -> ValidationError:
    return ValidationError(INCOMPLETE_CONFIGURATION, field="configuration", extra={"retryable": False, "missing": missing})


def generate_single_session(db: Session, user: Profile) -> Dict[str, Any]:
    goals = db.query(Goals).filter(Goals.user_id == user.id).first()
    prefs = db.query(TrainingPreferences).filter(TrainingPreferences.user_id == user.id).first()
    if goals is None:
        logger.error("Goals missing", extra={"extra_fields": {"user_id": str(user.id)}})
        raise _incomplete("goals")
    if prefs is None:
        logger.error("Training preferences missing", extra={"extra_fields": {"user_id": str(user.id)}})
        raise _incomplete("training_preferences")
    missing = [f for f in REQUIRED_PERSONAL_FIELDS if not getattr(goals, f)]
    if missing:
        logger.error(
            "Personal data incomplete",
            extra={"extra_fields": {"user_id": str(user.id), "missing": missing}},
        )
        raise _incomplete(",".join(missing))

    history_count = (
        db.query(TrainingSession.id)
        .filter(TrainingSession.user_id == user.id, TrainingSession.completed.is_(True))
        .count()
    )
    payload = llm_gateway.call_tool(build_single_session_messages(goals, prefs, history_count), SINGLE_SESSION_TOOL)

    exercises = [
        {**ex, "id": f"ex{idx + 1}"}
        for idx, ex in enumerate(payload.get("exercises") or [])
        if isinstance(ex, dict)
    ]
    logger.info(
        "Session generated",
        extra={"extra_fields": {"user_id": str(user.id), "exercises": len(exercises)}},
    )
    return {
        "exercises": exercises,
        "sessionName": f"Séance {prefs.session_type or 'personnalisée'}",
        "totalDuration": goals.session_duration,
        "generatedAt": datetime.now(timezone.utc).isoformat(),
    }


def generate_training_plan(answers: Dict[str, Any]) -> Dict[str, Any]:
    system_prompt, user_prompt = build_training_plan_prompts(answers)
    plan = llm_gateway.complete_json(system_prompt, user_prompt, temperature=0.7)
    if not isinstance(plan.get("weeklyPlan"), list):
        raise llm_gateway.InvalidModelOutputError("weeklyPlan missing from model response")
    return plan
