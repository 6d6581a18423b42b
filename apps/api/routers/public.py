"""
Public API endpoints (no authentication): landing-page stats, exercise
illustrations and the support contact form.
"""
from typing import Optional
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from core.auth import get_current_user_optional
from core.database import get_db
from models import Profile
from services.exercise_images import get_exercise_image
from services.public_stats import get_public_stats
from services.support import create_ticket, send_support_request, validate_support_request

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/public", tags=["public"])


class ExerciseImageRequest(BaseModel):
    exercise_name: str = Field(..., min_length=1, max_length=200)
    english_name: Optional[str] = Field(default=None, max_length=200)


class SupportRequestIn(BaseModel):
    # Limits are enforced by validate_support_request so the messages stay French.
    name: Optional[str] = None
    email: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None


@router.get("/stats")
def public_stats(db: Session = Depends(get_db)):
    return get_public_stats(db)


@router.post("/exercise-image")
def exercise_image(request: ExerciseImageRequest, db: Session = Depends(get_db)):
    return get_exercise_image(db, request.exercise_name, request.english_name)


@router.post("/support")
def support(
    request: SupportRequestIn,
    current_user: Optional[Profile] = Depends(get_current_user_optional),
    db: Session = Depends(get_db),
):
    """
    Store the request as a ticket and forward it to the support inbox.

    The ticket is linked to the sender when signed in. A delivery failure
    rolls the ticket back.
    """
    support_request = validate_support_request(request.name, request.email, request.subject, request.message)
    ticket = create_ticket(db, support_request, user_id=current_user.id if current_user else None)
    send_support_request(support_request)
    logger.info(
        "Support request forwarded",
        extra={"extra_fields": {"subject": support_request.subject, "ticket_id": str(ticket.id)}},
    )
    return {"success": True, "message": "Message envoyé avec succès"}
