"""
Account API endpoints.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.database import get_db
from models import Profile, SupportTicket
from schemas import SupportTicketResponse
from services.account_deletion import delete_user_data
from services.cancellation_feedback import record_cancellation_feedback, validate_reason

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/account", tags=["account"])

RECENT_TICKETS = 5


class DeleteAccountRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=100)
    additional_comments: Optional[str] = Field(default=None, max_length=1000)


@router.delete("")
def delete_account(
    request: Optional[DeleteAccountRequest] = None,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Permanently delete the caller's account and every row they own.

    Runs in the request transaction: any failure rolls the whole deletion back.
    An optional reason is kept anonymously.
    """
    feedback = request if request and request.reason else None
    if feedback:
        validate_reason(feedback.reason)

    user_id = current_user.id
    counts = delete_user_data(db, user_id)
    if feedback:
        record_cancellation_feedback(db, None, "delete_account", feedback.reason, feedback.additional_comments)

    logger.info(
        "Account deleted by owner",
        extra={"extra_fields": {"user_id": str(user_id), "rows": sum(counts.values())}},
    )
    return {"success": True, "message": "Compte supprimé avec succès"}


@router.get("/support-tickets", response_model=List[SupportTicketResponse])
def support_tickets(current_user: Profile = Depends(get_current_user), db: Session = Depends(get_db)):
    """The caller's latest support requests with their status."""
    return (
        db.query(SupportTicket)
        .filter(SupportTicket.user_id == current_user.id)
        .order_by(SupportTicket.created_at.desc())
        .limit(RECENT_TICKETS)
        .all()
    )
