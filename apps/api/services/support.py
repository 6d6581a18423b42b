"""
Support contact form: validation, a stored ticket, forwarding to the support
inbox and a confirmation to the sender.
"""

import logging
import re
from dataclasses import dataclass
from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import UpstreamServiceError, ValidationError
from models import SupportTicket
from services import email_templates
from services.email_service import email_service

logger = logging.getLogger(__name__)

NAME_MAX = 100
EMAIL_MAX = 255
SUBJECT_MAX = 200
MESSAGE_MIN = 10
MESSAGE_MAX = 2000

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass
class SupportRequest:
    name: str
    email: str
    subject: str
    message: str


def validate_support_request(name, email, subject, message) -> SupportRequest:
    """Trimmed request, or ValidationError naming the first invalid field."""
    name = (name or "").strip()
    email = (email or "").strip()
    subject = (subject or "").strip()
    message = (message or "").strip()

    if not name:
        raise ValidationError("Le nom est requis", field="name")
    if len(name) > NAME_MAX:
        raise ValidationError("Le nom doit faire moins de 100 caractères", field="name")
    if not email:
        raise ValidationError("L'email est requis", field="email")
    if len(email) > EMAIL_MAX:
        raise ValidationError("L'email doit faire moins de 255 caractères", field="email")
    if not _EMAIL_RE.match(email):
        raise ValidationError("Format d'email invalide", field="email")
    if not subject:
        raise ValidationError("Le sujet est requis", field="subject")
    if len(subject) > SUBJECT_MAX:
        raise ValidationError("Le sujet doit faire moins de 200 caractères", field="subject")
    if not message:
        raise ValidationError("Le message est requis", field="message")
    if len(message) < MESSAGE_MIN:
        raise ValidationError("Le message doit faire au moins 10 caractères", field="message")
    if len(message) > MESSAGE_MAX:
        raise ValidationError("Le message doit faire moins de 2000 caractères", field="message")

    return SupportRequest(name=name, email=email, subject=subject, message=message)


def create_ticket(db: Session, req: SupportRequest, user_id=None) -> SupportTicket:
    ticket = SupportTicket(
        user_id=user_id,
        name=req.name,
        email=req.email,
        subject=req.subject,
        message=req.message,
        status="open",
    )
    db.add(ticket)
    db.flush()
    return ticket


def send_support_request(req: SupportRequest) -> None:
    to_support = email_templates.support_request_email(req.name, req.email, req.subject, req.message)
    sent = email_service.send_email(
        settings.SUPPORT_INBOX_EMAIL,
        to_support.subject,
        to_support.html,
        to_support.text,
        reply_to=req.email,
        from_email=settings.SUPPORT_FROM_EMAIL,
        from_name="Pulse-AI Support",
    )
    if not sent:
        logger.error("Support email not delivered", extra={"extra_fields": {"from": req.email}})
        raise UpstreamServiceError(
            detail="Une erreur est survenue lors de l'envoi du message",
            error_code="SUPPORT_EMAIL_FAILED",
        )

    confirmation = email_templates.support_confirmation_email(req.name, req.message)
    if not email_service.send_email(req.email, confirmation.subject, confirmation.html, confirmation.text):
        logger.warning("Support confirmation not delivered", extra={"extra_fields": {"to": req.email}})
