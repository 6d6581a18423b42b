from __future__ import annotations

import logging
from typing import Optional

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field

from core.auth import get_current_user, get_current_user_optional
from core.database import get_db
from models import Profile
from services.cancellation_feedback import record_cancellation_feedback, validate_reason
from services.stripe_service import StripeService, process_stripe_event


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/billing", tags=["billing"])

PAYMENT_ERROR = "Erreur du service de paiement"


class CheckoutRequest(BaseModel):
    plan: str = Field(..., pattern="^(weekly|monthly|yearly)$")
    promo_code: Optional[str] = Field(default=None, max_length=64)


class LinkSessionRequest(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=255)


class PromoValidateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=100)
    additional_comments: Optional[str] = Field(default=None, max_length=1000)


def _payment_failure(scope: str, e: Exception) -> HTTPException:
    logger.error(f"[{scope}] Stripe error: {e}")
    return HTTPException(status_code=500, detail=PAYMENT_ERROR)


@router.post("/checkout")
def create_checkout(
    request: CheckoutRequest,
    http_request: Request,
    current_user: Optional[Profile] = Depends(get_current_user_optional),
):
    """
    Create a Stripe Checkout Session for one of the plans.
    Visitors may check out before signing up. Returns a hosted URL.
    """
    try:
        url = StripeService().create_checkout_session(
            plan=request.plan,
            user=current_user,
            origin=http_request.headers.get("origin"),
            promo_code=request.promo_code,
        )
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except stripe.StripeError as e:
        raise _payment_failure("CREATE-CHECKOUT", e)
    return {"url": url}


@router.get("/subscription")
def check_subscription(current_user: Profile = Depends(get_current_user), db: Session = Depends(get_db)):
    try:
        return StripeService().sync_subscription_for_user(db, user=current_user)
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except stripe.StripeError as e:
        raise _payment_failure("CHECK-SUBSCRIPTION", e)


@router.post("/cancel")
def cancel_subscription(
    request: Optional[CancelRequest] = None,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Cancel immediately; the optional reason is stored with the cancellation."""
    feedback = request if request and request.reason else None
    if feedback:
        validate_reason(feedback.reason)
    try:
        result = StripeService().cancel_subscription(db, user=current_user)
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except stripe.StripeError as e:
        raise _payment_failure("CANCEL-SUBSCRIPTION", e)

    if feedback:
        record_cancellation_feedback(
            db, current_user.id, "cancel_subscription", feedback.reason, feedback.additional_comments
        )
    return result


@router.post("/link-session")
def link_session(
    request: LinkSessionRequest,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Attach a checkout completed before sign-up to the current account."""
    try:
        return StripeService().link_checkout_session(db, user=current_user, session_id=request.session_id)
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except stripe.StripeError as e:
        raise _payment_failure("LINK-SUBSCRIPTION", e)


@router.post("/promo/validate")
def validate_promo(request: PromoValidateRequest):
    try:
        return StripeService().validate_promo_code(request.code)
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except stripe.StripeError as e:
        raise _payment_failure("VALIDATE-PROMO", e)


@router.post("/portal")
def create_portal(current_user: Profile = Depends(get_current_user), db: Session = Depends(get_db)):
    """
    Create a Stripe Customer Portal Session.
    Returns a hosted URL.
    """
    try:
        url = StripeService().create_portal_session(db, user=current_user)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except stripe.StripeError as e:
        raise _payment_failure("CUSTOMER-PORTAL", e)
    return {"url": url}


@router.post("/webhooks/stripe")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Stripe webhook endpoint.

    Verifies signature and processes events idempotently.
    """
    sig = request.headers.get("stripe-signature")
    if not sig:
        raise HTTPException(status_code=400, detail="Missing Stripe-Signature header")

    payload = await request.body()
    try:
        event = StripeService().construct_event(payload=payload, sig_header=sig)
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except (ValueError, stripe.SignatureVerificationError):
        raise HTTPException(status_code=400, detail="Invalid webhook signature")

    result = process_stripe_event(db, event=event)
    return {"ok": True, "result": result}
