from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from typing import Any, Dict, Optional
from uuid import UUID

import stripe
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import NotFoundError, ValidationError
from core.logging import log_step
from models import ACTIVE_SUBSCRIPTION_STATUSES, Profile, StripeEvent, Subscription

logger = logging.getLogger(__name__)

PLAN_TYPES = ("weekly", "monthly", "yearly")
PLANS_WITH_TRIAL = ("monthly", "yearly")
PENDING_USER = "PENDING"


@dataclass(frozen=True)
class StripeConfig:
    secret_key: str
    webhook_secret: Optional[str]
    price_ids: Dict[str, str] = field(default_factory=dict)
    trial_days: int = 7
    web_base_url: str = "http://localhost:5173"
    portal_return_url: str = "http://localhost:5173/settings/subscription"


def _get_stripe_config() -> StripeConfig:
    """
    Load Stripe config via Settings.

    Fail closed: without a secret key, billing endpoints do not proceed.
    """
    secret_key = settings.STRIPE_SECRET_KEY
    if not secret_key:
        raise RuntimeError("Stripe not configured (missing: STRIPE_SECRET_KEY)")

    price_ids = {
        plan: str(price_id)
        for plan, price_id in (
            ("weekly", settings.STRIPE_PRICE_WEEKLY_ID),
            ("monthly", settings.STRIPE_PRICE_MONTHLY_ID),
            ("yearly", settings.STRIPE_PRICE_YEARLY_ID),
        )
        if price_id
    }
    base = settings.WEB_APP_BASE_URL.rstrip("/")
    return StripeConfig(
        secret_key=str(secret_key),
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET or None,
        price_ids=price_ids,
        trial_days=settings.STRIPE_TRIAL_DAYS,
        web_base_url=base,
        portal_return_url=settings.STRIPE_PORTAL_RETURN_URL or f"{base}/settings/subscription",
    )


def _field(obj: Any, key: str, default: Any = None) -> Any:
    """Read a field from a StripeObject, a dict, or a plain object."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, IndexError):
        return default
    except TypeError:
        return getattr(obj, key, default)
    return default if value is None else value


def _to_datetime(ts: Any) -> Optional[datetime]:
    try:
        if ts is None:
            return None
        return datetime.fromtimestamp(int(ts), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _iso(ts: Any) -> Optional[str]:
    dt = _to_datetime(ts)
    return dt.isoformat() if dt else None


def _first_item(sub: Any) -> Any:
    items = _field(sub, "items")
    data = _field(items, "data") or []
    return data[0] if data else None


def _period_ts(sub: Any, name: str) -> Optional[int]:
    """
    Stripe API compatibility:
    - older API versions carry current_period_* on the subscription
    - newer ones carry them on subscription items
    """
    ts = _field(sub, name)
    if ts is not None:
        return int(ts)
    items = _field(sub, "items")
    values = [int(_field(it, name)) for it in (_field(items, "data") or []) if _field(it, name) is not None]
    if not values:
        return None
    return max(values) if name.endswith("_end") else min(values)


def _plan_from_interval(interval: Optional[str]) -> Optional[str]:
    if not interval:
        return None
    return {"week": "weekly", "month": "monthly", "year": "yearly"}.get(interval, interval)


def _ensure_subscription_row(db: Session, *, user_id: UUID) -> Subscription:
    sub = db.query(Subscription).filter(Subscription.user_id == user_id).first()
    if sub:
        return sub
    sub = Subscription(user_id=user_id)
    db.add(sub)
    db.flush()
    return sub


def _safe_uuid(value: Any) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


class StripeService:
    def __init__(self) -> None:
        cfg = _get_stripe_config()
        stripe.api_key = cfg.secret_key
        self.cfg = cfg

    def find_customer_id(self, email: Optional[str]) -> Optional[str]:
        if not email:
            return None
        customers = stripe.Customer.list(email=email, limit=1)
        data = list(_field(customers, "data") or [])
        return str(_field(data[0], "id")) if data else None

    def _resolve_discount(self, promo_code: str) -> Optional[Dict[str, str]]:
        """Coupon id first, then an active promotion code. None when neither matches."""
        code = promo_code.strip().upper()
        try:
            coupon = stripe.Coupon.retrieve(code)
            if _field(coupon, "valid"):
                log_step(logger, "CREATE-CHECKOUT", "Coupon applied", {"couponId": _field(coupon, "id")})
                return {"coupon": str(_field(coupon, "id"))}
            return None
        except stripe.StripeError:
            pass

        try:
            promos = stripe.PromotionCode.list(code=code, active=True, limit=1)
            data = list(_field(promos, "data") or [])
            if data:
                log_step(logger, "CREATE-CHECKOUT", "Promotion code applied", {"promoId": _field(data[0], "id")})
                return {"promotion_code": str(_field(data[0], "id"))}
        except stripe.StripeError:
            log_step(logger, "CREATE-CHECKOUT", "Promo code not found, continuing without discount", {"code": code})
        return None

    def create_checkout_session(
        self,
        *,
        plan: str,
        user: Optional[Profile],
        origin: Optional[str] = None,
        promo_code: Optional[str] = None,
    ) -> str:
        """
        Hosted Checkout for one of the three plans.

        Works for visitors too (``user`` None): the session is tagged with a
        pending user and linked after sign-up via the session id.
        """
        if plan not in PLAN_TYPES:
            raise ValidationError(f"Formule invalide : {plan}", field="plan")
        price_id = self.cfg.price_ids.get(plan)
        if not price_id:
            raise RuntimeError(f"Stripe not configured (missing price for plan: {plan})")

        has_trial = plan in PLANS_WITH_TRIAL and self.cfg.trial_days > 0
        is_existing_user = bool(user and user.email)
        log_step(logger, "CREATE-CHECKOUT", "Plan selected", {
            "plan": plan, "priceId": price_id, "hasTrial": has_trial,
            "promoCode": "provided" if promo_code else "none",
        })

        customer_id = self.find_customer_id(user.email) if is_existing_user else None

        base = (origin or self.cfg.web_base_url).rstrip("/")
        success_url = f"{base}/payment-success?session_id={{CHECKOUT_SESSION_ID}}&is_new={str(not is_existing_user).lower()}"
        cancel_url = f"{base}/paywall?canceled=true" if is_existing_user else f"{base}/tarif?canceled=true"

        params: Dict[str, Any] = {
            "mode": "subscription",
            "line_items": [{"price": price_id, "quantity": 1}],
            "payment_method_collection": "always",
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": {
                "user_id": str(user.id) if user else PENDING_USER,
                "plan_type": plan,
                "is_new_user": str(not is_existing_user).lower(),
            },
        }
        if user:
            params["client_reference_id"] = str(user.id)
        if has_trial:
            params["subscription_data"] = {
                "trial_period_days": self.cfg.trial_days,
                "trial_settings": {"end_behavior": {"missing_payment_method": "cancel"}},
            }
        if customer_id:
            params["customer"] = customer_id
        elif is_existing_user:
            params["customer_email"] = user.email

        discount = self._resolve_discount(promo_code) if promo_code else None
        if discount:
            params["discounts"] = [discount]
        else:
            params["allow_promotion_codes"] = True

        session = stripe.checkout.Session.create(**params)
        log_step(logger, "CREATE-CHECKOUT", "Checkout session created", {"sessionId": _field(session, "id")})
        return str(_field(session, "url"))

    def validate_promo_code(self, code: str) -> Dict[str, Any]:
        code = code.strip().upper()
        log_step(logger, "VALIDATE-PROMO", "Validating promo code", {"code": code})
        try:
            coupon = stripe.Coupon.retrieve(code)
        except stripe.InvalidRequestError as e:
            if getattr(e, "code", None) != "resource_missing":
                raise
            coupon = None

        if coupon is not None:
            if not _field(coupon, "valid"):
                return {"valid": False, "error": "Code expiré ou invalide"}
            return {
                "valid": True,
                "coupon_id": _field(coupon, "id"),
                "promo_code_id": None,
                "discount": self._discount_payload(coupon, fallback_name=_field(coupon, "id")),
            }

        promos = stripe.PromotionCode.list(code=code, active=True, limit=1)
        data = list(_field(promos, "data") or [])
        if not data:
            return {"valid": False, "error": "Code invalide"}
        promo = data[0]
        coupon = _field(promo, "coupon")
        if coupon is None:
            # Newer API versions nest the coupon under promotion.coupon
            coupon = _field(_field(promo, "promotion"), "coupon")
        if isinstance(coupon, str):
            coupon = stripe.Coupon.retrieve(coupon)
        if not _field(coupon, "valid"):
            return {"valid": False, "error": "Code expiré"}
        return {
            "valid": True,
            "coupon_id": _field(coupon, "id"),
            "promo_code_id": _field(promo, "id"),
            "discount": self._discount_payload(coupon, fallback_name=_field(promo, "code")),
        }

    @staticmethod
    def _discount_payload(coupon: Any, *, fallback_name: Any) -> Dict[str, Any]:
        return {
            "percent_off": _field(coupon, "percent_off"),
            "amount_off": _field(coupon, "amount_off"),
            "duration": _field(coupon, "duration"),
            "name": _field(coupon, "name") or fallback_name,
        }

    def sync_subscription_for_user(self, db: Session, *, user: Profile) -> Dict[str, Any]:
        """
        Pull the customer's current subscription from Stripe and mirror it.

        Returns the subscription summary shown by the client.
        """
        summary: Dict[str, Any] = {
            "subscribed": False,
            "subscription_status": None,
            "product_id": None,
            "subscription_end": None,
            "trial_end": None,
        }
        customer_id = self.find_customer_id(user.email)
        if not customer_id:
            log_step(logger, "CHECK-SUBSCRIPTION", "No customer found", {"userId": str(user.id)})
            return summary

        subs = stripe.Subscription.list(customer=customer_id, limit=10)
        valid = next(
            (s for s in (_field(subs, "data") or []) if _field(s, "status") in ACTIVE_SUBSCRIPTION_STATUSES),
            None,
        )
        if valid is None:
            log_step(logger, "CHECK-SUBSCRIPTION", "No valid subscription found", {"customerId": customer_id})
            return summary

        status = _field(valid, "status")
        period_end = _period_ts(valid, "current_period_end")
        item = _first_item(valid)
        price = _field(item, "price")
        recurring = _field(price, "recurring")

        summary.update({
            "subscribed": True,
            "subscription_status": status,
            "product_id": _field(price, "product"),
            "subscription_end": _iso(period_end),
            "trial_end": _iso(_field(valid, "trial_end")) if status == "trialing" else None,
        })

        row = _ensure_subscription_row(db, user_id=user.id)
        row.stripe_customer_id = customer_id
        row.stripe_subscription_id = _field(valid, "id")
        row.status = status
        row.plan_type = _plan_from_interval(_field(recurring, "interval")) or "monthly"
        row.started_at = _to_datetime(_field(valid, "created")) or datetime.now(timezone.utc)
        row.ends_at = _to_datetime(period_end)
        db.flush()

        log_step(logger, "CHECK-SUBSCRIPTION", "Valid subscription found", {
            "subscriptionId": row.stripe_subscription_id, "status": status, "endDate": summary["subscription_end"],
        })
        return summary

    def link_checkout_session(self, db: Session, *, user: Profile, session_id: str) -> Dict[str, Any]:
        """Attach a completed Checkout session (possibly paid before sign-up) to ``user``."""
        session = stripe.checkout.Session.retrieve(session_id, expand=["subscription"])
        customer = _field(session, "customer")
        subscription = _field(session, "subscription")
        if not customer or not subscription:
            raise ValidationError("Session de paiement invalide", field="session_id")

        customer_id = customer if isinstance(customer, str) else _field(customer, "id")
        if isinstance(subscription, str):
            subscription = stripe.Subscription.retrieve(subscription)

        trial_end = _to_datetime(_field(subscription, "trial_end"))
        period_end = _to_datetime(_period_ts(subscription, "current_period_end"))
        metadata = _field(session, "metadata") or {}

        row = _ensure_subscription_row(db, user_id=user.id)
        row.stripe_customer_id = customer_id
        row.stripe_subscription_id = _field(subscription, "id")
        row.status = _field(subscription, "status")
        row.plan_type = _field(metadata, "plan_type") or "monthly"
        row.started_at = _to_datetime(_period_ts(subscription, "current_period_start"))
        row.ends_at = trial_end or period_end
        db.flush()

        log_step(logger, "LINK-SUBSCRIPTION", "Subscription linked", {
            "userId": str(user.id), "subscriptionId": row.stripe_subscription_id, "status": row.status,
        })
        return {
            "success": True,
            "subscription": {
                "id": row.stripe_subscription_id,
                "status": row.status,
                "trial_end": _field(subscription, "trial_end"),
            },
        }

    def cancel_subscription(self, db: Session, *, user: Profile) -> Dict[str, Any]:
        row = db.query(Subscription).filter(Subscription.user_id == user.id).first()
        if not row:
            raise NotFoundError("Aucun abonnement trouvé")
        if row.status not in ACTIVE_SUBSCRIPTION_STATUSES:
            raise ValidationError("L'abonnement n'est pas actif", field="status")
        if not row.stripe_subscription_id:
            raise ValidationError("Abonnement sans référence de paiement", field="stripe_subscription_id")

        canceled = stripe.Subscription.cancel(row.stripe_subscription_id)
        ends_at = _to_datetime(_field(canceled, "canceled_at")) or datetime.now(timezone.utc)
        row.status = "canceled"
        row.ends_at = ends_at
        db.flush()

        log_step(logger, "CANCEL-SUBSCRIPTION", "Subscription canceled", {
            "userId": str(user.id), "subscriptionId": row.stripe_subscription_id,
        })
        return {"success": True, "message": "Abonnement annulé", "ends_at": ends_at.isoformat()}

    def create_portal_session(self, db: Session, *, user: Profile) -> str:
        row = db.query(Subscription).filter(Subscription.user_id == user.id).first()
        customer_id = (row.stripe_customer_id if row else None) or self.find_customer_id(user.email)
        if not customer_id:
            raise ValueError("Aucun client Stripe pour cet utilisateur")
        sess = stripe.billing_portal.Session.create(
            customer=str(customer_id),
            return_url=self.cfg.portal_return_url,
        )
        return str(_field(sess, "url"))

    def construct_event(self, *, payload: bytes, sig_header: str):
        if not self.cfg.webhook_secret:
            raise RuntimeError("Stripe webhook secret not configured")
        return stripe.Webhook.construct_event(
            payload=payload,
            sig_header=sig_header,
            secret=self.cfg.webhook_secret,
        )


def _find_user(db: Session, *, user_id: Any = None, customer_id: Optional[str] = None,
               subscription_id: Optional[str] = None, email: Optional[str] = None) -> Optional[Profile]:
    uid = _safe_uuid(user_id)
    if uid:
        user = db.query(Profile).filter(Profile.id == uid).first()
        if user:
            return user
    for column, value in ((Subscription.stripe_customer_id, customer_id), (Subscription.stripe_subscription_id, subscription_id)):
        if value:
            row = db.query(Subscription).filter(column == value).first()
            if row:
                return db.query(Profile).filter(Profile.id == row.user_id).first()
    if email:
        return db.query(Profile).filter(Profile.email == email.strip().lower()).first()
    return None


def process_stripe_event(db: Session, *, event: Any) -> dict[str, Any]:
    """Idempotently process a Stripe webhook event into the subscription mirror."""
    event_id = str(_field(event, "id") or "")
    event_type = str(_field(event, "type") or "")
    stripe_created = _field(event, "created")

    if not event_id:
        return {"processed": False, "reason": "missing_event_id"}

    db.add(StripeEvent(event_id=event_id, event_type=event_type or "unknown", stripe_created=int(stripe_created) if stripe_created else None))
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        return {"processed": False, "idempotent": True, "event_id": event_id}

    obj = _field(_field(event, "data"), "object")

    if event_type == "checkout.session.completed":
        metadata = _field(obj, "metadata") or {}
        customer_id = str(_field(obj, "customer") or "") or None
        subscription_id = str(_field(obj, "subscription") or "") or None
        ref_id = _field(obj, "client_reference_id") or _field(metadata, "user_id")
        email = _field(_field(obj, "customer_details"), "email")

        user = _find_user(db, user_id=ref_id, customer_id=customer_id, email=email)
        if not user:
            db.commit()
            return {"processed": True, "event_id": event_id, "event_type": event_type, "matched_user": False}

        plan = _field(metadata, "plan_type")
        sub = _ensure_subscription_row(db, user_id=user.id)
        if customer_id:
            sub.stripe_customer_id = customer_id
        if subscription_id:
            sub.stripe_subscription_id = subscription_id
        sub.status = "trialing" if plan in PLANS_WITH_TRIAL else "active"
        if plan:
            sub.plan_type = plan
        sub.started_at = sub.started_at or datetime.now(timezone.utc)
        db.commit()
        return {"processed": True, "event_id": event_id, "event_type": event_type, "user_id": str(user.id)}

    if event_type in ("customer.subscription.created", "customer.subscription.updated", "customer.subscription.deleted"):
        customer_id = str(_field(obj, "customer") or "") or None
        subscription_id = str(_field(obj, "id") or "") or None
        status = str(_field(obj, "status") or "") or None
        metadata = _field(obj, "metadata") or {}

        user = _find_user(db, user_id=_field(metadata, "user_id"), customer_id=customer_id, subscription_id=subscription_id)
        if not user:
            db.commit()
            return {"processed": True, "event_id": event_id, "event_type": event_type, "matched_user": False}

        sub = _ensure_subscription_row(db, user_id=user.id)
        if customer_id:
            sub.stripe_customer_id = customer_id
        if subscription_id:
            sub.stripe_subscription_id = subscription_id
        sub.status = "canceled" if event_type == "customer.subscription.deleted" else status

        trial_end = _to_datetime(_field(obj, "trial_end")) if status == "trialing" else None
        period_end = _to_datetime(_period_ts(obj, "current_period_end"))
        canceled_at = _to_datetime(_field(obj, "canceled_at")) or _to_datetime(_field(obj, "ended_at"))
        if event_type == "customer.subscription.deleted":
            sub.ends_at = canceled_at or period_end
        else:
            sub.ends_at = trial_end or period_end or sub.ends_at

        plan_type = _plan_from_interval(_field(_field(_field(_first_item(obj), "price"), "recurring"), "interval"))
        if plan_type:
            sub.plan_type = plan_type
        db.commit()
        return {"processed": True, "event_id": event_id, "event_type": event_type, "user_id": str(user.id), "status": sub.status}

    # Unknown/unhandled event: accept but no-op (still idempotently recorded).
    db.commit()
    return {"processed": True, "event_id": event_id, "event_type": event_type, "handled": False}
