"""
Tests for billing: checkout parameters, subscription sync, cancellation,
promo codes and idempotent webhook processing. Stripe SDK calls are
monkeypatched; nothing leaves the process.
"""
import pytest
import stripe
from fastapi.testclient import TestClient

from core.database import SessionLocal
from main import app
from models import CancellationFeedback, StripeEvent, Subscription
from services import stripe_service as ss

client = TestClient(app)


@pytest.fixture
def stripe_config(monkeypatch):
    cfg = ss.StripeConfig(
        secret_key="sk_test_123",
        webhook_secret="whsec_test",
        price_ids={"weekly": "price_w", "monthly": "price_m", "yearly": "price_y"},
        trial_days=7,
        web_base_url="https://app.pulse-ai.test",
        portal_return_url="https://app.pulse-ai.test/settings/subscription",
    )
    monkeypatch.setattr(ss, "_get_stripe_config", lambda: cfg)
    return cfg


@pytest.fixture
def checkout_calls(monkeypatch, stripe_config):
    calls = []

    def _create(**params):
        calls.append(params)
        return {"id": "cs_test_1", "url": "https://checkout.stripe.test/cs_test_1"}

    monkeypatch.setattr(stripe.checkout.Session, "create", _create)
    monkeypatch.setattr(stripe.Customer, "list", lambda **kw: {"data": [{"id": "cus_existing"}]})
    return calls


def _subscription(user_id):
    db = SessionLocal()
    try:
        return db.query(Subscription).filter(Subscription.user_id == user_id).first()
    finally:
        db.close()


def test_billing_unconfigured_returns_503(make_user, headers_for):
    user = make_user()
    resp = client.post("/v1/billing/checkout", json={"plan": "monthly"}, headers=headers_for(user))
    assert resp.status_code == 503


def test_checkout_for_existing_user_with_trial(make_user, headers_for, checkout_calls):
    user = make_user()
    resp = client.post(
        "/v1/billing/checkout",
        json={"plan": "yearly"},
        headers={**headers_for(user), "Origin": "https://pulse-ai.test"},
    )
    assert resp.status_code == 200
    assert resp.json() == {"url": "https://checkout.stripe.test/cs_test_1"}

    params = checkout_calls[0]
    assert params["line_items"] == [{"price": "price_y", "quantity": 1}]
    assert params["customer"] == "cus_existing"
    assert params["client_reference_id"] == str(user.id)
    assert params["metadata"]["user_id"] == str(user.id)
    assert params["subscription_data"]["trial_period_days"] == 7
    assert params["success_url"].startswith("https://pulse-ai.test/payment-success?session_id={CHECKOUT_SESSION_ID}")
    assert params["cancel_url"] == "https://pulse-ai.test/paywall?canceled=true"
    assert params["allow_promotion_codes"] is True


def test_visitor_checkout_weekly_has_no_trial(checkout_calls):
    resp = client.post("/v1/billing/checkout", json={"plan": "weekly"})
    assert resp.status_code == 200

    params = checkout_calls[0]
    assert params["metadata"]["user_id"] == "PENDING"
    assert params["metadata"]["is_new_user"] == "true"
    assert "subscription_data" not in params
    assert "customer" not in params
    assert params["cancel_url"].endswith("/tarif?canceled=true")


def test_checkout_applies_valid_coupon(checkout_calls, monkeypatch):
    monkeypatch.setattr(stripe.Coupon, "retrieve", lambda code: {"id": code, "valid": True})
    client.post("/v1/billing/checkout", json={"plan": "monthly", "promo_code": " launch20 "})

    params = checkout_calls[0]
    assert params["discounts"] == [{"coupon": "LAUNCH20"}]
    assert "allow_promotion_codes" not in params


def test_checkout_rejects_unknown_plan():
    assert client.post("/v1/billing/checkout", json={"plan": "lifetime"}).status_code == 422


def test_stripe_errors_are_generic(make_user, headers_for, stripe_config, monkeypatch):
    def _boom(**kwargs):
        raise stripe.APIConnectionError("network down")

    monkeypatch.setattr(stripe.Customer, "list", _boom)
    resp = client.post("/v1/billing/checkout", json={"plan": "monthly"}, headers=headers_for(make_user()))
    assert resp.status_code == 500
    assert resp.json()["detail"] == "Erreur du service de paiement"


def test_subscription_sync_mirrors_stripe(make_user, headers_for, stripe_config, monkeypatch):
    user = make_user()
    monkeypatch.setattr(stripe.Customer, "list", lambda **kw: {"data": [{"id": "cus_42"}]})
    monkeypatch.setattr(
        stripe.Subscription,
        "list",
        lambda **kw: {
            "data": [
                {"id": "sub_old", "status": "canceled"},
                {
                    "id": "sub_42",
                    "status": "trialing",
                    "created": 1767225600,
                    "trial_end": 1767830400,
                    "items": {
                        "data": [
                            {
                                "current_period_end": 1769904000,
                                "price": {"product": "prod_1", "recurring": {"interval": "year"}},
                            }
                        ]
                    },
                },
            ]
        },
    )

    resp = client.get("/v1/billing/subscription", headers=headers_for(user))
    assert resp.status_code == 200
    body = resp.json()
    assert body["subscribed"] is True
    assert body["subscription_status"] == "trialing"
    assert body["product_id"] == "prod_1"
    assert body["trial_end"] is not None

    row = _subscription(user.id)
    assert row.stripe_customer_id == "cus_42"
    assert row.stripe_subscription_id == "sub_42"
    assert row.plan_type == "yearly"
    assert row.status == "trialing"


def test_subscription_sync_without_customer(make_user, headers_for, stripe_config, monkeypatch):
    monkeypatch.setattr(stripe.Customer, "list", lambda **kw: {"data": []})
    body = client.get("/v1/billing/subscription", headers=headers_for(make_user())).json()
    assert body["subscribed"] is False


def test_cancel_subscription(make_user, headers_for, stripe_config, monkeypatch):
    user = make_user(subscription="active")
    cancelled = []
    monkeypatch.setattr(
        stripe.Subscription,
        "cancel",
        lambda sub_id: cancelled.append(sub_id) or {"id": sub_id, "status": "canceled", "canceled_at": 1767225600},
    )

    resp = client.post("/v1/billing/cancel", headers=headers_for(user))
    assert resp.status_code == 200
    assert resp.json()["success"] is True
    assert cancelled == [_subscription(user.id).stripe_subscription_id]
    assert _subscription(user.id).status == "canceled"

    again = client.post("/v1/billing/cancel", headers=headers_for(user))
    assert again.status_code == 400


def test_cancel_without_subscription(make_user, headers_for, stripe_config):
    assert client.post("/v1/billing/cancel", headers=headers_for(make_user())).status_code == 404


def test_cancel_with_reason_stores_feedback(make_user, headers_for, stripe_config, monkeypatch):
    user = make_user(subscription="active")
    monkeypatch.setattr(
        stripe.Subscription, "cancel", lambda sub_id: {"id": sub_id, "status": "canceled", "canceled_at": 1767225600}
    )

    resp = client.post(
        "/v1/billing/cancel",
        json={"reason": "Trop cher", "additional_comments": "  Je reviendrai  "},
        headers=headers_for(user),
    )
    assert resp.status_code == 200

    db = SessionLocal()
    try:
        rows = db.query(CancellationFeedback).all()
    finally:
        db.close()
    assert [(r.user_id, r.action_type, r.reason, r.additional_comments) for r in rows] == [
        (user.id, "cancel_subscription", "Trop cher", "Je reviendrai")
    ]


def test_cancel_with_unknown_reason_is_rejected_before_stripe(make_user, headers_for, stripe_config, monkeypatch):
    user = make_user(subscription="active")
    cancelled = []
    monkeypatch.setattr(stripe.Subscription, "cancel", lambda sub_id: cancelled.append(sub_id))

    resp = client.post("/v1/billing/cancel", json={"reason": "Parce que"}, headers=headers_for(user))
    assert resp.status_code == 400
    assert resp.json()["error_code"] == "VALIDATION_ERROR_REASON"
    assert cancelled == []
    assert _subscription(user.id).status == "active"


def test_link_checkout_session(make_user, headers_for, stripe_config, monkeypatch):
    user = make_user()
    monkeypatch.setattr(
        stripe.checkout.Session,
        "retrieve",
        lambda session_id, **kw: {
            "id": session_id,
            "customer": "cus_new",
            "metadata": {"plan_type": "monthly"},
            "subscription": {
                "id": "sub_new",
                "status": "trialing",
                "trial_end": 1767830400,
                "current_period_start": 1767225600,
                "current_period_end": 1767830400,
            },
        },
    )

    resp = client.post("/v1/billing/link-session", json={"session_id": "cs_paid"}, headers=headers_for(user))
    assert resp.status_code == 200
    assert resp.json()["subscription"]["id"] == "sub_new"

    row = _subscription(user.id)
    assert row.stripe_customer_id == "cus_new"
    assert row.status == "trialing"
    assert row.plan_type == "monthly"


def test_promo_validation(stripe_config, monkeypatch):
    def _retrieve(code):
        if code == "SUMMER":
            return {"id": "SUMMER", "valid": True, "percent_off": 30, "duration": "once", "name": "Été"}
        raise stripe.InvalidRequestError("No such coupon", param="id", code="resource_missing")

    monkeypatch.setattr(stripe.Coupon, "retrieve", _retrieve)
    monkeypatch.setattr(stripe.PromotionCode, "list", lambda **kw: {"data": []})

    ok = client.post("/v1/billing/promo/validate", json={"code": "summer"}).json()
    assert ok["valid"] is True
    assert ok["discount"]["percent_off"] == 30

    unknown = client.post("/v1/billing/promo/validate", json={"code": "nope"}).json()
    assert unknown == {"valid": False, "error": "Code invalide"}


def test_portal_requires_customer(make_user, headers_for, stripe_config, monkeypatch):
    monkeypatch.setattr(stripe.Customer, "list", lambda **kw: {"data": []})
    assert client.post("/v1/billing/portal", headers=headers_for(make_user())).status_code == 400

    subscriber = make_user(subscription="active")
    monkeypatch.setattr(
        stripe.billing_portal.Session,
        "create",
        lambda **kw: {"url": f"https://billing.stripe.test/{kw['customer']}"},
    )
    resp = client.post("/v1/billing/portal", headers=headers_for(subscriber))
    assert resp.json()["url"] == f"https://billing.stripe.test/{_subscription(subscriber.id).stripe_customer_id}"


def _webhook(event, monkeypatch):
    monkeypatch.setattr(stripe.Webhook, "construct_event", lambda payload, sig_header, secret: event)
    return client.post("/v1/billing/webhooks/stripe", content=b"{}", headers={"stripe-signature": "t=1,v1=abc"})


def test_webhook_requires_valid_signature(stripe_config, monkeypatch):
    assert client.post("/v1/billing/webhooks/stripe", content=b"{}").status_code == 400

    def _bad(payload, sig_header, secret):
        raise stripe.SignatureVerificationError("bad signature", sig_header)

    monkeypatch.setattr(stripe.Webhook, "construct_event", _bad)
    resp = client.post("/v1/billing/webhooks/stripe", content=b"{}", headers={"stripe-signature": "t=1,v1=abc"})
    assert resp.status_code == 400


def test_checkout_completed_webhook_is_idempotent(make_user, stripe_config, monkeypatch):
    user = make_user()
    event = {
        "id": "evt_checkout_1",
        "type": "checkout.session.completed",
        "created": 1767225600,
        "data": {
            "object": {
                "customer": "cus_hook",
                "subscription": "sub_hook",
                "client_reference_id": str(user.id),
                "metadata": {"plan_type": "monthly", "user_id": str(user.id)},
            }
        },
    }

    first = _webhook(event, monkeypatch)
    assert first.status_code == 200
    assert first.json()["result"]["processed"] is True

    row = _subscription(user.id)
    assert row.status == "trialing"
    assert row.stripe_subscription_id == "sub_hook"

    replay = _webhook(event, monkeypatch)
    assert replay.status_code == 200
    assert replay.json()["result"] == {"processed": False, "idempotent": True, "event_id": "evt_checkout_1"}

    db = SessionLocal()
    try:
        assert db.query(StripeEvent).filter(StripeEvent.event_id == "evt_checkout_1").count() == 1
    finally:
        db.close()


def test_subscription_deleted_webhook_cancels(make_user, stripe_config, monkeypatch):
    user = make_user(subscription="active")
    sub_id = _subscription(user.id).stripe_subscription_id
    event = {
        "id": "evt_deleted_1",
        "type": "customer.subscription.deleted",
        "data": {"object": {"id": sub_id, "status": "canceled", "canceled_at": 1767225600}},
    }

    resp = _webhook(event, monkeypatch)
    assert resp.json()["result"]["status"] == "canceled"
    assert _subscription(user.id).status == "canceled"


def test_unhandled_webhook_event_is_recorded(stripe_config, monkeypatch):
    resp = _webhook({"id": "evt_misc", "type": "invoice.paid", "data": {"object": {}}}, monkeypatch)
    assert resp.json()["result"]["handled"] is False
