"""
Tests for self-service account deletion.
"""
from datetime import date, datetime, timezone

from fastapi.testclient import TestClient

from core.database import SessionLocal
from main import app
from models import (
    AdjustmentLog,
    AdminAuditLog,
    CancellationFeedback,
    ChatMessage,
    Conversation,
    EmailQueueItem,
    ExerciseLog,
    Goals,
    NutritionLog,
    Profile,
    SessionFeedback,
    Subscription,
    SupportTicket,
    TrainingSession,
    UserRole,
    WeeklyCheckin,
    WeightLog,
)
from services.account_deletion import USER_OWNED_MODELS, delete_user_data

client = TestClient(app)


def _seed_user_rows(user_id):
    db = SessionLocal()
    try:
        session = TrainingSession(user_id=user_id, session_date=date(2026, 10, 19), exercises={"sessionName": "A"})
        db.add(session)
        db.flush()
        db.add(SessionFeedback(user_id=user_id, session_id=session.id, rpe=7))
        db.add(ExerciseLog(user_id=user_id, session_id=session.id, exercise_name="Squat", set_number=1, weight_used=60))
        db.add(WeightLog(user_id=user_id, weight=71.5, logged_at=datetime.now(timezone.utc)))
        db.add(
            NutritionLog(
                user_id=user_id,
                meal_type="lunch",
                food_description="Salade de quinoa",
                calories=520,
                logged_at=datetime.now(timezone.utc),
            )
        )
        db.add(AdjustmentLog(user_id=user_id, week_iso="2026-W43", type="nutrition", new_value="-150kcal"))
        db.add(
            SupportTicket(
                user_id=user_id, name="Test", email="test@example.com", subject="Question", message="Bonjour, une question."
            )
        )
        db.add(WeeklyCheckin(user_id=user_id, week_iso="2026-W43", average_weight=71.5))
        conversation = Conversation(user_id=user_id, coach_type="alex", title="Dos")
        db.add(conversation)
        db.flush()
        db.add(ChatMessage(conversation_id=conversation.id, user_id=user_id, role="user", content="Salut"))
        db.add(
            EmailQueueItem(
                user_id=user_id,
                email_type="onboarding_day1",
                scheduled_at=datetime.now(timezone.utc),
            )
        )
        db.add(AdminAuditLog(admin_user_id=user_id, target_user_id=user_id, action="enable", details={}))
        db.commit()
    finally:
        db.close()


def _count(model, user_id):
    db = SessionLocal()
    try:
        column = model.id if model is Profile else model.user_id
        return db.query(model).filter(column == user_id).count()
    finally:
        db.close()


def test_delete_account_removes_every_owned_row(make_user, make_goals, make_preferences, headers_for):
    user = make_user(subscription="active")
    make_goals(user)
    make_preferences(user)
    _seed_user_rows(user.id)

    resp = client.delete("/v1/account", headers=headers_for(user))
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Compte supprimé avec succès"}

    assert _count(Profile, user.id) == 0
    for model in USER_OWNED_MODELS:
        assert _count(model, user.id) == 0, model.__tablename__

    db = SessionLocal()
    try:
        assert db.query(AdminAuditLog).filter(AdminAuditLog.target_user_id == user.id).count() == 1
    finally:
        db.close()


def test_delete_account_leaves_other_users_alone(make_user, make_goals, headers_for):
    leaving = make_user()
    staying = make_user(subscription="trialing")
    make_goals(staying)
    _seed_user_rows(staying.id)

    assert client.delete("/v1/account", headers=headers_for(leaving)).status_code == 200

    assert _count(Profile, staying.id) == 1
    assert _count(Goals, staying.id) == 1
    assert _count(Subscription, staying.id) == 1
    assert _count(ChatMessage, staying.id) == 1
    assert _count(UserRole, staying.id) == 1


def test_deleted_token_no_longer_authenticates(make_user, headers_for):
    user = make_user()
    headers = headers_for(user)
    assert client.delete("/v1/account", headers=headers).status_code == 200
    assert client.get("/v1/auth/me", headers=headers).status_code == 401


def test_delete_account_requires_authentication():
    assert client.delete("/v1/account").status_code == 401


def test_delete_user_data_reports_counts(make_user, db_session):
    user = make_user()
    _seed_user_rows(user.id)

    counts = delete_user_data(db_session, user.id)
    db_session.commit()

    assert counts["profiles"] == 1
    assert counts["chat_messages"] == 1
    assert counts["conversations"] == 1
    assert counts["user_roles"] == 1
    assert counts["subscriptions"] == 0
    assert counts["weight_logs"] == 1
    assert counts["exercise_logs"] == 1
    assert counts["support_tickets"] == 1


def _feedback_rows():
    db = SessionLocal()
    try:
        return [(r.user_id, r.action_type, r.reason) for r in db.query(CancellationFeedback).all()]
    finally:
        db.close()


def test_delete_account_with_reason_keeps_anonymous_feedback(make_user, headers_for):
    user = make_user()
    resp = client.request(
        "DELETE",
        "/v1/account",
        json={"reason": "Problème technique", "additional_comments": "L'app plante"},
        headers=headers_for(user),
    )
    assert resp.status_code == 200
    assert _count(Profile, user.id) == 0
    assert _feedback_rows() == [(None, "delete_account", "Problème technique")]


def test_earlier_cancellation_feedback_survives_deletion(make_user, headers_for):
    user = make_user()
    db = SessionLocal()
    try:
        db.add(CancellationFeedback(user_id=user.id, action_type="cancel_subscription", reason="Trop cher"))
        db.commit()
    finally:
        db.close()

    assert client.delete("/v1/account", headers=headers_for(user)).status_code == 200
    assert _feedback_rows() == [(None, "cancel_subscription", "Trop cher")]


def test_delete_account_with_unknown_reason_deletes_nothing(make_user, headers_for):
    user = make_user()
    resp = client.request("DELETE", "/v1/account", json={"reason": "Bof"}, headers=headers_for(user))
    assert resp.status_code == 400
    assert resp.json()["error_code"] == "VALIDATION_ERROR_REASON"
    assert _count(Profile, user.id) == 1
    assert _feedback_rows() == []
