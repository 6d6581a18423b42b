"""
Tests for the admin surface: access control, moderation actions and their
guards, the audit trail, dashboard stats, the user directory and manual job
runs.
"""
from datetime import date, datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from core.database import SessionLocal
from core.exceptions import ValidationError
from core.security import decode_recovery_token
from main import app
from models import AdminAuditLog, Profile, TrainingSession, UserRole
from services.admin_actions import LAST_ADMIN_DELETE_ERROR, LAST_ADMIN_DEMOTE_ERROR, run_admin_action

client = TestClient(app)


@pytest.fixture
def admin(make_user):
    return make_user(email="admin@example.com", name="Admin", admin=True)


def _action(admin_user, headers_for, **payload):
    return client.post("/v1/admin/actions", json=payload, headers=headers_for(admin_user))


def _audit_actions(target_id=None):
    db = SessionLocal()
    try:
        q = db.query(AdminAuditLog)
        if target_id is not None:
            q = q.filter(AdminAuditLog.target_user_id == target_id)
        return [e.action for e in q.order_by(AdminAuditLog.created_at.asc()).all()]
    finally:
        db.close()


def _profile(user_id):
    db = SessionLocal()
    try:
        return db.query(Profile).filter(Profile.id == user_id).first()
    finally:
        db.close()


def test_admin_routes_reject_members(make_user, headers_for):
    member = make_user()
    for method, path in (
        ("get", "/v1/admin/stats"),
        ("get", "/v1/admin/users"),
        ("get", "/v1/admin/audit-log"),
        ("post", "/v1/admin/jobs/process-email-queue"),
    ):
        assert getattr(client, method)(path, headers=headers_for(member)).status_code == 403
        assert getattr(client, method)(path).status_code == 401


def test_disable_and_enable_account(admin, make_user, headers_for):
    target = make_user()

    assert _action(admin, headers_for, action="disable", target_user_id=str(target.id)).json() == {"success": True}
    assert _profile(target.id).is_disabled is True
    assert client.get("/v1/auth/me", headers=headers_for(target)).status_code == 403

    assert _action(admin, headers_for, action="enable", target_user_id=str(target.id)).status_code == 200
    assert _profile(target.id).is_disabled is False

    assert _audit_actions(target.id) == ["disable_account", "enable_account"]


def test_audit_entry_records_actor_and_request(admin, make_user, headers_for):
    target = make_user()
    client.post(
        "/v1/admin/actions",
        json={"action": "disable", "target_user_id": str(target.id)},
        headers={**headers_for(admin), "User-Agent": "pytest-admin"},
    )
    db = SessionLocal()
    try:
        entry = db.query(AdminAuditLog).filter(AdminAuditLog.target_user_id == target.id).one()
        assert entry.admin_user_id == admin.id
        assert entry.details["user_agent"] == "pytest-admin"
        assert "ip_address" in entry.details
    finally:
        db.close()


def test_actions_on_self_are_refused(admin, headers_for):
    resp = _action(admin, headers_for, action="disable", target_user_id=str(admin.id))
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Vous ne pouvez pas effectuer cette action sur votre propre compte"
    assert _profile(admin.id).is_disabled is False


def test_action_validation(admin, make_user, headers_for):
    target = make_user()
    assert _action(admin, headers_for, action="disable").status_code == 400
    assert _action(admin, headers_for, action="explode", target_user_id=str(target.id)).status_code == 400
    unknown = _action(admin, headers_for, action="disable", target_user_id="00000000-0000-0000-0000-000000000001")
    assert unknown.status_code == 404


def test_delete_requires_confirmation(admin, make_user, headers_for):
    target = make_user()

    refused = _action(admin, headers_for, action="delete", target_user_id=str(target.id), confirm="delete")
    assert refused.status_code == 400
    assert _profile(target.id) is not None

    ok = _action(admin, headers_for, action="delete", target_user_id=str(target.id), confirm="DELETE")
    assert ok.json() == {"success": True}
    assert _profile(target.id) is None
    # Audit rows outlive the account
    assert _audit_actions(target.id) == ["delete_account"]


def test_admin_can_demote_or_delete_another_admin(admin, make_user, headers_for):
    second = make_user(admin=True)
    third = make_user(admin=True)

    assert _action(admin, headers_for, action="set_role", target_user_id=str(second.id), role="member").status_code == 200
    assert _action(admin, headers_for, action="delete", target_user_id=str(third.id), confirm="DELETE").status_code == 200
    assert _profile(third.id) is None


def test_last_admin_cannot_be_deleted_or_demoted(admin, make_user, db_session):
    # Through the API the actor is always a second admin, so the guard is
    # checked on the service with a member actor.
    actor = db_session.query(Profile).filter(Profile.id == make_user().id).one()

    with pytest.raises(ValidationError) as exc:
        run_admin_action(db_session, request=None, actor=actor, action="delete", target_user_id=admin.id, confirm="DELETE")
    assert exc.value.detail == LAST_ADMIN_DELETE_ERROR

    with pytest.raises(ValidationError) as exc:
        run_admin_action(db_session, request=None, actor=actor, action="set_role", target_user_id=admin.id, role="member")
    assert exc.value.detail == LAST_ADMIN_DEMOTE_ERROR

    assert db_session.query(Profile).filter(Profile.id == admin.id).one().is_admin


def test_set_role_replaces_role_rows_and_audits(admin, make_user, headers_for):
    target = make_user()
    resp = _action(admin, headers_for, action="set_role", target_user_id=str(target.id), role="admin")
    assert resp.json() == {"success": True, "role": "admin"}

    db = SessionLocal()
    try:
        roles = [r.role for r in db.query(UserRole).filter(UserRole.user_id == target.id).all()]
        assert roles == ["admin"]
        entry = db.query(AdminAuditLog).filter(AdminAuditLog.action == "set_role").one()
        assert entry.details["old_role"] == "member"
        assert entry.details["new_role"] == "admin"
    finally:
        db.close()

    invalid = _action(admin, headers_for, action="set_role", target_user_id=str(target.id), role="owner")
    assert invalid.status_code == 400


def test_reset_password_returns_link_without_auditing_it(admin, make_user, headers_for):
    target = make_user(email="forgetful@example.com")
    resp = _action(admin, headers_for, action="reset_password", target_user_id=str(target.id))
    assert resp.status_code == 200
    link = resp.json()["link"]
    token = link.split("token=")[1]
    payload = decode_recovery_token(token)
    assert payload["sub"] == str(target.id)
    assert payload["email"] == "forgetful@example.com"

    db = SessionLocal()
    try:
        entry = db.query(AdminAuditLog).filter(AdminAuditLog.action == "reset_password").one()
        assert token not in str(entry.details)
        assert entry.details["email"] == "forgetful@example.com"
    finally:
        db.close()


def test_stats_counts(admin, make_user, headers_for):
    member = make_user(subscription="active")
    make_user(subscription="trialing")
    db = SessionLocal()
    try:
        db.add(TrainingSession(user_id=member.id, session_date=date(2025, 1, 6), exercises={}, completed=True))
        db.add(TrainingSession(user_id=member.id, session_date=date(2025, 1, 8), exercises={}, completed=False))
        db.commit()
    finally:
        db.close()

    stats = client.get("/v1/admin/stats", headers=headers_for(admin)).json()
    assert stats["total_users"] == 3
    assert stats["completed_sessions_total"] == 1
    assert stats["subscriptions_active"] == 1
    assert stats["checkin_rate_pct"] == 0


def test_user_list_filters_and_sorting(admin, make_user, headers_for):
    alice = make_user(email="alice@example.com", name="Alice", subscription="active")
    make_user(email="bob@example.com", name="Bob", disabled=True)
    make_user(email="carol@example.com", name="Carol", subscription="trialing")

    db = SessionLocal()
    try:
        for day in (6, 7, 8):
            db.add(TrainingSession(user_id=alice.id, session_date=date(2025, 1, day), exercises={}, completed=True))
        db.commit()
    finally:
        db.close()

    headers = headers_for(admin)
    everyone = client.get("/v1/admin/users", headers=headers).json()
    assert everyone["total"] == 4

    search = client.get("/v1/admin/users?search=ALI", headers=headers).json()
    assert [u["email"] for u in search["users"]] == ["alice@example.com"]
    assert search["users"][0]["sessions_completed"] == 3
    assert search["users"][0]["subscription"] == {"status": "active", "plan_type": "monthly"}

    admins = client.get("/v1/admin/users?role=admin", headers=headers).json()
    assert [u["email"] for u in admins["users"]] == ["admin@example.com"]
    members = client.get("/v1/admin/users?role=member", headers=headers).json()
    assert members["total"] == 3

    disabled = client.get("/v1/admin/users?status=disabled", headers=headers).json()
    assert [u["email"] for u in disabled["users"]] == ["bob@example.com"]

    trialing = client.get("/v1/admin/users?subscription=trialing", headers=headers).json()
    assert [u["email"] for u in trialing["users"]] == ["carol@example.com"]
    unsubscribed = client.get("/v1/admin/users?subscription=none", headers=headers).json()
    assert {u["email"] for u in unsubscribed["users"]} == {"admin@example.com", "bob@example.com"}

    by_sessions = client.get("/v1/admin/users?sort=sessions_completed&dir=desc", headers=headers).json()
    assert by_sessions["users"][0]["email"] == "alice@example.com"

    paged = client.get("/v1/admin/users?limit=2&page=2", headers=headers).json()
    assert paged["total"] == 4
    assert len(paged["users"]) == 2
    exported = client.get("/v1/admin/users?limit=1&export=true", headers=headers).json()
    assert len(exported["users"]) == 4


def test_inactive_filter(admin, make_user, headers_for):
    stale = make_user(email="stale@example.com")
    fresh = make_user(email="fresh@example.com")
    db = SessionLocal()
    try:
        now = datetime.now(timezone.utc)
        db.query(Profile).filter(Profile.id == stale.id).update({"last_activity_at": now - timedelta(days=40)})
        db.query(Profile).filter(Profile.id == fresh.id).update({"last_activity_at": now - timedelta(days=1)})
        db.commit()
    finally:
        db.close()

    # The admin's own request marks them active, so only the stale user matches
    resp = client.get("/v1/admin/users?inactive=30", headers=headers_for(admin)).json()
    assert [u["email"] for u in resp["users"]] == ["stale@example.com"]


def test_user_detail(admin, make_user, headers_for):
    target = make_user(email="detail@example.com", subscription="active")
    _action(admin, headers_for, action="disable", target_user_id=str(target.id))

    resp = client.get(f"/v1/admin/users/{target.id}", headers=headers_for(admin))
    assert resp.status_code == 200
    detail = resp.json()
    assert detail["profile"]["email"] == "detail@example.com"
    assert detail["profile"]["is_disabled"] is True
    assert detail["role"] == "member"
    assert detail["subscription"]["status"] == "active"
    assert [e["action"] for e in detail["audit_log"]] == ["disable_account"]

    missing = client.get("/v1/admin/users/00000000-0000-0000-0000-000000000002", headers=headers_for(admin))
    assert missing.status_code == 404


def test_audit_log_listing(admin, make_user, headers_for):
    first = make_user()
    second = make_user()
    _action(admin, headers_for, action="disable", target_user_id=str(first.id))
    _action(admin, headers_for, action="disable", target_user_id=str(second.id))
    _action(admin, headers_for, action="enable", target_user_id=str(second.id))

    everything = client.get("/v1/admin/audit-log", headers=headers_for(admin)).json()
    assert everything["total"] == 3

    filtered = client.get(f"/v1/admin/audit-log?target_user_id={second.id}", headers=headers_for(admin)).json()
    assert filtered["total"] == 2
    by_action = client.get("/v1/admin/audit-log?action=enable_account", headers=headers_for(admin)).json()
    assert by_action["total"] == 1


def test_run_job_now(admin, headers_for, monkeypatch):
    resp = client.post("/v1/admin/jobs/send-checkin-reminders", headers=headers_for(admin))
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "emailsSent": 0, "errors": 0}
    assert "run_job" in _audit_actions()

    assert client.post("/v1/admin/jobs/drop-database", headers=headers_for(admin)).status_code == 404
