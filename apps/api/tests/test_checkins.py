"""
Tests for weekly check-ins and the adjustment recommendation rules.
"""
from datetime import date, datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from core.database import SessionLocal
from main import app
from models import WeeklyCheckin, WeeklyProgram
from services.checkins import iso_week, submit_checkin
from services.program_generator import week_monday
from services.recommendations import calculate_recommendation, weight_loss_percent

client = TestClient(app)


def _recommend(**overrides):
    values = dict(
        current_weight=79.0,
        previous_weight=80.0,
        adherence=60,
        rpe=8,
        has_pain=False,
        energy="medium",
        sessions_completed=1,
    )
    values.update(overrides)
    return calculate_recommendation(**values)


def test_iso_week_uses_iso_year():
    assert iso_week(date(2027, 1, 1)) == "2026-W53"
    assert iso_week(date(2026, 10, 19)) == "2026-W43"
    assert iso_week(date(2025, 12, 29)) == "2026-W01"


def test_weight_loss_percent():
    assert weight_loss_percent(79.0, 80.0) == pytest.approx(1.25)
    assert weight_loss_percent(80.0, None) == 0.0
    assert weight_loss_percent(None, 80.0) == 0.0


def test_slow_loss_with_good_adherence_cuts_calories():
    rec = _recommend(current_weight=79.9, adherence=85)
    assert rec.action == "-150kcal"
    assert rec.type == "nutrition"
    assert rec.priority == "high"


def test_fast_loss_hard_sessions_or_low_energy_add_calories():
    assert _recommend(current_weight=78.9).action == "+100kcal"
    assert _recommend(current_weight=79.5, rpe=9).action == "+100kcal"
    low = _recommend(current_weight=79.5, energy="low")
    assert low.action == "+100kcal"
    assert low.reason == "Niveau d'énergie faible signalé"


def test_pain_drops_a_set():
    rec = _recommend(current_weight=79.5, has_pain=True)
    assert rec.action == "-1 set"
    assert rec.type == "training"


def test_comfortable_sessions_add_a_set():
    rec = _recommend(current_weight=79.5, rpe=7, sessions_completed=2)
    assert rec.action == "+1 set"
    assert rec.priority == "medium"
    assert _recommend(current_weight=79.5, rpe=7, sessions_completed=1).action == "no_change"


def test_nothing_to_adjust():
    rec = _recommend(current_weight=79.5)
    assert rec.action == "no_change"
    assert rec.type == "none"
    assert rec.priority == "low"


def test_first_checkin_with_good_adherence_cuts_calories():
    # No previous weight: loss counts as zero
    assert _recommend(previous_weight=None, adherence=80).action == "-150kcal"


def _utc_today():
    return datetime.now(timezone.utc).date()


def test_submit_checkin_and_status(make_user, headers_for):
    user = make_user()
    headers = headers_for(user)

    before = client.get("/v1/checkins/status", headers=headers).json()
    assert before == {"week": iso_week(_utc_today()), "completed": False, "checkin": None}

    resp = client.post(
        "/v1/checkins",
        json={
            "average_weight": 71.2,
            "adherence_diet": 70,
            "rpe_avg": 6.5,
            "energy": "high",
            "sessions_done": 3,
            "sessions_planned": 3,
        },
        headers=headers,
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["week_iso"] == iso_week(_utc_today())
    assert body["recommendation"]["action"] == "+1 set"
    assert set(body["recommendation"]) == {"type", "action", "message", "reason", "priority"}

    after = client.get("/v1/checkins/status", headers=headers).json()
    assert after["completed"] is True
    assert after["checkin"]["average_weight"] == 71.2


def test_resubmitting_replaces_the_week(make_user, headers_for):
    user = make_user()
    headers = headers_for(user)
    client.post("/v1/checkins", json={"adherence_diet": 50, "pain_zones": ["dos"]}, headers=headers)
    second = client.post("/v1/checkins", json={"adherence_diet": 60}, headers=headers)
    assert second.status_code == 201
    assert second.json()["pain_zones"] == []

    db = SessionLocal()
    try:
        assert db.query(WeeklyCheckin).filter(WeeklyCheckin.user_id == user.id).count() == 1
    finally:
        db.close()


def test_checkin_marks_weekly_program(make_user, headers_for):
    user = make_user()
    monday = week_monday(_utc_today())
    db = SessionLocal()
    try:
        db.add(WeeklyProgram(user_id=user.id, week_start_date=monday, week_end_date=monday + timedelta(days=6)))
        db.add(
            WeeklyProgram(
                user_id=user.id,
                week_start_date=monday - timedelta(days=7),
                week_end_date=monday - timedelta(days=1),
            )
        )
        db.commit()
    finally:
        db.close()

    client.post("/v1/checkins", json={"adherence_diet": 90}, headers=headers_for(user))

    db = SessionLocal()
    try:
        flags = {
            p.week_start_date: p.check_in_completed
            for p in db.query(WeeklyProgram).filter(WeeklyProgram.user_id == user.id).all()
        }
    finally:
        db.close()
    assert flags == {monday: True, monday - timedelta(days=7): False}


def test_recommendation_uses_previous_week_weight(make_user, db_session):
    user = make_user()
    submit_checkin(db_session, user.id, {"average_weight": 80.0, "adherence_diet": 50}, today=date(2026, 10, 12))
    checkin = submit_checkin(
        db_session,
        user.id,
        {"average_weight": 78.0, "adherence_diet": 90, "rpe_avg": 7},
        today=date(2026, 10, 19),
    )
    db_session.commit()

    assert checkin.week_iso == "2026-W43"
    assert checkin.recommendation["action"] == "+100kcal"
    assert "2.50%" in checkin.recommendation["reason"]


def test_checkin_validation(make_user, headers_for):
    headers = headers_for(make_user())
    assert client.post("/v1/checkins", json={"rpe_avg": 11}, headers=headers).status_code == 422
    assert client.post("/v1/checkins", json={"energy": "tired"}, headers=headers).status_code == 422
    assert client.post("/v1/checkins", json={"adherence_diet": 101}, headers=headers).status_code == 422
    assert client.post("/v1/checkins", json={}).status_code == 401


def test_adjustments_journal_follows_the_weekly_recommendation(make_user, headers_for):
    headers = headers_for(make_user())
    assert client.get("/v1/checkins/adjustments", headers=headers).json() == []

    client.post(
        "/v1/checkins",
        json={"adherence_diet": 70, "rpe_avg": 6.5, "energy": "high", "sessions_done": 3},
        headers=headers,
    )
    journal = client.get("/v1/checkins/adjustments", headers=headers).json()
    assert [(a["type"], a["new_value"]) for a in journal] == [("training", "+1 set")]
    assert journal[0]["week_iso"] == iso_week(_utc_today())

    # Resubmitting the week replaces its entry
    client.post("/v1/checkins", json={"adherence_diet": 90}, headers=headers)
    journal = client.get("/v1/checkins/adjustments", headers=headers).json()
    assert [(a["type"], a["new_value"]) for a in journal] == [("nutrition", "-150kcal")]

    # Nothing to adjust: the week has no entry
    client.post("/v1/checkins", json={"adherence_diet": 50}, headers=headers)
    assert client.get("/v1/checkins/adjustments", headers=headers).json() == []


def test_adjustments_are_listed_newest_week_first(make_user, headers_for, db_session):
    user = make_user()
    submit_checkin(db_session, user.id, {"average_weight": 80.0, "adherence_diet": 90}, today=date(2026, 10, 12))
    submit_checkin(db_session, user.id, {"average_weight": 79.9, "adherence_diet": 90}, today=date(2026, 10, 19))
    db_session.commit()

    journal = client.get("/v1/checkins/adjustments", headers=headers_for(user)).json()
    assert [a["week_iso"] for a in journal] == ["2026-W43", "2026-W42"]
    assert all(a["new_value"] == "-150kcal" for a in journal)
    assert client.get("/v1/checkins/adjustments").status_code == 401
