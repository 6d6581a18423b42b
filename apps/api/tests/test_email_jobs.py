"""
Tests for lifecycle email jobs (onboarding queue, check-in reminders, weekly
digest) and the Celery task wrapper around them.
"""
from datetime import date, datetime, timedelta, timezone

import pytest

from core.database import SessionLocal
from models import EmailQueueItem, Profile, TrainingSession, WeeklyCheckin, WeightLog
from services import email_jobs
from services.checkins import iso_week
from services.email_service import email_service
from tasks import email_tasks

T0 = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)
WEDNESDAY = date(2026, 10, 21)


@pytest.fixture
def outbox(monkeypatch):
    sent = []

    def _send(to_email, subject, html_content, text_content=None, **kwargs):
        sent.append({"to": to_email, "subject": subject, "text": text_content})
        return True

    monkeypatch.setattr(email_service, "send_email", _send)
    return sent


def _queue(user_id, now=T0):
    db = SessionLocal()
    try:
        email_jobs.queue_onboarding_emails(db, user_id, now=now)
        db.commit()
    finally:
        db.close()


def _queue_rows(user_id):
    db = SessionLocal()
    try:
        return {
            row.email_type: row
            for row in db.query(EmailQueueItem).filter(EmailQueueItem.user_id == user_id).all()
        }
    finally:
        db.close()


def _process(now):
    db = SessionLocal()
    try:
        result = email_jobs.process_email_queue(db, now=now)
        db.commit()
        return result
    finally:
        db.close()


def _add_sessions(user_id, days):
    """``days`` maps a date to its completed flag."""
    db = SessionLocal()
    try:
        for day, completed in days.items():
            db.add(TrainingSession(user_id=user_id, session_date=day, exercises={}, completed=completed))
        db.commit()
    finally:
        db.close()


def _add_checkin(user_id, week, weight=None, adherence=None):
    db = SessionLocal()
    try:
        db.add(WeeklyCheckin(user_id=user_id, week_iso=week, average_weight=weight, adherence_diet=adherence))
        db.commit()
    finally:
        db.close()



def _add_weights(user_id, weights):
    db = SessionLocal()
    try:
        for logged_at, weight in weights.items():
            db.add(WeightLog(user_id=user_id, weight=weight, logged_at=logged_at))
        db.commit()
    finally:
        db.close()


# ---------------------------------------------------------------------------
# Onboarding queue
# ---------------------------------------------------------------------------

def test_onboarding_sequence_is_scheduled(make_user):
    user = make_user()
    _queue(user.id)

    rows = _queue_rows(user.id)
    assert set(rows) == {"onboarding_day1", "onboarding_day3", "onboarding_day7"}
    assert all(row.status == "pending" for row in rows.values())
    offsets = {
        email_type: (row.scheduled_at.replace(tzinfo=timezone.utc) - T0).days
        for email_type, row in rows.items()
    }
    assert offsets == {"onboarding_day1": 1, "onboarding_day3": 3, "onboarding_day7": 7}


def test_only_due_emails_are_sent(make_user, make_goals, make_preferences, outbox):
    user = make_user(name="Inès")
    make_goals(user, frequency=4)
    make_preferences(user, experience_level="beginner")
    _queue(user.id)

    result = _process(T0 + timedelta(days=3, hours=1))
    assert result == {"success": True, "processed": 2, "sent": 2, "failed": 0}
    assert [m["to"] for m in outbox] == [user.email, user.email]

    rows = _queue_rows(user.id)
    assert rows["onboarding_day1"].status == "sent"
    assert rows["onboarding_day1"].sent_at is not None
    assert rows["onboarding_day3"].status == "sent"
    assert rows["onboarding_day7"].status == "pending"

    assert _process(T0 + timedelta(days=3, hours=2))["processed"] == 0


def test_day7_email_reports_the_first_week(make_user, make_goals, outbox):
    user = make_user(name="Hugo")
    make_goals(user)
    _add_sessions(user.id, {date(2026, 10, 21): True, date(2026, 10, 23): True, date(2026, 10, 25): False})
    db = SessionLocal()
    try:
        db.add(EmailQueueItem(user_id=user.id, email_type="onboarding_day7", scheduled_at=T0))
        db.commit()
    finally:
        db.close()

    _process(datetime(2026, 10, 26, 9, 0, tzinfo=timezone.utc))
    assert "2/3" in outbox[0]["text"]


def test_queue_failures_are_recorded(make_user, monkeypatch):
    broken = make_user()
    unknown = make_user()
    nobody = make_user()
    db = SessionLocal()
    try:
        db.add(EmailQueueItem(user_id=broken.id, email_type="onboarding_day1", scheduled_at=T0))
        db.add(EmailQueueItem(user_id=unknown.id, email_type="promo_blackfriday", scheduled_at=T0))
        db.add(EmailQueueItem(user_id=nobody.id, email_type="onboarding_day1", scheduled_at=T0))
        db.query(Profile).filter(Profile.id == nobody.id).update({"email": ""})
        db.commit()
    finally:
        db.close()
    monkeypatch.setattr(email_service, "send_email", lambda *a, **kw: False)

    result = _process(T0 + timedelta(minutes=5))
    assert result == {"success": True, "processed": 3, "sent": 0, "failed": 3}
    assert _queue_rows(broken.id)["onboarding_day1"].error == "delivery failed"
    assert _queue_rows(unknown.id)["promo_blackfriday"].error == "unknown email type promo_blackfriday"
    assert _queue_rows(nobody.id)["onboarding_day1"].error == "missing recipient"


def test_email_disabled_counts_as_failure(make_user):
    user = make_user()
    _queue(user.id)
    result = _process(T0 + timedelta(days=1, minutes=1))
    assert result["failed"] == 1
    assert _queue_rows(user.id)["onboarding_day1"].status == "failed"


# ---------------------------------------------------------------------------
# Check-in reminders
# ---------------------------------------------------------------------------

def test_checkin_reminders_target_users_without_checkin(make_user, outbox):
    due = make_user(onboarded=True)
    done = make_user(onboarded=True)
    make_user(onboarded=False)
    make_user(onboarded=True, disabled=True)
    _add_checkin(done.id, iso_week(WEDNESDAY))
    _add_checkin(due.id, iso_week(WEDNESDAY - timedelta(days=7)))

    db = SessionLocal()
    try:
        result = email_jobs.send_checkin_reminders(db, today=WEDNESDAY)
    finally:
        db.close()

    assert result == {"success": True, "emailsSent": 1, "errors": 0}
    assert [m["to"] for m in outbox] == [due.email]


# ---------------------------------------------------------------------------
# Weekly digest
# ---------------------------------------------------------------------------

def test_current_streak_allows_short_gaps(make_user, db_session):
    user = make_user()
    _add_sessions(
        user.id,
        {
            date(2026, 10, 21): True,
            date(2026, 10, 19): True,
            date(2026, 10, 17): True,
            date(2026, 10, 13): True,
            date(2026, 10, 20): False,
        },
    )
    # 21 -> 19 -> 17 within two days, then a four-day gap
    assert email_jobs.current_streak(db_session, user.id) == 3
    assert email_jobs.current_streak(db_session, make_user().id) == 0


def test_weekly_stats(make_user, make_goals, db_session):
    user = make_user(onboarded=True)
    make_goals(user, frequency=3, goal_type="muscle-gain")
    _add_sessions(
        user.id,
        {
            date(2026, 10, 15): True,
            date(2026, 10, 19): True,
            date(2026, 10, 21): True,
            date(2026, 10, 23): False,
        },
    )
    _add_checkin(user.id, "2026-W42", weight=75.0, adherence=70)
    _add_checkin(user.id, "2026-W43", weight=74.0, adherence=85)
    _add_weights(
        user.id,
        {
            datetime(2026, 10, 12, 7, 0, tzinfo=timezone.utc): 73.0,
            datetime(2026, 10, 19, 7, 0, tzinfo=timezone.utc): 72.0,
            datetime(2026, 10, 20, 7, 0, tzinfo=timezone.utc): 71.8,
            datetime(2026, 10, 22, 7, 0, tzinfo=timezone.utc): 71.4,
        },
    )

    profile = db_session.query(Profile).filter(Profile.id == user.id).one()
    stats = email_jobs.build_weekly_stats(db_session, profile, WEDNESDAY)
    assert stats.sessions_completed == 2
    assert stats.total_sessions == 3
    assert stats.weight_start == 72.0
    assert stats.weight_end == 71.4
    assert stats.weight_change == -0.6
    assert stats.nutrition_adherence == 85
    assert stats.current_streak == 2
    assert stats.adherence_percent == 67


def test_weekly_stats_without_weight_logs(make_user, db_session):
    user = make_user(onboarded=True)
    _add_sessions(user.id, {date(2026, 10, 19): True})
    # Check-in weights are not used for the weekly change
    _add_checkin(user.id, "2026-W42", weight=75.0)
    _add_checkin(user.id, "2026-W43", weight=74.0)
    _add_weights(user.id, {datetime(2026, 10, 26, 7, 0, tzinfo=timezone.utc): 70.0})

    profile = db_session.query(Profile).filter(Profile.id == user.id).one()
    stats = email_jobs.build_weekly_stats(db_session, profile, WEDNESDAY)
    assert stats.weight_start is None
    assert stats.weight_change is None


def test_weekly_stats_none_without_sessions(make_user, db_session):
    user = make_user(onboarded=True)
    profile = db_session.query(Profile).filter(Profile.id == user.id).one()
    assert email_jobs.build_weekly_stats(db_session, profile, WEDNESDAY) is None


def test_weekly_digests(make_user, outbox):
    active = make_user(onboarded=True, name="Sarah")
    make_user(onboarded=True)
    make_user(onboarded=False)
    _add_sessions(active.id, {date(2026, 10, 19): True})

    db = SessionLocal()
    try:
        result = email_jobs.send_weekly_digests(db, today=WEDNESDAY)
    finally:
        db.close()

    assert result == {"success": True, "sent": 1, "failed": 0}
    assert outbox[0]["to"] == active.email
    assert "Sarah" in outbox[0]["subject"]
    assert "1/3" in outbox[0]["text"]


# ---------------------------------------------------------------------------
# Celery task wrapper
# ---------------------------------------------------------------------------

def test_task_commits_job_changes(make_user, outbox):
    user = make_user()
    _queue(user.id, now=datetime.now(timezone.utc) - timedelta(days=2))

    result = email_tasks.process_email_queue_task()
    assert result["success"] is True
    assert result["sent"] == 1
    assert _queue_rows(user.id)["onboarding_day1"].status == "sent"


def test_task_failure_rolls_back(make_user, monkeypatch):
    user = make_user()

    def _boom(db):
        email_jobs.queue_onboarding_emails(db, user.id)
        raise RuntimeError("smtp relay exploded")

    monkeypatch.setattr(email_jobs, "process_email_queue", _boom)
    result = email_tasks.process_email_queue_task()
    assert result == {"success": False, "error": "smtp relay exploded"}
    assert _queue_rows(user.id) == {}
