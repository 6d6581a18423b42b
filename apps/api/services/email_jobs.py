"""
Lifecycle email jobs: queued onboarding emails, the Sunday check-in reminder
and the Monday weekly digest.

Each job works on a caller-provided session and returns a summary dict; the
Celery tasks in ``tasks.email_tasks`` own the session and the commit.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import EmailQueueItem, Goals, Profile, TrainingPreferences, TrainingSession, WeeklyCheckin
from services import email_templates
from services.checkins import iso_week
from services.email_service import email_service
from services.program_generator import week_monday
from services.tracking import weights_between

logger = logging.getLogger(__name__)

QUEUE_BATCH_SIZE = 50
ONBOARDING_SEQUENCE = (
    ("onboarding_day1", 1),
    ("onboarding_day3", 3),
    ("onboarding_day7", 7),
)
DEFAULT_FREQUENCY = 3
STREAK_LOOKBACK = 30
STREAK_MAX_GAP_DAYS = 2


def queue_onboarding_emails(db: Session, user_id, now: Optional[datetime] = None) -> List[EmailQueueItem]:
    """Schedule the day 1/3/7 onboarding sequence for a new account."""
    now = now or datetime.now(timezone.utc)
    items = [
        EmailQueueItem(user_id=user_id, email_type=email_type, status="pending", scheduled_at=now + timedelta(days=days))
        for email_type, days in ONBOARDING_SEQUENCE
    ]
    db.add_all(items)
    db.flush()
    return items


def _week_session_counts(db: Session, user_id, start: date, end: date):
    rows = (
        db.query(TrainingSession.completed)
        .filter(
            TrainingSession.user_id == user_id,
            TrainingSession.session_date >= start,
            TrainingSession.session_date < end,
        )
        .all()
    )
    return sum(1 for (completed,) in rows if completed), len(rows)


def _render_queued(db: Session, item: EmailQueueItem, profile: Profile, now: datetime):
    name = profile.name or email_templates.DEFAULT_RECIPIENT_NAME
    goals = db.query(Goals).filter(Goals.user_id == profile.id).first()
    goal_label = email_templates.translate_goal_type(goals.goal_type if goals else None)

    if item.email_type == "onboarding_day1":
        prefs = db.query(TrainingPreferences).filter(TrainingPreferences.user_id == profile.id).first()
        return email_templates.onboarding_day1_email(
            name,
            goal_label,
            email_templates.translate_experience_level(prefs.experience_level if prefs else None),
            (goals.frequency if goals else None) or DEFAULT_FREQUENCY,
        )
    if item.email_type == "onboarding_day3":
        return email_templates.onboarding_day3_email(name, goal_label, goals)
    if item.email_type == "onboarding_day7":
        end = now.date() + timedelta(days=1)
        completed, total = _week_session_counts(db, profile.id, end - timedelta(days=7), end)
        return email_templates.onboarding_day7_email(name, goal_label, completed, total)
    return None


def process_email_queue(db: Session, now: Optional[datetime] = None) -> Dict:
    """Send due pending emails (oldest first, bounded batch)."""
    now = now or datetime.now(timezone.utc)
    items = (
        db.query(EmailQueueItem)
        .filter(EmailQueueItem.status == "pending", EmailQueueItem.scheduled_at <= now)
        .order_by(EmailQueueItem.scheduled_at.asc())
        .limit(QUEUE_BATCH_SIZE)
        .all()
    )

    sent = failed = 0
    for item in items:
        profile = db.query(Profile).filter(Profile.id == item.user_id).first()
        if profile is None or not profile.email:
            item.status = "failed"
            item.error = "missing recipient"
            failed += 1
            continue

        content = _render_queued(db, item, profile, now)
        if content is None:
            item.status = "failed"
            item.error = f"unknown email type {item.email_type}"
            failed += 1
            continue

        if email_service.send_email(profile.email, content.subject, content.html, content.text):
            item.status = "sent"
            item.sent_at = now
            sent += 1
        else:
            item.status = "failed"
            item.error = "delivery failed"
            failed += 1

    db.flush()
    logger.info(
        "Email queue processed",
        extra={"extra_fields": {"processed": len(items), "sent": sent, "failed": failed}},
    )
    return {"success": True, "processed": len(items), "sent": sent, "failed": failed}


def send_checkin_reminders(db: Session, today: Optional[date] = None) -> Dict:
    """Remind onboarded users who have not checked in for the current ISO week."""
    week = iso_week(today or datetime.now(timezone.utc).date())
    checked_in = select(WeeklyCheckin.user_id).where(WeeklyCheckin.week_iso == week)
    profiles = (
        db.query(Profile)
        .filter(
            Profile.onboarding_completed.is_(True),
            Profile.is_disabled.is_(False),
            Profile.id.notin_(checked_in),
        )
        .all()
    )

    emails_sent = errors = 0
    for profile in profiles:
        if not profile.email:
            continue
        content = email_templates.checkin_reminder_email(profile.name)
        if email_service.send_email(profile.email, content.subject, content.html, content.text):
            emails_sent += 1
        else:
            errors += 1

    logger.info(
        "Check-in reminders sent",
        extra={"extra_fields": {"week": week, "sent": emails_sent, "errors": errors}},
    )
    return {"success": True, "emailsSent": emails_sent, "errors": errors}


def current_streak(db: Session, user_id) -> int:
    """Consecutive completed sessions, newest first, while gaps stay within two days."""
    dates = [
        d
        for (d,) in db.query(TrainingSession.session_date)
        .filter(TrainingSession.user_id == user_id, TrainingSession.completed.is_(True))
        .order_by(TrainingSession.session_date.desc())
        .limit(STREAK_LOOKBACK)
        .all()
    ]
    if not dates:
        return 0
    streak = 1
    for newer, older in zip(dates, dates[1:]):
        if (newer - older).days > STREAK_MAX_GAP_DAYS:
            break
        streak += 1
    return streak


def build_weekly_stats(db: Session, profile: Profile, today: date) -> Optional[email_templates.WeeklyStats]:
    """Stats for the week containing ``today``, or None when the week has no sessions."""
    monday = week_monday(today)
    completed, planned = _week_session_counts(db, profile.id, monday, monday + timedelta(days=7))
    if not completed and not planned:
        return None
    goals = db.query(Goals).filter(Goals.user_id == profile.id).first()

    week_start = datetime.combine(monday, time.min, tzinfo=timezone.utc)
    weights = weights_between(db, profile.id, week_start, week_start + timedelta(days=7))
    latest_checkin = (
        db.query(WeeklyCheckin)
        .filter(WeeklyCheckin.user_id == profile.id)
        .order_by(WeeklyCheckin.created_at.desc(), WeeklyCheckin.week_iso.desc())
        .first()
    )

    return email_templates.WeeklyStats(
        sessions_completed=completed,
        total_sessions=(goals.frequency if goals else None) or DEFAULT_FREQUENCY,
        weight_start=weights[0] if weights else None,
        weight_end=weights[-1] if weights else None,
        nutrition_adherence=latest_checkin.adherence_diet if latest_checkin else None,
        current_streak=current_streak(db, profile.id),
        goal_label=email_templates.translate_goal_type(goals.goal_type if goals else None),
    )


def send_weekly_digests(db: Session, today: Optional[date] = None) -> Dict:
    """Monday recap of the current week for every onboarded user with activity."""
    today = today or datetime.now(timezone.utc).date()
    profiles = (
        db.query(Profile)
        .filter(Profile.onboarding_completed.is_(True), Profile.is_disabled.is_(False))
        .all()
    )

    sent = failed = 0
    for profile in profiles:
        if not profile.email:
            continue
        stats = build_weekly_stats(db, profile, today)
        if stats is None:
            continue
        content = email_templates.weekly_digest_email(profile.name, stats)
        if email_service.send_email(profile.email, content.subject, content.html, content.text):
            sent += 1
        else:
            failed += 1

    logger.info("Weekly digests sent", extra={"extra_fields": {"sent": sent, "failed": failed}})
    return {"success": True, "sent": sent, "failed": failed}
