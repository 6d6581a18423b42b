"""
Celery Beat Schedule Configuration

Defines periodic tasks that run on a schedule (UTC).
"""

from celery.schedules import crontab

beat_schedule = {
    # Onboarding sequence - drain due queue rows every 15 minutes
    'process-email-queue': {
        'task': 'tasks.process_email_queue',
        'schedule': crontab(minute='*/15'),
    },
    # Check-in reminder - every Sunday at 6 PM UTC
    'send-checkin-reminders': {
        'task': 'tasks.send_checkin_reminders',
        'schedule': crontab(hour=18, minute=0, day_of_week=0),  # Sunday
    },
    # Weekly digest - every Monday at 8 AM UTC
    'send-weekly-digests': {
        'task': 'tasks.send_weekly_digests',
        'schedule': crontab(hour=8, minute=0, day_of_week=1),  # Monday
    },
}
