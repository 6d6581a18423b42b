"""
Scheduled lifecycle emails.

Each task opens its own session, runs the job from services.email_jobs and
commits; failures roll back and are returned as an error status so Beat keeps
its schedule.
"""
import logging
from typing import Callable, Dict

from sqlalchemy.orm import Session

from core.database import get_db_sync
from services import email_jobs
from tasks import celery_app

logger = logging.getLogger(__name__)


def _run_job(name: str, job: Callable[[Session], Dict]) -> Dict:
    db: Session = get_db_sync()
    try:
        result = job(db)
        db.commit()
        return result
    except Exception as e:
        db.rollback()
        logger.error(f"Error in {name}: {str(e)}", exc_info=True)
        return {"success": False, "error": str(e)}
    finally:
        db.close()


@celery_app.task(name="tasks.process_email_queue")
def process_email_queue_task() -> Dict:
    """Send onboarding emails whose scheduled time has passed."""
    return _run_job("process_email_queue", email_jobs.process_email_queue)


@celery_app.task(name="tasks.send_checkin_reminders")
def send_checkin_reminders_task() -> Dict:
    """Sunday evening nudge for users without a check-in this week."""
    return _run_job("send_checkin_reminders", email_jobs.send_checkin_reminders)


@celery_app.task(name="tasks.send_weekly_digests")
def send_weekly_digests_task() -> Dict:
    """Monday morning recap of the week."""
    return _run_job("send_weekly_digests", email_jobs.send_weekly_digests)
