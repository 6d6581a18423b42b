"""
Admin API Router

Account moderation, dashboard metrics, user directory, audit trail and manual
runs of the scheduled email jobs. Admin role only.
"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
import logging

from pydantic import BaseModel, Field

from core.auth import require_admin
from core.database import get_db
from core.exceptions import NotFoundError
from models import Profile
from services import admin_queries, email_jobs
from services.admin_actions import run_admin_action
from services.admin_audit import record_admin_audit_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/admin", tags=["admin"])

JOBS = {
    "process-email-queue": email_jobs.process_email_queue,
    "send-checkin-reminders": email_jobs.send_checkin_reminders,
    "send-weekly-digests": email_jobs.send_weekly_digests,
}


class AdminActionRequest(BaseModel):
    action: Optional[str] = Field(default=None, max_length=50)
    target_user_id: Optional[UUID] = None
    confirm: Optional[str] = Field(default=None, max_length=20)
    role: Optional[str] = Field(default=None, max_length=20)


@router.post("/actions")
def admin_action(
    payload: AdminActionRequest,
    request: Request,
    current_user: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Moderation action on one account: disable, enable, delete,
    reset_password or set_role. Every action is audited.
    """
    return run_admin_action(
        db,
        request=request,
        actor=current_user,
        action=payload.action,
        target_user_id=payload.target_user_id,
        confirm=payload.confirm,
        role=payload.role,
    )


@router.get("/stats")
def admin_stats(
    current_user: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return admin_queries.get_admin_stats(db)


@router.get("/users")
def list_users(
    current_user: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(admin_queries.DEFAULT_PAGE_SIZE, ge=1, le=admin_queries.MAX_PAGE_SIZE),
    search: Optional[str] = Query(None, max_length=255, description="Search by email or name"),
    role: Optional[str] = Query(None, pattern="^(admin|member)$"),
    status: Optional[str] = Query(None, pattern="^(active|disabled)$"),
    inactive: Optional[int] = Query(None, description="Inactive for 14 or 30 days"),
    subscription: Optional[str] = Query(None, pattern="^(active|trialing|none)$"),
    sort: str = Query("created_at", pattern="^(created_at|last_activity_at|sessions_completed)$"),
    dir: str = Query("desc", pattern="^(asc|desc)$"),
    export: bool = Query(False, description="Return every match, unpaginated"),
):
    return admin_queries.list_users(
        db,
        page=page,
        limit=limit,
        search=search,
        role=role,
        status=status,
        inactive=inactive,
        subscription=subscription,
        sort=sort,
        direction=dir,
        export=export,
    )


@router.get("/users/{user_id}")
def get_user(
    user_id: UUID,
    current_user: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    detail = admin_queries.get_user_detail(db, user_id)
    if detail is None:
        raise NotFoundError("Utilisateur introuvable")
    return detail


@router.get("/audit-log")
def audit_log(
    current_user: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(admin_queries.DEFAULT_PAGE_SIZE, ge=1, le=admin_queries.MAX_PAGE_SIZE),
    action: Optional[str] = Query(None, max_length=50),
    target_user_id: Optional[UUID] = Query(None),
):
    return admin_queries.list_audit_log(db, page=page, limit=limit, action=action, target_user_id=target_user_id)


@router.post("/jobs/{job}")
def run_job(
    job: str,
    request: Request,
    current_user: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Run a scheduled email job now, in this request."""
    runner = JOBS.get(job)
    if runner is None:
        raise NotFoundError("Tâche inconnue")
    result = runner(db)
    record_admin_audit_event(db, request=request, actor=current_user, action="run_job", details={"job": job, **result})
    logger.info("Admin job run", extra={"extra_fields": {"job": job, "admin_id": str(current_user.id)}})
    return result
