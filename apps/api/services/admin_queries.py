"""
Admin read models: dashboard counters, user list and user detail.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.orm import Session

from models import (
    ACTIVE_SUBSCRIPTION_STATUSES,
    AdminAuditLog,
    Profile,
    Subscription,
    TrainingSession,
    UserRole,
    WeeklyCheckin,
    WeeklyProgram,
)

USER_SORT_COLUMNS = ("created_at", "last_activity_at", "sessions_completed")
INACTIVE_DAYS = (14, 30)
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


def _count(query) -> int:
    return int(query.scalar() or 0)


def get_admin_stats(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    week_ago = now - timedelta(days=7)
    month_ago = now - timedelta(days=30)
    current_monday = (now - timedelta(days=now.weekday())).date()

    total_users = _count(db.query(func.count(Profile.id)))
    checkins_month = _count(
        db.query(func.count(WeeklyCheckin.id)).filter(WeeklyCheckin.created_at >= month_ago)
    )

    return {
        "total_users": total_users,
        "new_users_today": _count(db.query(func.count(Profile.id)).filter(Profile.created_at >= today_start)),
        "new_users_week": _count(db.query(func.count(Profile.id)).filter(Profile.created_at >= week_ago)),
        "new_users_month": _count(db.query(func.count(Profile.id)).filter(Profile.created_at >= month_ago)),
        "active_users_7d": _count(db.query(func.count(Profile.id)).filter(Profile.last_activity_at >= week_ago)),
        "active_users_30d": _count(db.query(func.count(Profile.id)).filter(Profile.last_activity_at >= month_ago)),
        "completed_sessions_total": _count(
            db.query(func.count(TrainingSession.id)).filter(TrainingSession.completed.is_(True))
        ),
        "completed_sessions_week": _count(
            db.query(func.count(TrainingSession.id)).filter(
                TrainingSession.completed.is_(True),
                TrainingSession.session_date >= current_monday,
            )
        ),
        "weekly_checkins_month": checkins_month,
        "subscriptions_active": _count(
            db.query(func.count(Subscription.id)).filter(Subscription.status == "active")
        ),
        "checkin_rate_pct": round(checkins_month / total_users * 100) if total_users > 0 else 0,
    }


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _role_map(db: Session, user_ids: List) -> Dict[Any, str]:
    roles: Dict[Any, str] = {}
    if not user_ids:
        return roles
    for user_id, role in db.query(UserRole.user_id, UserRole.role).filter(UserRole.user_id.in_(user_ids)).all():
        if role == "admin" or user_id not in roles:
            roles[user_id] = role
    return roles


def list_users(
    db: Session,
    *,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    search: Optional[str] = None,
    role: Optional[str] = None,
    status: Optional[str] = None,
    inactive: Optional[int] = None,
    subscription: Optional[str] = None,
    sort: str = "created_at",
    direction: str = "desc",
    export: bool = False,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Filtered, sorted and paginated user list. ``export`` returns every match.

    Filters and the session-count sort run in SQL so ``total`` always matches
    the filtered set.
    """
    now = now or datetime.now(timezone.utc)
    page = max(1, page)
    limit = max(1, min(MAX_PAGE_SIZE, limit))

    sessions_sq = (
        db.query(
            TrainingSession.user_id.label("user_id"),
            func.count(TrainingSession.id).label("total"),
            func.sum(case((TrainingSession.completed.is_(True), 1), else_=0)).label("completed"),
        )
        .group_by(TrainingSession.user_id)
        .subquery()
    )
    active_sub = and_(
        Subscription.user_id == Profile.id,
        Subscription.status.in_(ACTIVE_SUBSCRIPTION_STATUSES),
    )

    q = (
        db.query(
            Profile,
            func.coalesce(sessions_sq.c.total, 0).label("sessions_total"),
            func.coalesce(sessions_sq.c.completed, 0).label("sessions_completed"),
            Subscription.status.label("sub_status"),
            Subscription.plan_type.label("sub_plan"),
        )
        .outerjoin(sessions_sq, sessions_sq.c.user_id == Profile.id)
        .outerjoin(Subscription, active_sub)
    )

    if role in ("admin", "member"):
        role_ids = select(UserRole.user_id).where(UserRole.role == role)
        q = q.filter(Profile.id.in_(role_ids))
        if role == "member":
            admin_ids = select(UserRole.user_id).where(UserRole.role == "admin")
            q = q.filter(Profile.id.notin_(admin_ids))
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(Profile.email.ilike(pattern), Profile.name.ilike(pattern)))
    if status == "disabled":
        q = q.filter(Profile.is_disabled.is_(True))
    elif status == "active":
        q = q.filter(Profile.is_disabled.is_(False))
    if inactive in INACTIVE_DAYS:
        cutoff = now - timedelta(days=inactive)
        q = q.filter(or_(Profile.last_activity_at < cutoff, Profile.last_activity_at.is_(None)))
    if subscription in ACTIVE_SUBSCRIPTION_STATUSES:
        q = q.filter(Subscription.status == subscription)
    elif subscription == "none":
        q = q.filter(Subscription.id.is_(None))

    total = q.count()

    sort_key = sort if sort in USER_SORT_COLUMNS else "created_at"
    if sort_key == "sessions_completed":
        column = func.coalesce(sessions_sq.c.completed, 0)
    else:
        column = getattr(Profile, sort_key)
    ordered = column.asc() if direction == "asc" else column.desc()
    q = q.order_by(ordered.nulls_last(), Profile.id)

    if not export:
        q = q.offset((page - 1) * limit).limit(limit)

    rows = q.all()
    roles = _role_map(db, [r[0].id for r in rows])
    users = []
    for profile, sessions_total, sessions_completed, sub_status, sub_plan in rows:
        users.append({
            "id": str(profile.id),
            "email": profile.email,
            "name": profile.name,
            "role": roles.get(profile.id, "member"),
            "is_disabled": profile.is_disabled,
            "created_at": _iso(profile.created_at),
            "last_activity_at": _iso(profile.last_activity_at),
            "onboarding_completed": profile.onboarding_completed,
            "sessions_total": int(sessions_total or 0),
            "sessions_completed": int(sessions_completed or 0),
            "subscription": {"status": sub_status, "plan_type": sub_plan} if sub_status else None,
        })

    return {"users": users, "total": total, "page": page, "limit": limit}


def _subscription_dict(sub: Optional[Subscription]) -> Optional[Dict[str, Any]]:
    if sub is None:
        return None
    return {
        "status": sub.status,
        "plan_type": sub.plan_type,
        "stripe_customer_id": sub.stripe_customer_id,
        "stripe_subscription_id": sub.stripe_subscription_id,
        "started_at": _iso(sub.started_at),
        "ends_at": _iso(sub.ends_at),
    }


def audit_entry_dict(entry: AdminAuditLog) -> Dict[str, Any]:
    return {
        "id": str(entry.id),
        "admin_user_id": str(entry.admin_user_id),
        "target_user_id": str(entry.target_user_id) if entry.target_user_id else None,
        "action": entry.action,
        "details": entry.details or {},
        "created_at": _iso(entry.created_at),
    }


def get_user_detail(db: Session, user_id) -> Optional[Dict[str, Any]]:
    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if profile is None:
        return None

    sub = (
        db.query(Subscription)
        .filter(Subscription.user_id == user_id)
        .order_by(Subscription.created_at.desc())
        .first()
    )
    sessions_total, sessions_completed = (
        db.query(
            func.count(TrainingSession.id),
            func.sum(case((TrainingSession.completed.is_(True), 1), else_=0)),
        )
        .filter(TrainingSession.user_id == user_id)
        .one()
    )
    programs = (
        db.query(WeeklyProgram)
        .filter(WeeklyProgram.user_id == user_id)
        .order_by(WeeklyProgram.week_start_date.desc())
        .limit(5)
        .all()
    )
    audit = (
        db.query(AdminAuditLog)
        .filter(AdminAuditLog.target_user_id == user_id)
        .order_by(AdminAuditLog.created_at.desc())
        .limit(20)
        .all()
    )

    return {
        "profile": {
            "id": str(profile.id),
            "email": profile.email,
            "name": profile.name,
            "is_disabled": profile.is_disabled,
            "onboarding_completed": profile.onboarding_completed,
            "created_at": _iso(profile.created_at),
            "last_activity_at": _iso(profile.last_activity_at),
        },
        "role": "admin" if profile.is_admin else "member",
        "subscription": _subscription_dict(sub),
        "sessions_total": int(sessions_total or 0),
        "sessions_completed": int(sessions_completed or 0),
        "weekly_programs": [
            {
                "id": str(p.id),
                "week_start_date": _iso(p.week_start_date),
                "week_end_date": _iso(p.week_end_date),
                "check_in_completed": p.check_in_completed,
            }
            for p in programs
        ],
        "audit_log": [audit_entry_dict(e) for e in audit],
    }


def list_audit_log(
    db: Session,
    *,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    action: Optional[str] = None,
    target_user_id=None,
) -> Dict[str, Any]:
    page = max(1, page)
    limit = max(1, min(MAX_PAGE_SIZE, limit))
    q = db.query(AdminAuditLog)
    if action:
        q = q.filter(AdminAuditLog.action == action)
    if target_user_id is not None:
        q = q.filter(AdminAuditLog.target_user_id == target_user_id)
    total = q.count()
    entries = (
        q.order_by(AdminAuditLog.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {"entries": [audit_entry_dict(e) for e in entries], "total": total, "page": page, "limit": limit}
