"""
Admin actions on user accounts.

Each action validates its guards before any write, records an audit entry and
leaves committing to the request session.
"""

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import Request
from sqlalchemy import func
from sqlalchemy.orm import Session

from core.exceptions import NotFoundError, ValidationError
from core.security import build_recovery_link
from models import Profile, UserRole
from services.account_deletion import delete_user_data
from services.admin_audit import record_admin_audit_event

logger = logging.getLogger(__name__)

ACTIONS = ("disable", "enable", "delete", "reset_password", "set_role")
ROLES = ("admin", "member")
DELETE_CONFIRMATION = "DELETE"

SELF_ACTION_ERROR = "Vous ne pouvez pas effectuer cette action sur votre propre compte"
LAST_ADMIN_DELETE_ERROR = "Impossible de supprimer le dernier administrateur."
LAST_ADMIN_DEMOTE_ERROR = "Impossible de retirer le rôle du dernier administrateur."


def _admin_count(db: Session) -> int:
    return int(
        db.query(func.count(func.distinct(UserRole.user_id))).filter(UserRole.role == "admin").scalar() or 0
    )


def _is_admin(db: Session, user_id) -> bool:
    return db.query(UserRole.id).filter(UserRole.user_id == user_id, UserRole.role == "admin").first() is not None


def _is_last_admin(db: Session, user_id) -> bool:
    return _is_admin(db, user_id) and _admin_count(db) <= 1


def _get_target(db: Session, target_user_id) -> Profile:
    target = db.query(Profile).filter(Profile.id == target_user_id).first()
    if target is None:
        raise NotFoundError("Utilisateur introuvable")
    return target


def _set_disabled(db: Session, target: Profile, disabled: bool) -> None:
    target.is_disabled = disabled
    db.flush()


def _set_role(db: Session, target_id, role: str) -> str:
    """Replace the user's role rows with ``role``. Returns the previous role."""
    old_role = "admin" if _is_admin(db, target_id) else "member"
    if old_role == role:
        return old_role
    db.query(UserRole).filter(UserRole.user_id == target_id).delete(synchronize_session=False)
    db.add(UserRole(user_id=target_id, role=role))
    db.flush()
    return old_role


def run_admin_action(
    db: Session,
    *,
    request: Optional[Request],
    actor: Profile,
    action: Optional[str],
    target_user_id: Optional[UUID],
    confirm: Optional[str] = None,
    role: Optional[str] = None,
) -> Dict[str, Any]:
    if not action or not target_user_id:
        raise ValidationError("action et target_user_id sont requis", field="action")

    if target_user_id == actor.id and action != "reset_password":
        raise ValidationError(SELF_ACTION_ERROR, field="target_user_id")

    if action not in ACTIONS:
        raise ValidationError("Action inconnue", field="action")

    def audit(name: str, details: Optional[Dict[str, Any]] = None) -> None:
        record_admin_audit_event(
            db,
            request=request,
            actor=actor,
            action=name,
            target_user_id=target_user_id,
            details=details,
        )

    if action in ("disable", "enable"):
        target = _get_target(db, target_user_id)
        _set_disabled(db, target, action == "disable")
        audit(f"{action}_account")
        return {"success": True}

    if action == "delete":
        if confirm != DELETE_CONFIRMATION:
            raise ValidationError('Saisie de confirmation invalide. Tapez "DELETE".', field="confirm")
        _get_target(db, target_user_id)
        if _is_last_admin(db, target_user_id):
            raise ValidationError(LAST_ADMIN_DELETE_ERROR, field="target_user_id")
        audit("delete_account")
        delete_user_data(db, target_user_id)
        return {"success": True}

    if action == "reset_password":
        target = db.query(Profile).filter(Profile.id == target_user_id).first()
        if target is None or not target.email:
            raise NotFoundError("Utilisateur introuvable")
        link = build_recovery_link(str(target.id), target.email, target.password_hash)
        # The link itself is a credential and is never audited.
        audit("reset_password", {"email": target.email})
        return {"success": True, "link": link}

    # set_role
    if role not in ROLES:
        raise ValidationError("Rôle invalide", field="role")
    _get_target(db, target_user_id)
    if role == "member" and _is_last_admin(db, target_user_id):
        raise ValidationError(LAST_ADMIN_DEMOTE_ERROR, field="role")
    old_role = _set_role(db, target_user_id, role)
    audit("set_role", {"old_role": old_role, "new_role": role})
    return {"success": True, "role": role}
