from __future__ import annotations

from typing import Any, Dict, Optional

import logging
from fastapi import Request
from sqlalchemy.orm import Session

from models import AdminAuditLog, Profile

logger = logging.getLogger(__name__)

MAX_DETAIL_VALUE_LEN = 500


def _bounded(details: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in (details or {}).items():
        if isinstance(value, str) and len(value) > MAX_DETAIL_VALUE_LEN:
            value = value[:MAX_DETAIL_VALUE_LEN]
        out[str(key)] = value
    return out


def record_admin_audit_event(
    db: Session,
    *,
    request: Optional[Request],
    actor: Profile,
    action: str,
    target_user_id: Optional[Any] = None,
    details: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Best-effort append-only audit logging for admin actions.

    Never throws: a failed audit insert must not block the admin operation.
    ``details`` must not contain secrets (recovery links are never logged).
    """
    try:
        payload = _bounded(details)
        if request is not None:
            payload.setdefault("ip_address", request.client.host if request.client else None)
            payload.setdefault("user_agent", request.headers.get("user-agent"))

        ev = AdminAuditLog(
            admin_user_id=actor.id,
            action=action,
            target_user_id=target_user_id,
            details=payload,
        )
        db.add(ev)
        db.flush()
    except Exception as e:
        logger.exception("Admin audit logging failed: %s", str(e))
