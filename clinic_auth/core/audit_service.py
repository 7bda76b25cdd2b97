"""
Audit trail of authentication events.
"""
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from .audit_models import AuditLog


def record_audit_event(
    db: Session,
    action: str,
    user_id: Optional[int] = None,
    ip_address: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Adds an audit log entry to the current unit of work.

    The entry is flushed but not committed; it becomes durable together with
    the rest of the caller's transaction.

    Args:
        db: The database session.
        action: A string describing the action performed (e.g., 'USER_LOGIN_SUCCESS', 'TOKEN_REFRESHED').
        user_id: The ID of the user who performed the action (if applicable).
        ip_address: Client address the request came from (if known).
        details: A dictionary containing additional context or data related to the action.

    Returns:
        The pending AuditLog object.
    """
    audit_entry = AuditLog(
        user_id=user_id,
        action=action,
        ip_address=ip_address,
        details=details,
    )
    db.add(audit_entry)
    db.flush()
    return audit_entry


def list_audit_events(db: Session, user_id: Optional[int] = None, action: Optional[str] = None):
    """Query audit entries, newest first, optionally filtered by user and action."""
    query = db.query(AuditLog)
    if user_id is not None:
        query = query.filter(AuditLog.user_id == user_id)
    if action:
        query = query.filter(AuditLog.action == action)
    return query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
