"""
Audit recorder.

Appends security events to the audit log. Each record is written in its own
commit after the primary action has been committed, so an audit failure is
logged and reported as ``False`` but never undoes or fails that action.
"""

from flask import current_app, has_request_context
from sqlalchemy.exc import SQLAlchemyError

from app.extensions import db
from app.models import AppendOnlyViolation, AuditAction, AuditLog


def _client_ip():
    if not has_request_context():
        return None
    from app.utils.ip_handler import get_real_ip
    return get_real_ip()


def record(actor_id, action_type, details=None, ip_address=None):
    """
    Append one audit record.

    Args:
        actor_id: id of the acting user, or None (e.g. failed login).
        action_type: AuditAction member.
        details: JSON-serializable dict.
        ip_address: client address; taken from the request when omitted.

    Returns:
        bool: True when the record was stored.
    """
    entry = AuditLog(
        user_id=actor_id,
        action_type=AuditAction.from_string(action_type),
        details=details or {},
        ip_address=ip_address or _client_ip(),
    )
    try:
        db.session.add(entry)
        db.session.commit()
        return True
    except (SQLAlchemyError, AppendOnlyViolation):
        db.session.rollback()
        current_app.logger.exception(
            f"Failed to write audit record ({entry.action_type.value}) for user {actor_id}"
        )
        return False


def log_login_success(user_id, email):
    return record(user_id, AuditAction.LOGIN, {"email": email, "status": "success"})


def log_login_failure(email, reason):
    return record(None, AuditAction.LOGIN, {"email": email, "status": "failure", "reason": reason})


def log_logout(user_id, email):
    return record(user_id, AuditAction.LOGOUT, {"email": email})


def log_upload(user_id, file_type, file_name, related_id):
    return record(user_id, AuditAction.UPLOAD, {
        "file_type": file_type,
        "file_name": file_name,
        "related_id": related_id,
    })


def log_download(user_id, file_type, file_name, related_id=None):
    details = {"file_type": file_type, "file_name": file_name}
    if related_id is not None:
        details["related_id"] = related_id
    return record(user_id, AuditAction.DOWNLOAD, details)


def log_update(user_id, target, target_id, changes):
    return record(user_id, AuditAction.UPDATE, {
        "target": target,
        "target_id": target_id,
        "changes": sorted(changes),
    })


def log_delete(user_id, target, target_id):
    return record(user_id, AuditAction.DELETE, {"target": target, "target_id": target_id})
