"""
Read access to the audit log (admin only). Records are written by app.audit.
"""

from app.auth import ADMIN_ONLY, guarded
from app.models import AuditAction, AuditLog
from app.repositories.base import Repository


def serialize_audit_log(entry, user_emails=None):
    from app.utils.helpers import format_utc_iso

    return {
        "id": entry.id,
        "user_id": entry.user_id,
        "user_email": (user_emails or {}).get(entry.user_id),
        "action_type": entry.action_type.value,
        "details": entry.details or {},
        "ip_address": entry.ip_address,
        "created_at": format_utc_iso(entry.created_at),
    }


class AuditLogRepository(Repository):

    @guarded(*ADMIN_ONLY)
    def list(self, action_type=None, user_id=None, page=1, per_page=50):
        query = AuditLog.query
        if action_type is not None:
            query = query.filter(AuditLog.action_type == action_type)
        if user_id is not None:
            query = query.filter(AuditLog.user_id == user_id)
        query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        total = query.count()
        entries = query.offset((page - 1) * per_page).limit(per_page).all()
        return entries, total

    @guarded(*ADMIN_ONLY)
    def counts(self):
        return {
            "total": AuditLog.query.count(),
            "logins": AuditLog.query.filter(AuditLog.action_type == AuditAction.LOGIN).count(),
            "downloads": AuditLog.query.filter(AuditLog.action_type == AuditAction.DOWNLOAD).count(),
        }
