from typing import Any, Dict, Optional

from squares import db
from squares.models import AuditLog


def log_audit(
    pool_id: Optional[int],
    actor_type: str,
    actor_id: Any,
    action: str,
    detail: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """Stage an audit row in the current transaction (no commit)."""
    entry = AuditLog(
        pool_id=pool_id,
        actor_type=actor_type,
        actor_id=str(actor_id) if actor_id is not None else None,
        action=action,
        detail=detail,
    )
    db.session.add(entry)
    return entry


def pool_audit_log(pool_id: int, limit: int = 100):
    return (
        AuditLog.query.filter_by(pool_id=pool_id)
        .order_by(AuditLog.id.desc())
        .limit(limit)
        .all()
    )
