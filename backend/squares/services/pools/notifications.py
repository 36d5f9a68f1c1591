"""Best-effort player notifications.

Called only after the state change that triggers them has been committed.
Nothing in here raises: a failed emit or insert is logged and recorded, and
the triggering operation still succeeds.
"""
from typing import Any, Dict, Optional

from flask import current_app

from squares import db, socketio
from squares.models import Notification

NAMESPACE = '/ws'


def pool_room(pool_id: int) -> str:
    return f"pool:{pool_id}"


def player_room(player_id: int) -> str:
    return f"player:{player_id}"


def notify(player_id: int, pool_id: Optional[int], kind: str, payload: Optional[Dict[str, Any]] = None) -> bool:
    payload = dict(payload or {})
    message = {'kind': kind, 'pool_id': pool_id, **payload}
    status, error = 'sent', None
    try:
        socketio.emit('notification', message, to=player_room(player_id), namespace=NAMESPACE)
    except Exception as exc:
        status, error = 'failed', str(exc)
        current_app.logger.warning(f"[notify] player={player_id} pool={pool_id} kind={kind} emit failed: {exc}")

    try:
        db.session.add(Notification(
            player_id=player_id,
            pool_id=pool_id,
            kind=kind,
            payload=payload,
            status=status,
            error=error,
        ))
        db.session.commit()
    except Exception as exc:
        db.session.rollback()
        current_app.logger.warning(f"[notify] player={player_id} pool={pool_id} kind={kind} not recorded: {exc}")
        return False
    return status == 'sent'


def broadcast_pool_update(pool_id: int, **extra) -> None:
    try:
        socketio.emit('state_update', {'pool_id': pool_id, **extra}, to=pool_room(pool_id), namespace=NAMESPACE)
    except Exception as exc:
        current_app.logger.warning(f"[broadcast] pool={pool_id} state_update failed: {exc}")
