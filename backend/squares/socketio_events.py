from flask_socketio import join_room, leave_room, emit

from squares import socketio
from squares.models import Player, Pool
from squares.services.pools.notifications import NAMESPACE, player_room, pool_room


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_join_pool(data):
    pool_id = (data or {}).get('pool_id')
    if pool_id is None:
        emit('error', {'message': 'pool_id is required'})
        return
    try:
        pool = Pool.query.filter_by(id=int(pool_id)).first()
    except (TypeError, ValueError):
        pool = None
    if pool is None:
        emit('error', {'message': 'Pool not found'})
        return
    room = pool_room(pool.id)
    join_room(room)
    emit('joined', {'room': room})


def handle_leave_pool(data):
    pool_id = (data or {}).get('pool_id')
    if pool_id is None:
        emit('error', {'message': 'pool_id is required'})
        return
    room = pool_room(pool_id)
    leave_room(room)
    emit('left', {'room': room})


def handle_join_player(data):
    # Players subscribe to their own notifications with their portal token
    token = (data or {}).get('token')
    player = Player.query.filter_by(auth_token=token).first() if token else None
    if player is None or player.banned:
        emit('error', {'message': 'Unknown player token'})
        return
    room = player_room(player.id)
    join_room(room)
    emit('joined', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    handlers = {
        'connect': handle_connect,
        'join_pool': handle_join_pool,
        'leave_pool': handle_leave_pool,
        'join_player': handle_join_player,
        'ping': handle_ping,
    }
    for event, handler in handlers.items():
        socketio.on_event(event, handler, namespace=NAMESPACE)

    if testing:
        # Test-only mirror on default namespace
        for event, handler in handlers.items():
            socketio.on_event(event, handler, namespace='/')
