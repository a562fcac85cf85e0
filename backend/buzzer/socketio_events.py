from functools import wraps

from flask import current_app, request
from flask_socketio import emit

from buzzer import socketio
from buzzer.errors import CoordinatorError
from buzzer.schemas import Connected, dump, parse_inbound


def _registry():
    return current_app.extensions['buzzer_registry']


def _clock():
    return current_app.extensions['buzzer_clock']


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore[attr-defined]


def _command(event, handler):
    """Validate the payload for *event*, run *handler* and report errors to the sender only."""

    @wraps(handler)
    def _wrapped(data=None):
        try:
            handler(parse_inbound(event, data))
        except CoordinatorError as exc:
            current_app.logger.info(f"[rejected] event={event} sid={_get_sid()} code={exc.code} msg={exc.message}")
            emit('error', exc.to_dict())

    return _wrapped


def handle_connect():
    interval = int(current_app.config.get('CLOCK_RESYNC_INTERVAL_SEC', 10))
    emit('connected', dump(Connected(resync_interval_sec=interval)))


def handle_disconnect(*args):
    _registry().disconnect(_get_sid())


def handle_sync_ping(data=None):
    # Answered inline without touching any room lock; queuing here would
    # skew every client's offset estimate.
    try:
        msg = parse_inbound('sync_ping', data)
    except CoordinatorError as exc:
        current_app.logger.info(f"[rejected] event=sync_ping sid={_get_sid()} code={exc.code} msg={exc.message}")
        emit('error', exc.to_dict())
        return
    emit('sync_pong', _clock().pong(msg.client_time))


def handle_create_room(msg):
    _registry().create_room(msg.name, msg.user_id, mode=msg.mode, sid=_get_sid())


def handle_join_room(msg):
    _registry().join_room(msg.room_id, msg.name, msg.user_id, team=msg.team_id, sid=_get_sid())


def handle_rejoin_room(msg):
    _registry().rejoin_room(msg.room_id, msg.name, msg.user_id, sid=_get_sid())


def handle_leave_room(msg):
    _registry().leave_room(msg.room_id, msg.user_id, sid=_get_sid())


def handle_buzz(msg):
    _registry().submit_buzz(msg.room_id, msg.user_id, msg.timestamp)


def handle_toggle_lock(msg):
    _registry().toggle_lock(msg.room_id, msg.user_id)


def handle_reset(msg):
    _registry().reset(msg.room_id, msg.user_id)


def handle_start_question(msg):
    _registry().start_question(msg.room_id, msg.user_id)


def handle_adjudicate(msg):
    _registry().adjudicate(msg.room_id, msg.user_id, msg.correct)


def handle_update_status(msg):
    _registry().update_status(msg.room_id, msg.user_id, msg.status)


def handle_unexpected_error(exc):
    current_app.logger.exception(f"[socket-error] sid={_get_sid()} {exc!r}")
    emit('error', {'code': 'InternalError', 'message': 'Something went wrong'})


COMMANDS = {
    'createRoom': handle_create_room,
    'joinRoom': handle_join_room,
    'rejoinRoom': handle_rejoin_room,
    'leaveRoom': handle_leave_room,
    'buzz': handle_buzz,
    'toggleLock': handle_toggle_lock,
    'reset': handle_reset,
    'startQuestion': handle_start_question,
    'adjudicate': handle_adjudicate,
    'updateStatus': handle_update_status,
}


def register_socketio_handlers(namespace: str = '/') -> None:
    """Register Socket.IO event handlers on *namespace*."""
    socketio.on_event('connect', handle_connect, namespace=namespace)
    socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
    socketio.on_event('sync_ping', handle_sync_ping, namespace=namespace)
    for event, handler in COMMANDS.items():
        socketio.on_event(event, _command(event, handler), namespace=namespace)
    socketio.on_error(namespace)(handle_unexpected_error)
