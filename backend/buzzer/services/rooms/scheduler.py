"""Socket.IO bindings for the room registry: fan-out and timers.

The registry never imports Flask-SocketIO directly; it is handed a
broadcaster and a scheduler when the app is created, which keeps the room
logic drivable from unit tests with in-memory doubles.
"""
import logging

log = logging.getLogger(__name__)


def room_channel(code: str) -> str:
    return f"room:{code}"


class SocketIOBroadcaster:
    def __init__(self, socketio, namespace='/'):
        self.socketio = socketio
        self.namespace = namespace

    def emit_room(self, code, event, payload):
        self.socketio.emit(event, payload, to=room_channel(code), namespace=self.namespace)

    def emit_to(self, sid, event, payload):
        self.socketio.emit(event, payload, to=sid, namespace=self.namespace)

    def enter(self, sid, code):
        self.socketio.server.enter_room(sid, room_channel(code), namespace=self.namespace)

    def exit(self, sid, code):
        self.socketio.server.leave_room(sid, room_channel(code), namespace=self.namespace)

    def close(self, code):
        self.socketio.server.close_room(room_channel(code), namespace=self.namespace)


class SocketIOScheduler:
    """Runs ``fn(*args)`` after ``delay`` seconds on a Socket.IO background task.

    ``socketio.sleep`` cooperates with whichever async mode the server picked
    (threading, eventlet or gevent).
    """

    def __init__(self, socketio):
        self.socketio = socketio

    def call_later(self, delay, fn, *args):
        def _runner():
            if delay and delay > 0:
                self.socketio.sleep(delay)
            try:
                fn(*args)
            except Exception:
                log.exception(f"[timer-error] {getattr(fn, '__name__', fn)} args={args}")

        self.socketio.start_background_task(_runner)
