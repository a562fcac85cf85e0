import os
import sys
import pytest

# Ensure the backend root (containing the `buzzer` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from buzzer import create_app, socketio
from buzzer.services.rooms import RegistrySettings, RoomRegistry


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    CORS_ORIGINS = '*'
    SOCKETIO_NAMESPACE = '/'
    ROOM_CODE_LENGTH = 4
    MAX_ROOMS = 20
    MAX_PLAYERS_PER_ROOM = 10
    ROOM_GRACE_SEC = 30
    COUNTDOWN_START = 3
    # Keep countdown tests fast; ticks still run on background tasks
    COUNTDOWN_TICK_SEC = 0.01
    HOST_LEAVE_POLICY = 'freeze'
    WIN_CREDIT_POLICY = 'first_buzz'
    BUZZ_TIMESTAMP_POLICY = 'client'
    CLOCK_RESYNC_INTERVAL_SEC = 10


class RecordingBroadcaster:
    """In-memory stand-in for the Socket.IO fan-out."""

    def __init__(self):
        self.events = []  # (target, event, payload)
        self.channels = {}  # room code -> set of sids
        self.closed = []

    def emit_room(self, code, event, payload):
        self.events.append((f"room:{code}", event, payload))

    def emit_to(self, sid, event, payload):
        self.events.append((sid, event, payload))

    def enter(self, sid, code):
        self.channels.setdefault(code, set()).add(sid)

    def exit(self, sid, code):
        self.channels.get(code, set()).discard(sid)

    def close(self, code):
        self.closed.append(code)
        self.channels.pop(code, None)

    def named(self, event, target=None):
        return [p for t, e, p in self.events if e == event and (target is None or t == target)]

    def last(self, event, target=None):
        found = self.named(event, target)
        return found[-1] if found else None

    def clear(self):
        self.events = []


class ManualScheduler:
    """Collects timer calls; tests fire them explicitly."""

    def __init__(self):
        self.pending = []  # (delay, fn, args)

    def call_later(self, delay, fn, *args):
        self.pending.append((delay, fn, args))

    def run_next(self, name=None):
        for i, (delay, fn, args) in enumerate(self.pending):
            if name is None or fn.__name__ == name:
                self.pending.pop(i)
                fn(*args)
                return True
        return False

    def run_all(self, name=None):
        while self.run_next(name):
            pass

    def count(self, name):
        return sum(1 for _, fn, _ in self.pending if fn.__name__ == name)


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture()
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def make_registry(broadcaster, scheduler):
    def _make(monotonic=None, **overrides):
        settings = RegistrySettings(**overrides)
        return RoomRegistry(
            broadcaster,
            scheduler,
            settings=settings,
            clock=FakeClock(5000.0),
            monotonic=monotonic or FakeClock(100.0),
        )
    return _make


@pytest.fixture()
def registry(make_registry):
    return make_registry()


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        yield application


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def make_sio_client(flask_app):
    clients = []

    def _make():
        test_client = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
        clients.append(test_client)
        return test_client

    yield _make
    for c in clients:
        try:
            c.disconnect()
        except Exception:
            pass


@pytest.fixture()
def sio_client(make_sio_client):
    return make_sio_client()
