"""Room coordination services.

Framework-agnostic domain logic for buzzer rooms. The Socket.IO gateway and
HTTP routes import from here; nothing in this package touches Flask request
context.
"""

from .registry import RoomRegistry, RegistrySettings
from .clock import ClockSyncService
from .scheduler import SocketIOBroadcaster, SocketIOScheduler

__all__ = [
    'RoomRegistry',
    'RegistrySettings',
    'ClockSyncService',
    'SocketIOBroadcaster',
    'SocketIOScheduler',
]
