"""Wire protocol for the buzzer Socket.IO gateway.

Every inbound event is validated against a closed tagged union keyed by the
Socket.IO event name. Outbound payload shapes are declared here as well so
that the whole protocol can be exported as JSON schema
(``flask protocol-schema``) and tested without a live server.
"""
from __future__ import annotations

from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from .errors import MalformedMessage

PROTOCOL_VERSION = 1


class WireModel(BaseModel):
    """Base for every message: camelCase on the wire, unknown keys ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra='ignore',
        frozen=True,
    )


# -----------------------------
# Client -> Server
# -----------------------------

class CreateRoom(WireModel):
    type: Literal['createRoom']
    name: Optional[str] = None
    user_id: Optional[str] = None
    # Accepted for symmetry with joinRoom; the creator is always team HOST
    team_id: Optional[str] = None
    mode: Literal['solo', 'team'] = 'solo'


class JoinRoom(WireModel):
    type: Literal['joinRoom']
    room_id: str
    name: Optional[str] = None
    user_id: Optional[str] = None
    team_id: Optional[str] = None


class RejoinRoom(WireModel):
    type: Literal['rejoinRoom']
    room_id: str
    name: Optional[str] = None
    user_id: Optional[str] = None


class LeaveRoom(WireModel):
    type: Literal['leaveRoom']
    room_id: str
    user_id: Optional[str] = None


class Buzz(WireModel):
    type: Literal['buzz']
    room_id: str
    user_id: Optional[str] = None
    # Offset-corrected client time in ms; server time is used when absent
    timestamp: Optional[float] = Field(default=None, allow_inf_nan=False)


class ToggleLock(WireModel):
    type: Literal['toggleLock']
    room_id: str
    user_id: Optional[str] = None


class Reset(WireModel):
    type: Literal['reset']
    room_id: str
    user_id: Optional[str] = None


class StartQuestion(WireModel):
    type: Literal['startQuestion']
    room_id: str
    user_id: Optional[str] = None


class Adjudicate(WireModel):
    type: Literal['adjudicate']
    room_id: str
    user_id: Optional[str] = None
    correct: bool


class UpdateStatus(WireModel):
    type: Literal['updateStatus']
    room_id: str
    user_id: Optional[str] = None
    status: Literal['active', 'away']


class SyncPing(WireModel):
    type: Literal['sync_ping']
    client_time: float = Field(allow_inf_nan=False)


InboundMessage = Annotated[
    Union[
        CreateRoom,
        JoinRoom,
        RejoinRoom,
        LeaveRoom,
        Buzz,
        ToggleLock,
        Reset,
        StartQuestion,
        Adjudicate,
        UpdateStatus,
        SyncPing,
    ],
    Field(discriminator='type'),
]

_inbound_adapter: TypeAdapter = TypeAdapter(InboundMessage)

INBOUND_EVENTS = (
    'createRoom', 'joinRoom', 'rejoinRoom', 'leaveRoom', 'buzz', 'toggleLock',
    'reset', 'startQuestion', 'adjudicate', 'updateStatus', 'sync_ping',
)


def parse_inbound(event: str, data) -> WireModel:
    """Validate *data* received under *event*; raise MalformedMessage on failure."""
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise MalformedMessage(f'{event} payload must be an object')
    try:
        return _inbound_adapter.validate_python({**data, 'type': event})
    except ValidationError as exc:
        first = exc.errors()[0]
        where = '.'.join(str(p) for p in first.get('loc', ()) if p != event)
        raise MalformedMessage(f"{event}: {where or 'payload'} {first.get('msg', 'is invalid')}".strip())


# -----------------------------
# Server -> Client
# -----------------------------

class PlayerOut(WireModel):
    user_id: str
    name: str
    team: Optional[str] = None
    is_host: bool
    connection: Literal['online', 'offline']
    activity: Literal['active', 'away']


class BuzzEntryOut(WireModel):
    user_id: str
    name: Optional[str] = None
    team: Optional[str] = None
    time: float
    position: int
    gap: float


class Connected(WireModel):
    protocol_version: int = PROTOCOL_VERSION
    resync_interval_sec: int


class RoomCreated(WireModel):
    room_id: str


class RoomClosed(WireModel):
    room_id: str


class RoundResult(WireModel):
    user_id: str
    team: Optional[str] = None
    correct: bool


class SyncPong(WireModel):
    client_time: float = Field(allow_inf_nan=False)
    server_time: float


class ErrorOut(WireModel):
    code: str
    message: str


OUTBOUND_EVENTS = {
    'connected': Connected,
    'roomCreated': RoomCreated,
    'playerList': List[PlayerOut],
    'buzzOrder': List[BuzzEntryOut],
    'lockStatus': bool,
    'countdownUpdate': int,
    'buzzersEnabled': bool,
    'statsUpdate': Dict[str, int],
    'roundResult': RoundResult,
    'roomClosed': RoomClosed,
    'sync_pong': SyncPong,
    'error': ErrorOut,
}


def dump(model: WireModel) -> dict:
    return model.model_dump(by_alias=True)


def protocol_schema() -> dict:
    """JSON schema for both directions of the protocol."""
    return {
        'protocolVersion': PROTOCOL_VERSION,
        'inbound': _inbound_adapter.json_schema(by_alias=True),
        'outbound': {
            name: TypeAdapter(shape).json_schema(by_alias=True)
            for name, shape in OUTBOUND_EVENTS.items()
        },
    }


__all__ = [
    'PROTOCOL_VERSION',
    'INBOUND_EVENTS',
    'OUTBOUND_EVENTS',
    'InboundMessage',
    'parse_inbound',
    'dump',
    'protocol_schema',
    'CreateRoom',
    'JoinRoom',
    'RejoinRoom',
    'LeaveRoom',
    'Buzz',
    'ToggleLock',
    'Reset',
    'StartQuestion',
    'Adjudicate',
    'UpdateStatus',
    'SyncPing',
    'PlayerOut',
    'BuzzEntryOut',
    'Connected',
    'RoomCreated',
    'RoomClosed',
    'RoundResult',
    'SyncPong',
    'ErrorOut',
]
