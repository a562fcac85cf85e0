"""Directory of live rooms and the single entry point for room commands.

Each command resolves its room, takes that room's lock for the duration of
the command, delegates to the arbitrator / host authority / presence
tracker and broadcasts the resulting state before releasing the lock, so
every client sees state changes in command order. The directory itself
(room codes and connection memberships) has its own lock; no room lock is
ever requested while it is held.
"""
import logging
import threading
import time
from contextlib import contextmanager
from typing import Dict, Literal, Optional, Tuple

from pydantic import BaseModel

from buzzer.errors import (
    CapacityExceeded,
    CoordinatorError,
    IdentityMissing,
    MalformedMessage,
    NotInRoom,
    RoomNotFound,
    TeamRequired,
)
from buzzer.models import (
    COUNTDOWN,
    HOST_TEAM,
    ROOM_MODES,
    SOLO,
    Player,
    Room,
    generate_room_code,
    normalize_room_code,
)
from .arbitrator import BuzzArbitrator
from .clock import wall_clock_ms
from .host import HostAuthority
from .presence import PresenceTracker
from .teams import is_competing, normalize_team, teams_in

log = logging.getLogger(__name__)

FREEZE = 'freeze'
DESTROY = 'destroy'


class RegistrySettings(BaseModel):
    room_code_length: int = 4
    max_rooms: int = 500
    max_players_per_room: int = 50
    room_grace_sec: float = 300.0
    countdown_start: int = 3
    countdown_tick_sec: float = 1.0
    host_leave_policy: Literal['freeze', 'destroy'] = FREEZE
    win_credit_policy: Literal['first_buzz', 'adjudicated'] = 'first_buzz'
    buzz_timestamp_policy: Literal['client', 'server'] = 'client'

    @classmethod
    def from_config(cls, config) -> 'RegistrySettings':
        return cls(
            room_code_length=config.get('ROOM_CODE_LENGTH', 4),
            max_rooms=config.get('MAX_ROOMS', 500),
            max_players_per_room=config.get('MAX_PLAYERS_PER_ROOM', 50),
            room_grace_sec=config.get('ROOM_GRACE_SEC', 300),
            countdown_start=config.get('COUNTDOWN_START', 3),
            countdown_tick_sec=config.get('COUNTDOWN_TICK_SEC', 1.0),
            host_leave_policy=config.get('HOST_LEAVE_POLICY', FREEZE),
            win_credit_policy=config.get('WIN_CREDIT_POLICY', 'first_buzz'),
            buzz_timestamp_policy=config.get('BUZZ_TIMESTAMP_POLICY', 'client'),
        )


def _clean(value) -> str:
    return value.strip() if isinstance(value, str) else ''


class RoomRegistry:
    def __init__(self, broadcaster, scheduler, settings: Optional[RegistrySettings] = None,
                 clock=wall_clock_ms, monotonic=time.monotonic):
        self.settings = settings or RegistrySettings()
        self.broadcaster = broadcaster
        self.scheduler = scheduler
        self._clock = clock
        self._monotonic = monotonic
        self._rooms: Dict[str, Room] = {}
        # connection id -> (room code, identity)
        self._memberships: Dict[str, Tuple[str, str]] = {}
        self._directory_lock = threading.Lock()
        self.presence = PresenceTracker()
        self.arbitrator = BuzzArbitrator(self.settings.buzz_timestamp_policy)
        self.host = HostAuthority(
            broadcaster,
            self.arbitrator,
            countdown_start=self.settings.countdown_start,
            credit_policy=self.settings.win_credit_policy,
        )

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def __len__(self):
        return len(self._rooms)

    def room_codes(self):
        with self._directory_lock:
            return sorted(self._rooms)

    def get_room(self, code) -> Room:
        code = normalize_room_code(code)
        with self._directory_lock:
            room = self._rooms.get(code)
        if room is None:
            raise RoomNotFound(f'Room {code or "?"} not found')
        return room

    def summary(self, code) -> dict:
        with self._locked(code) as room:
            summary = room.to_summary()
            summary['teamsIn'] = teams_in(room.mode, room.queue)
            return summary

    def membership(self, sid) -> Optional[Tuple[str, str]]:
        with self._directory_lock:
            return self._memberships.get(sid)

    @contextmanager
    def _locked(self, code):
        room = self.get_room(code)
        with room.lock:
            if room.closed:
                raise RoomNotFound(f'Room {room.code} not found')
            yield room

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def create_room(self, name, user_id, mode=SOLO, sid=None) -> str:
        name, user_id = _clean(name), _clean(user_id)
        if not name or not user_id:
            raise IdentityMissing()
        if mode not in ROOM_MODES:
            raise MalformedMessage(f'Unknown room mode {mode!r}')
        previous = self.membership(sid) if sid else None
        host = Player(user_id, name, team=HOST_TEAM if mode != SOLO else None, is_host=True)
        with self._directory_lock:
            if len(self._rooms) >= self.settings.max_rooms:
                log.warning(f"[capacity] rooms={len(self._rooms)} max={self.settings.max_rooms}")
                raise CapacityExceeded('No free rooms, try again later')
            code = generate_room_code(self.settings.room_code_length, taken=self._rooms)
            room = Room(code, mode, host)
            self._rooms[code] = room
        with room.lock:
            log.info(f"[room-create] room={code} mode={mode} host={user_id}")
            self._attach(room, host, sid)
            if sid:
                self.broadcaster.emit_to(sid, 'roomCreated', {'roomId': code})
            self._broadcast_players(room)
            self._maybe_schedule_teardown(room)
        if previous is not None:
            self._detach_from(sid, previous)
        return code

    def join_room(self, code, name, user_id, team=None, sid=None) -> Player:
        """Add or restore *user_id* in room *code*.

        The connection only leaves its previous room once the join has been
        applied, so a rejected join leaves the caller where it was.
        """
        user_id = _clean(user_id)
        if not user_id:
            raise IdentityMissing()
        previous = self.membership(sid) if sid else None
        with self._locked(code) as room:
            known = room.players.get(user_id) or room.departed.get(user_id)
            name = _clean(name) or (known.name if known else '')
            if not name:
                raise IdentityMissing()
            team = self._resolve_team(room, known, normalize_team(team))
            is_new = user_id not in room.players
            if is_new and len(room.players) >= self.settings.max_players_per_room:
                log.warning(f"[capacity] room={room.code} players={len(room.players)}")
                raise CapacityExceeded('Room is full')

            player = known or Player(user_id, name)
            player.name = name
            player.team = team
            room.departed.pop(user_id, None)
            room.players[user_id] = player
            new_team = room.is_team_mode() and is_competing(team) and team not in room.team_stats
            if new_team:
                room.team_stats[team] = 0
            self._attach(room, player, sid)
            log.info(
                f"[room-join] room={room.code} user={user_id} team={team} "
                f"{'new' if is_new else 'returning'} host={player.is_host}"
            )
            self._broadcast_players(room)
            if new_team:
                self.broadcaster.emit_room(room.code, 'statsUpdate', dict(room.team_stats))
            if sid:
                self._send_snapshot(room, sid)
            joined = (room.code, user_id)
        if previous is not None and previous != joined:
            # Same room under another identity: the channel stays subscribed
            self._detach_from(sid, previous, leave_channel=previous[0] != joined[0])
        return player

    def rejoin_room(self, code, name, user_id, sid=None) -> Player:
        """Join after a client reload: no team selection, previous team kept."""
        return self.join_room(code, name, user_id, team=None, sid=sid)

    def leave_room(self, code, user_id, sid=None) -> None:
        user_id = _clean(user_id)
        with self._locked(code) as room:
            player = room.players.pop(user_id, None)
            if player is None:
                if sid:
                    self._forget_connection(room, sid)
                return
            room.departed[user_id] = player
            self._trim_departed(room)
            for conn in self.presence.detach_all(player):
                self._forget_connection(room, conn)
            if sid:
                self._forget_connection(room, sid)
            log.info(f"[room-leave] room={room.code} user={user_id} host={player.is_host}")
            if player.is_host and self.settings.host_leave_policy == DESTROY:
                self._destroy(room, reason='host-left')
                return
            self._broadcast_players(room)
            self._maybe_schedule_teardown(room)

    def update_status(self, code, user_id, status) -> None:
        with self._locked(code) as room:
            player = room.players.get(_clean(user_id))
            if player is None:
                raise NotInRoom()
            if self.presence.set_activity(player, status):
                self._broadcast_players(room)

    def disconnect(self, sid) -> None:
        """Transport-level disconnect: presence downgrade only."""
        self._release_connection(sid)

    # ------------------------------------------------------------------
    # Buzzing and host commands
    # ------------------------------------------------------------------

    def submit_buzz(self, code, user_id, client_timestamp=None):
        received_at = self._clock()
        with self._locked(code) as room:
            was_empty = not room.queue
            try:
                entry = self.arbitrator.submit(room, _clean(user_id), client_timestamp, received_at)
            except CoordinatorError as exc:
                log.info(f"[buzz-reject] room={room.code} user={user_id} reason={exc.code}")
                raise
            self.broadcaster.emit_room(room.code, 'buzzOrder', room.buzz_order())
            self.host.on_buzz_accepted(room, entry, was_empty)
            return entry

    def toggle_lock(self, code, user_id) -> bool:
        with self._locked(code) as room:
            return self.host.toggle_lock(room, _clean(user_id))

    def reset(self, code, user_id) -> None:
        with self._locked(code) as room:
            self.host.reset(room, _clean(user_id))

    def start_question(self, code, user_id) -> None:
        with self._locked(code) as room:
            generation = self.host.start_question(room, _clean(user_id))
            pending = room.phase == COUNTDOWN
            room_code = room.code
        if pending:
            self._schedule_tick(room_code, generation)

    def tick_countdown(self, code, generation) -> None:
        try:
            with self._locked(code) as room:
                more = self.host.tick(room, generation)
                room_code = room.code
        except RoomNotFound:
            return
        if more:
            self._schedule_tick(room_code, generation)

    def adjudicate(self, code, user_id, correct):
        with self._locked(code) as room:
            return self.host.adjudicate(room, _clean(user_id), bool(correct))

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def expire_room(self, code, deadline) -> bool:
        """Timer body: destroy the room if it is still empty since *deadline* was set."""
        try:
            with self._locked(code) as room:
                if room.teardown_deadline != deadline or room.has_online_players():
                    log.info(f"[teardown-skip] room={room.code}")
                    return False
                self._destroy(room, reason='empty')
                return True
        except RoomNotFound:
            return False

    def _maybe_schedule_teardown(self, room: Room) -> None:
        if room.has_online_players() or room.teardown_deadline is not None:
            return
        grace = self.settings.room_grace_sec
        deadline = self._monotonic() + grace
        room.teardown_deadline = deadline
        log.info(f"[teardown-set] room={room.code} grace={grace}s")
        self.scheduler.call_later(grace, self.expire_room, room.code, deadline)

    def _destroy(self, room: Room, reason: str) -> None:
        room.closed = True
        with self._directory_lock:
            self._rooms.pop(room.code, None)
            for sid in [s for s, (c, _) in self._memberships.items() if c == room.code]:
                self._memberships.pop(sid, None)
        log.info(f"[room-teardown] room={room.code} reason={reason}")
        self.broadcaster.emit_room(room.code, 'roomClosed', {'roomId': room.code})
        self.broadcaster.close(room.code)

    # ------------------------------------------------------------------
    # Helpers (called with the room lock held unless noted)
    # ------------------------------------------------------------------

    def _resolve_team(self, room: Room, known: Optional[Player], team: Optional[str]) -> Optional[str]:
        if not room.is_team_mode():
            return None
        if known is not None and known.is_host:
            return HOST_TEAM
        if team == HOST_TEAM:
            raise TeamRequired('HOST is reserved for the room creator')
        if team is None:
            if known is not None and known.team:
                return known.team
            raise TeamRequired()
        return team

    def _attach(self, room: Room, player: Player, sid) -> None:
        if not sid:
            return
        self.presence.attach(player, sid)
        room.teardown_deadline = None
        with self._directory_lock:
            self._memberships[sid] = (room.code, player.user_id)
        self.broadcaster.enter(sid, room.code)

    def _forget_connection(self, room: Room, sid) -> None:
        with self._directory_lock:
            if self._memberships.get(sid, (None,))[0] == room.code:
                self._memberships.pop(sid, None)
        self.broadcaster.exit(sid, room.code)

    def _release_connection(self, sid) -> None:
        """Detach *sid* from whatever room it is in (no room lock held on entry)."""
        with self._directory_lock:
            membership = self._memberships.get(sid)
            if membership is None:
                return
            self._memberships.pop(sid, None)
        self._detach_from(sid, membership)

    def _detach_from(self, sid, membership, leave_channel=True) -> None:
        """Take *sid* off the player it used to serve (no room lock held on entry)."""
        code, user_id = membership
        try:
            with self._locked(code) as room:
                if leave_channel:
                    self.broadcaster.exit(sid, room.code)
                player = room.players.get(user_id)
                if player is None:
                    return
                if self.presence.detach(player, sid):
                    self._broadcast_players(room)
                    self._maybe_schedule_teardown(room)
        except RoomNotFound:
            return

    def _trim_departed(self, room: Room) -> None:
        # Oldest departures go first; the host identity is always kept
        limit = self.settings.max_players_per_room
        for user_id in list(room.departed):
            if len(room.departed) <= limit:
                break
            if user_id != room.host_id:
                room.departed.pop(user_id)
                log.debug(f"[departed-evict] room={room.code} user={user_id}")

    def _broadcast_players(self, room: Room) -> None:
        self.broadcaster.emit_room(room.code, 'playerList', room.player_list())

    def _send_snapshot(self, room: Room, sid) -> None:
        self.broadcaster.emit_to(sid, 'buzzOrder', room.buzz_order())
        self.broadcaster.emit_to(sid, 'lockStatus', room.locked)
        self.broadcaster.emit_to(sid, 'buzzersEnabled', room.buzzers_enabled)
        if room.phase == COUNTDOWN and room.countdown is not None:
            self.broadcaster.emit_to(sid, 'countdownUpdate', room.countdown)
        if room.is_team_mode():
            self.broadcaster.emit_to(sid, 'statsUpdate', dict(room.team_stats))

    def _schedule_tick(self, code, generation) -> None:
        self.scheduler.call_later(self.settings.countdown_tick_sec, self.tick_countdown, code, generation)
