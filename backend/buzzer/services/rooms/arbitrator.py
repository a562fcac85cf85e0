import bisect
import logging
import math
from typing import Optional

from buzzer.errors import BuzzersClosed, DuplicateBuzz, NotEligible, NotInRoom
from buzzer.models import COUNTDOWN, ROUND_COMPLETE, SPECTATOR_TEAM, BuzzEntry, Room
from .teams import has_team_buzzed

log = logging.getLogger(__name__)

CLIENT_TIMESTAMPS = 'client'
SERVER_TIMESTAMPS = 'server'


class BuzzArbitrator:
    """Authoritative ordering of buzz attempts for a room.

    The queue is kept sorted by ``(timestamp, arrival sequence)`` so equal
    timestamps keep the order in which the arbitrator accepted them. With
    the ``client`` policy the timestamp is the client's offset-corrected
    reading, which ranks reaction time rather than network latency; the
    ``server`` policy records receive time instead.
    """

    def __init__(self, timestamp_policy: str = CLIENT_TIMESTAMPS):
        if timestamp_policy not in (CLIENT_TIMESTAMPS, SERVER_TIMESTAMPS):
            raise ValueError(f'Unknown buzz timestamp policy {timestamp_policy!r}')
        self.timestamp_policy = timestamp_policy

    def authoritative_time(self, client_timestamp: Optional[float], received_at: float) -> float:
        if self.timestamp_policy == SERVER_TIMESTAMPS or client_timestamp is None:
            return received_at
        if not math.isfinite(client_timestamp):
            log.warning(f"[buzz-timestamp] non-finite client time {client_timestamp!r}, using server time")
            return received_at
        return float(client_timestamp)

    def check(self, room: Room, user_id: str) -> None:
        """Raise if *user_id* may not buzz now. Never mutates."""
        player = room.players.get(user_id)
        if player is None:
            raise NotInRoom()
        if room.locked:
            raise BuzzersClosed('Buzzers are locked')
        if room.phase == COUNTDOWN:
            raise BuzzersClosed('Wait for the countdown')
        if room.phase == ROUND_COMPLETE:
            raise BuzzersClosed('Round is over')
        if room.is_team_mode() and player.team == SPECTATOR_TEAM:
            raise NotEligible()
        if any(entry.user_id == user_id for entry in room.queue):
            raise DuplicateBuzz()
        if has_team_buzzed(room.mode, room.queue, player.team):
            raise DuplicateBuzz(f'{player.team} already buzzed')

    def submit(self, room: Room, user_id: str, client_timestamp: Optional[float], received_at: float) -> BuzzEntry:
        self.check(room, user_id)
        player = room.players[user_id]
        room.buzz_sequence += 1
        entry = BuzzEntry(
            user_id=user_id,
            timestamp=self.authoritative_time(client_timestamp, received_at),
            team=player.team if room.is_team_mode() else None,
            sequence=room.buzz_sequence,
        )
        keys = [e.sort_key for e in room.queue]
        position = bisect.bisect_right(keys, entry.sort_key)
        room.queue.insert(position, entry)
        log.info(
            f"[buzz-accept] room={room.code} user={user_id} t={entry.timestamp} "
            f"position={position} queue={len(room.queue)}"
        )
        return entry

    def reset(self, room: Room) -> None:
        room.queue = []
        room.ruled_out = set()
