import random
import string
import threading
from typing import Dict, List, NamedTuple, Optional, Set

SOLO = 'solo'
TEAM = 'team'
ROOM_MODES = (SOLO, TEAM)

# Reserved pseudo-teams that never compete
HOST_TEAM = 'HOST'
SPECTATOR_TEAM = 'SPECTATOR'

# Question-round lifecycle; "locked" is a flag layered over idle/buzzers_open
IDLE = 'idle'
COUNTDOWN = 'countdown'
BUZZERS_OPEN = 'buzzers_open'
ROUND_COMPLETE = 'round_complete'

ONLINE = 'online'
OFFLINE = 'offline'
ACTIVE = 'active'
AWAY = 'away'
ACTIVITY_STATES = (ACTIVE, AWAY)


def generate_room_code(length=4, taken=()):
    """Generate a short room code not present in *taken*."""
    while True:
        code = ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))
        if code not in taken:
            return code


def normalize_room_code(code: Optional[str]) -> str:
    return (code or '').strip().upper()


class BuzzEntry(NamedTuple):
    user_id: str
    timestamp: float
    team: Optional[str]
    # Arrival counter at the arbitrator; breaks timestamp ties
    sequence: int

    @property
    def sort_key(self):
        return (self.timestamp, self.sequence)


class Player:
    def __init__(self, user_id: str, name: str, team: Optional[str] = None, is_host: bool = False):
        self.user_id = user_id
        self.name = name
        self.team = team
        self.is_host = is_host
        self.connection = OFFLINE
        self.activity = ACTIVE
        self.connections: Set[str] = set()

    def to_dict(self):
        return {
            'userId': self.user_id,
            'name': self.name,
            'team': self.team,
            'isHost': self.is_host,
            'connection': self.connection,
            'activity': self.activity,
        }


class Room:
    """Runtime state of one buzzer room.

    All mutation happens while holding ``lock``; the registry acquires it
    for the duration of exactly one command.
    """

    def __init__(self, code: str, mode: str, host: Player):
        self.code = code
        self.mode = mode
        self.host_id = host.user_id
        self.players: Dict[str, Player] = {host.user_id: host}
        # Players who left; kept so a rejoin restores team and host flag
        self.departed: Dict[str, Player] = {}
        self.locked = False
        self.phase = IDLE
        self.countdown: Optional[int] = None
        # Bumped on every countdown start/reset so stale ticks abort
        self.countdown_generation = 0
        self.queue: List[BuzzEntry] = []
        self.buzz_sequence = 0
        # Entries the host ruled incorrect this round
        self.ruled_out: Set[str] = set()
        self.team_stats: Dict[str, int] = {}
        self.teardown_deadline: Optional[float] = None
        self.closed = False
        self.lock = threading.RLock()

    @property
    def buzzers_enabled(self) -> bool:
        # Mirrors the countdown signal; idle rooms still accept free-play buzzes
        return self.phase == BUZZERS_OPEN

    def is_team_mode(self) -> bool:
        return self.mode == TEAM

    def current_answerer(self) -> Optional[BuzzEntry]:
        """Earliest entry not yet ruled incorrect."""
        for entry in self.queue:
            if entry.user_id not in self.ruled_out:
                return entry
        return None

    def has_online_players(self) -> bool:
        return any(p.connection == ONLINE for p in self.players.values())

    def connection_ids(self) -> Set[str]:
        sids: Set[str] = set()
        for p in self.players.values():
            sids.update(p.connections)
        return sids

    def player_list(self):
        return [p.to_dict() for p in self.players.values()]

    def buzz_order(self):
        if not self.queue:
            return []
        first = self.queue[0].timestamp
        order = []
        for position, entry in enumerate(self.queue):
            player = self.players.get(entry.user_id) or self.departed.get(entry.user_id)
            order.append({
                'userId': entry.user_id,
                'name': player.name if player else None,
                'team': entry.team,
                'time': entry.timestamp,
                'position': position,
                'gap': entry.timestamp - first,
            })
        return order

    def to_summary(self):
        host = self.players.get(self.host_id) or self.departed.get(self.host_id)
        return {
            'roomId': self.code,
            'mode': self.mode,
            'hostName': host.name if host else None,
            'hostPresent': self.host_id in self.players,
            'playerCount': len(self.players),
            'locked': self.locked,
            'phase': self.phase,
            'teams': sorted(self.team_stats),
        }
