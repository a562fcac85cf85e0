"""Host-only commands and the question-round state machine.

    idle -> countdown(n) -> buzzers_open -> (locked | round_complete) -> idle

Only the room creator may drive it. Countdown ticks are not slept inside
the room lock: ``start_question`` returns a generation number and the
registry schedules ``tick`` calls that re-enter the lock one at a time. A
tick carrying an old generation (reset or restarted meanwhile) is dropped.
"""
import logging

from buzzer.errors import InvalidPhase, NotHost
from buzzer.models import BUZZERS_OPEN, COUNTDOWN, IDLE, ROUND_COMPLETE, BuzzEntry, Room
from .teams import is_competing

log = logging.getLogger(__name__)

FIRST_BUZZ = 'first_buzz'
ADJUDICATED = 'adjudicated'


class HostAuthority:
    def __init__(self, broadcaster, arbitrator, countdown_start=3, credit_policy=FIRST_BUZZ):
        if credit_policy not in (FIRST_BUZZ, ADJUDICATED):
            raise ValueError(f'Unknown win credit policy {credit_policy!r}')
        self.broadcaster = broadcaster
        self.arbitrator = arbitrator
        self.countdown_start = int(countdown_start)
        self.credit_policy = credit_policy

    def require_host(self, room: Room, user_id) -> None:
        if not user_id or user_id != room.host_id or user_id not in room.players:
            log.info(f"[not-host] room={room.code} user={user_id}")
            raise NotHost()

    # ---- commands ----

    def toggle_lock(self, room: Room, user_id) -> bool:
        self.require_host(room, user_id)
        if room.phase not in (IDLE, BUZZERS_OPEN):
            raise InvalidPhase(f'Cannot lock during {room.phase}')
        room.locked = not room.locked
        log.info(f"[lock] room={room.code} locked={room.locked}")
        self.broadcaster.emit_room(room.code, 'lockStatus', room.locked)
        return room.locked

    def start_question(self, room: Room, user_id) -> int:
        self.require_host(room, user_id)
        if room.phase not in (IDLE, ROUND_COMPLETE):
            raise InvalidPhase(f'Cannot start a question during {room.phase}')
        if room.locked:
            raise InvalidPhase('Unlock buzzers before starting a question')
        self.arbitrator.reset(room)
        room.phase = COUNTDOWN
        room.countdown = self.countdown_start
        room.countdown_generation += 1
        log.info(f"[countdown-start] room={room.code} from={room.countdown} gen={room.countdown_generation}")
        self.broadcaster.emit_room(room.code, 'buzzOrder', [])
        self.broadcaster.emit_room(room.code, 'buzzersEnabled', False)
        self.broadcaster.emit_room(room.code, 'countdownUpdate', room.countdown)
        if room.countdown <= 0:
            self._open(room)
        return room.countdown_generation

    def tick(self, room: Room, generation: int) -> bool:
        """Advance the countdown by one; return True while more ticks are due."""
        if room.phase != COUNTDOWN or room.countdown_generation != generation:
            log.info(f"[countdown-abort] room={room.code} gen={generation} phase={room.phase}")
            return False
        room.countdown = max(0, (room.countdown or 0) - 1)
        log.info(f"[countdown-tick] room={room.code} value={room.countdown}")
        self.broadcaster.emit_room(room.code, 'countdownUpdate', room.countdown)
        if room.countdown == 0:
            self._open(room)
            return False
        return True

    def reset(self, room: Room, user_id) -> None:
        self.require_host(room, user_id)
        self.arbitrator.reset(room)
        room.phase = IDLE
        room.countdown = None
        # Invalidate any pending countdown ticks
        room.countdown_generation += 1
        log.info(f"[reset] room={room.code}")
        self.broadcaster.emit_room(room.code, 'buzzOrder', [])
        self.broadcaster.emit_room(room.code, 'buzzersEnabled', False)

    def adjudicate(self, room: Room, user_id, correct: bool) -> BuzzEntry:
        """Rule on the current answerer.

        A correct answer completes the round (crediting the answerer's team
        under the adjudicated policy); an incorrect one passes the turn to
        the next entry in the queue.
        """
        self.require_host(room, user_id)
        if room.phase not in (IDLE, BUZZERS_OPEN):
            raise InvalidPhase(f'Nothing to rule on during {room.phase}')
        entry = room.current_answerer()
        if entry is None:
            raise InvalidPhase('No one has buzzed')
        if correct:
            room.phase = ROUND_COMPLETE
            if self.credit_policy == ADJUDICATED:
                self._credit(room, entry)
        else:
            room.ruled_out.add(entry.user_id)
        log.info(f"[adjudicate] room={room.code} user={entry.user_id} correct={correct}")
        self.broadcaster.emit_room(
            room.code, 'roundResult',
            {'userId': entry.user_id, 'team': entry.team, 'correct': bool(correct)},
        )
        if correct:
            self.broadcaster.emit_room(room.code, 'buzzersEnabled', False)
        return entry

    # ---- hooks ----

    def on_buzz_accepted(self, room: Room, entry: BuzzEntry, was_empty: bool) -> None:
        if was_empty and self.credit_policy == FIRST_BUZZ:
            self._credit(room, entry)

    def _open(self, room: Room) -> None:
        room.phase = BUZZERS_OPEN
        room.countdown = None
        log.info(f"[buzzers-open] room={room.code}")
        self.broadcaster.emit_room(room.code, 'buzzersEnabled', True)

    def _credit(self, room: Room, entry: BuzzEntry) -> None:
        if not room.is_team_mode() or not is_competing(entry.team):
            return
        room.team_stats[entry.team] = room.team_stats.get(entry.team, 0) + 1
        log.info(f"[win] room={room.code} team={entry.team} wins={room.team_stats[entry.team]}")
        self.broadcaster.emit_room(room.code, 'statsUpdate', dict(room.team_stats))
