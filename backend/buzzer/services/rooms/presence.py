import logging

from buzzer.errors import MalformedMessage
from buzzer.models import ACTIVITY_STATES, OFFLINE, ONLINE, Player

log = logging.getLogger(__name__)


class PresenceTracker:
    """Connection liveness and activity for players.

    Both axes are advisory display state: they never remove a player from a
    room and never touch buzz eligibility or queue entries.
    """

    def attach(self, player: Player, connection_id) -> bool:
        """Attach a connection; return True if the player came online."""
        if not connection_id:
            return False
        was_online = player.connection == ONLINE
        player.connections.add(connection_id)
        player.connection = ONLINE
        if not was_online:
            log.info(f"[presence] user={player.user_id} online")
        return not was_online

    def detach(self, player: Player, connection_id) -> bool:
        """Drop a connection; return True if the player went offline."""
        player.connections.discard(connection_id)
        if player.connections or player.connection == OFFLINE:
            return False
        player.connection = OFFLINE
        log.info(f"[presence] user={player.user_id} offline")
        return True

    def detach_all(self, player: Player):
        sids = set(player.connections)
        player.connections.clear()
        player.connection = OFFLINE
        return sids

    def set_activity(self, player: Player, status: str) -> bool:
        if status not in ACTIVITY_STATES:
            raise MalformedMessage(f'Unknown status {status!r}')
        if player.activity == status:
            return False
        player.activity = status
        return True
