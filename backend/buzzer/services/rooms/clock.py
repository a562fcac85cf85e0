import time


def wall_clock_ms() -> float:
    return time.time() * 1000.0


class ClockSyncService:
    """Answers clock probes with the server wall clock.

    Nothing is stored per probe. Clients estimate their offset as
    ``(serverTime + rtt / 2) - now`` and resample periodically, so the reply
    must not wait behind room processing: the gateway calls ``pong``
    directly without touching the registry.
    """

    def __init__(self, clock=wall_clock_ms):
        self._clock = clock

    def now(self) -> float:
        return self._clock()

    def pong(self, client_time: float) -> dict:
        return {'clientTime': client_time, 'serverTime': self._clock()}
