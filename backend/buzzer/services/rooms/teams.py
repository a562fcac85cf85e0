"""Team semantics for buzzer rooms.

Pure functions over the room mode and buzz queue. The team is recorded on
each entry when the buzz is accepted, so a player switching teams later
cannot reopen a team that already committed.
"""
from typing import Iterable, List, Optional

from buzzer.models import HOST_TEAM, SPECTATOR_TEAM, TEAM, BuzzEntry

NON_COMPETING_TEAMS = frozenset({HOST_TEAM, SPECTATOR_TEAM})


def is_competing(team: Optional[str]) -> bool:
    return bool(team) and team not in NON_COMPETING_TEAMS


def has_team_buzzed(mode: str, queue: Iterable[BuzzEntry], team: Optional[str]) -> bool:
    if mode != TEAM or not is_competing(team):
        return False
    return any(entry.team == team for entry in queue)


def teams_in(mode: str, queue: Iterable[BuzzEntry]) -> List[str]:
    """Competing teams that have a buzz in, in queue order."""
    if mode != TEAM:
        return []
    seen: List[str] = []
    for entry in queue:
        if is_competing(entry.team) and entry.team not in seen:
            seen.append(entry.team)
    return seen


def normalize_team(team: Optional[str]) -> Optional[str]:
    team = (team or '').strip()
    if not team:
        return None
    # Reserved names are matched case-insensitively
    if team.upper() in NON_COMPETING_TEAMS:
        return team.upper()
    return team
