"""
Permission predicates: may a player act on a territory held by a given owner?
A missing TeamsConfig is treated exactly like teams being disabled.
"""

from conquest.engine import NEUTRAL
from conquest.engine.ruleset import TeamsConfig
from conquest.engine.state import PlayerState


def same_team(a: str, b: str, players: dict[str, PlayerState]) -> bool:
    """True when both players exist and share a non-null team id."""
    team_a = players[a].team_id if a in players else None
    team_b = players[b].team_id if b in players else None
    return team_a is not None and team_b is not None and team_a == team_b


def _own_or_teammate(
    actor_id: str,
    owner_id: str,
    players: dict[str, PlayerState],
    teams: TeamsConfig | None,
    flag: str,
) -> bool:
    if owner_id == actor_id:
        return True
    if teams is None or not teams.teams_enabled:
        return False
    if owner_id == NEUTRAL or not getattr(teams, flag):
        return False
    return same_team(actor_id, owner_id, players)


def can_place(actor_id: str, owner_id: str, players: dict[str, PlayerState], teams: TeamsConfig | None = None) -> bool:
    return _own_or_teammate(actor_id, owner_id, players, teams, "allow_place_on_teammate")


def can_attack(actor_id: str, owner_id: str, players: dict[str, PlayerState], teams: TeamsConfig | None = None) -> bool:
    if owner_id == actor_id:
        return False
    if owner_id == NEUTRAL:
        return True
    if teams is None or not teams.teams_enabled:
        return True
    if teams.prevent_attacking_teammates:
        return not same_team(actor_id, owner_id, players)
    return True


def can_fortify_from(actor_id: str, owner_id: str, players: dict[str, PlayerState], teams: TeamsConfig | None = None) -> bool:
    return _own_or_teammate(actor_id, owner_id, players, teams, "allow_fortify_with_teammate")


def can_fortify_to(actor_id: str, owner_id: str, players: dict[str, PlayerState], teams: TeamsConfig | None = None) -> bool:
    return _own_or_teammate(actor_id, owner_id, players, teams, "allow_fortify_with_teammate")


def can_traverse(actor_id: str, owner_id: str, players: dict[str, PlayerState], teams: TeamsConfig | None = None) -> bool:
    """Whether connected-mode fortify may path through this territory."""
    return _own_or_teammate(actor_id, owner_id, players, teams, "allow_fortify_through_teammates")
