"""
Reinforcement income: territory count plus continent bonuses.
"""

from dataclasses import dataclass, field

from conquest.engine import NEUTRAL
from conquest.engine.map import GraphMap
from conquest.engine.ruleset import TeamsConfig
from conquest.engine.state import GameState

MIN_REINFORCEMENTS = 3
TERRITORY_SOURCE = "territory"


@dataclass
class ReinforcementResult:
    total: int
    sources: dict[str, int] = field(default_factory=dict)


def calculate_reinforcements(
    state: GameState,
    player_id: str,
    graph_map: GraphMap,
    teams: TeamsConfig | None = None,
) -> ReinforcementResult:
    """
    Base is max(3, owned // 3) under the "territory" source; each continent
    awarded adds its bonus under the continent id.

    Outside team mode a continent is awarded when the player owns all of it.
    In team mode (continent_bonus_recipient == "majorityHolderOnTeam") it must be
    held entirely by one team, and only that team's member with the most
    territories there receives it.
    """
    owned = set(state.territories_owned_by(player_id))
    base = max(MIN_REINFORCEMENTS, len(owned) // 3)
    sources = {TERRITORY_SOURCE: base}
    total = base

    player = state.players.get(player_id)
    player_team = player.team_id if player else None
    team_bonus_mode = (
        teams is not None
        and teams.teams_enabled
        and teams.continent_bonus_recipient == "majorityHolderOnTeam"
    )

    for continent_id, continent in (graph_map.continents or {}).items():
        if not continent.territory_ids:
            continue
        if not team_bonus_mode or player_team is None:
            awarded = all(tid in owned for tid in continent.territory_ids)
        else:
            awarded = team_continent_bonus_recipient(state, continent.territory_ids) == player_id
        if awarded:
            sources[continent_id] = continent.bonus
            total += continent.bonus

    return ReinforcementResult(total=total, sources=sources)


def team_continent_bonus_recipient(state: GameState, territory_ids: list[str]) -> str | None:
    """
    Player who collects a team-held continent's bonus, or None if the continent
    is not held by a single team. Ties go to the lexicographically smallest id.
    """
    owning_team = None
    counts: dict[str, int] = {}
    for tid in territory_ids:
        territory = state.territories.get(tid)
        if territory is None or territory.owner_id == NEUTRAL:
            return None
        owner = state.players.get(territory.owner_id)
        team_id = owner.team_id if owner else None
        if team_id is None:
            return None
        if owning_team is None:
            owning_team = team_id
        elif owning_team != team_id:
            return None
        counts[territory.owner_id] = counts.get(territory.owner_id, 0) + 1

    winner = None
    best = -1
    for pid in sorted(counts):
        if counts[pid] > best:
            winner = pid
            best = counts[pid]
    return winner
