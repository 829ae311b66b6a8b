"""
Connectivity for fortify moves.
One breadth-first search shared by move validation and legal-action
generation, so both always agree on what is reachable.
"""

from collections import deque
from typing import Callable

from conquest.engine.map import GraphMap
from conquest.engine.permissions import can_traverse
from conquest.engine.ruleset import FORTIFY_ADJACENT, TeamsConfig
from conquest.engine.state import GameState


def get_reachable_territories(
    start: str,
    graph_map: GraphMap,
    is_passable: Callable[[str], bool],
) -> set[str]:
    """
    All territories reachable from `start` by stepping only onto territories
    for which `is_passable(territory_id)` holds. `start` itself is excluded.
    """
    visited = {start}
    queue: deque[str] = deque([start])
    while queue:
        current = queue.popleft()
        for neighbor in graph_map.neighbors(current):
            if neighbor in visited or not is_passable(neighbor):
                continue
            visited.add(neighbor)
            queue.append(neighbor)
    visited.discard(start)
    return visited


def get_fortify_reachable(
    state: GameState,
    player_id: str,
    start: str,
    graph_map: GraphMap,
    fortify_mode: str,
    teams: TeamsConfig | None = None,
) -> set[str]:
    """
    Territories a fortify from `start` can reach: direct neighbors in adjacent
    mode, otherwise everything connected through territories the player may
    traverse. Destination eligibility (can_fortify_to) is checked by the caller.
    """
    if fortify_mode == FORTIFY_ADJACENT:
        return {n for n in graph_map.neighbors(start) if n in state.territories and n != start}

    def _passable(territory_id: str) -> bool:
        territory = state.territories.get(territory_id)
        return territory is not None and can_traverse(player_id, territory.owner_id, state.players, teams)

    return get_reachable_territories(start, graph_map, _passable)
