"""
Initial game state: turn order, territory deal, starting armies, deck, and the
first player's reinforcements. All randomness comes from one RNG seeded here
and its position is stored in the returned state.
"""

import math

from conquest.engine import NEUTRAL
from conquest.engine.cards import create_deck
from conquest.engine.events import GameEvent, setup_completed
from conquest.engine.map import GraphMap, player_limits, validate_map
from conquest.engine.reinforcements import calculate_reinforcements
from conquest.engine.rng import Rng
from conquest.engine.ruleset import RulesetConfig, resolve_initial_armies
from conquest.engine.state import (
    PHASE_REINFORCEMENT,
    STATUS_ALIVE,
    DeckState,
    GameState,
    PlayerState,
    ReinforcementState,
    TerritoryState,
    TurnState,
)

# Per-territory ceiling for the random part of the starting army deal.
INITIAL_ARMY_CAP = 4


def team_turn_order(
    player_ids: list[str],
    team_ids: dict[str, str | None],
    rng: Rng,
) -> list[str]:
    """
    Interleave teams so teammates never play back to back when avoidable.
    Teams are shuffled, members are shuffled within each team, then one player
    per team is taken per slot. Unteamed players form a team of one.
    """
    if len(player_ids) <= 1:
        return list(player_ids)

    buckets: dict[str, list[str]] = {}
    for pid in player_ids:
        buckets.setdefault(team_ids.get(pid) or f"solo:{pid}", []).append(pid)

    if len(buckets) <= 1:
        return rng.shuffle(player_ids)

    team_order = rng.shuffle(list(buckets))
    shuffled = {team_id: rng.shuffle(buckets[team_id]) for team_id in team_order}
    longest = max(len(members) for members in shuffled.values())

    order = []
    for slot in range(longest):
        for team_id in team_order:
            if slot < len(shuffled[team_id]):
                order.append(shuffled[team_id][slot])
    return order


def distribute_initial_armies(
    rng: Rng,
    owned: list[str],
    territories: dict[str, TerritoryState],
    initial_armies: int,
    cap: int = INITIAL_ARMY_CAP,
) -> None:
    """
    Spread a player's armies beyond one-per-territory randomly, one at a time.
    A territory stops receiving armies once it reaches the cap, which is raised
    to ceil(initial_armies / owned) when the plain cap cannot fit them all.
    """
    if not owned:
        return
    remaining = max(0, initial_armies - len(owned))
    effective_cap = max(cap, math.ceil(initial_armies / len(owned)))

    eligible = list(owned)
    while remaining > 0 and eligible:
        idx = rng.next_int(0, len(eligible) - 1)
        territory = territories[eligible[idx]]
        if territory.armies < effective_cap:
            territory.armies += 1
            remaining -= 1
        if territory.armies >= effective_cap:
            eligible[idx] = eligible[-1]
            eligible.pop()


def create_initial_state(
    player_ids: list[str],
    graph_map: GraphMap,
    ruleset: RulesetConfig,
    seed: str | int,
    team_ids: dict[str, str | None] | None = None,
) -> tuple[GameState, list[GameEvent]]:
    """
    Build the first GameState for a new game.

    Args:
        player_ids: participants; order does not matter, turn order is shuffled
        team_ids: player_id -> team id, only used when teams are enabled
        seed: RNG seed; the same inputs always produce the same game

    Raises:
        ValueError: bad player list or a map that does not validate
    """
    team_ids = team_ids or {}
    teams_enabled = ruleset.teams.teams_enabled

    min_players, max_players = player_limits(graph_map)
    if not (min_players <= len(player_ids) <= max_players):
        raise ValueError(f"Game needs {min_players} to {max_players} players, got {len(player_ids)}")
    if len(set(player_ids)) != len(player_ids):
        raise ValueError("Player ids must be unique")
    if NEUTRAL in player_ids:
        raise ValueError(f'"{NEUTRAL}" is reserved and cannot be a player id')
    map_result = validate_map(graph_map)
    if not map_result.valid:
        raise ValueError(f"Invalid map: {map_result.errors[0].message}")

    rng = Rng(seed, 0)

    if teams_enabled and any(team_ids.get(pid) for pid in player_ids):
        turn_order = team_turn_order(player_ids, team_ids, rng)
    else:
        turn_order = rng.shuffle(player_ids)

    territory_ids = list(graph_map.territories)
    shuffled_territories = rng.shuffle(territory_ids)
    setup = ruleset.setup
    initial_armies = resolve_initial_armies(
        setup, len(player_ids), len(territory_ids), setup.neutral_territory_count,
    )

    neutral_count = max(0, min(setup.neutral_territory_count, len(territory_ids) - len(player_ids)))
    neutral_territories = shuffled_territories[:neutral_count]
    territories: dict[str, TerritoryState] = {}
    for tid in neutral_territories:
        territories[tid] = TerritoryState(owner_id=NEUTRAL, armies=setup.neutral_initial_armies)

    assignments: dict[str, list[str]] = {pid: [] for pid in turn_order}
    for i, tid in enumerate(shuffled_territories[neutral_count:]):
        pid = turn_order[i % len(turn_order)]
        territories[tid] = TerritoryState(owner_id=pid, armies=1)
        assignments[pid].append(tid)

    for pid in turn_order:
        distribute_initial_armies(rng, assignments[pid], territories, initial_armies)

    players = {
        pid: PlayerState(
            status=STATUS_ALIVE,
            team_id=(team_ids.get(pid) or None) if teams_enabled else None,
        )
        for pid in player_ids
    }

    deck, cards_by_id = create_deck(ruleset.cards.deck_definition, territory_ids, rng)

    # Keep territories in map order so serialized state is stable
    ordered_territories = {tid: territories[tid] for tid in territory_ids}
    first_player = turn_order[0]
    state = GameState(
        players=players,
        turn_order=turn_order,
        territories=ordered_territories,
        turn=TurnState(current_player_id=first_player, phase=PHASE_REINFORCEMENT, round=1),
        deck=DeckState(draw=deck.draw, discard=deck.discard),
        cards_by_id=cards_by_id,
        hands={pid: [] for pid in player_ids},
        rng=rng.state,
    )
    result = calculate_reinforcements(state, first_player, graph_map, ruleset.teams)
    state.reinforcements = ReinforcementState(remaining=result.total, sources=dict(result.sources))

    events = [setup_completed(turn_order, neutral_territories, assignments)]
    return state, events
