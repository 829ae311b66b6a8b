"""
Query functions for UI integration.
These functions help the UI understand what actions are available
without mutating game state. Legality comes from the same permission
predicates and reachability search the reducer uses.
"""

from dataclasses import dataclass
from typing import Any

from conquest.engine.actions import (
    Action,
    attack,
    end_attack_phase,
    end_turn,
    fortify,
    occupy,
    place_reinforcements,
    trade_cards,
)
from conquest.engine.cards import TRADE_SET_SIZE, find_valid_trade_sets
from conquest.engine.map import GraphMap
from conquest.engine.movement import get_fortify_reachable
from conquest.engine.permissions import can_attack, can_fortify_from, can_fortify_to, can_place
from conquest.engine.reducer import ACTION_PHASES, ActionError, apply_action
from conquest.engine.ruleset import CardsConfig, CombatConfig, FortifyConfig, RulesetConfig, TeamsConfig
from conquest.engine.state import (
    PHASE_ATTACK,
    PHASE_FORTIFY,
    PHASE_OCCUPY,
    PHASE_REINFORCEMENT,
    GameState,
)


@dataclass
class ValidationResult:
    """Result of action validation."""
    valid: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "error": self.error}


# ===== Action Validation =====

def validate_action(
    state: GameState,
    player_id: str,
    action: Action,
    graph_map: GraphMap | None = None,
    combat: CombatConfig | None = None,
    fortify: FortifyConfig | None = None,
    cards: CardsConfig | None = None,
    teams: TeamsConfig | None = None,
) -> ValidationResult:
    """
    Validate an action without applying it.
    Returns ValidationResult with valid=True or valid=False with error message.
    """
    try:
        apply_action(state, player_id, action, graph_map, combat, fortify, cards, teams)
    except ActionError as e:
        return ValidationResult(False, str(e))
    return ValidationResult(True)


def get_available_action_types(state: GameState) -> list[str]:
    """Action types the current phase accepts."""
    return [t for t, (_, phases) in ACTION_PHASES.items() if state.turn.phase in phases]


# ===== Legal Actions =====

def get_legal_actions(
    state: GameState,
    graph_map: GraphMap,
    combat: CombatConfig | None = None,
    fortify: FortifyConfig | None = None,
    cards: CardsConfig | None = None,
    teams: TeamsConfig | None = None,
) -> list[Action]:
    """
    Every action the current player may take now.
    Placements and fortifies carry one representative count (the maximum);
    Setup and GameOver have no actions.
    """
    phase = state.turn.phase
    player_id = state.turn.current_player_id

    if phase == PHASE_REINFORCEMENT:
        return _reinforcement_actions(state, player_id, cards, teams)
    if phase == PHASE_ATTACK:
        return _attack_actions(state, player_id, graph_map, combat, teams)
    if phase == PHASE_OCCUPY:
        return _occupy_actions(state)
    if phase == PHASE_FORTIFY:
        return _fortify_actions(state, player_id, graph_map, fortify, teams)
    return []


def get_legal_actions_for_ruleset(
    state: GameState,
    graph_map: GraphMap,
    ruleset: RulesetConfig,
) -> list[Action]:
    return get_legal_actions(
        state, graph_map, ruleset.combat, ruleset.fortify, ruleset.cards, ruleset.teams,
    )


def _reinforcement_actions(
    state: GameState,
    player_id: str,
    cards: CardsConfig | None,
    teams: TeamsConfig | None,
) -> list[Action]:
    actions: list[Action] = []
    hand = state.hand_of(player_id)

    if cards is not None and len(hand) >= TRADE_SET_SIZE:
        for card_ids in find_valid_trade_sets(hand, state.cards_by_id, cards.trade_sets):
            actions.append(trade_cards(card_ids))

    must_trade = cards is not None and len(hand) >= cards.forced_trade_hand_size
    remaining = state.reinforcements.remaining if state.reinforcements else 0
    if not must_trade and remaining > 0:
        for territory_id, territory in state.territories.items():
            if can_place(player_id, territory.owner_id, state.players, teams):
                actions.append(place_reinforcements(territory_id, remaining))

    return actions


def _attack_actions(
    state: GameState,
    player_id: str,
    graph_map: GraphMap,
    combat: CombatConfig | None,
    teams: TeamsConfig | None,
) -> list[Action]:
    # No new attacks until the pending capture is occupied
    if state.pending is not None:
        return []

    actions = [end_attack_phase()]
    if combat is None:
        return actions

    for from_id, source in state.territories.items():
        if source.owner_id != player_id or source.armies < 2:
            continue
        max_dice = min(combat.max_attack_dice, source.armies - 1)
        for to_id in graph_map.neighbors(from_id):
            target = state.territories.get(to_id)
            if target is None or not can_attack(player_id, target.owner_id, state.players, teams):
                continue
            if combat.allow_attacker_dice_choice:
                for dice in range(1, max_dice + 1):
                    actions.append(attack(from_id, to_id, dice))
            else:
                actions.append(attack(from_id, to_id))
    return actions


def _occupy_actions(state: GameState) -> list[Action]:
    pending = state.pending
    if pending is None:
        return []
    return [occupy(n) for n in range(pending.min_move, pending.max_move + 1)]


def _fortify_actions(
    state: GameState,
    player_id: str,
    graph_map: GraphMap,
    fortify_config: FortifyConfig | None,
    teams: TeamsConfig | None,
) -> list[Action]:
    actions = [end_turn()]
    if fortify_config is None:
        return actions
    if state.fortifies_used_this_turn >= fortify_config.max_fortifies_per_turn:
        return actions

    for from_id, source in state.territories.items():
        if source.armies < 2:
            continue
        if not can_fortify_from(player_id, source.owner_id, state.players, teams):
            continue
        reachable = get_fortify_reachable(
            state, player_id, from_id, graph_map, fortify_config.fortify_mode, teams,
        )
        # Map order keeps the output deterministic
        for to_id, target in state.territories.items():
            if to_id == from_id or to_id not in reachable:
                continue
            if can_fortify_to(player_id, target.owner_id, state.players, teams):
                actions.append(fortify(from_id, to_id, source.armies - 1))
    return actions
