"""
Main game reducer.
Applies actions to state, enforcing rules and producing new state.
Returns (new_state, events) where events describe what happened.
The incoming state is never modified; a rejected action raises ActionError.
"""

from typing import Any

from conquest.engine import NEUTRAL
from conquest.engine.actions import (
    ATTACK,
    END_ATTACK_PHASE,
    END_TURN,
    FORTIFY,
    OCCUPY,
    PLACE_REINFORCEMENTS,
    TRADE_CARDS,
    Action,
)
from conquest.engine.cards import draw_card, get_trade_value, is_valid_trade_set
from conquest.engine.events import (
    GameEvent,
    attack_resolved,
    card_drawn,
    cards_traded,
    fortify_resolved,
    game_ended,
    occupy_resolved,
    player_eliminated,
    reinforcements_granted,
    reinforcements_placed,
    territory_captured,
    turn_advanced,
    turn_ended,
)
from conquest.engine.map import GraphMap
from conquest.engine.movement import get_fortify_reachable
from conquest.engine.permissions import can_attack, can_fortify_from, can_fortify_to, can_place
from conquest.engine.reinforcements import calculate_reinforcements
from conquest.engine.rng import Rng
from conquest.engine.ruleset import (
    FORTIFY_ADJACENT,
    CardsConfig,
    CombatConfig,
    FortifyConfig,
    RulesetConfig,
    TeamsConfig,
)
from conquest.engine.state import (
    PHASE_ATTACK,
    PHASE_FORTIFY,
    PHASE_GAME_OVER,
    PHASE_OCCUPY,
    PHASE_REINFORCEMENT,
    STATUS_DEFEATED,
    GameState,
    PendingOccupy,
    ReinforcementState,
    TerritoryState,
)

# Log-only entry type used by hosts to record resignations alongside actions.
RESIGN = "Resign"


class ActionError(ValueError):
    """An action was rejected. The state it was applied to is unchanged."""


# Which phases accept each action type, with the verb used in rejection messages.
ACTION_PHASES: dict[str, tuple[str, tuple[str, ...]]] = {
    PLACE_REINFORCEMENTS: ("place reinforcements", (PHASE_REINFORCEMENT,)),
    TRADE_CARDS: ("trade cards", (PHASE_REINFORCEMENT,)),
    ATTACK: ("attack", (PHASE_ATTACK,)),
    OCCUPY: ("occupy", (PHASE_ATTACK, PHASE_OCCUPY)),
    END_ATTACK_PHASE: ("end attack phase", (PHASE_ATTACK,)),
    FORTIFY: ("fortify", (PHASE_FORTIFY,)),
    END_TURN: ("end turn", (PHASE_FORTIFY,)),
}


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _validate_action_for_phase(action: Action, state: GameState, player_id: str) -> None:
    """Phase first, then turn ownership; every action is exclusive to the current player."""
    if action.type not in ACTION_PHASES:
        raise ActionError(f"Unknown action type: {action.type}")
    verb, phases = ACTION_PHASES[action.type]
    if state.turn.phase not in phases:
        raise ActionError(
            f"Cannot {verb}: current phase is {state.turn.phase}, expected {' or '.join(phases)}"
        )
    if state.turn.current_player_id != player_id:
        raise ActionError(f"Not your turn: current player is {state.turn.current_player_id}")


def _get_territory(state: GameState, territory_id: Any) -> TerritoryState:
    territory = state.territories.get(territory_id) if isinstance(territory_id, str) else None
    if territory is None:
        raise ActionError(f"Territory {territory_id} does not exist")
    return territory


def apply_action(
    state: GameState,
    player_id: str,
    action: Action,
    graph_map: GraphMap | None = None,
    combat: CombatConfig | None = None,
    fortify: FortifyConfig | None = None,
    cards: CardsConfig | None = None,
    teams: TeamsConfig | None = None,
) -> tuple[GameState, list[GameEvent]]:
    """
    Apply a single action for `player_id`, returning new state and events.

    Config groups are passed individually; an action that needs a group that
    was not supplied is rejected. Without `cards`, no forced-trade rule applies
    and no card is awarded on capture.

    Raises:
        ActionError: the action is not legal in this state
    """
    _validate_action_for_phase(action, state, player_id)

    new_state = state.copy()
    payload = action.payload or {}

    if action.type == PLACE_REINFORCEMENTS:
        new_state, events = _handle_place_reinforcements(new_state, player_id, payload, cards, teams)

    elif action.type == TRADE_CARDS:
        new_state, events = _handle_trade_cards(new_state, player_id, payload, cards)

    elif action.type == ATTACK:
        new_state, events = _handle_attack(new_state, player_id, payload, graph_map, combat, teams)

    elif action.type == OCCUPY:
        new_state, events = _handle_occupy(new_state, player_id, payload, cards)

    elif action.type == END_ATTACK_PHASE:
        new_state, events = _handle_end_attack_phase(new_state)

    elif action.type == FORTIFY:
        new_state, events = _handle_fortify(new_state, player_id, payload, graph_map, fortify, teams)

    elif action.type == END_TURN:
        new_state, events = _handle_end_turn(new_state, player_id, graph_map, teams)

    else:
        raise ActionError(f"Unknown action type: {action.type}")

    new_state.state_version = state.state_version + 1
    return new_state, events


def apply_action_with_ruleset(
    state: GameState,
    player_id: str,
    action: Action,
    graph_map: GraphMap,
    ruleset: RulesetConfig,
) -> tuple[GameState, list[GameEvent]]:
    """apply_action with every config group taken from one ruleset."""
    return apply_action(
        state,
        player_id,
        action,
        graph_map,
        ruleset.combat,
        ruleset.fortify,
        ruleset.cards,
        ruleset.teams,
    )


# ===== Reinforcement phase =====

def _handle_place_reinforcements(
    state: GameState,
    player_id: str,
    payload: dict[str, Any],
    cards: CardsConfig | None,
    teams: TeamsConfig | None,
) -> tuple[GameState, list[GameEvent]]:
    territory_id = payload.get("territory_id")
    count = payload.get("count")
    territory = _get_territory(state, territory_id)
    if not can_place(player_id, territory.owner_id, state.players, teams):
        raise ActionError(f"Territory {territory_id} is not owned by {player_id}")
    if not _is_int(count) or count < 1:
        raise ActionError(f"Invalid count: must be a positive integer, got {count}")

    if cards is not None:
        hand_size = len(state.hand_of(player_id))
        if hand_size >= cards.forced_trade_hand_size:
            raise ActionError(
                f"Must trade cards before placing reinforcements "
                f"(hand has {hand_size} cards, limit {cards.forced_trade_hand_size})"
            )

    remaining = state.reinforcements.remaining if state.reinforcements else 0
    if count > remaining:
        raise ActionError(f"Cannot place {count} armies: only {remaining} remaining")

    territory.armies += count
    new_remaining = remaining - count
    if new_remaining == 0:
        state.reinforcements = None
        state.turn.phase = PHASE_ATTACK
    else:
        state.reinforcements.remaining = new_remaining

    return state, [reinforcements_placed(player_id, territory_id, count)]


def _handle_trade_cards(
    state: GameState,
    player_id: str,
    payload: dict[str, Any],
    cards: CardsConfig | None,
) -> tuple[GameState, list[GameEvent]]:
    if cards is None:
        raise ActionError("CardsConfig is required for TradeCards")

    card_ids = payload.get("card_ids")
    if not isinstance(card_ids, list) or len(card_ids) != 3:
        got = len(card_ids) if isinstance(card_ids, list) else 0
        raise ActionError(f"Must trade exactly 3 cards, got {got}")
    if len(set(card_ids)) != len(card_ids):
        raise ActionError(f"Duplicate card ids in trade: {', '.join(map(str, card_ids))}")

    hand = state.hand_of(player_id)
    for card_id in card_ids:
        if card_id not in hand or card_id not in state.cards_by_id:
            raise ActionError(f"Card {card_id} is not in your hand")

    kinds = [state.cards_by_id[cid].kind for cid in card_ids]
    if not is_valid_trade_set(kinds, cards.trade_sets):
        raise ActionError(f"Invalid trade set: {', '.join(kinds)}")

    value = get_trade_value(state.trades_completed, cards)
    state.hands[player_id] = [cid for cid in hand if cid not in card_ids]
    state.deck.discard.extend(card_ids)
    state.trades_completed += 1

    if state.reinforcements is None:
        state.reinforcements = ReinforcementState(remaining=0, sources={})
    state.reinforcements.remaining += value
    state.reinforcements.sources["cards"] = state.reinforcements.sources.get("cards", 0) + value

    bonus_territory_id = None
    bonus = cards.territory_trade_bonus
    if bonus.enabled:
        for card_id in card_ids:
            linked = state.cards_by_id[card_id].territory_id
            territory = state.territories.get(linked) if linked else None
            if territory is not None and territory.owner_id == player_id:
                territory.armies += bonus.bonus_armies
                bonus_territory_id = linked
                break

    event = cards_traded(player_id, card_ids, value, state.trades_completed)
    if bonus_territory_id is not None:
        event.payload["bonus_territory_id"] = bonus_territory_id
        event.payload["bonus_armies"] = bonus.bonus_armies
    return state, [event]


# ===== Attack phase =====

def _handle_attack(
    state: GameState,
    player_id: str,
    payload: dict[str, Any],
    graph_map: GraphMap | None,
    combat: CombatConfig | None,
    teams: TeamsConfig | None,
) -> tuple[GameState, list[GameEvent]]:
    if state.pending is not None:
        raise ActionError("Cannot attack: an Occupy is pending")
    if graph_map is None:
        raise ActionError("GraphMap is required for Attack")
    if combat is None:
        raise ActionError("CombatConfig is required for Attack")

    from_id = payload.get("from")
    to_id = payload.get("to")
    source = _get_territory(state, from_id)
    target = _get_territory(state, to_id)

    if source.owner_id != player_id:
        raise ActionError(f"Territory {from_id} is not owned by {player_id}")
    if target.owner_id == player_id:
        raise ActionError(f"Cannot attack your own territory {to_id}")
    if not can_attack(player_id, target.owner_id, state.players, teams):
        raise ActionError(f"Cannot attack territory {to_id} held by teammate {target.owner_id}")
    if not graph_map.is_adjacent(from_id, to_id):
        raise ActionError(f"Territory {to_id} is not adjacent to {from_id}")
    if source.armies < 2:
        raise ActionError(f"Territory {from_id} must have at least 2 armies to attack")

    max_dice = min(combat.max_attack_dice, source.armies - 1)
    requested = payload.get("attacker_dice")
    if requested is None:
        attacker_dice = max_dice
    else:
        if not combat.allow_attacker_dice_choice:
            raise ActionError("Choosing attacker dice is not allowed by ruleset")
        if not _is_int(requested) or requested < 1:
            raise ActionError(f"Invalid attacker dice: must be a positive integer, got {requested}")
        if requested > max_dice:
            raise ActionError(f"Invalid attacker dice: maximum is {max_dice}, got {requested}")
        attacker_dice = requested

    # defender_dice_strategy "alwaysMax": defender rolls as many as allowed
    defender_dice = min(combat.max_defend_dice, target.armies)

    rng = Rng.from_state(state.rng)
    attack_rolls = rng.roll_dice(attacker_dice)
    defend_rolls = rng.roll_dice(defender_dice)
    state.rng = rng.state

    attacker_losses = 0
    defender_losses = 0
    for attack_die, defend_die in zip(attack_rolls, defend_rolls):
        if attack_die > defend_die:
            defender_losses += 1
        else:
            attacker_losses += 1

    source.armies -= attacker_losses
    target.armies -= defender_losses
    events = [attack_resolved(from_id, to_id, attack_rolls, defend_rolls, attacker_losses, defender_losses)]

    if target.armies > 0:
        return state, events

    defender_id = target.owner_id
    target.owner_id = player_id
    max_move = source.armies - 1
    min_move = max(1, min(attacker_dice, max_move))
    events.append(territory_captured(from_id, to_id, player_id))

    if defender_id != NEUTRAL and not state.territories_owned_by(defender_id):
        events.append(_eliminate_player(state, defender_id, by_id=player_id))

    end_event = _check_game_over(state, teams)
    if end_event is not None:
        # The game ends on this capture; the minimum move happens without a pending Occupy.
        source.armies -= min_move
        target.armies += min_move
        state.pending = None
        state.turn.phase = PHASE_GAME_OVER
        events.append(occupy_resolved(player_id, from_id, to_id, min_move))
        events.append(end_event)
        return state, events

    first_capture = not state.captured_this_turn
    state.captured_this_turn = True
    state.pending = PendingOccupy(
        from_territory=from_id,
        to_territory=to_id,
        min_move=min_move,
        max_move=max_move,
        award_card=first_capture,
    )
    state.turn.phase = PHASE_OCCUPY
    return state, events


def _handle_occupy(
    state: GameState,
    player_id: str,
    payload: dict[str, Any],
    cards: CardsConfig | None,
) -> tuple[GameState, list[GameEvent]]:
    pending = state.pending
    if pending is None:
        raise ActionError("No pending Occupy to resolve")

    move_armies = payload.get("move_armies")
    if not _is_int(move_armies):
        raise ActionError(f"Invalid move: must be an integer, got {move_armies}")
    if move_armies < pending.min_move:
        raise ActionError(f"Must move at least {pending.min_move} armies, got {move_armies}")
    if move_armies > pending.max_move:
        raise ActionError(f"Cannot move more than {pending.max_move} armies, got {move_armies}")

    source = _get_territory(state, pending.from_territory)
    target = _get_territory(state, pending.to_territory)
    source.armies -= move_armies
    target.armies += move_armies

    state.pending = None
    state.captured_this_turn = True
    state.turn.phase = PHASE_ATTACK
    events = [occupy_resolved(player_id, pending.from_territory, pending.to_territory, move_armies)]

    if cards is not None and cards.award_card_on_capture and pending.award_card:
        rng = Rng.from_state(state.rng)
        drawn = draw_card(state.deck, rng)
        state.rng = rng.state
        if drawn is not None:
            card_id, state.deck = drawn
            state.hands.setdefault(player_id, []).append(card_id)
            events.append(card_drawn(player_id, card_id))

    return state, events


def _handle_end_attack_phase(state: GameState) -> tuple[GameState, list[GameEvent]]:
    if state.pending is not None:
        raise ActionError("Cannot end attack phase: an Occupy is pending")
    state.turn.phase = PHASE_FORTIFY
    return state, []


# ===== Fortify phase =====

def _handle_fortify(
    state: GameState,
    player_id: str,
    payload: dict[str, Any],
    graph_map: GraphMap | None,
    fortify: FortifyConfig | None,
    teams: TeamsConfig | None,
) -> tuple[GameState, list[GameEvent]]:
    if graph_map is None:
        raise ActionError("GraphMap is required for Fortify")
    if fortify is None:
        raise ActionError("FortifyConfig is required for Fortify")
    if state.fortifies_used_this_turn >= fortify.max_fortifies_per_turn:
        raise ActionError(
            f"Fortify limit reached: {fortify.max_fortifies_per_turn} per turn"
        )

    from_id = payload.get("from")
    to_id = payload.get("to")
    count = payload.get("count")
    source = _get_territory(state, from_id)
    target = _get_territory(state, to_id)

    if from_id == to_id:
        raise ActionError("Cannot fortify a territory to itself")
    if not can_fortify_from(player_id, source.owner_id, state.players, teams):
        raise ActionError(f"Cannot fortify from territory {from_id} owned by {source.owner_id}")
    if not can_fortify_to(player_id, target.owner_id, state.players, teams):
        raise ActionError(f"Cannot fortify to territory {to_id} owned by {target.owner_id}")
    if not _is_int(count) or count < 1:
        raise ActionError(f"Invalid count: must be a positive integer, got {count}")
    if count >= source.armies:
        raise ActionError(
            f"Cannot move {count} armies from {from_id}: it has {source.armies} "
            f"and must keep at least 1"
        )

    reachable = get_fortify_reachable(state, player_id, from_id, graph_map, fortify.fortify_mode, teams)
    if to_id not in reachable:
        if fortify.fortify_mode == FORTIFY_ADJACENT:
            raise ActionError(f"Territory {to_id} is not adjacent to {from_id}")
        raise ActionError(f"Territory {to_id} is not connected to {from_id} through territories you control")

    source.armies -= count
    target.armies += count
    state.fortifies_used_this_turn += 1
    return state, [fortify_resolved(player_id, from_id, to_id, count)]


def _handle_end_turn(
    state: GameState,
    player_id: str,
    graph_map: GraphMap | None,
    teams: TeamsConfig | None,
) -> tuple[GameState, list[GameEvent]]:
    if graph_map is None:
        raise ActionError("GraphMap is required for EndTurn")
    events = [turn_ended(player_id)]
    events.extend(_advance_turn(state, player_id, graph_map, teams))
    return state, events


# ===== Turn / elimination helpers =====

def next_alive_player(state: GameState, current_player_id: str) -> tuple[str, bool]:
    """
    Next alive player after `current_player_id` in turn order, and whether
    the search wrapped past the end of the order (which starts a new round).
    """
    order = state.turn_order
    if not order:
        raise ActionError("Turn order is empty")
    current_index = order.index(current_player_id) if current_player_id in order else -1
    index = current_index
    wrapped = False
    for _ in range(len(order)):
        index = (index + 1) % len(order)
        if index == 0 and current_index != 0:
            wrapped = True
        player = state.players.get(order[index])
        if player is not None and player.alive:
            return order[index], wrapped
    raise ActionError("No alive player to take the next turn")


def _advance_turn(
    state: GameState,
    current_player_id: str,
    graph_map: GraphMap,
    teams: TeamsConfig | None,
) -> list[GameEvent]:
    """Hand the turn to the next alive player and grant their reinforcements."""
    next_player_id, wrapped = next_alive_player(state, current_player_id)
    state.turn.current_player_id = next_player_id
    state.turn.phase = PHASE_REINFORCEMENT
    if wrapped:
        state.turn.round += 1
    state.pending = None
    state.captured_this_turn = False
    state.fortifies_used_this_turn = 0

    result = calculate_reinforcements(state, next_player_id, graph_map, teams)
    state.reinforcements = ReinforcementState(remaining=result.total, sources=dict(result.sources))
    return [
        turn_advanced(next_player_id, state.turn.round),
        reinforcements_granted(next_player_id, result.total, result.sources),
    ]


def _eliminate_player(state: GameState, player_id: str, by_id: str) -> GameEvent:
    """Mark defeated and move their hand to the discard pile."""
    state.players[player_id].status = STATUS_DEFEATED
    hand = list(state.hand_of(player_id))
    state.deck.discard.extend(hand)
    state.hands[player_id] = []
    return player_eliminated(player_id, by_id, hand)


def _check_game_over(state: GameState, teams: TeamsConfig | None) -> GameEvent | None:
    """
    GameEnded event if at most one player (or, with teams enabled, one team)
    is still alive; otherwise None. Unteamed players count as their own team.
    """
    alive = state.alive_player_ids()
    if teams is not None and teams.teams_enabled:
        alive_teams = {state.players[pid].team_id or f"solo:{pid}" for pid in alive}
        if len(alive_teams) > 1:
            return None
        if not alive:
            return game_ended()
        team_id = state.players[alive[0]].team_id
        if team_id is None:
            return game_ended(winning_player_id=alive[0])
        return game_ended(winning_team_id=team_id)
    if len(alive) > 1:
        return None
    return game_ended(winning_player_id=alive[0] if alive else None)


# ===== Resignation =====

def resign_player(
    state: GameState,
    player_id: str,
    graph_map: GraphMap,
    teams: TeamsConfig | None = None,
) -> tuple[GameState, list[GameEvent]]:
    """
    Remove a player from the game at any time, whoever's turn it is.
    Their territories turn neutral (armies stay), their hand is discarded, and
    if it was their turn play passes on exactly as EndTurn would.
    """
    if state.turn.phase == PHASE_GAME_OVER:
        raise ActionError("Game is over")
    player = state.players.get(player_id)
    if player is None or not player.alive:
        raise ActionError(f"Player {player_id} is not an active player")

    new_state = state.copy()
    for territory in new_state.territories.values():
        if territory.owner_id == player_id:
            territory.owner_id = NEUTRAL
    events = [_eliminate_player(new_state, player_id, by_id=player_id)]

    was_current = new_state.turn.current_player_id == player_id
    end_event = _check_game_over(new_state, teams)
    if end_event is not None:
        new_state.turn.phase = PHASE_GAME_OVER
        new_state.pending = None
        events.append(end_event)
    elif was_current:
        events.extend(_advance_turn(new_state, player_id, graph_map, teams))

    new_state.state_version = state.state_version + 1
    return new_state, events


# ===== Replay =====

def replay_from_actions(
    initial_state: GameState,
    entries: list[tuple[str, Action]],
    graph_map: GraphMap,
    ruleset: RulesetConfig,
) -> tuple[GameState, list[GameEvent]]:
    """
    Replay a log of (player_id, action) entries from an initial state.
    Entries of type RESIGN are replayed through resign_player.

    Returns:
        Tuple of (final_state, all_events) after all entries applied
    """
    current_state = initial_state.copy()
    all_events: list[GameEvent] = []

    for player_id, action in entries:
        if action.type == RESIGN:
            current_state, events = resign_player(current_state, player_id, graph_map, ruleset.teams)
        else:
            current_state, events = apply_action_with_ruleset(
                current_state, player_id, action, graph_map, ruleset,
            )
        all_events.extend(events)

    return current_state, all_events
