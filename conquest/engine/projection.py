"""
Client-facing projections of GameState and events.
Nothing here exposes the RNG position, deck order, or another player's cards.
"""

from typing import Any

from conquest.engine.events import CARD_DRAWN, CARDS_TRADED, PLAYER_ELIMINATED, GameEvent
from conquest.engine.state import GameState


def spectator_view(state: GameState) -> dict[str, Any]:
    """Public state: hands become sizes and the deck becomes pile counts."""
    return {
        "players": {pid: p.to_dict() for pid, p in state.players.items()},
        "turn_order": list(state.turn_order),
        "territories": {tid: t.to_dict() for tid, t in state.territories.items()},
        "turn": state.turn.to_dict(),
        "pending": state.pending.to_dict() if state.pending else None,
        "reinforcements": state.reinforcements.to_dict() if state.reinforcements else None,
        "deck_count": len(state.deck.draw),
        "discard_count": len(state.deck.discard),
        "hand_sizes": {pid: len(hand) for pid, hand in state.hands.items()},
        "trades_completed": state.trades_completed,
        "captured_this_turn": state.captured_this_turn,
        "fortifies_used_this_turn": state.fortifies_used_this_turn,
        "state_version": state.state_version,
        "ruleset_version": state.ruleset_version,
    }


def player_view(state: GameState, player_id: str) -> dict[str, Any]:
    """Spectator view plus the viewer's own hand."""
    view = spectator_view(state)
    my_hand = []
    for card_id in state.hand_of(player_id):
        card = state.cards_by_id.get(card_id)
        my_hand.append({
            "card_id": card_id,
            "kind": card.kind if card else None,
            "territory_id": card.territory_id if card else None,
        })
    view["my_hand"] = my_hand
    return view


def redact_event(event: GameEvent, viewer_id: str | None = None) -> GameEvent:
    """Copy of `event` with card identities hidden from everyone but their holder."""
    payload = dict(event.payload)

    if event.type == CARD_DRAWN and payload.get("player_id") != viewer_id:
        payload = {"player_id": payload.get("player_id")}

    elif event.type == CARDS_TRADED and payload.get("player_id") != viewer_id:
        payload.pop("card_ids", None)

    elif event.type == PLAYER_ELIMINATED:
        transferred = payload.pop("cards_transferred", [])
        payload["cards_transferred_count"] = len(transferred)

    return GameEvent(event.type, payload)


def redact_events(events: list[GameEvent], viewer_id: str | None = None) -> list[dict[str, Any]]:
    return [redact_event(e, viewer_id).to_dict() for e in events]
