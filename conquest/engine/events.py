"""
Game events.
Events describe what happened while an action was applied; their type tags
are part of the wire format and must not change.
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class GameEvent:
    """Base event class. All events have a type and payload."""
    type: str
    payload: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "payload": self.payload}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameEvent":
        return cls(type=data["type"], payload=data["payload"])


# ===== Event Type Constants =====

SETUP_COMPLETED = "SetupCompleted"

# Turn events
REINFORCEMENTS_GRANTED = "ReinforcementsGranted"
TURN_ENDED = "TurnEnded"
TURN_ADVANCED = "TurnAdvanced"

# Reinforcement phase
CARDS_TRADED = "CardsTraded"
REINFORCEMENTS_PLACED = "ReinforcementsPlaced"

# Combat
ATTACK_RESOLVED = "AttackResolved"
TERRITORY_CAPTURED = "TerritoryCaptured"
OCCUPY_RESOLVED = "OccupyResolved"
CARD_DRAWN = "CardDrawn"

# Movement
FORTIFY_RESOLVED = "FortifyResolved"

# Players / game end
PLAYER_ELIMINATED = "PlayerEliminated"
GAME_ENDED = "GameEnded"

EVENT_TYPES = (
    SETUP_COMPLETED,
    REINFORCEMENTS_GRANTED,
    TURN_ENDED,
    TURN_ADVANCED,
    CARDS_TRADED,
    REINFORCEMENTS_PLACED,
    ATTACK_RESOLVED,
    TERRITORY_CAPTURED,
    OCCUPY_RESOLVED,
    CARD_DRAWN,
    FORTIFY_RESOLVED,
    PLAYER_ELIMINATED,
    GAME_ENDED,
)


# ===== Event Factory Functions =====

def setup_completed(
    turn_order: list[str],
    neutral_territories: list[str],
    assignments_summary: dict[str, list[str]],
) -> GameEvent:
    return GameEvent(SETUP_COMPLETED, {
        "turn_order": list(turn_order),
        "neutral_territories": list(neutral_territories),
        "assignments_summary": assignments_summary,  # player_id -> territory_ids dealt
    })


def reinforcements_granted(player_id: str, amount: int, sources: dict[str, int]) -> GameEvent:
    return GameEvent(REINFORCEMENTS_GRANTED, {
        "player_id": player_id,
        "amount": amount,
        "sources": dict(sources),
    })


def cards_traded(player_id: str, card_ids: list[str], value: int, trades_completed_after: int) -> GameEvent:
    return GameEvent(CARDS_TRADED, {
        "player_id": player_id,
        "card_ids": list(card_ids),
        "value": value,
        "trades_completed_after": trades_completed_after,
    })


def reinforcements_placed(player_id: str, territory_id: str, count: int) -> GameEvent:
    return GameEvent(REINFORCEMENTS_PLACED, {
        "player_id": player_id,
        "territory_id": territory_id,
        "count": count,
    })


def attack_resolved(
    territory_from: str,
    territory_to: str,
    attack_rolls: list[int],
    defend_rolls: list[int],
    attacker_losses: int,
    defender_losses: int,
) -> GameEvent:
    return GameEvent(ATTACK_RESOLVED, {
        "from": territory_from,
        "to": territory_to,
        "attack_dice": len(attack_rolls),
        "defend_dice": len(defend_rolls),
        "attack_rolls": list(attack_rolls),
        "defend_rolls": list(defend_rolls),
        "attacker_losses": attacker_losses,
        "defender_losses": defender_losses,
    })


def territory_captured(territory_from: str, territory_to: str, new_owner_id: str) -> GameEvent:
    return GameEvent(TERRITORY_CAPTURED, {
        "from": territory_from,
        "to": territory_to,
        "new_owner_id": new_owner_id,
    })


def player_eliminated(eliminated_id: str, by_id: str, cards_transferred: list[str]) -> GameEvent:
    """cards_transferred: the eliminated player's hand, moved to the discard pile."""
    return GameEvent(PLAYER_ELIMINATED, {
        "eliminated_id": eliminated_id,
        "by_id": by_id,
        "cards_transferred": list(cards_transferred),
    })


def occupy_resolved(player_id: str, territory_from: str, territory_to: str, moved: int) -> GameEvent:
    return GameEvent(OCCUPY_RESOLVED, {
        "player_id": player_id,
        "from": territory_from,
        "to": territory_to,
        "moved": moved,
    })


def fortify_resolved(player_id: str, territory_from: str, territory_to: str, moved: int) -> GameEvent:
    return GameEvent(FORTIFY_RESOLVED, {
        "player_id": player_id,
        "from": territory_from,
        "to": territory_to,
        "moved": moved,
    })


def card_drawn(player_id: str, card_id: str) -> GameEvent:
    return GameEvent(CARD_DRAWN, {"player_id": player_id, "card_id": card_id})


def turn_ended(player_id: str) -> GameEvent:
    return GameEvent(TURN_ENDED, {"player_id": player_id})


def turn_advanced(next_player_id: str, round_number: int) -> GameEvent:
    return GameEvent(TURN_ADVANCED, {"next_player_id": next_player_id, "round": round_number})


def game_ended(winning_player_id: str | None = None, winning_team_id: str | None = None) -> GameEvent:
    payload: dict[str, Any] = {}
    if winning_player_id is not None:
        payload["winning_player_id"] = winning_player_id
    if winning_team_id is not None:
        payload["winning_team_id"] = winning_team_id
    return GameEvent(GAME_ENDED, payload)
