"""
Action definitions.
Actions are plain, serializable instructions; the acting player is passed to
apply_action separately.
"""

from dataclasses import dataclass, field
from typing import Any

PLACE_REINFORCEMENTS = "PlaceReinforcements"
TRADE_CARDS = "TradeCards"
ATTACK = "Attack"
OCCUPY = "Occupy"
FORTIFY = "Fortify"
END_ATTACK_PHASE = "EndAttackPhase"
END_TURN = "EndTurn"

ACTION_TYPES = (
    PLACE_REINFORCEMENTS,
    TRADE_CARDS,
    ATTACK,
    OCCUPY,
    FORTIFY,
    END_ATTACK_PHASE,
    END_TURN,
)


@dataclass
class Action:
    """Base action class. All actions have a type and a payload."""
    type: str  # one of ACTION_TYPES
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "payload": dict(self.payload)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Action":
        payload = data.get("payload")
        return cls(type=str(data.get("type") or ""), payload=dict(payload) if isinstance(payload, dict) else {})


def place_reinforcements(territory_id: str, count: int) -> Action:
    return Action(PLACE_REINFORCEMENTS, {"territory_id": territory_id, "count": count})


def trade_cards(card_ids: list[str]) -> Action:
    """Trade exactly three cards from hand for reinforcement armies."""
    return Action(TRADE_CARDS, {"card_ids": list(card_ids)})


def attack(territory_from: str, territory_to: str, attacker_dice: int | None = None) -> Action:
    """
    Attack `territory_to` from `territory_from`.
    attacker_dice: dice to roll; omit to roll the maximum allowed.
    """
    payload: dict[str, Any] = {"from": territory_from, "to": territory_to}
    if attacker_dice is not None:
        payload["attacker_dice"] = attacker_dice
    return Action(ATTACK, payload)


def occupy(move_armies: int) -> Action:
    """Resolve a pending capture by moving `move_armies` into the captured territory."""
    return Action(OCCUPY, {"move_armies": move_armies})


def fortify(territory_from: str, territory_to: str, count: int) -> Action:
    return Action(FORTIFY, {"from": territory_from, "to": territory_to, "count": count})


def end_attack_phase() -> Action:
    return Action(END_ATTACK_PHASE, {})


def end_turn() -> Action:
    return Action(END_TURN, {})


def action_from_dict(data: dict[str, Any]) -> Action:
    """
    Parse a client-submitted action. Accepts {"type", "payload"} or the flat
    form with payload fields beside "type".
    """
    if not isinstance(data, dict):
        raise ValueError("Action must be an object")
    action_type = data.get("type")
    if action_type not in ACTION_TYPES:
        raise ValueError(f"Unknown action type: {action_type}")
    if isinstance(data.get("payload"), dict):
        return Action(action_type, dict(data["payload"]))
    return Action(action_type, {k: v for k, v in data.items() if k != "type"})
