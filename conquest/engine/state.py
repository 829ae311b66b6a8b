"""
Game state representation.
State is never mutated by callers of the engine: every accepted action yields
a new copy. Includes JSON serialization so hosts can store and reload it verbatim.
"""

import json
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any

from conquest.engine import NEUTRAL

# Phases
PHASE_SETUP = "Setup"
PHASE_REINFORCEMENT = "Reinforcement"
PHASE_ATTACK = "Attack"
PHASE_OCCUPY = "Occupy"
PHASE_FORTIFY = "Fortify"
PHASE_GAME_OVER = "GameOver"

PHASES = (
    PHASE_SETUP,
    PHASE_REINFORCEMENT,
    PHASE_ATTACK,
    PHASE_OCCUPY,
    PHASE_FORTIFY,
    PHASE_GAME_OVER,
)

STATUS_ALIVE = "alive"
STATUS_DEFEATED = "defeated"

WILD_KIND = "W"

RULESET_VERSION = 1


def _ensure_str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(x) for x in value]


def _int(value: Any, default: int) -> int:
    try:
        return int(value) if value is not None else default
    except (TypeError, ValueError):
        return default


@dataclass
class PlayerState:
    status: str = STATUS_ALIVE  # "alive" | "defeated"
    team_id: str | None = None

    @property
    def alive(self) -> bool:
        return self.status == STATUS_ALIVE

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status": self.status}
        if self.team_id is not None:
            data["team_id"] = self.team_id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlayerState":
        if not isinstance(data, dict):
            data = {}
        team_id = data.get("team_id")
        return cls(
            status=str(data.get("status") or STATUS_ALIVE),
            team_id=str(team_id) if team_id is not None else None,
        )


@dataclass
class TerritoryState:
    owner_id: str  # player_id or NEUTRAL
    armies: int

    def to_dict(self) -> dict[str, Any]:
        return {"owner_id": self.owner_id, "armies": self.armies}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TerritoryState":
        if not isinstance(data, dict):
            data = {}
        return cls(
            owner_id=str(data.get("owner_id") or NEUTRAL),
            armies=_int(data.get("armies"), 0),
        )


@dataclass
class TurnState:
    current_player_id: str
    phase: str
    round: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_player_id": self.current_player_id,
            "phase": self.phase,
            "round": self.round,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TurnState":
        if not isinstance(data, dict):
            data = {}
        return cls(
            current_player_id=str(data.get("current_player_id") or ""),
            phase=str(data.get("phase") or PHASE_SETUP),
            round=_int(data.get("round"), 1),
        )


@dataclass
class PendingOccupy:
    """Forced move into a just-captured territory; resolved by the Occupy action."""
    from_territory: str
    to_territory: str
    min_move: int
    max_move: int
    # Only the turn's first capture earns a card
    award_card: bool = True
    type: str = "Occupy"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "from": self.from_territory,
            "to": self.to_territory,
            "min_move": self.min_move,
            "max_move": self.max_move,
            "award_card": self.award_card,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PendingOccupy":
        return cls(
            from_territory=str(data.get("from") or ""),
            to_territory=str(data.get("to") or ""),
            min_move=_int(data.get("min_move"), 1),
            max_move=_int(data.get("max_move"), 1),
            award_card=bool(data.get("award_card", True)),
            type=str(data.get("type") or "Occupy"),
        )


@dataclass
class ReinforcementState:
    remaining: int
    sources: dict[str, int] = field(default_factory=dict)  # label -> amount

    def to_dict(self) -> dict[str, Any]:
        return {"remaining": self.remaining, "sources": dict(self.sources)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReinforcementState":
        sources = data.get("sources")
        return cls(
            remaining=_int(data.get("remaining"), 0),
            sources={str(k): _int(v, 0) for k, v in sources.items()} if isinstance(sources, dict) else {},
        )


@dataclass
class Card:
    kind: str  # "A" | "B" | "C" | "W"
    territory_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind}
        if self.territory_id is not None:
            data["territory_id"] = self.territory_id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Card":
        territory_id = data.get("territory_id")
        return cls(
            kind=str(data.get("kind") or WILD_KIND),
            territory_id=str(territory_id) if territory_id is not None else None,
        )


@dataclass
class DeckState:
    """Draw pile (head is drawn next) and discard pile, both lists of card ids."""
    draw: list[str] = field(default_factory=list)
    discard: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"draw": list(self.draw), "discard": list(self.discard)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DeckState":
        if not isinstance(data, dict):
            data = {}
        return cls(
            draw=_ensure_str_list(data.get("draw")),
            discard=_ensure_str_list(data.get("discard")),
        )


@dataclass
class GameState:
    """Complete game state."""
    players: dict[str, PlayerState]  # player_id -> PlayerState
    turn_order: list[str]  # fixed at game start
    territories: dict[str, TerritoryState]  # territory_id -> TerritoryState
    turn: TurnState
    deck: DeckState
    cards_by_id: dict[str, Card]
    hands: dict[str, list[str]]  # player_id -> card ids, in draw order
    rng: dict[str, Any]  # {"seed": str | int, "index": int}
    # Set between an Attack capture and its Occupy
    pending: PendingOccupy | None = None
    # Present only during the current player's Reinforcement phase
    reinforcements: ReinforcementState | None = None
    trades_completed: int = 0
    captured_this_turn: bool = False
    fortifies_used_this_turn: int = 0
    state_version: int = 1
    ruleset_version: int = RULESET_VERSION

    def copy(self) -> "GameState":
        """Return a deep copy of this game state."""
        return deepcopy(self)

    def alive_player_ids(self) -> list[str]:
        return [pid for pid in self.turn_order if self.players.get(pid) and self.players[pid].alive]

    def territories_owned_by(self, player_id: str) -> list[str]:
        return [tid for tid, t in self.territories.items() if t.owner_id == player_id]

    def hand_of(self, player_id: str) -> list[str]:
        return self.hands.get(player_id, [])

    # ===== Serialization Methods =====

    def to_dict(self) -> dict[str, Any]:
        """Convert GameState to a dictionary for JSON serialization."""
        return {
            "players": {pid: p.to_dict() for pid, p in self.players.items()},
            "turn_order": list(self.turn_order),
            "territories": {tid: t.to_dict() for tid, t in self.territories.items()},
            "turn": self.turn.to_dict(),
            "pending": self.pending.to_dict() if self.pending else None,
            "reinforcements": self.reinforcements.to_dict() if self.reinforcements else None,
            "deck": self.deck.to_dict(),
            "cards_by_id": {cid: c.to_dict() for cid, c in self.cards_by_id.items()},
            "hands": {pid: list(h) for pid, h in self.hands.items()},
            "trades_completed": self.trades_completed,
            "captured_this_turn": self.captured_this_turn,
            "fortifies_used_this_turn": self.fortifies_used_this_turn,
            "rng": dict(self.rng),
            "state_version": self.state_version,
            "ruleset_version": self.ruleset_version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameState":
        """Create GameState from a dictionary (tolerates missing optional fields)."""
        players_raw = data.get("players") or {}
        if not isinstance(players_raw, dict):
            players_raw = {}
        territories_raw = data.get("territories") or {}
        if not isinstance(territories_raw, dict):
            territories_raw = {}
        cards_raw = data.get("cards_by_id") or {}
        if not isinstance(cards_raw, dict):
            cards_raw = {}
        hands_raw = data.get("hands") or {}
        if not isinstance(hands_raw, dict):
            hands_raw = {}
        rng_raw = data.get("rng") if isinstance(data.get("rng"), dict) else {}
        pending_raw = data.get("pending")
        reinforcements_raw = data.get("reinforcements")
        return cls(
            players={str(pid): PlayerState.from_dict(p) for pid, p in players_raw.items()},
            turn_order=_ensure_str_list(data.get("turn_order")),
            territories={
                str(tid): TerritoryState.from_dict(t)
                for tid, t in territories_raw.items()
                if isinstance(t, dict)
            },
            turn=TurnState.from_dict(data.get("turn")),
            deck=DeckState.from_dict(data.get("deck")),
            cards_by_id={str(cid): Card.from_dict(c) for cid, c in cards_raw.items() if isinstance(c, dict)},
            hands={str(pid): _ensure_str_list(h) for pid, h in hands_raw.items()},
            rng={"seed": rng_raw.get("seed", ""), "index": _int(rng_raw.get("index"), 0)},
            pending=PendingOccupy.from_dict(pending_raw) if isinstance(pending_raw, dict) else None,
            reinforcements=ReinforcementState.from_dict(reinforcements_raw)
            if isinstance(reinforcements_raw, dict) else None,
            trades_completed=_int(data.get("trades_completed"), 0),
            captured_this_turn=bool(data.get("captured_this_turn", False)),
            fortifies_used_this_turn=_int(data.get("fortifies_used_this_turn"), 0),
            state_version=_int(data.get("state_version"), 1),
            ruleset_version=_int(data.get("ruleset_version"), RULESET_VERSION),
        )

    def to_json(self, indent: int | None = None) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str) -> "GameState":
        return cls.from_dict(json.loads(json_str))
