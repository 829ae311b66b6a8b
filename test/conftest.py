"""
Pytest fixtures for conquest tests.
"""

import os
import tempfile

# The API reads these at import time; point it at a throwaway database.
_TEST_DB_DIR = tempfile.mkdtemp(prefix="conquest-test-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_TEST_DB_DIR, 'test.db')}")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest

from conquest.engine.map import Continent, GraphMap
from conquest.engine.ruleset import (
    CardsConfig,
    CombatConfig,
    FortifyConfig,
    TeamsConfig,
    default_ruleset,
)
from conquest.engine.state import (
    PHASE_ATTACK,
    Card,
    DeckState,
    GameState,
    PlayerState,
    ReinforcementState,
    TerritoryState,
    TurnState,
)


def _tiny_map() -> GraphMap:
    """
    a - b      two continents:
     \\ |       north = a, b, c (bonus 3)
       c - d - e - f      south = d, e, f (bonus 2)
    """
    return GraphMap(
        territories={tid: {"name": tid.upper()} for tid in "abcdef"},
        adjacency={
            "a": ["b", "c"],
            "b": ["a", "c"],
            "c": ["a", "b", "d"],
            "d": ["c", "e"],
            "e": ["d", "f"],
            "f": ["e"],
        },
        continents={
            "north": Continent(territory_ids=["a", "b", "c"], bonus=3),
            "south": Continent(territory_ids=["d", "e", "f"], bonus=2),
        },
    )


def _make_state(
    owners: dict[str, tuple[str, int]],
    players: dict[str, str | None] | None = None,
    phase: str = PHASE_ATTACK,
    current: str = "p1",
    hands: dict[str, list[str]] | None = None,
    cards_by_id: dict[str, Card] | None = None,
    draw: list[str] | None = None,
    remaining: int | None = None,
    seed: str = "test",
    defeated: tuple[str, ...] = (),
) -> GameState:
    """
    Hand-built state for rule tests.
    owners: territory_id -> (owner_id, armies)
    players: player_id -> team id (None for no team); turn order follows insertion order
    """
    players = players if players is not None else {"p1": None, "p2": None}
    hands = hands or {}
    return GameState(
        players={
            pid: PlayerState(status="defeated" if pid in defeated else "alive", team_id=team)
            for pid, team in players.items()
        },
        turn_order=list(players),
        territories={tid: TerritoryState(owner_id=o, armies=a) for tid, (o, a) in owners.items()},
        turn=TurnState(current_player_id=current, phase=phase, round=1),
        deck=DeckState(draw=list(draw or []), discard=[]),
        cards_by_id=dict(cards_by_id or {}),
        hands={pid: list(hands.get(pid, [])) for pid in players},
        rng={"seed": seed, "index": 0},
        reinforcements=ReinforcementState(remaining=remaining, sources={"territory": remaining})
        if remaining is not None else None,
    )


@pytest.fixture
def tiny_map() -> GraphMap:
    """Six-territory map with two continents."""
    return _tiny_map()


@pytest.fixture
def make_state():
    """Factory for hand-built GameStates."""
    return _make_state


@pytest.fixture
def ruleset():
    """Classic ruleset."""
    return default_ruleset()


@pytest.fixture
def combat() -> CombatConfig:
    return CombatConfig()


@pytest.fixture
def fortify_config() -> FortifyConfig:
    return FortifyConfig()


@pytest.fixture
def cards() -> CardsConfig:
    return CardsConfig()


@pytest.fixture
def team_config() -> TeamsConfig:
    """Teams on, with every teammate permission enabled."""
    return TeamsConfig(
        teams_enabled=True,
        prevent_attacking_teammates=True,
        allow_place_on_teammate=True,
        allow_fortify_with_teammate=True,
        allow_fortify_through_teammates=True,
    )
