"""
Tests for initial game creation.
"""

import pytest

from conquest.engine import NEUTRAL
from conquest.engine.definitions import load_map
from conquest.engine.events import SETUP_COMPLETED
from conquest.engine.game_setup import (
    create_initial_state,
    distribute_initial_armies,
    team_turn_order,
)
from conquest.engine.map import GraphMap
from conquest.engine.reinforcements import calculate_reinforcements
from conquest.engine.rng import Rng
from conquest.engine.ruleset import default_ruleset, resolve_ruleset_from_overrides
from conquest.engine.state import PHASE_REINFORCEMENT, TerritoryState


@pytest.fixture(scope="module")
def classic():
    return load_map("classic").graph_map


def _armies_by_owner(state):
    totals = {}
    for territory in state.territories.values():
        totals[territory.owner_id] = totals.get(territory.owner_id, 0) + territory.armies
    return totals


class TestClassicSetup:

    def test_three_players(self, classic):
        state, events = create_initial_state(["p1", "p2", "p3"], classic, default_ruleset(), "abc")

        assert sorted(state.turn_order) == ["p1", "p2", "p3"]
        assert list(state.territories) == list(classic.territories)

        neutral = [tid for tid, t in state.territories.items() if t.owner_id == NEUTRAL]
        assert len(neutral) == 2
        assert all(state.territories[tid].armies == 1 for tid in neutral)

        totals = _armies_by_owner(state)
        for pid in ("p1", "p2", "p3"):
            assert totals[pid] == 39
        counts = sorted(len(state.territories_owned_by(pid)) for pid in state.turn_order)
        assert counts == [13, 13, 14]
        # Round-robin deal starts with the first player
        assert len(state.territories_owned_by(state.turn_order[0])) == 14

        assert len(state.cards_by_id) == 44
        assert sorted(state.deck.draw) == sorted(state.cards_by_id)
        assert state.deck.discard == []
        assert state.hands == {"p1": [], "p2": [], "p3": []}

        first = state.turn_order[0]
        assert state.turn.current_player_id == first
        assert state.turn.phase == PHASE_REINFORCEMENT
        assert state.turn.round == 1
        assert state.state_version == 1
        assert state.pending is None
        expected = calculate_reinforcements(state, first, classic)
        assert state.reinforcements.remaining == expected.total
        assert state.reinforcements.sources == expected.sources

        assert [e.type for e in events] == [SETUP_COMPLETED]
        payload = events[0].payload
        assert payload["turn_order"] == state.turn_order
        assert sorted(payload["neutral_territories"]) == sorted(neutral)
        for pid, dealt in payload["assignments_summary"].items():
            assert sorted(dealt) == sorted(state.territories_owned_by(pid))

    @pytest.mark.parametrize("count,armies", [(2, 58), (4, 29), (6, 20)])
    def test_army_totals(self, classic, count, armies):
        player_ids = [f"p{i}" for i in range(count)]
        state, _ = create_initial_state(player_ids, classic, default_ruleset(), f"armies-{count}")
        totals = _armies_by_owner(state)
        assert all(totals[pid] == armies for pid in player_ids)
        assert max(t.armies for t in state.territories.values()) <= 4

    def test_same_seed_same_game(self, classic):
        a, _ = create_initial_state(["x", "y", "z"], classic, default_ruleset(), 42)
        b, _ = create_initial_state(["x", "y", "z"], classic, default_ruleset(), 42)
        assert a.to_dict() == b.to_dict()

    def test_different_seed_different_game(self, classic):
        a, _ = create_initial_state(["x", "y"], classic, default_ruleset(), "one")
        b, _ = create_initial_state(["x", "y"], classic, default_ruleset(), "two")
        assert a.territories != b.territories

    def test_rng_position_recorded(self, classic):
        state, _ = create_initial_state(["x", "y"], classic, default_ruleset(), "pos")
        assert state.rng["seed"] == "pos"
        assert state.rng["index"] > 0


class TestSmallMaps:

    def test_tiny_map_two_players(self, tiny_map):
        state, _ = create_initial_state(["p1", "p2"], tiny_map, default_ruleset(), "tiny")
        assert len(state.territories_owned_by(NEUTRAL)) == 2
        for pid in ("p1", "p2"):
            owned = state.territories_owned_by(pid)
            assert len(owned) == 2
            # 8 armies over 2 territories fills both to the cap
            assert [state.territories[t].armies for t in owned] == [4, 4]

    def test_neutrals_dropped_when_map_is_full(self, tiny_map):
        player_ids = [f"p{i}" for i in range(6)]
        state, events = create_initial_state(player_ids, tiny_map, default_ruleset(), "full")
        assert state.territories_owned_by(NEUTRAL) == []
        assert events[0].payload["neutral_territories"] == []
        for pid in player_ids:
            assert len(state.territories_owned_by(pid)) == 1


class TestTeams:

    def test_teams_alternate(self, classic):
        ruleset = resolve_ruleset_from_overrides(True)
        team_ids = {"r1": "red", "r2": "red", "b1": "blue", "b2": "blue"}
        state, _ = create_initial_state(list(team_ids), classic, ruleset, "teams", team_ids)

        order = state.turn_order
        assert sorted(order) == sorted(team_ids)
        for i in range(len(order) - 1):
            assert team_ids[order[i]] != team_ids[order[i + 1]]
        assert state.players["r1"].team_id == "red"
        assert state.players["b2"].team_id == "blue"

    def test_team_ids_ignored_when_teams_disabled(self, classic):
        team_ids = {"r1": "red", "b1": "blue"}
        state, _ = create_initial_state(list(team_ids), classic, default_ruleset(), "noteams", team_ids)
        assert all(p.team_id is None for p in state.players.values())

    def test_uneven_teams(self):
        order = team_turn_order(["r1", "r2", "r3", "b1"], {"r1": "red", "r2": "red", "r3": "red", "b1": "blue"}, Rng("uneven"))
        assert sorted(order) == ["b1", "r1", "r2", "r3"]
        # Blue has one member, so it appears in the first slot only
        assert order.index("b1") in (0, 1)

    def test_single_team_is_plain_shuffle(self):
        ids = ["a", "b", "c", "d"]
        team_ids = {pid: "red" for pid in ids}
        assert team_turn_order(ids, team_ids, Rng("solo")) == Rng("solo").shuffle(ids)

    def test_unteamed_players_count_as_own_team(self):
        order = team_turn_order(["a", "b"], {}, Rng("pair"))
        assert sorted(order) == ["a", "b"]


class TestDistributeInitialArmies:

    def test_cap_raised_to_fit(self):
        territories = {"x": TerritoryState("p1", 1), "y": TerritoryState("p1", 1)}
        distribute_initial_armies(Rng("cap"), ["x", "y"], territories, 12)
        assert territories["x"].armies == 6
        assert territories["y"].armies == 6

    def test_respects_cap(self):
        territories = {t: TerritoryState("p1", 1) for t in "wxyz"}
        distribute_initial_armies(Rng("spread"), list(territories), territories, 10)
        assert sum(t.armies for t in territories.values()) == 10
        assert all(1 <= t.armies <= 4 for t in territories.values())

    def test_no_territories(self):
        territories = {}
        distribute_initial_armies(Rng("none"), [], territories, 10)
        assert territories == {}


class TestValidation:

    @pytest.mark.parametrize("player_ids", [["solo"], [f"p{i}" for i in range(7)]])
    def test_player_count(self, classic, player_ids):
        with pytest.raises(ValueError, match="Game needs 2 to 6 players"):
            create_initial_state(player_ids, classic, default_ruleset(), "s")

    def test_more_players_than_territories(self, tiny_map):
        with pytest.raises(ValueError, match="Game needs 2 to 6 players"):
            create_initial_state([f"p{i}" for i in range(7)], tiny_map, default_ruleset(), "s")

    def test_duplicate_ids(self, classic):
        with pytest.raises(ValueError, match="unique"):
            create_initial_state(["p1", "p1"], classic, default_ruleset(), "s")

    def test_neutral_id_reserved(self, classic):
        with pytest.raises(ValueError, match="reserved"):
            create_initial_state(["p1", NEUTRAL], classic, default_ruleset(), "s")

    def test_invalid_map(self):
        broken = GraphMap(
            territories={"a": {}, "b": {}, "c": {}},
            adjacency={"a": ["b"], "b": [], "c": []},
        )
        with pytest.raises(ValueError, match="Invalid map"):
            create_initial_state(["p1", "p2"], broken, default_ruleset(), "s")
