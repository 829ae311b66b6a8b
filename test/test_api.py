"""
End-to-end tests for the HTTP host, using FastAPI's TestClient against a
throwaway SQLite database (see conftest.py).
"""

import uuid
from datetime import datetime, timedelta

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.exc import IntegrityError

from conquest.api.auth import TOKEN_ALGORITHM, TOKEN_ISSUER, TOKEN_SECRET

from conquest.api.database import SessionLocal
from conquest.api.main import app, get_game, get_game_map, get_game_row, get_ruleset, save_game
from conquest.api.models import GameEventRecord
from conquest.engine.queries import get_legal_actions_for_ruleset
from conquest.engine.reducer import apply_action_with_ruleset


@pytest.fixture(scope="module")
def client():
    # Entering the context runs the startup hook, which creates the tables
    with TestClient(app) as c:
        yield c


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


def _register(client, password="secret-pass"):
    username = f"u_{uuid.uuid4().hex[:8]}"
    response = client.post("/auth/register", json={
        "email": f"{username}@example.com",
        "username": username,
        "password": password,
    })
    assert response.status_code == 200, response.text
    data = response.json()
    return {"token": data["access_token"], **data["player"]}


@pytest.fixture
def game(client):
    """A started two-player game: (game_id, creator, opponent, state)."""
    creator = _register(client)
    opponent = _register(client)
    response = client.post(
        "/games",
        json={"name": "Test game", "usernames": [opponent["username"]], "seed": "api-seed"},
        headers=_auth(creator["token"]),
    )
    assert response.status_code == 200, response.text
    data = response.json()
    return data["game_id"], creator, opponent, data["state"]


def _current_and_other(state, creator, opponent):
    if state["turn"]["current_player_id"] == creator["id"]:
        return creator, opponent
    return opponent, creator


class TestAuth:

    def test_root(self, client):
        assert client.get("/").json()["message"] == "Conquest API"

    def test_register_login_me(self, client):
        player = _register(client, password="hunter22")
        me = client.get("/auth/me", headers=_auth(player["token"]))
        assert me.status_code == 200
        assert me.json()["username"] == player["username"]

        login = client.post("/auth/login", json={"email": player["email"], "password": "hunter22"})
        assert login.status_code == 200
        assert login.json()["player"]["id"] == player["id"]

    def test_wrong_password(self, client):
        player = _register(client)
        response = client.post("/auth/login", json={"email": player["email"], "password": "nope"})
        assert response.status_code == 401

    def test_duplicate_username(self, client):
        player = _register(client)
        response = client.post("/auth/register", json={
            "email": f"other-{player['email']}",
            "username": player["username"],
            "password": "secret-pass",
        })
        assert response.status_code == 400
        assert "taken" in response.json()["detail"]

    def test_username_taken_ignoring_case(self, client):
        player = _register(client)
        response = client.post("/auth/register", json={
            "email": f"upper-{player['email']}",
            "username": player["username"].upper(),
            "password": "secret-pass",
        })
        assert response.status_code == 400
        assert "taken" in response.json()["detail"]

    def test_invalid_username(self, client):
        response = client.post(
            "/auth/register", json={"email": "a@b.c", "username": "has space", "password": "secret-pass"},
        )
        assert response.status_code == 400
        assert "2-32 characters" in response.json()["detail"]

    def test_short_password(self, client):
        username = f"u_{uuid.uuid4().hex[:8]}"
        response = client.post("/auth/register", json={
            "email": f"{username}@example.com",
            "username": username,
            "password": "abc",
        })
        assert response.status_code == 400
        assert "at least 6" in response.json()["detail"]

    def test_email_matched_ignoring_case(self, client):
        player = _register(client)
        login = client.post("/auth/login", json={"email": f"  {player['email'].upper()}", "password": "secret-pass"})
        assert login.status_code == 200
        assert login.json()["player"]["id"] == player["id"]

    def test_token_names_the_player(self, client):
        player = _register(client)
        claims = jwt.get_unverified_claims(player["token"])
        assert claims["sub"] == player["id"]
        assert claims["name"] == player["username"]
        assert claims["iss"] == TOKEN_ISSUER

    def test_token_from_other_issuer(self, client):
        player = _register(client)
        forged = jwt.encode(
            {"sub": player["id"], "iss": "elsewhere", "exp": datetime.utcnow() + timedelta(hours=1)},
            TOKEN_SECRET,
            algorithm=TOKEN_ALGORITHM,
        )
        assert client.get("/auth/me", headers=_auth(forged)).status_code == 401

    def test_me_requires_token(self, client):
        assert client.get("/auth/me").status_code == 401
        assert client.get("/auth/me", headers=_auth("garbage")).status_code == 401


class TestMaps:

    def test_list(self, client):
        data = client.get("/maps").json()
        assert data["default_map_id"] == "classic"
        classic = next(m for m in data["maps"] if m["id"] == "classic")
        assert classic["territory_count"] == 42

    def test_get(self, client):
        data = client.get("/maps/classic").json()
        assert data["validation"] == {"valid": True, "errors": []}
        assert len(data["map"]["territories"]) == 42

    def test_unknown(self, client):
        assert client.get("/maps/atlantis").status_code == 404


class TestCreateGame:

    def test_created(self, client, game):
        game_id, creator, opponent, state = game
        assert set(state["turn_order"]) == {creator["id"], opponent["id"]}
        assert state["my_hand"] == []
        assert state["turn"]["phase"] == "Reinforcement"
        assert "rng" not in state

        games = client.get("/games", headers=_auth(creator["token"])).json()["games"]
        assert game_id in [g["id"] for g in games]

    def test_same_seed_same_deal(self, client):
        creator = _register(client)
        opponent = _register(client)
        body = {"name": "g", "usernames": [opponent["username"]], "seed": "fixed"}
        first = client.post("/games", json=body, headers=_auth(creator["token"])).json()["state"]
        second = client.post("/games", json=body, headers=_auth(creator["token"])).json()["state"]
        assert first["territories"] == second["territories"]
        assert first["turn_order"] == second["turn_order"]

    def test_unknown_player(self, client):
        creator = _register(client)
        response = client.post("/games", json={"name": "g", "usernames": ["nobody_here"]}, headers=_auth(creator["token"]))
        assert response.status_code == 400
        assert "nobody_here" in response.json()["detail"]

    def test_not_enough_players(self, client):
        creator = _register(client)
        response = client.post("/games", json={"name": "g"}, headers=_auth(creator["token"]))
        assert response.status_code == 400

    def test_unknown_map(self, client):
        creator = _register(client)
        opponent = _register(client)
        response = client.post(
            "/games",
            json={"name": "g", "usernames": [opponent["username"]], "map_id": "atlantis"},
            headers=_auth(creator["token"]),
        )
        assert response.status_code == 400

    def test_invalid_override(self, client):
        creator = _register(client)
        opponent = _register(client)
        response = client.post(
            "/games",
            json={
                "name": "g",
                "usernames": [opponent["username"]],
                "ruleset_overrides": {"cards": {"forced_trade_hand_size": 1}},
            },
            headers=_auth(creator["token"]),
        )
        assert response.status_code == 400
        assert "forced_trade_hand_size" in response.json()["detail"]

    def test_team_mode_needs_teams(self, client):
        creator = _register(client)
        opponent = _register(client)
        body = {"name": "g", "usernames": [opponent["username"]], "team_mode": True}
        response = client.post("/games", json=body, headers=_auth(creator["token"]))
        assert response.status_code == 400

        body["teams"] = {creator["username"]: "red", opponent["username"]: "red"}
        response = client.post("/games", json=body, headers=_auth(creator["token"]))
        assert response.status_code == 400
        assert "two teams" in response.json()["detail"]

    def test_team_game(self, client):
        creator = _register(client)
        opponent = _register(client)
        body = {
            "name": "g",
            "usernames": [opponent["username"]],
            "team_mode": True,
            "teams": {creator["username"]: "red", opponent["username"]: "blue"},
        }
        response = client.post("/games", json=body, headers=_auth(creator["token"]))
        assert response.status_code == 200
        players = response.json()["state"]["players"]
        assert players[creator["id"]]["team_id"] == "red"

    def test_usernames_match_ignoring_case(self, client):
        creator = _register(client)
        opponent = _register(client)
        body = {
            "name": "g",
            "usernames": [opponent["username"].upper()],
            "team_mode": True,
            "teams": {creator["username"]: "red", opponent["username"].upper(): "blue"},
        }
        response = client.post("/games", json=body, headers=_auth(creator["token"]))
        assert response.status_code == 200, response.text
        data = response.json()
        assert {p["username"] for p in data["game"]["players"]} == {creator["username"], opponent["username"]}
        assert data["state"]["players"][opponent["id"]]["team_id"] == "blue"

    def test_requires_auth(self, client):
        assert client.post("/games", json={"name": "g"}).status_code == 401


class TestPlay:

    def test_views(self, client, game):
        game_id, creator, opponent, state = game
        current, other = _current_and_other(state, creator, opponent)

        mine = client.get(f"/games/{game_id}", headers=_auth(current["token"])).json()
        assert mine["can_act"] is True
        assert "my_hand" in mine["state"]

        theirs = client.get(f"/games/{game_id}", headers=_auth(other["token"])).json()
        assert theirs["can_act"] is False

        anonymous = client.get(f"/games/{game_id}").json()
        assert "my_hand" not in anonymous["state"]
        assert anonymous["can_act"] is False

    def test_unknown_game(self, client):
        assert client.get("/games/does-not-exist").status_code == 404

    def test_legal_actions(self, client, game):
        game_id, creator, opponent, state = game
        current, other = _current_and_other(state, creator, opponent)

        data = client.get(f"/games/{game_id}/legal-actions", headers=_auth(current["token"])).json()
        assert data["phase"] == "Reinforcement"
        assert data["state_version"] == 1
        assert data["actions"]
        assert all(a["type"] == "PlaceReinforcements" for a in data["actions"])

        waiting = client.get(f"/games/{game_id}/legal-actions", headers=_auth(other["token"])).json()
        assert waiting["actions"] == []

    def test_submit_and_history(self, client, game):
        game_id, creator, opponent, state = game
        current, _ = _current_and_other(state, creator, opponent)
        legal = client.get(f"/games/{game_id}/legal-actions", headers=_auth(current["token"])).json()
        action = legal["actions"][0]

        response = client.post(
            f"/games/{game_id}/actions",
            json={"action": action, "expected_version": 1},
            headers=_auth(current["token"]),
        )
        assert response.status_code == 200, response.text
        data = response.json()
        assert data["state"]["state_version"] == 2
        assert data["state"]["turn"]["phase"] == "Attack"
        assert [e["type"] for e in data["events"]] == ["ReinforcementsPlaced"]

        # The same version again is stale
        stale = client.post(
            f"/games/{game_id}/actions",
            json={"action": {"type": "EndAttackPhase"}, "expected_version": 1},
            headers=_auth(current["token"]),
        )
        assert stale.status_code == 409

        events = client.get(f"/games/{game_id}/events").json()["events"]
        assert [e["type"] for e in events] == ["SetupCompleted", "ReinforcementsPlaced"]
        assert [e["seq"] for e in events] == [0, 1]
        assert [e["state_version"] for e in events] == [1, 2]

    def test_flat_action_form(self, client, game):
        game_id, creator, opponent, state = game
        current, _ = _current_and_other(state, creator, opponent)
        territory_id = next(
            tid for tid, t in state["territories"].items() if t["owner_id"] == current["id"]
        )
        response = client.post(
            f"/games/{game_id}/actions",
            json={"action": {"type": "PlaceReinforcements", "territory_id": territory_id, "count": 1}},
            headers=_auth(current["token"]),
        )
        assert response.status_code == 200, response.text

    def test_rejected_action(self, client, game):
        game_id, creator, opponent, state = game
        current, other = _current_and_other(state, creator, opponent)
        territory_id = next(
            tid for tid, t in state["territories"].items() if t["owner_id"] == current["id"]
        )
        bad_count = client.post(
            f"/games/{game_id}/actions",
            json={"action": {"type": "PlaceReinforcements", "payload": {"territory_id": territory_id, "count": 0}}},
            headers=_auth(current["token"]),
        )
        assert bad_count.status_code == 400
        assert "Invalid count" in bad_count.json()["detail"]

        wrong_player = client.post(
            f"/games/{game_id}/actions",
            json={"action": {"type": "PlaceReinforcements", "payload": {"territory_id": territory_id, "count": 1}}},
            headers=_auth(other["token"]),
        )
        assert wrong_player.status_code == 400

        unknown = client.post(
            f"/games/{game_id}/actions",
            json={"action": {"type": "Teleport"}},
            headers=_auth(current["token"]),
        )
        assert unknown.status_code == 400

        # Nothing was stored
        view = client.get(f"/games/{game_id}", headers=_auth(current["token"])).json()
        assert view["state"]["state_version"] == 1

    def test_outsider_forbidden(self, client, game):
        game_id, *_ = game
        outsider = _register(client)
        response = client.post(
            f"/games/{game_id}/actions",
            json={"action": {"type": "EndTurn"}},
            headers=_auth(outsider["token"]),
        )
        assert response.status_code == 403
        assert client.get(f"/games/{game_id}/legal-actions", headers=_auth(outsider["token"])).status_code == 403


class TestConcurrentWrites:

    def _next_move(self, row):
        state = get_game(row)
        graph_map = get_game_map(row).graph_map
        ruleset = get_ruleset(row)
        action = get_legal_actions_for_ruleset(state, graph_map, ruleset)[0]
        new_state, events = apply_action_with_ruleset(
            state, state.turn.current_player_id, action, graph_map, ruleset,
        )
        return state.state_version, new_state, events

    def test_second_writer_from_same_version_is_rejected(self, client, game):
        game_id, creator, *_ = game
        first_db = SessionLocal()
        second_db = SessionLocal()
        try:
            # Both requests load version 1 before either writes
            first_row = get_game_row(game_id, first_db)
            second_row = get_game_row(game_id, second_db)
            first_version, first_state, first_events = self._next_move(first_row)
            second_version, second_state, second_events = self._next_move(second_row)
            assert first_version == second_version == 1

            save_game(first_row, first_state, first_events, first_db, previous_version=first_version)
            with pytest.raises(HTTPException) as exc:
                save_game(second_row, second_state, second_events, second_db, previous_version=second_version)
            assert exc.value.status_code == 409
        finally:
            first_db.close()
            second_db.close()

        events = client.get(f"/games/{game_id}/events").json()["events"]
        assert [e["seq"] for e in events] == [0, 1]
        view = client.get(f"/games/{game_id}", headers=_auth(creator["token"])).json()
        assert view["state"]["state_version"] == 2

    def test_event_seq_is_unique_per_game(self, client, game):
        game_id, *_ = game
        db = SessionLocal()
        try:
            db.add(GameEventRecord(game_id=game_id, seq=0, state_version=1, type="SetupCompleted", payload="{}"))
            with pytest.raises(IntegrityError):
                db.commit()
            db.rollback()
        finally:
            db.close()


class TestResign:

    def test_resign_ends_two_player_game(self, client, game):
        game_id, creator, opponent, _ = game
        response = client.post(f"/games/{game_id}/resign", headers=_auth(opponent["token"]))
        assert response.status_code == 200, response.text
        data = response.json()
        assert data["state"]["turn"]["phase"] == "GameOver"
        assert [e["type"] for e in data["events"]] == ["PlayerEliminated", "GameEnded"]
        assert data["events"][1]["payload"] == {"winning_player_id": creator["id"]}

        summary = client.get(f"/games/{game_id}").json()["game"]
        assert summary["status"] == "finished"

        again = client.post(f"/games/{game_id}/resign", headers=_auth(creator["token"]))
        assert again.status_code == 400
        assert again.json()["detail"] == "Game is over"
