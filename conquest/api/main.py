"""
FastAPI host for the conquest engine.
Stores games and their event history, authenticates players, and runs every
submitted action through the engine. The engine itself never touches the DB.
"""

import json
import logging
import os
import secrets
import uuid
from typing import Any

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .database import get_db, init_db
from .models import Game as GameModel, GameEventRecord, Player
from .auth import (
    CredentialsError,
    check_new_credentials,
    find_player_by_username,
    get_current_player,
    get_current_player_optional,
    hash_password,
    issue_token,
    verify_password,
)

from conquest.config import DEFAULT_MAP_ID
from conquest.engine.actions import action_from_dict
from conquest.engine.definitions import MapDefinition, list_maps, load_map
from conquest.engine.events import GameEvent
from conquest.engine.game_setup import create_initial_state
from conquest.engine.map import validate_map_for_publish
from conquest.engine.projection import player_view, redact_event, spectator_view
from conquest.engine.queries import get_legal_actions_for_ruleset
from conquest.engine.reducer import ActionError, apply_action_with_ruleset, resign_player
from conquest.engine.ruleset import RulesetConfig, resolve_ruleset_from_overrides
from conquest.engine.state import PHASE_GAME_OVER, GameState

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Conquest API",
    description="Host API for a deterministic territory-conquest rules engine",
    version="1.0.0",
)

_DEFAULT_CORS_ORIGINS = "http://localhost:5173,http://localhost:5174,http://localhost:3000"
CORS_ORIGINS = [o.strip() for o in os.environ.get("CORS_ORIGINS", _DEFAULT_CORS_ORIGINS).split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

STATUS_ACTIVE = "active"
STATUS_FINISHED = "finished"


@app.middleware("http")
async def log_requests(request, call_next):
    """Log method and path of every 5xx so failures can be traced to the endpoint."""
    method = request.method
    path = request.url.path
    try:
        response = await call_next(request)
    except Exception:
        logger.exception("[500] %s %s (exception)", method, path)
        raise
    if response.status_code >= 500:
        logger.error("[%s] %s %s", response.status_code, method, path)
    return response


@app.exception_handler(Exception)
async def unhandled_exception_handler(request, exc):
    logger.error("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


# ===== Pydantic Models =====

class RegisterRequest(BaseModel):
    email: str
    username: str
    password: str


class LoginRequest(BaseModel):
    email: str
    password: str


class CreateGameRequest(BaseModel):
    name: str
    # Map id from GET /maps. Omitted = conquest.config.DEFAULT_MAP_ID.
    map_id: str | None = None
    # Other participants; the creator is always included.
    usernames: list[str] = []
    team_mode: bool = False
    # username -> team id, required for every participant in team mode
    teams: dict[str, str] | None = None
    ruleset_overrides: dict[str, Any] | None = None
    seed: str | None = None


class ActionRequest(BaseModel):
    action: dict[str, Any]
    # Version the client last saw; a mismatch is rejected with 409.
    expected_version: int | None = None


# ===== Helper Functions =====

def _load_json(raw: Any, default: Any) -> Any:
    if not isinstance(raw, str):
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return default


def get_game_row(game_id: str, db: Session) -> GameModel:
    row = db.query(GameModel).filter(GameModel.id == game_id).first()
    if not row:
        raise HTTPException(status_code=404, detail=f"Game {game_id} not found")
    return row


def get_game(row: GameModel) -> GameState:
    raw = _load_json(row.game_state, None)
    if not isinstance(raw, dict):
        raise HTTPException(status_code=404, detail=f"Game {row.id} not found")
    return GameState.from_dict(raw)


def get_ruleset(row: GameModel) -> RulesetConfig:
    return RulesetConfig.from_dict(_load_json(row.ruleset, {}))


def get_game_map(row: GameModel) -> MapDefinition:
    try:
        return load_map(row.map_id)
    except FileNotFoundError:
        raise HTTPException(status_code=500, detail=f"Map {row.map_id} for game {row.id} is missing")


def game_players(row: GameModel) -> list[dict[str, Any]]:
    players = _load_json(row.players, [])
    return players if isinstance(players, list) else []


def _is_participant(row: GameModel, player: Player | None) -> bool:
    if player is None:
        return False
    return any(str(p.get("player_id")) == str(player.id) for p in game_players(row))


def _require_participant(row: GameModel, player: Player) -> None:
    """Raise 403 if this player is not in the game."""
    if not _is_participant(row, player):
        raise HTTPException(status_code=403, detail="Not in this game")


def _view_for(state: GameState, row: GameModel, player: Player | None) -> dict[str, Any]:
    if _is_participant(row, player):
        return player_view(state, str(player.id))
    return spectator_view(state)


def save_game(
    row: GameModel,
    state: GameState,
    events: list[GameEvent],
    db: Session,
    previous_version: int | None = None,
) -> None:
    """
    Persist the new state and append its events in one commit.

    previous_version is the version the new state was computed from. The write only
    lands while the stored game is still at that version, so of two submissions
    racing from the same version one gets a 409 and stores nothing.
    """
    game_id = row.id
    values: dict[str, Any] = {"game_state": state.to_json(), "state_version": state.state_version}
    if state.turn.phase == PHASE_GAME_OVER:
        values["status"] = STATUS_FINISHED
    if previous_version is None:
        for key, value in values.items():
            setattr(row, key, value)
    else:
        updated = (
            db.query(GameModel)
            .filter(GameModel.id == game_id, GameModel.state_version == previous_version)
            .update(values, synchronize_session=False)
        )
        if updated == 0:
            db.rollback()
            raise _conflict(game_id)

    # Counted after the guarded update so concurrent writers cannot share a seq
    next_seq = db.query(GameEventRecord).filter(GameEventRecord.game_id == game_id).count()
    for offset, event in enumerate(events):
        db.add(GameEventRecord(
            game_id=game_id,
            seq=next_seq + offset,
            state_version=state.state_version,
            type=event.type,
            payload=json.dumps(event.payload),
        ))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise _conflict(game_id)


def _conflict(game_id: str) -> HTTPException:
    logger.warning("Game %s: concurrent write rejected", game_id)
    return HTTPException(status_code=409, detail="Game was updated by another request; reload and retry")


def _game_summary(row: GameModel) -> dict[str, Any]:
    return {
        "id": row.id,
        "name": row.name,
        "map_id": row.map_id,
        "status": row.status,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "players": game_players(row),
        "state_version": row.state_version,
    }


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _player_dict(player: Player) -> dict[str, Any]:
    return {"id": player.id, "email": player.email, "username": player.username}


@app.on_event("startup")
def on_startup():
    init_db()


# ===== API Endpoints =====

@app.get("/")
def root():
    return {"message": "Conquest API", "version": "1.0.0"}


# ----- Auth -----

@app.post("/auth/register")
def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """Register with email, username (unique ignoring case, no spaces/special), and password."""
    try:
        check_new_credentials(request.username, request.password)
    except CredentialsError as e:
        raise HTTPException(status_code=400, detail=str(e))
    email = _normalize_email(request.email)
    if db.query(Player).filter(Player.email == email).first():
        raise HTTPException(status_code=400, detail="Email already registered")
    if find_player_by_username(db, request.username):
        raise HTTPException(status_code=400, detail="Username already taken")
    player = Player(
        id=str(uuid.uuid4()),
        email=email,
        username=request.username,
        password_hash=hash_password(request.password),
    )
    db.add(player)
    db.commit()
    logger.info("Registered player %s", player.username)
    return {"access_token": issue_token(player), "player": _player_dict(player)}


@app.post("/auth/login")
def login(request: LoginRequest, db: Session = Depends(get_db)):
    """Login with email and password."""
    player = db.query(Player).filter(Player.email == _normalize_email(request.email)).first()
    if not player or not verify_password(request.password, player.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    return {"access_token": issue_token(player), "player": _player_dict(player)}


@app.get("/auth/me")
def auth_me(player: Player = Depends(get_current_player)):
    return _player_dict(player)


# ----- Maps -----

@app.get("/maps")
def get_maps():
    """List available maps. Use map id in POST /games."""
    return {"maps": list_maps(), "default_map_id": DEFAULT_MAP_ID}


@app.get("/maps/{map_id}")
def get_map(map_id: str):
    """Map graph plus its publish-validation report."""
    try:
        definition = load_map(map_id)
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {
        "map": definition.to_dict(),
        "validation": validate_map_for_publish(definition.graph_map).to_dict(),
    }


# ----- Games -----

@app.post("/games")
def create_game(
    request: CreateGameRequest,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """Create and start a game. Turn order and territories are dealt from the seed."""
    map_id = request.map_id or DEFAULT_MAP_ID
    try:
        definition = load_map(map_id)
    except FileNotFoundError as e:
        raise HTTPException(status_code=400, detail=str(e))

    # Usernames match regardless of case; from here on the stored spelling is used
    requested = [player.username] + [u for u in request.usernames if u.lower() != player.username.lower()]
    if len({u.lower() for u in requested}) != len(requested):
        raise HTTPException(status_code=400, detail="Duplicate participants")
    accounts = db.query(Player).filter(func.lower(Player.username).in_([u.lower() for u in requested])).all()
    by_lower = {p.username.lower(): p for p in accounts}
    missing = [u for u in requested if u.lower() not in by_lower]
    if missing:
        raise HTTPException(status_code=400, detail=f"Unknown players: {', '.join(missing)}")
    by_username = {p.username: p for p in accounts}
    usernames = [by_lower[u.lower()].username for u in requested]

    team_ids: dict[str, str | None] = {}
    if request.team_mode:
        teams = {name.lower(): team for name, team in (request.teams or {}).items()}
        unassigned = [u for u in usernames if not teams.get(u.lower())]
        if unassigned:
            raise HTTPException(status_code=400, detail=f"No team for: {', '.join(unassigned)}")
        if len(set(teams[u.lower()] for u in usernames)) < 2:
            raise HTTPException(status_code=400, detail="Team mode needs at least two teams")
        team_ids = {str(by_username[u].id): teams[u.lower()] for u in usernames}

    try:
        ruleset = resolve_ruleset_from_overrides(request.team_mode, request.ruleset_overrides)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    # Host-side randomness only picks the seed; the engine is seeded from it
    seed = request.seed or secrets.token_hex(8)
    player_ids = [str(by_username[u].id) for u in usernames]
    try:
        state, events = create_initial_state(player_ids, definition.graph_map, ruleset, seed, team_ids)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    players_list = [
        {"player_id": str(by_username[u].id), "username": u, "team_id": team_ids.get(str(by_username[u].id))}
        for u in usernames
    ]
    row = GameModel(
        id=str(uuid.uuid4()),
        name=request.name,
        map_id=definition.id,
        created_by=player.id,
        status=STATUS_ACTIVE,
        seed=seed,
        game_state=state.to_json(),
        state_version=state.state_version,
        players=json.dumps(players_list),
        ruleset=json.dumps(ruleset.to_dict()),
    )
    db.add(row)
    db.flush()
    save_game(row, state, events, db)
    logger.info("Game %s created on map %s with %d players", row.id, row.map_id, len(player_ids))
    return {
        "game_id": row.id,
        "game": _game_summary(row),
        "state": player_view(state, str(player.id)),
    }


@app.get("/games")
def list_my_games(
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """Games the current player takes part in."""
    rows = db.query(GameModel).order_by(GameModel.created_at.desc()).all()
    return {"games": [_game_summary(r) for r in rows if _is_participant(r, player)]}


@app.get("/games/{game_id}")
def get_game_state(
    game_id: str,
    db: Session = Depends(get_db),
    player: Player | None = Depends(get_current_player_optional),
):
    """Player view for participants, spectator view for everyone else."""
    row = get_game_row(game_id, db)
    state = get_game(row)
    can_act = (
        player is not None
        and row.status == STATUS_ACTIVE
        and state.turn.current_player_id == str(player.id)
    )
    return {
        "game": _game_summary(row),
        "state": _view_for(state, row, player),
        "can_act": can_act,
    }


@app.get("/games/{game_id}/legal-actions")
def get_game_legal_actions(
    game_id: str,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """Legal actions for the caller; empty when it is not their turn."""
    row = get_game_row(game_id, db)
    _require_participant(row, player)
    state = get_game(row)
    if state.turn.current_player_id != str(player.id):
        return {"actions": [], "phase": state.turn.phase, "state_version": state.state_version}
    actions = get_legal_actions_for_ruleset(state, get_game_map(row).graph_map, get_ruleset(row))
    return {
        "actions": [a.to_dict() for a in actions],
        "phase": state.turn.phase,
        "state_version": state.state_version,
    }


@app.post("/games/{game_id}/actions")
def submit_action(
    game_id: str,
    request: ActionRequest,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """Apply one action for the caller. Rejected actions leave the stored game untouched."""
    row = get_game_row(game_id, db)
    _require_participant(row, player)
    state = get_game(row)
    if request.expected_version is not None and request.expected_version != state.state_version:
        raise HTTPException(
            status_code=409,
            detail=f"Stale state: expected version {request.expected_version}, current is {state.state_version}",
        )
    try:
        action = action_from_dict(request.action)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    graph_map = get_game_map(row).graph_map
    ruleset = get_ruleset(row)
    try:
        new_state, events = apply_action_with_ruleset(state, str(player.id), action, graph_map, ruleset)
    except ActionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    save_game(row, new_state, events, db, previous_version=state.state_version)
    logger.info("Game %s: %s by %s -> version %d", game_id, action.type, player.username, new_state.state_version)
    return {
        "state": player_view(new_state, str(player.id)),
        "events": [redact_event(e, str(player.id)).to_dict() for e in events],
    }


@app.post("/games/{game_id}/resign")
def resign(
    game_id: str,
    player: Player = Depends(get_current_player),
    db: Session = Depends(get_db),
):
    """Leave the game at any time; the caller's territories become neutral."""
    row = get_game_row(game_id, db)
    _require_participant(row, player)
    state = get_game(row)
    try:
        new_state, events = resign_player(
            state, str(player.id), get_game_map(row).graph_map, get_ruleset(row).teams,
        )
    except ActionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    save_game(row, new_state, events, db, previous_version=state.state_version)
    logger.info("Game %s: %s resigned", game_id, player.username)
    return {
        "state": player_view(new_state, str(player.id)),
        "events": [redact_event(e, str(player.id)).to_dict() for e in events],
    }


@app.get("/games/{game_id}/events")
def get_game_events(
    game_id: str,
    db: Session = Depends(get_db),
    player: Player | None = Depends(get_current_player_optional),
):
    """Event history, oldest first, with card identities hidden from other viewers."""
    row = get_game_row(game_id, db)
    viewer_id = str(player.id) if _is_participant(row, player) else None
    records = (
        db.query(GameEventRecord)
        .filter(GameEventRecord.game_id == game_id)
        .order_by(GameEventRecord.seq)
        .all()
    )
    events = []
    for record in records:
        event = GameEvent(record.type, _load_json(record.payload, {}))
        item = redact_event(event, viewer_id).to_dict()
        item["seq"] = record.seq
        item["state_version"] = record.state_version
        events.append(item)
    return {"events": events}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
