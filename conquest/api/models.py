"""
SQLAlchemy models for accounts, games and their event history.
"""

from datetime import datetime
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint

from .database import Base


class Player(Base):
    __tablename__ = "players"

    id = Column(String(36), primary_key=True)  # uuid; also the engine player id
    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(64), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Game(Base):
    __tablename__ = "games"

    id = Column(String(36), primary_key=True)  # uuid
    name = Column(String(128), nullable=False)
    map_id = Column(String(64), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    created_by = Column(String(36), ForeignKey("players.id"), nullable=True)
    status = Column(String(32), nullable=False, default="active")  # active | finished
    seed = Column(String(64), nullable=False)
    game_state = Column(Text, nullable=False)  # JSON of GameState.to_dict()
    state_version = Column(Integer, nullable=False, default=1)  # mirrors game_state for version checks
    players = Column(Text, nullable=False)  # JSON array of { "player_id", "username", "team_id" }
    ruleset = Column(Text, nullable=False)  # JSON of the resolved RulesetConfig


class GameEventRecord(Base):
    __tablename__ = "game_events"
    __table_args__ = (UniqueConstraint("game_id", "seq", name="uq_game_events_game_seq"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    game_id = Column(String(36), ForeignKey("games.id"), nullable=False, index=True)
    seq = Column(Integer, nullable=False)  # 0-based position in the game's history
    state_version = Column(Integer, nullable=False)  # version the event produced
    type = Column(String(64), nullable=False)
    payload = Column(Text, nullable=False)  # JSON
    created_at = Column(DateTime, default=datetime.utcnow)
