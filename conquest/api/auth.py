"""
Accounts for the conquest host: credential rules, password hashing and bearer tokens.

A token's subject is the account id, which is also the player's id inside the engine.
Read endpoints accept anonymous callers, who get the spectator view.
"""

import os
import re
from datetime import datetime, timedelta

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy import func
from sqlalchemy.orm import Session

from .database import get_db
from .models import Player

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]{2,32}$")
USERNAME_RULE = "Username must be 2-32 characters, letters numbers and underscore only"
MIN_PASSWORD_LENGTH = 6

TOKEN_SECRET = os.environ.get("JWT_SECRET", "dev-only-conquest-secret")
TOKEN_ALGORITHM = "HS256"
TOKEN_ISSUER = "conquest"
TOKEN_TTL = timedelta(days=int(os.environ.get("TOKEN_TTL_DAYS", "30")))

# bcrypt ignores everything past 72 bytes of input
BCRYPT_INPUT_LIMIT = 72
BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

bearer_scheme = HTTPBearer(auto_error=False)


class CredentialsError(ValueError):
    """Registration input that cannot become an account."""


def check_new_credentials(username: str, password: str) -> None:
    if not USERNAME_PATTERN.match(username):
        raise CredentialsError(USERNAME_RULE)
    if len(password) < MIN_PASSWORD_LENGTH:
        raise CredentialsError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_INPUT_LIMIT]


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(_password_bytes(password), salt).decode("ascii")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(_password_bytes(password), password_hash.encode("ascii"))


def find_player_by_username(db: Session, username: str) -> Player | None:
    """Usernames are matched without regard to case, so "Bob" and "bob" are one account."""
    return db.query(Player).filter(func.lower(Player.username) == username.lower()).first()


def issue_token(player: Player) -> str:
    now = datetime.utcnow()
    claims = {
        "sub": player.id,
        "name": player.username,
        "iss": TOKEN_ISSUER,
        "iat": now,
        "exp": now + TOKEN_TTL,
    }
    return jwt.encode(claims, TOKEN_SECRET, algorithm=TOKEN_ALGORITHM)


def token_player_id(token: str) -> str | None:
    """Account id from a token we issued, or None if it is forged, foreign or expired."""
    try:
        claims = jwt.decode(token, TOKEN_SECRET, algorithms=[TOKEN_ALGORITHM], issuer=TOKEN_ISSUER)
    except JWTError:
        return None
    return claims.get("sub")


def _player_for(credentials: HTTPAuthorizationCredentials | None, db: Session) -> Player | None:
    if credentials is None:
        return None
    player_id = token_player_id(credentials.credentials)
    if player_id is None:
        return None
    return db.query(Player).filter(Player.id == player_id).first()


def get_current_player(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Player:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    player = _player_for(credentials, db)
    if player is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return player


def get_current_player_optional(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Player | None:
    # Spectators: a missing or unusable token means anonymous, not an error
    return _player_for(credentials, db)
