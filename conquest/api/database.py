"""
Engine and session factory for the conquest host.

DATABASE_URL selects the backend; without it games go to a SQLite file next to
this module. SQL_ECHO=1 logs every statement.
"""

import os

from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

LOCAL_DB_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "conquest.db")


def resolve_database_url(raw: str | None) -> str:
    """Normalize DATABASE_URL. Hosted Postgres still hands out postgres:// URLs, which SQLAlchemy rejects."""
    if not raw:
        return f"sqlite:///{LOCAL_DB_PATH}"
    if raw.startswith("postgres://"):
        return "postgresql://" + raw[len("postgres://"):]
    return raw


DATABASE_URL = resolve_database_url(os.environ.get("DATABASE_URL"))
IS_SQLITE = DATABASE_URL.startswith("sqlite")

engine = create_engine(
    DATABASE_URL,
    echo=os.environ.get("SQL_ECHO") == "1",
    # Endpoints run on FastAPI's thread pool, so a connection may change threads
    connect_args={"check_same_thread": False} if IS_SQLITE else {},
    pool_pre_ping=not IS_SQLITE,
)

if IS_SQLITE:
    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        # SQLite ships with foreign keys off; event rows must reference a stored game
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

SessionLocal = sessionmaker(bind=engine, autoflush=False)
Base = declarative_base()


def get_db():
    """One session per request, closed once the response is built."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create missing tables. Existing tables are not altered."""
    from . import models  # noqa: F401  registers tables on Base
    Base.metadata.create_all(bind=engine)
