"""
Local store configuration and session management.
Uses SQLAlchemy 2.0 patterns against a terminal-local database (SQLite by default).
"""

from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from shared.config.settings import LOCAL_STORE_URL


def create_local_engine(url: str = LOCAL_STORE_URL) -> Engine:
    """
    Build an engine for the local store.

    SQLite connections are shared with background tasks, so the same-thread
    check is disabled. In-memory databases use a single static connection,
    otherwise every checkout would see an empty database.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True, echo=False)

    connect_args = {"check_same_thread": False}
    if url.endswith(":memory:") or url == "sqlite://":
        return create_engine(url, connect_args=connect_args, poolclass=StaticPool, echo=False)

    # sqlite:///./data/pos_local.db -> ./data must exist before first connect
    db_path = url.split("///", 1)[-1]
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, connect_args=connect_args, echo=False)


def create_session_factory(bind: Engine) -> sessionmaker[Session]:
    """Session factory bound to ``bind``."""
    return sessionmaker(bind=bind, autoflush=False, autocommit=False, expire_on_commit=False)


# Engine is created lazily so importing this module never touches the disk
_engine: Engine | None = None


def get_engine() -> Engine:
    """Get the process-wide local store engine."""
    global _engine
    if _engine is None:
        _engine = create_local_engine(LOCAL_STORE_URL)
    return _engine
