"""
Database schema and connection management.

Uses SQLAlchemy; SQLite by default, PostgreSQL through DATABASE_URL.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Union

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

Base = declarative_base()


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the form stored in the database)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def from_unix(seconds: int) -> datetime:
    """Naive UTC datetime for a unix timestamp in seconds."""
    return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)


class Scene(Base):
    """Indexed scene. Written once, never updated."""

    __tablename__ = "scenes"

    id = Column(String, primary_key=True)  # entity id on the content server
    title = Column(String, nullable=False, default="")
    pointers = Column(JSON, nullable=False, default=list)  # ["x,y", ...]
    raw = Column(Text, nullable=False)  # entity body as served, JSON encoded
    published_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, nullable=True, default=utcnow)


class SceneContent(Base):
    """File that is part of the content of a scene."""

    __tablename__ = "scenes_contents"

    id = Column(String, primary_key=True)  # content hash
    scene_id = Column(String, ForeignKey("scenes.id"), primary_key=True)
    file = Column(String, primary_key=True)
    created_at = Column(DateTime, nullable=True, default=utcnow)


class Tile(Base):
    """Parcel of the world grid and the scene that currently owns it."""

    __tablename__ = "tiles"

    x = Column(Integer, primary_key=True, autoincrement=False)
    y = Column(Integer, primary_key=True, autoincrement=False)
    scene_id = Column(String, nullable=False)
    published_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=True, default=utcnow)


def _database_url(target: Union[str, Path]) -> str:
    if isinstance(target, Path):
        return f"sqlite:///{target}"
    return target


def create_db_engine(target: Union[str, Path]) -> Engine:
    """
    Create an engine for a database URL or a SQLite file path.

    Args:
        target: SQLAlchemy URL, or Path to a SQLite database file

    Returns:
        SQLAlchemy engine, safe to share between worker threads
    """
    url = _database_url(target)
    connect_args = {}
    if url.startswith("sqlite"):
        if url.startswith("sqlite:///") and url != "sqlite:///:memory:":
            Path(url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
        # Workers share the pool; wait on locks instead of failing fast
        connect_args = {"check_same_thread": False, "timeout": 30}
    return create_engine(url, connect_args=connect_args)


def init_database(target: Union[str, Path]) -> Engine:
    """
    Initialize database and create tables.

    Args:
        target: SQLAlchemy URL, or Path to a SQLite database file

    Returns:
        Engine bound to the database
    """
    engine = create_db_engine(target)
    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to ``engine``; objects stay readable after commit."""
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """
    Transactional scope around a series of operations.

    Commits on success, rolls back on any exception, always closes.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        raise
    finally:
        session.close()
