"""
Queries and writes against the index database.

Responsibilities:
- Lookups and inserts for scenes and their content files.
- Tile upserts keyed by (x, y).

Non-Responsibilities:
- No remote calls.
- No pointer parsing.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Type

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, load_only

from .database import Base, Scene, SceneContent, Tile, from_unix

_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def scene_exists(session: Session, scene_id: str) -> bool:
    return session.get(Scene, scene_id) is not None


def save_scene(session: Session, scene: Scene, contents: Iterable[SceneContent]) -> None:
    """
    Add a scene and its content rows to the session.

    The scene row is flushed first so the content rows can reference it.
    Committing (or rolling back) is left to the caller's session scope.
    """
    session.add(scene)
    session.flush()
    session.add_all(list(contents))
    session.flush()


def get_scene_contents(session: Session, scene_id: str) -> List[SceneContent]:
    stmt = (
        select(SceneContent)
        .where(SceneContent.scene_id == scene_id)
        .order_by(SceneContent.file)
    )
    return list(session.scalars(stmt))


def get_scenes_pointers_from_date(session: Session, since: int = 0) -> List[Scene]:
    """
    Scene pointer info for scenes published at or after ``since``.

    Args:
        session: Database session
        since: Unix timestamp in seconds

    Returns:
        Scenes (id, pointers, published_at loaded) ordered oldest first
    """
    stmt = (
        select(Scene)
        .options(load_only(Scene.id, Scene.pointers, Scene.published_at))
        .where(Scene.published_at >= from_unix(since))
        .order_by(Scene.published_at.asc(), Scene.id.asc())
    )
    return list(session.scalars(stmt))


def get_latest_published_at(session: Session) -> Optional[datetime]:
    """Publish time of the most recent scene, or None when no scene is indexed."""
    return session.scalar(select(func.max(Scene.published_at)))


def upsert_tile(session: Session, tile: Tile) -> None:
    """Insert a tile or overwrite owner and timestamps of the existing one at (x, y)."""
    dialect = session.get_bind().dialect.name
    insert = _UPSERT_DIALECTS.get(dialect)
    if insert is None:
        raise NotImplementedError(f"Tile upsert not supported for dialect {dialect!r}")

    stmt = insert(Tile.__table__).values(
        x=tile.x,
        y=tile.y,
        scene_id=tile.scene_id,
        published_at=tile.published_at,
        updated_at=tile.updated_at,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["x", "y"],
        set_={
            "scene_id": stmt.excluded.scene_id,
            "published_at": stmt.excluded.published_at,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    session.execute(stmt)


def count_rows(session: Session, model: Type[Base]) -> int:
    return session.scalar(select(func.count()).select_from(model)) or 0
