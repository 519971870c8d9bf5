"""
Tile projection.

Recomputes which scene owns each parcel of the world grid from the indexed
scenes. Scenes are replayed oldest first so that, for a parcel claimed by
several scenes, the most recently published one writes last and wins.
"""

from typing import Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .coords import InvalidPointerError, pointer_to_coords
from .database import Tile, session_scope, utcnow
from .logger import StructuredLogger, get_logger
from .storage import get_scenes_pointers_from_date, upsert_tile


def index_tiles(
    session_factory: sessionmaker,
    since: int = 0,
    logger: Optional[StructuredLogger] = None,
) -> Dict[str, int]:
    """
    Upsert a tile for every pointer of every scene published since ``since``.

    Bad pointers and failed upserts are logged and skipped; only a failure
    of the initial scene query propagates.

    Args:
        session_factory: Session factory for the index database
        since: Watermark, unix timestamp in seconds (0 = all scenes)
        logger: Logger recording progress and metrics

    Returns:
        Summary dict with scenes, tiles, invalid_pointers and failed counts
    """
    logger = logger or get_logger()
    ctx = logger.bind(index="tiles")

    with session_scope(session_factory) as session:
        scenes = get_scenes_pointers_from_date(session, since)

    ctx.info(f"Updating {len(scenes)} scenes tiles", since=since)
    summary = {"scenes": len(scenes), "tiles": 0, "invalid_pointers": 0, "failed": 0}

    for scene in scenes:
        pointers = scene.pointers or []
        scene_ctx = ctx.bind(scene=scene.id)
        scene_ctx.debug("Updating tiles", n_tiles=len(pointers))

        for pointer in pointers:
            try:
                x, y = pointer_to_coords(pointer)
            except InvalidPointerError as e:
                scene_ctx.warning("Skipping pointer", error=str(e))
                logger.record_invalid_pointer()
                summary["invalid_pointers"] += 1
                continue

            tile = Tile(
                x=x,
                y=y,
                scene_id=scene.id,
                published_at=scene.published_at,
                updated_at=utcnow(),
            )
            try:
                with session_scope(session_factory) as session:
                    upsert_tile(session, tile)
            except SQLAlchemyError as e:
                scene_ctx.warning("Tile upsert failed", x=x, y=y, error=str(e))
                logger.record_tile_failure(type(e).__name__)
                summary["failed"] += 1
                continue

            logger.record_tile_upsert()
            summary["tiles"] += 1

    ctx.info("Tiles updated", **summary)
    return summary
