import json
from typing import TYPE_CHECKING, List, Tuple

from sqlalchemy.exc import IntegrityError

from ..api.types import ENTITY_TYPE_SCENE, SceneEntity
from ..database import Scene, SceneContent, from_unix, session_scope, utcnow
from ..logger import BoundLogger
from ..storage import save_scene, scene_exists
from .base import ALREADY_INDEXED, INDEXED, SKIPPED, Index

if TYPE_CHECKING:
    from ..indexer import ContentIndexer


def build_scene_rows(entity_id: str, entity: SceneEntity) -> Tuple[Scene, List[SceneContent]]:
    """Map a fetched scene entity onto its scene row and content rows."""
    now = utcnow()
    scene = Scene(
        id=entity_id,
        title=entity.title,
        pointers=list(entity.pointers),
        raw=json.dumps(entity.raw),
        published_at=from_unix(entity.timestamp // 1000),  # server sends milliseconds
        created_at=now,
    )

    # A manifest may list the same file twice
    seen = set()
    contents = []
    for content in entity.content:
        key = (content.hash, content.file)
        if key in seen:
            continue
        seen.add(key)
        contents.append(
            SceneContent(id=content.hash, file=content.file, scene_id=entity_id, created_at=now)
        )
    return scene, contents


class SceneIndex(Index):
    """Stores every scene deployed on the content server, once."""

    name = "SceneIndex"

    @staticmethod
    def _is_indexed(indexer: "ContentIndexer", entity_id: str) -> bool:
        with session_scope(indexer.session_factory) as session:
            return scene_exists(session, entity_id)

    def run(
        self,
        ctx: BoundLogger,
        indexer: "ContentIndexer",
        entity_type: str,
        entity_id: str,
    ) -> str:
        # only scene types
        if entity_type != ENTITY_TYPE_SCENE:
            return SKIPPED

        ctx.debug("Indexing")

        # checked before fetching to spare the remote call
        if self._is_indexed(indexer, entity_id):
            ctx.debug("Skip as already present")
            return ALREADY_INDEXED

        entity = indexer.client.get_scene_entity_by_id(entity_id)
        scene, contents = build_scene_rows(entity_id, entity)

        try:
            with session_scope(indexer.session_factory) as session:
                save_scene(session, scene, contents)
        except IntegrityError:
            # another worker got the same id from a later history entry
            if not self._is_indexed(indexer, entity_id):
                raise
            ctx.warning("Skip as indexed concurrently")
            return ALREADY_INDEXED

        ctx.info("Saved scene", title=scene.title, n_pointers=len(scene.pointers), n_files=len(contents))
        return INDEXED
