"""Download the content files of an indexed scene to disk."""

from pathlib import Path
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from .api.client import CatalystClient
from .database import session_scope
from .logger import StructuredLogger, get_logger
from .storage import get_scene_contents


def _target_path(scene_dir: Path, file: str) -> Path:
    target = (scene_dir / file).resolve()
    if not target.is_relative_to(scene_dir.resolve()):
        raise ValueError(f"Content path escapes the scene directory: {file!r}")
    return target


def download_scene(
    client: CatalystClient,
    session_factory: sessionmaker,
    data_dir: Path,
    scene_id: str,
    logger: Optional[StructuredLogger] = None,
) -> List[Path]:
    """
    Write every content file recorded for a scene under ``data_dir/scene_id``.

    Args:
        client: Content server client
        session_factory: Session factory for the index database
        data_dir: Root directory for downloads
        scene_id: Id of an indexed scene

    Returns:
        Paths of the written files

    Raises:
        LookupError: If no content is recorded for the scene
        ValueError: If a recorded file path points outside the scene directory
        ContentServerError: If a file cannot be fetched
    """
    logger = logger or get_logger()
    ctx = logger.bind(scene=scene_id)

    with session_scope(session_factory) as session:
        contents = get_scene_contents(session, scene_id)
    if not contents:
        raise LookupError(f"No content recorded for scene {scene_id}")

    scene_dir = data_dir / scene_id
    written = []
    for content in contents:
        target = _target_path(scene_dir, content.file)
        data = client.get_content(content.id)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        ctx.debug("Downloaded file", file=content.file, bytes=len(data))
        written.append(target)

    ctx.info(f"Downloaded {len(written)} files", dir=str(scene_dir))
    return written
