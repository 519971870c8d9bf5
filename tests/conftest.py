"""
Pytest configuration and shared fixtures.
"""

import threading
from typing import Any, Dict, List, Optional

import pytest

from glass.api.errors import ContentServerError, EntityNotFoundError
from glass.api.history import HistoryParams
from glass.api.types import HistoryEntry, HistoryPage, SceneEntity
from glass.database import get_session_factory, init_database
from glass.logger import StructuredLogger

DEFAULT_PAGE_SIZE = 100


def scene_payload(
    entity_id: str,
    timestamp_ms: int = 1_600_000_000_123,
    pointers: Optional[List[str]] = None,
    content: Optional[List[Dict[str, str]]] = None,
    title: str = "Genesis Plaza",
) -> Dict[str, Any]:
    """Scene entity body as served by /entities/scene."""
    return {
        "id": entity_id,
        "type": "scene",
        "timestamp": timestamp_ms,
        "pointers": ["0,0", "0,1"] if pointers is None else pointers,
        "content": [
            {"file": "scene.json", "hash": f"{entity_id}-scene"},
            {"file": "models/tree.glb", "hash": "shared-tree"},
        ] if content is None else content,
        "metadata": {
            "display": {"title": title, "favicon": "favicon.ico"},
            "owner": "0xowner",
            "scene": {"parcels": ["0,0", "0,1"], "base": "0,0"},
            "main": "bin/game.js",
        },
    }


class FakeCatalystClient:
    """
    In-memory stand-in for CatalystClient.

    ``history`` is a list of (entity_type, entity_id) tuples served in pages;
    ``scenes`` maps ids to scene payloads.
    """

    def __init__(
        self,
        history=None,
        scenes: Optional[Dict[str, Dict[str, Any]]] = None,
        contents: Optional[Dict[str, bytes]] = None,
        fail_on_page: Optional[int] = None,
    ):
        self.history = list(history or [])
        self.scenes = dict(scenes or {})
        self.contents = dict(contents or {})
        self.fail_on_page = fail_on_page
        self.history_calls: List[HistoryParams] = []
        self.entity_calls: List[str] = []
        self._lock = threading.Lock()

    def get_history(self, params: Optional[HistoryParams] = None) -> HistoryPage:
        params = params or HistoryParams()
        self.history_calls.append(params)
        if self.fail_on_page is not None and len(self.history_calls) >= self.fail_on_page:
            raise ContentServerError("Content server request failed (503): /history")

        limit = params.limit or DEFAULT_PAGE_SIZE
        window = self.history[params.offset:params.offset + limit]
        events = [
            HistoryEntry(
                server_name="https://peer.example.org",
                entity_type=entity_type,
                entity_id=entity_id,
                timestamp=1_600_000_000_000 + i,
            )
            for i, (entity_type, entity_id) in enumerate(window)
        ]
        return HistoryPage(
            events=events,
            offset=params.offset,
            limit=limit,
            more_data=params.offset + limit < len(self.history),
        )

    def get_scene_entity_by_id(self, entity_id: str) -> SceneEntity:
        with self._lock:
            self.entity_calls.append(entity_id)
        if entity_id not in self.scenes:
            raise EntityNotFoundError(f"Scene not found: {entity_id}")
        return SceneEntity.from_dict(self.scenes[entity_id])

    def get_content(self, content_hash: str) -> bytes:
        if content_hash not in self.contents:
            raise EntityNotFoundError(f"Not found (404): /contents/{content_hash}")
        return self.contents[content_hash]


@pytest.fixture
def quiet_logger() -> StructuredLogger:
    """Logger that writes nowhere but still tracks metrics."""
    return StructuredLogger(name="glass-test", level="DEBUG", enable_file=False, enable_console=False)


@pytest.fixture
def session_factory(tmp_path):
    """Session factory on a fresh SQLite database."""
    engine = init_database(tmp_path / "index.db")
    yield get_session_factory(engine)
    engine.dispose()


@pytest.fixture
def make_scene():
    return scene_payload


@pytest.fixture
def make_client():
    return FakeCatalystClient
