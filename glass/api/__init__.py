from .client import CatalystClient
from .errors import ContentServerError, EntityNotFoundError
from .history import HistoryCursor, HistoryParams
from .types import (
    ENTITY_TYPE_PROFILE,
    ENTITY_TYPE_SCENE,
    ContentFile,
    HistoryEntry,
    HistoryPage,
    SceneEntity,
    ServerStatus,
)

__all__ = [
    "CatalystClient",
    "ContentFile",
    "ContentServerError",
    "ENTITY_TYPE_PROFILE",
    "ENTITY_TYPE_SCENE",
    "EntityNotFoundError",
    "HistoryCursor",
    "HistoryEntry",
    "HistoryPage",
    "HistoryParams",
    "SceneEntity",
    "ServerStatus",
]
