"""Response shapes returned by the Catalyst content server."""

from dataclasses import dataclass, field
from typing import Any, Dict, List

ENTITY_TYPE_SCENE = "scene"
ENTITY_TYPE_PROFILE = "profile"


@dataclass(frozen=True)
class ServerStatus:
    name: str = ""
    version: str = ""
    current_time: int = 0
    last_immutable_time: int = 0
    history_size: int = 0
    commit_hash: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServerStatus":
        return cls(
            name=data.get("name") or "",
            version=data.get("version") or "",
            current_time=int(data.get("currentTime") or 0),
            last_immutable_time=int(data.get("lastImmutableTime") or 0),
            history_size=int(data.get("historySize") or 0),
            commit_hash=data.get("commitHash") or "",
        )


@dataclass(frozen=True)
class HistoryEntry:
    """One event of the history log."""

    server_name: str
    entity_type: str
    entity_id: str
    timestamp: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryEntry":
        return cls(
            server_name=data.get("serverName") or "",
            entity_type=data.get("entityType") or "",
            entity_id=data.get("entityId") or "",
            timestamp=int(data.get("timestamp") or 0),
        )


@dataclass(frozen=True)
class HistoryPage:
    """A page of the history log plus its pagination block."""

    events: List[HistoryEntry]
    offset: int
    limit: int
    more_data: bool

    @property
    def next_offset(self) -> int:
        return self.offset + self.limit

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryPage":
        pagination = data.get("pagination") or {}
        return cls(
            events=[HistoryEntry.from_dict(e) for e in data.get("events") or []],
            offset=int(pagination.get("offset") or 0),
            limit=int(pagination.get("limit") or 0),
            more_data=bool(pagination.get("moreData")),
        )


@dataclass(frozen=True)
class ContentFile:
    """A file listed in an entity manifest."""

    file: str
    hash: str


@dataclass(frozen=True)
class SceneEntity:
    """
    A deployed scene.

    ``raw`` keeps the body exactly as the server sent it; it is what gets
    persisted as the scene payload.
    """

    id: str
    type: str
    timestamp: int
    pointers: List[str]
    content: List[ContentFile]
    metadata: Dict[str, Any] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def title(self) -> str:
        display = self.metadata.get("display") or {}
        return display.get("title") or ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SceneEntity":
        return cls(
            id=data.get("id") or "",
            type=data.get("type") or ENTITY_TYPE_SCENE,
            timestamp=int(data.get("timestamp") or 0),
            pointers=list(data.get("pointers") or []),
            content=[
                ContentFile(file=c.get("file") or "", hash=c.get("hash") or "")
                for c in data.get("content") or []
            ],
            metadata=data.get("metadata") or {},
            raw=data,
        )
