"""Client for the Catalyst content server API."""

from typing import Any, Dict, List, Optional

import requests

from ..logger import StructuredLogger, get_logger
from .errors import ContentServerError, EntityNotFoundError
from .history import HistoryParams
from .types import HistoryPage, SceneEntity, ServerStatus

STATUS_PATH = "/status"
HISTORY_PATH = "/history"
SCENE_ENTITY_PATH = "/entities/scene"
POINTERS_PATH = "/pointers"
CONTENTS_PATH = "/contents"
AUDIT_PATH = "/audit"

USER_AGENT = "glass-indexer"


class CatalystClient:
    """
    Thin wrapper over the content server HTTP endpoints.

    Every failure (network, non-2xx status, undecodable JSON) surfaces as
    ContentServerError. Nothing is retried here.
    """

    def __init__(
        self,
        endpoint: str,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        if session is None:
            session = requests.Session()
            session.headers["User-Agent"] = USER_AGENT
        self.session = session
        self.logger = logger or get_logger()

    def _url(self, path: str) -> str:
        return f"{self.endpoint}{path}"

    def _get(self, path: str, params: Optional[Dict[str, str]] = None) -> requests.Response:
        url = self._url(path)
        self.logger.record_api_call()
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout)
            resp.raise_for_status()
            return resp
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else "HTTPError"
            if status == 404:
                raise EntityNotFoundError(f"Not found (404): {url}")
            raise ContentServerError(f"Content server request failed ({status}): {url}")
        except requests.exceptions.Timeout:
            raise ContentServerError(f"Content server request timed out: {url}")
        except requests.exceptions.RequestException as e:
            raise ContentServerError(f"Content server request error: {e}")

    def _get_json(self, path: str, params: Optional[Dict[str, str]] = None) -> Any:
        resp = self._get(path, params)
        try:
            return resp.json()
        except ValueError:
            raise ContentServerError(f"Malformed JSON response from {self._url(path)}")

    def get_status(self) -> ServerStatus:
        data = self._get_json(STATUS_PATH)
        if not isinstance(data, dict):
            raise ContentServerError("Malformed status response")
        return ServerStatus.from_dict(data)

    def get_history(self, params: Optional[HistoryParams] = None) -> HistoryPage:
        """Fetch one page of the node history."""
        params = params or HistoryParams()
        data = self._get_json(HISTORY_PATH, params.to_query())
        if not isinstance(data, dict):
            raise ContentServerError("Malformed history response")
        try:
            return HistoryPage.from_dict(data)
        except (TypeError, ValueError, AttributeError) as e:
            raise ContentServerError(f"Malformed history response: {e}")

    def _get_scene(self, params: Dict[str, str]) -> SceneEntity:
        try:
            data = self._get_json(SCENE_ENTITY_PATH, params)
        except EntityNotFoundError:
            data = []
        if not isinstance(data, list):
            raise ContentServerError("Malformed scene response")
        if not data:
            raise EntityNotFoundError(f"Scene not found: {params}")
        try:
            return SceneEntity.from_dict(data[0])
        except (TypeError, ValueError, AttributeError) as e:
            raise ContentServerError(f"Malformed scene response: {e}")

    def get_scene_entity_by_id(self, entity_id: str) -> SceneEntity:
        return self._get_scene({"id": entity_id})

    def get_scene_entity_by_pointer(self, pointer: str) -> SceneEntity:
        return self._get_scene({"pointer": pointer})

    def get_pointers(self, entity_type: str) -> List[str]:
        """List the pointers currently claimed by entities of a type."""
        data = self._get_json(f"{POINTERS_PATH}/{entity_type}")
        if not isinstance(data, list):
            raise ContentServerError("Malformed pointers response")
        return [str(p) for p in data]

    def get_content(self, content_hash: str) -> bytes:
        """Raw bytes of a stored content file."""
        return self._get(f"{CONTENTS_PATH}/{content_hash}").content

    def get_audit(self, entity_type: str, entity_id: str) -> Dict[str, Any]:
        data = self._get_json(f"{AUDIT_PATH}/{entity_type}/{entity_id}")
        if not isinstance(data, dict):
            raise ContentServerError("Malformed audit response")
        return data
