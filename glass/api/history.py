"""Query parameters and the pagination cursor for the history endpoint."""

from dataclasses import dataclass
from typing import Dict, Optional

from .errors import ContentServerError
from .types import HistoryPage


@dataclass(frozen=True)
class HistoryParams:
    from_timestamp: int = 0
    to_timestamp: int = 0
    server_name: str = ""
    offset: int = 0
    limit: int = 0

    def to_query(self) -> Dict[str, str]:
        """Query string parameters; unset values are left out."""
        params = {}
        if self.from_timestamp > 0:
            params["from"] = str(self.from_timestamp)
        if self.to_timestamp > 0:
            params["to"] = str(self.to_timestamp)
        if self.server_name:
            params["serverName"] = self.server_name
        if self.offset > 0:
            params["offset"] = str(self.offset)
        if self.limit > 0:
            params["limit"] = str(self.limit)
        return params


class HistoryCursor:
    """
    Tracks offset/limit/more-data state while walking the history log.

    The walk always starts at offset 0 and ends once a page reports
    ``moreData: false``.
    """

    def __init__(self, limit: Optional[int] = None, server_name: Optional[str] = None):
        self.offset = 0
        self.limit = limit or 0
        self.server_name = server_name or ""
        self.more_data = True
        self.pages = 0

    def params(self) -> HistoryParams:
        return HistoryParams(
            server_name=self.server_name,
            offset=self.offset,
            limit=self.limit,
        )

    def advance(self, page: HistoryPage) -> None:
        """Move past ``page``.

        Raises:
            ContentServerError: If the page claims more data but would not move the offset
        """
        self.pages += 1
        self.more_data = page.more_data
        if not page.more_data:
            return
        next_offset = page.next_offset
        if next_offset <= self.offset:
            raise ContentServerError(
                f"History pagination did not advance (offset={page.offset}, limit={page.limit})"
            )
        self.offset = next_offset
